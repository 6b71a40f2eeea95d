"""
Centralized settings for parcel-spine.

Manifesto:
    Cache TTLs and throttle windows used to live as constants scattered
    across two layers with uncoordinated values. ``ParcelSettings`` puts
    every tunable in one validated, environment-driven object so a
    deployment (or a test) can change them in one place.

    - **Pydantic validation:** Type-checked at startup
    - **Environment-driven:** ``PARCEL_*`` variables and ``.env`` files
    - **Sensible defaults:** 30 s read caches, 2/5/30 minute throttle windows

Tags:
    settings, configuration, pydantic, environment

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ParcelSettings(BaseSettings):
    """parcel-spine configuration.

    All fields can be set via ``PARCEL_*`` environment variables (e.g.
    ``PARCEL_THROTTLE_PER_USER_SECONDS=600``) or through a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="PARCEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Caches ───────────────────────────────────────────────────
    history_cache_ttl_seconds: float = Field(default=30, gt=0)
    timeline_cache_ttl_seconds: float = Field(default=30, gt=0)
    cache_max_size: int = Field(default=10_000, ge=1)

    # ── Throttle windows ─────────────────────────────────────────
    throttle_per_page_seconds: float = Field(default=120, ge=0)
    throttle_per_user_seconds: float = Field(default=300, ge=0)
    throttle_background_resume_seconds: float = Field(default=1800, ge=0)

    # ── Refresh behaviour ────────────────────────────────────────
    upcoming_window_days: float = Field(default=3, ge=0)
    join_in_flight: bool = Field(
        default=False,
        description="Await a running refresh for the same key instead of rejecting",
    )

    # ── Storage ──────────────────────────────────────────────────
    database_path: Path = Field(
        default_factory=lambda: Path.home() / ".parcelspine" / "parcelspine.db",
        description="SQLite document store used by the CLI",
    )

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return value

    @model_validator(mode="after")
    def _refresh_cache_outlives_page_window(self) -> ParcelSettings:
        if self.throttle_per_page_seconds > self.throttle_per_user_seconds:
            raise ValueError(
                "throttle_per_page_seconds must not exceed throttle_per_user_seconds"
            )
        return self

    @property
    def refresh_cache_ttl_seconds(self) -> float:
        """TTL of the status manager cache: the per-user throttle window."""
        return max(self.throttle_per_user_seconds, 1.0)


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: ParcelSettings | None = None


def get_settings(*, _force_reload: bool = False) -> ParcelSettings:
    """Load, validate, and cache a :class:`ParcelSettings` instance."""
    global _settings_cache
    if _settings_cache is None or _force_reload:
        _settings_cache = ParcelSettings()
    return _settings_cache


def clear_settings_cache() -> None:
    """Drop the cached settings (tests)."""
    global _settings_cache
    _settings_cache = None


__all__ = ["ParcelSettings", "get_settings", "clear_settings_cache"]
