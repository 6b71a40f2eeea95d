"""
Package status manager.

Manifesto:
    Clients do not call the materializer directly on every screen. They
    tell the manager *why* they want fresh data (login, app resume, page
    navigation, pull-to-refresh) and the manager decides whether that is
    worth a recompute, keeps concurrent refreshes of the same user from
    stampeding the store, and fans the result out to listeners.

    - **Throttled:** Per-source windows; forced refreshes bypass them
    - **Deduplicated:** One in-flight refresh per user key
    - **Observable:** ``user_package_updated``, ``packages_overdue``,
      ``packages_upcoming`` events
    - **Invalidated by writes:** The materializer calls
      :meth:`PackageStatusManager.clear_user_cache` after each write

Architecture:
    ::

        refresh(user, force, source)
          ├── throttled and cached?      → ok(cached, from_cache=True)
          ├── in flight?                 → fail(REFRESH_IN_PROGRESS, stale=…)
          │                                (or join the running refresh)
          └── materializer.load_history(use_cache=not force)
                ├── cache + mark
                └── notify updated / overdue / upcoming

Tags:
    refresh, throttle, dedup, lifecycle, events

Doc-Types:
    - API Reference
    - Technical Design
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from parcelspine.core.cache import CacheStore
from parcelspine.core.clock import Clock
from parcelspine.core.errors import RefreshInProgressError, ValidationError, require
from parcelspine.core.events import EventType, Listener, Notifier
from parcelspine.core.logging import LogContext, get_logger
from parcelspine.core.result import OperationResult, fail_from_exception, start_timer
from parcelspine.core.timestamps import to_iso8601
from parcelspine.models import AppState, PackageHistory, PackageRecord, PackageStatus, RefreshSource
from parcelspine.packages.materializer import PackageMaterializer
from parcelspine.packages.throttle import ThrottleGovernor

logger = get_logger(__name__)

REFRESH_OPERATION = "user_packages"
PACKAGE_PAGE_MARKERS = ("package", "resi", "status")


class PackageStatusManager:
    """Refresh orchestration over a :class:`PackageMaterializer`.

    Args:
        materializer: Produces histories; its clock is the wall clock here.
        throttle: Windows and in-flight map.
        cache: Refresh payload cache; its TTL should equal the per-user
            window.
        notifier: Listener registry.
        upcoming_window_days: How far ahead a pending package counts as
            upcoming.
        join_in_flight: Await a running refresh instead of rejecting.
    """

    def __init__(
        self,
        materializer: PackageMaterializer,
        *,
        throttle: ThrottleGovernor | None = None,
        cache: CacheStore | None = None,
        notifier: Notifier | None = None,
        clock: Clock | None = None,
        upcoming_window_days: float = 3,
        join_in_flight: bool = False,
    ):
        self._materializer = materializer
        self._clock = clock or materializer.timelines.clock
        self._throttle = throttle or ThrottleGovernor(clock=self._clock)
        self._cache = cache or CacheStore(
            ttl_seconds=max(self._throttle.windows.per_user, 1.0), clock=self._clock, name="refresh"
        )
        self._notifier = notifier or Notifier()
        self._upcoming = timedelta(days=upcoming_window_days)
        self._join = join_in_flight
        self._background_at: datetime | None = None

    @property
    def throttle(self) -> ThrottleGovernor:
        return self._throttle

    @property
    def cache(self) -> CacheStore:
        return self._cache

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    def subscribe(self, callback: Listener):
        return self._notifier.subscribe(callback)

    @staticmethod
    def cache_key(user_id: str) -> str:
        return f"{REFRESH_OPERATION}:{user_id}"

    # ── Classification ───────────────────────────────────────────

    @staticmethod
    def overdue(records: list[PackageRecord]) -> list[PackageRecord]:
        return [r for r in records if r.status is PackageStatus.OVERDUE]

    def upcoming(self, records: list[PackageRecord], now: datetime) -> list[PackageRecord]:
        horizon = now + self._upcoming
        return [
            r for r in records if r.status is PackageStatus.PENDING and now < r.delivery_date <= horizon
        ]

    # ── Refresh ──────────────────────────────────────────────────

    async def _refresh_now(
        self, user_id: str, force: bool, source: RefreshSource
    ) -> tuple[PackageHistory, list[str]]:
        generation = self._materializer.generation(user_id)
        history, warnings = await self._materializer.load_history(user_id, use_cache=not force)
        if self._materializer.generation(user_id) == generation:
            self._cache.set(self.cache_key(user_id), history)
            self._throttle.mark(REFRESH_OPERATION, user_id)
        else:
            logger.debug("refresh_result_stale", user_id=user_id)

        await self._notifier.notify(
            EventType.USER_PACKAGE_UPDATED,
            {"user_id": user_id, "source": source.value, "history": history, "warnings": warnings},
        )
        overdue = self.overdue(history.records)
        if overdue:
            await self._notifier.notify(
                EventType.PACKAGES_OVERDUE,
                {"user_id": user_id, "packages": overdue, "count": len(overdue)},
            )
        now = self._materializer.timelines.clock_for(history.timeline).now()
        upcoming = self.upcoming(history.records, now)
        if upcoming:
            await self._notifier.notify(
                EventType.PACKAGES_UPCOMING,
                {"user_id": user_id, "packages": upcoming, "count": len(upcoming)},
            )
        logger.info(
            "packages_refreshed",
            records=len(history.records),
            overdue=len(overdue),
            upcoming=len(upcoming),
            warnings=len(warnings),
        )
        return history, warnings

    async def refresh(
        self,
        user_id: str,
        *,
        force: bool = False,
        source: RefreshSource | str = RefreshSource.MANUAL,
    ) -> OperationResult[PackageHistory]:
        """Refresh *user_id*'s package view.

        Returns:
            The history. ``metadata["from_cache"]`` tells whether the
            throttle answered from cache. A refresh already running for the
            same user yields ``REFRESH_IN_PROGRESS`` with the last cached
            payload, if any, under ``metadata["stale"]``.
        """
        require(user_id, "user_id")
        try:
            origin = RefreshSource(source)
        except ValueError:
            raise ValidationError(f"Unknown refresh source '{source}'", field="source", value=source) from None

        timer = start_timer()
        key = self.cache_key(user_id)
        metadata: dict[str, Any] = {"source": origin.value}

        if not force and self._throttle.should_skip(
            REFRESH_OPERATION, user_id, self._throttle.window_for(origin)
        ):
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug("refresh_throttled", user_id=user_id, source=origin.value)
                return OperationResult.ok(
                    cached, elapsed_ms=timer.elapsed_ms, metadata={**metadata, "from_cache": True}
                )

        async with LogContext(user_id=user_id, source=origin.value):
            try:
                history, warnings = await self._throttle.run_exclusive(
                    key, lambda: self._refresh_now(user_id, force, origin), join=self._join
                )
            except RefreshInProgressError as exc:
                logger.info("refresh_in_progress", key=key)
                stale = self._cache.get(key)
                if stale is not None:
                    metadata["stale"] = stale
                return OperationResult.fail(
                    exc.code,
                    exc.message,
                    category=exc.category,
                    retryable=exc.retryable,
                    elapsed_ms=timer.elapsed_ms,
                    metadata=metadata,
                )
            except Exception as exc:
                return fail_from_exception(exc, "refresh", timer)

        return OperationResult.ok(
            history,
            warnings=warnings,
            elapsed_ms=timer.elapsed_ms,
            metadata={**metadata, "from_cache": False},
        )

    # ── Lifecycle hooks ──────────────────────────────────────────

    async def handle_app_state_change(
        self, state: AppState | str, user_id: str | None = None
    ) -> OperationResult[PackageHistory] | None:
        """Track background time; refresh on resume after a long absence."""
        try:
            next_state = AppState(state)
        except ValueError:
            raise ValidationError(f"Unknown app state '{state}'", field="state", value=state) from None

        if next_state is AppState.BACKGROUND:
            self._background_at = self._clock.now()
            return None
        if next_state is not AppState.ACTIVE:
            return None

        since, self._background_at = self._background_at, None
        if since is None or user_id is None:
            return None
        away = (self._clock.now() - since).total_seconds()
        if away <= self._throttle.windows.background_resume:
            return None
        logger.info("app_resumed", user_id=user_id, away_seconds=away)
        return await self.refresh(user_id, source=RefreshSource.APP_RESUME)

    async def handle_user_login(self, user_id: str) -> OperationResult[PackageHistory]:
        return await self.refresh(user_id, force=True, source=RefreshSource.LOGIN)

    async def handle_page_navigation(
        self, page: str, user_id: str | None = None
    ) -> OperationResult[PackageHistory]:
        """Refresh when *page* shows packages; otherwise report a skip."""
        name = (page or "").lower()
        if not any(marker in name for marker in PACKAGE_PAGE_MARKERS):
            return OperationResult.ok(None, metadata={"skipped": True, "page": page})
        if user_id is None:
            return OperationResult.ok(None, metadata={"skipped": True, "page": page, "reason": "no_user"})
        return await self.refresh(user_id, source=RefreshSource.PAGE_NAVIGATION)

    # ── Cache control ────────────────────────────────────────────

    def clear_user_cache(self, user_id: str) -> None:
        self._cache.delete(self.cache_key(user_id))
        self._throttle.forget(user_id, REFRESH_OPERATION)

    def clear_all_cache(self) -> None:
        self._cache.clear()
        self._throttle.clear()
        self._background_at = None

    def debug_info(self) -> dict[str, Any]:
        return {
            "cache_size": self._cache.size(),
            "cache_keys": self._cache.keys(),
            "listeners": self._notifier.listener_count,
            "background_since": to_iso8601(self._background_at),
            **self._throttle.snapshot(),
        }


__all__ = ["PackageStatusManager", "REFRESH_OPERATION", "PACKAGE_PAGE_MARKERS"]
