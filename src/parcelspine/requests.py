"""
Typed request objects for operations.

Each dataclass is the *input* contract of one operation. ``validate()``
raises :class:`~parcelspine.core.errors.ValidationError` before any I/O and
returns the normalised values the service works with.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from parcelspine.core.errors import ValidationError
from parcelspine.core.timestamps import parse_instant
from parcelspine.models import CadenceType, TimelineMode


def _cadence(value: CadenceType | str) -> CadenceType:
    try:
        return CadenceType(value)
    except ValueError:
        raise ValidationError(
            f"Unknown cadence '{value}'", field="cadence", value=value
        ) from None


def _duration(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError("duration must be a non-negative integer", field="duration", value=value)
    return value


def _instant(value: Any, name: str) -> datetime:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{name} is required", field=name, value=value)
    try:
        return parse_instant(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} is not a valid instant", field=name, value=value) from e


# ------------------------------------------------------------------ #
# Timeline operations
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class CreateTemplateRequest:
    """Request for :func:`parcelspine.ops.create_timeline_template`."""

    name: str = ""
    cadence: CadenceType | str = CadenceType.WEEKLY
    duration: int = 0
    base_weight: float = 0
    delivery_days: list[int] = field(default_factory=list)

    def validate(self) -> None:
        if not self.name.strip():
            raise ValidationError("name is required", field="name", value=self.name)
        _cadence(self.cadence)
        _duration(self.duration)


@dataclass(frozen=True, slots=True)
class CreateTimelineRequest:
    """Request for :func:`parcelspine.ops.create_active_timeline`.

    Attributes:
        cadence: Period length.
        duration: Number of periods.
        start_date: Instant the first period counts from (period 1 is due
            one cadence step later).
        mode: ``auto`` follows real time; ``manual`` follows
            ``simulation_date``, which is then required.
        holidays: Period numbers that carry no delivery. Numbers outside
            ``1..duration`` are rejected.
        total_amount: Amount spread over the active periods.
        id: Timeline identifier; generated when empty.
    """

    cadence: CadenceType | str = CadenceType.WEEKLY
    duration: int = 0
    start_date: datetime | str | None = None
    mode: TimelineMode | str = TimelineMode.AUTO
    simulation_date: datetime | str | None = None
    holidays: tuple[int, ...] | list[int] | frozenset[int] = ()
    total_amount: float = 0
    base_amount: float | None = None
    name: str = ""
    id: str = ""

    def validate(self) -> dict[str, Any]:
        """Normalised fields for :class:`~parcelspine.models.TimelineConfig`."""
        cadence = _cadence(self.cadence)
        duration = _duration(self.duration)
        start = _instant(self.start_date, "start_date")
        try:
            mode = TimelineMode(self.mode)
        except ValueError:
            raise ValidationError(f"Unknown mode '{self.mode}'", field="mode", value=self.mode) from None

        simulation = None
        if mode is TimelineMode.MANUAL:
            simulation = _instant(self.simulation_date, "simulation_date")

        holidays = frozenset(self.holidays)
        bad = sorted(
            (h for h in holidays if isinstance(h, bool) or not isinstance(h, int) or not 1 <= h <= duration),
            key=str,
        )
        if bad:
            raise ValidationError(
                f"holidays must be period numbers within 1..{duration}", field="holidays", value=bad
            )
        if self.total_amount < 0:
            raise ValidationError("total_amount must not be negative", field="total_amount", value=self.total_amount)

        return {
            "cadence": cadence,
            "duration": duration,
            "start_date": start,
            "mode": mode,
            "simulation_date": simulation,
            "holidays": holidays,
            "total_amount": self.total_amount,
            "base_amount": self.base_amount,
        }


__all__ = ["CreateTemplateRequest", "CreateTimelineRequest"]
