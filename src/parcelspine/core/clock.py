"""
Clocks.

Two different notions of "now" coexist:

* the **wall clock**, used for cache TTLs, throttle windows and
  background/foreground bookkeeping;
* the **timeline clock**, used for status resolution. In ``manual`` mode it
  reports the administrator-set simulation instant instead of real time.

Both implement the :class:`Clock` protocol so every time-dependent component
receives its clock by injection and can be tested without sleeping.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from parcelspine.core.timestamps import ensure_utc, parse_instant, utc_now

if TYPE_CHECKING:
    from parcelspine.models import TimelineConfig


@runtime_checkable
class Clock(Protocol):
    """Anything that can tell the current instant (aware, UTC)."""

    def now(self) -> datetime: ...


class SystemClock:
    """Real time."""

    def now(self) -> datetime:
        return utc_now()

    def __repr__(self) -> str:
        return "SystemClock()"


class FixedClock:
    """A clock that only moves when told to.

    Example:
        clock = FixedClock("2024-01-05T00:00:00Z")
        clock.advance(seconds=31)
    """

    def __init__(self, instant: datetime | str | None = None):
        self._now = parse_instant(instant) if instant is not None else utc_now()

    def now(self) -> datetime:
        return self._now

    def set(self, instant: datetime | str) -> None:
        self._now = parse_instant(instant)

    def advance(self, delta: timedelta | None = None, **kwargs: float) -> datetime:
        """Move forward by *delta* or by ``timedelta(**kwargs)``."""
        self._now = self._now + (delta if delta is not None else timedelta(**kwargs))
        return self._now

    def __repr__(self) -> str:
        return f"FixedClock({self._now.isoformat()!r})"


class TimelineClock:
    """Clock bound to a timeline's mode.

    Returns the timeline's ``simulation_date`` when the timeline is in
    manual mode and has one, otherwise defers to *base*.
    """

    def __init__(self, timeline: TimelineConfig | None, base: Clock | None = None):
        self._timeline = timeline
        self._base = base or SystemClock()

    @property
    def simulated(self) -> bool:
        timeline = self._timeline
        return (
            timeline is not None
            and timeline.mode.value == "manual"
            and timeline.simulation_date is not None
        )

    def now(self) -> datetime:
        if self.simulated:
            return ensure_utc(self._timeline.simulation_date)  # type: ignore[union-attr]
        return self._base.now()

    def __repr__(self) -> str:
        return f"TimelineClock(simulated={self.simulated})"


__all__ = ["Clock", "SystemClock", "FixedClock", "TimelineClock"]
