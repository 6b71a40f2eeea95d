"""Throttle windows and in-flight deduplication for package refreshes.

Manifesto:
Every page switch, app resume and login wants a fresh package view. Most
of those requests land within minutes of the previous refresh and would
recompute the same thing. The governor remembers when each (operation,
user) pair last refreshed and answers "skip or proceed", and it makes
sure a given refresh key runs at most once at a time.

ARCHITECTURE
────────────
::

    ThrottleGovernor
      ├── window_for(source)             ─ seconds for a RefreshSource
      ├── should_skip(op, user, window)  ─ last mark younger than window?
      ├── mark / forget / clear          ─ last-refresh bookkeeping
      └── run_exclusive(key, fn, join)   ─ in-flight map of asyncio.Future

    Windows:
      page_navigation → per_page (120 s)
      app_resume      → background_resume (1800 s)
      anything else   → per_user (300 s)

Example::

    governor = ThrottleGovernor(clock=clock)
    if not governor.should_skip("refresh", "u1", governor.window_for("login")):
        payload = await governor.run_exclusive("refresh:u1", do_refresh)
        governor.mark("refresh", "u1")

Tags:
    throttle, dedup, in-flight, asyncio

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from parcelspine.core.clock import Clock, SystemClock
from parcelspine.core.errors import RefreshInProgressError
from parcelspine.core.settings import ParcelSettings
from parcelspine.core.timestamps import to_iso8601
from parcelspine.models import RefreshSource

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class ThrottleWindows:
    """Throttle windows in seconds."""

    per_page: float = 120
    per_user: float = 300
    background_resume: float = 1800

    @classmethod
    def from_settings(cls, settings: ParcelSettings) -> ThrottleWindows:
        return cls(
            per_page=settings.throttle_per_page_seconds,
            per_user=settings.throttle_per_user_seconds,
            background_resume=settings.throttle_background_resume_seconds,
        )


class ThrottleGovernor:
    """Last-refresh bookkeeping plus a per-key in-flight map."""

    def __init__(self, windows: ThrottleWindows | None = None, *, clock: Clock | None = None):
        self.windows = windows or ThrottleWindows()
        self._clock = clock or SystemClock()
        self._last: dict[tuple[str, str], datetime] = {}
        self._in_flight: dict[str, asyncio.Future[Any]] = {}

    # ── Windows ──────────────────────────────────────────────────

    def window_for(self, source: RefreshSource | str) -> float:
        try:
            kind = RefreshSource(source)
        except ValueError:
            return self.windows.per_user
        if kind is RefreshSource.PAGE_NAVIGATION:
            return self.windows.per_page
        if kind is RefreshSource.APP_RESUME:
            return self.windows.background_resume
        return self.windows.per_user

    def should_skip(self, operation: str, user_id: str, window_seconds: float) -> bool:
        """True when *operation* ran for *user_id* less than *window_seconds* ago."""
        last = self._last.get((operation, user_id))
        if last is None or window_seconds <= 0:
            return False
        return (self._clock.now() - last).total_seconds() < window_seconds

    def last_refresh(self, operation: str, user_id: str) -> datetime | None:
        return self._last.get((operation, user_id))

    def mark(self, operation: str, user_id: str) -> None:
        self._last[(operation, user_id)] = self._clock.now()

    def forget(self, user_id: str, operation: str | None = None) -> None:
        """Drop the marks of *user_id* (one operation, or all of them)."""
        for key in [k for k in self._last if k[1] == user_id and (operation is None or k[0] == operation)]:
            del self._last[key]

    def clear(self) -> None:
        self._last.clear()

    # ── In-flight ────────────────────────────────────────────────

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def in_flight_keys(self) -> list[str]:
        return sorted(self._in_flight)

    async def run_exclusive(
        self,
        key: str,
        operation: Callable[[], Awaitable[T]],
        *,
        join: bool = False,
    ) -> T:
        """Run *operation* unless another run for *key* is active.

        Raises:
            RefreshInProgressError: A run for *key* is active and ``join``
                is false. With ``join`` the caller awaits that run instead.
        """
        running = self._in_flight.get(key)
        if running is not None:
            if not join:
                raise RefreshInProgressError(key)
            # Shielded: a joiner being cancelled must not cancel the owner.
            return await asyncio.shield(running)

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            result = await operation()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as exc:
            future.set_exception(exc)
            # Joiners are optional; mark the exception retrieved.
            future.exception()
            raise
        else:
            future.set_result(result)
            return result
        finally:
            self._in_flight.pop(key, None)

    def snapshot(self) -> dict[str, Any]:
        return {
            "windows": {
                "per_page": self.windows.per_page,
                "per_user": self.windows.per_user,
                "background_resume": self.windows.background_resume,
            },
            "last_refresh": {f"{op}:{user}": to_iso8601(ts) for (op, user), ts in self._last.items()},
            "in_flight": self.in_flight_keys(),
        }


__all__ = ["ThrottleWindows", "ThrottleGovernor"]
