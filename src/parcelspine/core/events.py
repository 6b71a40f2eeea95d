"""
In-process listener registry.

Manifesto:
    UI layers, loggers and reminder jobs all want to know when a user's
    package view was refreshed or when overdue/upcoming packages show up.
    The status manager should not know who they are. A single-process
    pub/sub with per-listener failure isolation is enough; a multi-process
    deployment would need a real message bus.

Listeners are plain callables ``callback(event_type, payload)``; coroutine
functions are awaited. A listener that raises is logged and skipped, the
rest still receive the event.

Tags:
    events, pub-sub, listeners, in-memory, asyncio

Doc-Types:
    api-reference
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from parcelspine.core.logging import get_logger

logger = get_logger(__name__)


class EventType(str, Enum):
    """Events emitted by the status manager."""

    USER_PACKAGE_UPDATED = "user_package_updated"
    PACKAGES_OVERDUE = "packages_overdue"
    PACKAGES_UPCOMING = "packages_upcoming"


Listener = Callable[[str, dict[str, Any]], Awaitable[None] | None]


class Notifier:
    """Listener registry with isolated fan-out.

    Example::

        notifier = Notifier()

        def on_event(event_type, payload):
            print(event_type, payload["user_id"])

        unsubscribe = notifier.subscribe(on_event)
        await notifier.notify("user_package_updated", {"user_id": "u1"})
        unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        """Register *callback*; returns a function that unregisters it."""
        if not callable(callback):
            raise TypeError("callback must be callable")
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def notify(self, event_type: EventType | str, payload: dict[str, Any]) -> int:
        """Deliver an event to every listener.

        Returns:
            Number of listeners that handled the event without raising.
        """
        name = event_type.value if isinstance(event_type, EventType) else event_type
        delivered = 0
        # Snapshot: listeners may unsubscribe while being notified.
        for callback in list(self._listeners):
            try:
                outcome = callback(name, payload)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as exc:
                logger.warning(
                    "listener_failed",
                    event_type=name,
                    listener=getattr(callback, "__qualname__", repr(callback)),
                    error=str(exc),
                )
                continue
            delivered += 1
        return delivered

    def clear(self) -> None:
        """Drop every listener."""
        self._listeners.clear()

    @property
    def listener_count(self) -> int:
        """Number of registered listeners."""
        return len(self._listeners)


__all__ = ["EventType", "Listener", "Notifier"]
