"""
Lazy-initialised dependency-injection container.

:class:`ParcelContainer` holds the document store, the clock and the
services built on them, creates each on first access and wires the cache
invalidation hooks between layers:

* a timeline change clears every history and refresh cache;
* a package or priority write clears that user's refresh cache and
  throttle mark.

Usage::

    from parcelspine.container import ParcelContainer
    from parcelspine.store import InMemoryDocumentStore

    container = ParcelContainer(store=InMemoryDocumentStore())
    result = await container.manager.refresh("u1")

    # The CLI lets the container open the SQLite store itself:
    async with ParcelContainer(ParcelSettings(database_path="db.sqlite")) as c:
        ...
"""

from __future__ import annotations

from typing import Any

from parcelspine.core.cache import CacheStore
from parcelspine.core.clock import Clock, SystemClock
from parcelspine.core.events import Notifier
from parcelspine.core.logging import get_logger
from parcelspine.core.settings import ParcelSettings, get_settings
from parcelspine.packages.manager import PackageStatusManager
from parcelspine.packages.materializer import PackageMaterializer
from parcelspine.packages.throttle import ThrottleGovernor, ThrottleWindows
from parcelspine.store.base import DocumentStore
from parcelspine.store.sqlite import SQLiteDocumentStore
from parcelspine.timeline.service import TimelineService

logger = get_logger(__name__)

_UNSET: Any = object()


def create_store(settings: ParcelSettings) -> DocumentStore:
    """Open the SQLite document store configured in *settings*."""
    store = SQLiteDocumentStore(settings.database_path)
    logger.debug("store_opened", path=store.path)
    return store


class ParcelContainer:
    """Lazy-initialised dependency container.

    Args:
        settings: Defaults to :func:`get_settings`.
        store: Document store. Omit to open the configured SQLite file;
            pass ``None`` explicitly to run without a backend.
        clock: Wall clock shared by caches, throttle and services.
    """

    def __init__(
        self,
        settings: ParcelSettings | None = None,
        *,
        store: DocumentStore | None = _UNSET,
        clock: Clock | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._owns_store = store is _UNSET
        self._clock = clock or SystemClock()
        self._notifier: Notifier | None = None
        self._timelines: TimelineService | None = None
        self._materializer: PackageMaterializer | None = None
        self._manager: PackageStatusManager | None = None

    # ── Properties (lazy) ────────────────────────────────────────

    @property
    def settings(self) -> ParcelSettings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def store(self) -> DocumentStore | None:
        if self._store is _UNSET:
            self._store = create_store(self.settings)
        return self._store

    @property
    def notifier(self) -> Notifier:
        if self._notifier is None:
            self._notifier = Notifier()
        return self._notifier

    @property
    def timelines(self) -> TimelineService:
        self._ensure_services()
        return self._timelines  # type: ignore[return-value]

    @property
    def materializer(self) -> PackageMaterializer:
        self._ensure_services()
        return self._materializer  # type: ignore[return-value]

    @property
    def manager(self) -> PackageStatusManager:
        self._ensure_services()
        return self._manager  # type: ignore[return-value]

    def _ensure_services(self) -> None:
        """Build the three services together so their hooks are always wired."""
        if self._manager is not None:
            return
        settings = self.settings

        def cache(ttl: float, name: str) -> CacheStore:
            return CacheStore(
                ttl_seconds=ttl, max_size=settings.cache_max_size, clock=self._clock, name=name
            )

        timelines = TimelineService(
            self.store,
            clock=self._clock,
            cache=cache(settings.timeline_cache_ttl_seconds, "timeline"),
        )
        materializer = PackageMaterializer(
            timelines,
            clock=self._clock,
            cache=cache(settings.history_cache_ttl_seconds, "history"),
        )
        manager = PackageStatusManager(
            materializer,
            throttle=ThrottleGovernor(ThrottleWindows.from_settings(settings), clock=self._clock),
            cache=cache(settings.refresh_cache_ttl_seconds, "refresh"),
            notifier=self.notifier,
            clock=self._clock,
            upcoming_window_days=settings.upcoming_window_days,
            join_in_flight=settings.join_in_flight,
        )
        self._wire(timelines, materializer, manager)
        self._timelines, self._materializer, self._manager = timelines, materializer, manager

    @staticmethod
    def _wire(
        timelines: TimelineService,
        materializer: PackageMaterializer,
        manager: PackageStatusManager,
    ) -> None:
        def on_timeline_change(user_id: str | None) -> None:
            if user_id is None:
                materializer.clear_cache()
                manager.clear_all_cache()
            else:
                materializer.invalidate_user(user_id)

        timelines.add_invalidation_hook(on_timeline_change)
        materializer.add_invalidation_hook(manager.clear_user_cache)

    def build(self) -> ParcelContainer:
        """Create every component now (and wire the invalidation hooks)."""
        self._ensure_services()
        return self

    # ── Lifecycle ────────────────────────────────────────────────

    async def close(self) -> None:
        """Close the store if this container opened it."""
        if self._owns_store and self._store is not _UNSET and self._store is not None:
            await self._store.close()

    async def __aenter__(self) -> ParcelContainer:
        return self.build()

    async def __aexit__(self, *args: object) -> None:
        await self.close()


__all__ = ["ParcelContainer", "create_store"]
