"""
Read-through / write-through package materialization.

Manifesto:
    Package documents are created lazily. A user who has never been
    touched by an administrator still sees one pending package per active
    period: the reader synthesizes the missing ones from the timeline, and
    the first write to a tuple creates the real document.

    - **Read-through:** ``get_history`` fills gaps with virtual records
    - **Write-through:** ``upsert_status`` updates, or creates on first write
    - **Partial failure:** one period failing to load becomes a warning
    - **Invalidation:** every successful write drops the user's cached view

Architecture:
    ::

        get_history(user)
          ├── history cache hit?           → cached PackageHistory
          ├── TimelineService.load_active_timeline()
          ├── gather(store.get(path) for each active period)
          │     └── absent / failed        → synthesized pending record
          ├── resolve_status(timeline clock)
          └── cache (only when no period failed)

        upsert_status(tl, period, user, patch)
          ├── store.update(path, patch)
          ├── DocumentNotFoundError → store.create(path, full, overwrite=False)
          │     └── DocumentExistsError → store.update(path, patch)   (once)
          └── invalidate_user(user) → hooks(user)

Tags:
    packages, materialization, read-through, cache-invalidation

Doc-Types:
    - API Reference
    - Technical Design
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any

from parcelspine.core.cache import CacheStore
from parcelspine.core.clock import Clock, TimelineClock
from parcelspine.core.errors import (
    DocumentExistsError,
    DocumentNotFoundError,
    NotFoundError,
    PackageNotFoundError,
    PeriodNotFoundError,
    TimelineNotFoundError,
    ValidationError,
    require,
)
from parcelspine.core.logging import get_logger
from parcelspine.core.result import OperationResult, fail_from_exception, start_timer
from parcelspine.core.timestamps import generate_ulid, parse_instant
from parcelspine.models import (
    PATCHABLE_FIELDS,
    PackageHistory,
    PackageRecord,
    PackageStatus,
    Period,
    PickupConfirmation,
    Priority,
    TimelineConfig,
    encode_patch,
)
from parcelspine.store.base import DocumentStore, package_path, user_path
from parcelspine.timeline.service import TimelineService
from parcelspine.timeline.status import resolve_status

logger = get_logger(__name__)

UserInvalidationHook = Callable[[str], None]


def validate_patch(patch: Any) -> dict[str, Any]:
    """Check a status patch and normalise its enum and date values.

    Raises:
        ValidationError: Unknown field, unknown or display-only status,
            unknown priority or unparseable date.
    """
    if not isinstance(patch, Mapping) or not patch:
        raise ValidationError("patch must be a non-empty mapping", field="patch", value=patch)
    unknown = sorted(set(patch) - PATCHABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown package fields: {', '.join(unknown)}", field="patch", value=unknown)

    clean = dict(patch)
    if "status" in clean:
        try:
            status = PackageStatus(clean["status"])
        except ValueError:
            raise ValidationError(
                f"Unknown status '{clean['status']}'", field="status", value=clean["status"]
            ) from None
        if not status.is_storable:
            raise ValidationError("overdue is derived and cannot be stored", field="status", value=status.value)
        clean["status"] = status
    if clean.get("priority") is not None:
        try:
            clean["priority"] = Priority(clean["priority"])
        except ValueError:
            raise ValidationError(
                f"Unknown priority '{clean['priority']}'", field="priority", value=clean["priority"]
            ) from None
    for name in ("pickup_date", "estimated_delivery"):
        if clean.get(name) is not None:
            try:
                clean[name] = parse_instant(clean[name])
            except (TypeError, ValueError) as e:
                raise ValidationError(f"{name} is not a valid instant", field=name, value=clean[name]) from e
    return clean


class PackageMaterializer:
    """Builds each user's package view and writes package changes.

    Args:
        timelines: Source of the store, the active timeline and its clock.
        cache: Per-user history cache.
    """

    def __init__(
        self,
        timelines: TimelineService,
        *,
        cache: CacheStore | None = None,
        clock: Clock | None = None,
    ):
        self._timelines = timelines
        self._clock = clock or timelines.clock
        self._cache = cache or CacheStore(ttl_seconds=30, clock=self._clock, name="history")
        self._hooks: list[UserInvalidationHook] = []
        self._generations: dict[str, int] = {}
        self._epoch = 0

    @property
    def cache(self) -> CacheStore:
        return self._cache

    @property
    def timelines(self) -> TimelineService:
        return self._timelines

    def add_invalidation_hook(self, hook: UserInvalidationHook) -> None:
        self._hooks.append(hook)

    def generation(self, user_id: str) -> tuple[int, int]:
        """Token that changes whenever *user_id*'s cached view is dropped.

        A read that captured the token before its first await may cache its
        result only if the token is unchanged afterwards.
        """
        return self._epoch, self._generations.get(user_id, 0)

    def invalidate_user(self, user_id: str) -> None:
        self._generations[user_id] = self._generations.get(user_id, 0) + 1
        self._cache.delete(user_id)
        for hook in list(self._hooks):
            hook(user_id)

    def clear_cache(self) -> None:
        self._epoch += 1
        self._cache.clear()

    # ── Reads ────────────────────────────────────────────────────

    def _synthesize(self, timeline: TimelineConfig, period: Period, user_id: str) -> PackageRecord:
        now = self._clock.now()
        return PackageRecord(
            user_id=user_id,
            timeline_id=timeline.id,
            period_key=period.key,
            period_number=period.number,
            period_label=period.label,
            delivery_date=period.due_date,
            status=PackageStatus.PENDING,
            created_at=now,
            updated_at=now,
            persisted=False,
        )

    async def _fetch_period(
        self,
        store: DocumentStore,
        timeline: TimelineConfig,
        period: Period,
        user_id: str,
        clock: TimelineClock,
    ) -> tuple[PackageRecord, str | None]:
        warning = None
        try:
            doc = await store.get(package_path(timeline.id, period.key, user_id))
            if doc is None:
                record = self._synthesize(timeline, period, user_id)
            else:
                record = PackageRecord.from_document(doc, timeline_id=timeline.id, period=period)
        except Exception as exc:
            logger.warning(
                "period_fetch_failed",
                user_id=user_id,
                timeline_id=timeline.id,
                period_key=period.key,
                error=str(exc),
            )
            record = self._synthesize(timeline, period, user_id)
            warning = f"Failed to load {period.key}: {exc}"
        record.status = resolve_status(record, clock)
        return record, warning

    async def load_history(self, user_id: str, *, use_cache: bool = True) -> tuple[PackageHistory, list[str]]:
        """Materialize *user_id*'s records; raises on store or timeline absence."""
        if use_cache:
            cached = self._cache.get(user_id)
            if cached is not None:
                return cached.copy(), []

        generation = self.generation(user_id)
        store = self._timelines.require_store()
        timeline = await self._timelines.load_active_timeline(use_cache=use_cache)
        clock = self._timelines.clock_for(timeline)
        fetched = await asyncio.gather(
            *(self._fetch_period(store, timeline, p, user_id, clock) for p in timeline.active_periods())
        )
        records = sorted((r for r, _ in fetched), key=lambda r: r.period_number)
        warnings = [w for _, w in fetched if w]
        history = PackageHistory(records=records, timeline=timeline)
        # A write that landed while we were reading makes this view stale.
        if not warnings and self.generation(user_id) == generation:
            self._cache.set(user_id, history.copy())
        return history, warnings

    async def get_history(self, user_id: str, *, use_cache: bool = True) -> OperationResult[PackageHistory]:
        require(user_id, "user_id")
        timer = start_timer()
        try:
            history, warnings = await self.load_history(user_id, use_cache=use_cache)
            return OperationResult.ok(history, warnings=warnings, elapsed_ms=timer.elapsed_ms)
        except Exception as exc:
            return fail_from_exception(exc, "get_history", timer)

    # ── Writes ───────────────────────────────────────────────────

    async def _write(
        self, timeline_id: str, period_key: str, user_id: str, patch: dict[str, Any]
    ) -> tuple[PackageRecord, bool]:
        store = self._timelines.require_store()
        path = package_path(timeline_id, period_key, user_id)
        now = self._clock.now()
        doc_patch = encode_patch({**patch, "updated_at": now})
        created = False
        try:
            await store.update(path, doc_patch)
        except DocumentNotFoundError:
            timeline = await self._timelines.load_active_timeline()
            if timeline.id != timeline_id:
                raise TimelineNotFoundError(
                    f"Timeline '{timeline_id}' is not the active timeline"
                ).with_context(timeline_id=timeline_id) from None
            period = timeline.period(period_key)
            if period is None:
                raise PeriodNotFoundError(period_key).with_context(timeline_id=timeline_id) from None
            record = PackageRecord(
                user_id=user_id,
                timeline_id=timeline_id,
                period_key=period.key,
                period_number=period.number,
                period_label=period.label,
                delivery_date=period.due_date,
                package_id=f"PKG{generate_ulid()}",
                created_at=now,
                updated_at=now,
            )
            try:
                await store.create(path, {**record.to_document(), **doc_patch}, overwrite=False)
                created = True
            except DocumentExistsError:
                # Lost the race to a concurrent first write.
                await store.update(path, doc_patch)

        self.invalidate_user(user_id)
        doc = await store.get(path)
        if doc is None:
            raise PackageNotFoundError(f"Package disappeared after write at '{path}'")
        return PackageRecord.from_document(doc, timeline_id=timeline_id), created

    async def upsert_status(
        self,
        timeline_id: str,
        period_key: str,
        user_id: str,
        patch: Mapping[str, Any],
    ) -> OperationResult[PackageRecord]:
        """Apply *patch* to the tuple's package, creating it on first write."""
        require(timeline_id, "timeline_id")
        require(period_key, "period_key")
        require(user_id, "user_id")
        clean = validate_patch(patch)
        timer = start_timer()
        try:
            record, created = await self._write(timeline_id, period_key, user_id, clean)
            logger.info(
                "package_updated",
                user_id=user_id,
                timeline_id=timeline_id,
                period_key=period_key,
                status=record.status.value,
                created=created,
            )
            return OperationResult.ok(record, elapsed_ms=timer.elapsed_ms, metadata={"created": created})
        except Exception as exc:
            return fail_from_exception(exc, "upsert_status", timer)

    async def pickup(
        self,
        timeline_id: str,
        period_key: str,
        user_id: str,
        access_method: str,
    ) -> OperationResult[PickupConfirmation]:
        """Mark a package picked up, recording how it was accessed."""
        require(timeline_id, "timeline_id")
        require(period_key, "period_key")
        require(user_id, "user_id")
        require(access_method, "access_method")
        timer = start_timer()
        try:
            priority = await self._load_priority(user_id)
            history, _ = await self.load_history(user_id, use_cache=False)
            if history.timeline.id != timeline_id:
                raise TimelineNotFoundError(
                    f"Timeline '{timeline_id}' is not the active timeline"
                ).with_context(timeline_id=timeline_id)
            if history.record_for(period_key) is None:
                raise PeriodNotFoundError(period_key).with_context(timeline_id=timeline_id)

            now = self._timelines.clock_for(history.timeline).now()
            await self._write(
                timeline_id,
                period_key,
                user_id,
                {
                    "status": PackageStatus.PICKED_UP,
                    "pickup_date": now,
                    "access_method": access_method,
                    "priority": priority,
                    "notes": f"Picked up via {access_method}",
                },
            )
            logger.info(
                "package_picked_up",
                user_id=user_id,
                period_key=period_key,
                access_method=access_method,
                priority=priority.value,
            )
            return OperationResult.ok(
                PickupConfirmation(
                    user_id=user_id,
                    period_key=period_key,
                    status=PackageStatus.PICKED_UP,
                    pickup_date=now,
                    access_method=access_method,
                ),
                elapsed_ms=timer.elapsed_ms,
            )
        except Exception as exc:
            return fail_from_exception(exc, "pickup", timer)

    # ── Priority ─────────────────────────────────────────────────

    async def _load_priority(self, user_id: str) -> Priority:
        doc = await self._timelines.require_store().get(user_path(user_id))
        try:
            return Priority((doc or {}).get("priority") or Priority.NORMAL)
        except ValueError:
            return Priority.NORMAL

    async def get_user_priority(self, user_id: str) -> OperationResult[Priority]:
        """The user's priority; ``normal`` when unset or the user is unknown."""
        require(user_id, "user_id")
        timer = start_timer()
        try:
            return OperationResult.ok(await self._load_priority(user_id), elapsed_ms=timer.elapsed_ms)
        except Exception as exc:
            return fail_from_exception(exc, "get_priority", timer)

    async def update_user_priority(self, user_id: str, priority: Priority | str) -> OperationResult[Priority]:
        require(user_id, "user_id")
        try:
            level = Priority(priority)
        except ValueError:
            raise ValidationError(f"Unknown priority '{priority}'", field="priority", value=priority) from None
        timer = start_timer()
        try:
            store = self._timelines.require_store()
            try:
                await store.update(user_path(user_id), encode_patch({"priority": level, "updated_at": self._clock.now()}))
            except DocumentNotFoundError:
                raise NotFoundError(f"User '{user_id}' not found").with_context(user_id=user_id) from None
            self.invalidate_user(user_id)
            logger.info("priority_updated", user_id=user_id, priority=level.value)
            return OperationResult.ok(level, elapsed_ms=timer.elapsed_ms)
        except Exception as exc:
            return fail_from_exception(exc, "update_priority", timer)


__all__ = ["PackageMaterializer", "UserInvalidationHook", "validate_patch"]
