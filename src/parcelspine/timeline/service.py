"""
Active timeline lifecycle.

Manifesto:
    Exactly one timeline is active at a time. Creating, simulating and
    deleting it changes what every user's package view looks like, so all
    of those go through one object that owns the store document, the shared
    timeline cache and the invalidation fan-out to downstream caches.

Architecture:
    ::

        TimelineService
        ├── create_template / list_templates
        ├── create_active_timeline     → replaces active_timeline/current
        ├── get_active_timeline        → cached under "global"
        ├── set_simulation_date        (manual mode only)
        ├── delete_active_timeline     (one batch; optional purge)
        ├── generate_packages_for_timeline (one batch; idempotent)
        ├── reset_timeline_packages    (one batch)
        ├── get_packages_by_period
        └── clock_for(timeline)        → TimelineClock

    Every write that changes the timeline clears the timeline cache and
    calls the registered invalidation hooks with ``None`` ("all users").

Tags:
    timeline, periods, lifecycle, batch, cache-invalidation

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from parcelspine.core.cache import CacheStore
from parcelspine.core.clock import Clock, SystemClock, TimelineClock
from parcelspine.core.errors import (
    BackendUnavailableError,
    NotFoundError,
    TimelineNotFoundError,
    ValidationError,
    require,
)
from parcelspine.core.logging import get_logger
from parcelspine.core.result import OperationResult, fail_from_exception, start_timer
from parcelspine.core.timestamps import generate_ulid, parse_instant, to_iso8601
from parcelspine.models import (
    CadenceType,
    PackageRecord,
    PackageStatus,
    Priority,
    TimelineConfig,
    TimelineMode,
    TimelineTemplate,
)
from parcelspine.requests import CreateTemplateRequest, CreateTimelineRequest
from parcelspine.store.base import (
    ACTIVE_TIMELINE_PATH,
    TEMPLATES_COLLECTION,
    USERS_COLLECTION,
    DocumentStore,
    WriteOp,
    package_path,
    period_path,
    template_path,
    timeline_packages_path,
    user_packages_collection,
    user_path,
)
from parcelspine.timeline.periods import generate_periods
from parcelspine.timeline.status import resolve_status

logger = get_logger(__name__)

TIMELINE_CACHE_KEY = "global"

# Called with a user id, or ``None`` for "every user".
InvalidationHook = Callable[[str | None], None]


class TimelineService:
    """Owner of the active timeline, its templates and bulk package writes.

    Args:
        store: Document store; ``None`` makes every operation fail with
            ``BACKEND_UNAVAILABLE``.
        clock: Wall clock (cache stamps, ids, audit timestamps).
        cache: Timeline cache; one entry under ``"global"``.
    """

    def __init__(
        self,
        store: DocumentStore | None,
        *,
        clock: Clock | None = None,
        cache: CacheStore | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._cache = cache or CacheStore(ttl_seconds=30, clock=self._clock, name="timeline")
        self._hooks: list[InvalidationHook] = []

    # ── Wiring ───────────────────────────────────────────────────

    @property
    def cache(self) -> CacheStore:
        return self._cache

    @property
    def clock(self) -> Clock:
        return self._clock

    def add_invalidation_hook(self, hook: InvalidationHook) -> None:
        self._hooks.append(hook)

    def invalidate(self, user_id: str | None = None) -> None:
        """Clear the timeline cache (for ``None``) and fan out to hooks."""
        if user_id is None:
            self._cache.delete(TIMELINE_CACHE_KEY)
        for hook in list(self._hooks):
            hook(user_id)

    def clock_for(self, timeline: TimelineConfig | None) -> TimelineClock:
        return TimelineClock(timeline, base=self._clock)

    def require_store(self) -> DocumentStore:
        if self._store is None:
            raise BackendUnavailableError("Document store is not initialised")
        return self._store

    # ── Templates ────────────────────────────────────────────────

    async def create_template(self, request: CreateTemplateRequest) -> OperationResult[TimelineTemplate]:
        request.validate()
        timer = start_timer()
        try:
            store = self.require_store()
            now = self._clock.now()
            template = TimelineTemplate(
                id=f"template_{int(now.timestamp() * 1000)}",
                name=request.name.strip(),
                cadence=CadenceType(request.cadence),
                duration=request.duration,
                base_weight=request.base_weight,
                delivery_days=list(request.delivery_days),
                created_at=now,
                updated_at=now,
            )
            await store.create(template_path(template.id), template.to_document())
            logger.info("template_created", template_id=template.id, cadence=template.cadence.value)
            return OperationResult.ok(template, elapsed_ms=timer.elapsed_ms)
        except Exception as exc:
            return fail_from_exception(exc, "create_template", timer)

    async def list_templates(self) -> OperationResult[list[TimelineTemplate]]:
        timer = start_timer()
        try:
            docs = await self.require_store().query(TEMPLATES_COLLECTION)
            templates = sorted(
                (TimelineTemplate.from_document(d) for d in docs), key=lambda t: t.created_at
            )
            return OperationResult.ok(templates, elapsed_ms=timer.elapsed_ms)
        except Exception as exc:
            return fail_from_exception(exc, "list_templates", timer)

    # ── Active timeline ──────────────────────────────────────────

    async def create_active_timeline(self, request: CreateTimelineRequest) -> OperationResult[TimelineConfig]:
        """Validate, generate periods and replace the active timeline."""
        fields = request.validate()
        timer = start_timer()
        try:
            store = self.require_store()
            now = self._clock.now()
            timeline_id = request.id.strip() or f"timeline_{int(now.timestamp() * 1000)}"
            timeline = TimelineConfig(
                id=timeline_id,
                name=request.name.strip() or timeline_id,
                periods=generate_periods(
                    fields["cadence"],
                    fields["duration"],
                    fields["start_date"],
                    fields["holidays"],
                    fields["total_amount"],
                ),
                created_at=now,
                updated_at=now,
                **fields,
            )
            await store.create(ACTIVE_TIMELINE_PATH, timeline.to_document())
            self.invalidate(None)
            logger.info(
                "timeline_created",
                timeline_id=timeline.id,
                cadence=timeline.cadence.value,
                duration=timeline.duration,
                active_periods=timeline.active_count,
                mode=timeline.mode.value,
            )
            return OperationResult.ok(timeline, elapsed_ms=timer.elapsed_ms)
        except Exception as exc:
            return fail_from_exception(exc, "create_timeline", timer)

    async def load_active_timeline(self, *, use_cache: bool = True) -> TimelineConfig:
        """Return the active timeline or raise.

        Raises:
            BackendUnavailableError: No store configured.
            TimelineNotFoundError: Nothing is active.
        """
        if use_cache:
            cached = self._cache.get(TIMELINE_CACHE_KEY)
            if cached is not None:
                return cached
        doc = await self.require_store().get(ACTIVE_TIMELINE_PATH)
        if doc is None:
            raise TimelineNotFoundError()
        timeline = TimelineConfig.from_document(doc)
        self._cache.set(TIMELINE_CACHE_KEY, timeline)
        return timeline

    async def get_active_timeline(self, *, use_cache: bool = True) -> OperationResult[TimelineConfig]:
        timer = start_timer()
        try:
            timeline = await self.load_active_timeline(use_cache=use_cache)
            return OperationResult.ok(timeline, elapsed_ms=timer.elapsed_ms)
        except Exception as exc:
            return fail_from_exception(exc, "get_timeline", timer)

    async def set_simulation_date(self, instant: Any) -> OperationResult[TimelineConfig]:
        """Move a manual-mode timeline's simulated "now"."""
        require(instant, "simulation_date")
        try:
            simulated = parse_instant(instant)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                "simulation_date is not a valid instant", field="simulation_date", value=instant
            ) from e

        timer = start_timer()
        try:
            timeline = await self.load_active_timeline(use_cache=False)
            if timeline.mode is not TimelineMode.MANUAL:
                return OperationResult.fail(
                    ValidationError.code,
                    "Simulation date can only be set on a manual-mode timeline",
                    details={"timeline_id": timeline.id, "mode": timeline.mode.value},
                    elapsed_ms=timer.elapsed_ms,
                )
            now = self._clock.now()
            await self.require_store().update(
                ACTIVE_TIMELINE_PATH,
                {"simulation_date": to_iso8601(simulated), "updated_at": to_iso8601(now)},
            )
            timeline.simulation_date = simulated
            timeline.updated_at = now
            self.invalidate(None)
            logger.info("simulation_date_set", timeline_id=timeline.id, simulation_date=to_iso8601(simulated))
            return OperationResult.ok(timeline, elapsed_ms=timer.elapsed_ms)
        except Exception as exc:
            return fail_from_exception(exc, "set_simulation_date", timer)

    async def delete_active_timeline(self, purge_packages: bool = False) -> OperationResult[dict[str, Any]]:
        """Delete the active timeline, optionally with all of its package data.

        Everything happens in one batch: either the timeline and (with
        ``purge_packages``) its packages are gone, or nothing changed.
        """
        timer = start_timer()
        try:
            store = self.require_store()
            timeline = await self.load_active_timeline(use_cache=False)
            ops: list[WriteOp] = []
            packages_deleted = 0
            users_reset = 0

            if purge_packages:
                package_ops = await self._package_delete_ops(timeline)
                packages_deleted = sum(1 for op in package_ops if "/user_packages/" in op.path)
                ops.extend(package_ops)
                ops.append(WriteOp.delete(timeline_packages_path(timeline.id)))

                now = to_iso8601(self._clock.now())
                for user in await store.query(USERS_COLLECTION):
                    priority = user.get("priority")
                    if priority and priority != Priority.NORMAL.value and user.get("id"):
                        ops.append(
                            WriteOp.update(
                                user_path(user["id"]),
                                {"priority": Priority.NORMAL.value, "updated_at": now},
                            )
                        )
                        users_reset += 1

            ops.append(WriteOp.delete(ACTIVE_TIMELINE_PATH))
            await store.batch_commit(ops)
            self.invalidate(None)
            logger.info(
                "timeline_deleted",
                timeline_id=timeline.id,
                purged=purge_packages,
                packages_deleted=packages_deleted,
                users_reset=users_reset,
            )
            return OperationResult.ok(
                {
                    "timeline_id": timeline.id,
                    "purged": purge_packages,
                    "packages_deleted": packages_deleted,
                    "users_reset": users_reset,
                },
                elapsed_ms=timer.elapsed_ms,
            )
        except Exception as exc:
            return fail_from_exception(exc, "delete_timeline", timer)

    # ── Bulk package writes ──────────────────────────────────────

    async def _require_active(self, timeline_id: str) -> TimelineConfig:
        timeline = await self.load_active_timeline(use_cache=False)
        if timeline.id != timeline_id:
            raise TimelineNotFoundError(f"Timeline '{timeline_id}' is not the active timeline").with_context(
                timeline_id=timeline_id, active_timeline_id=timeline.id
            )
        return timeline

    async def _package_delete_ops(self, timeline: TimelineConfig) -> list[WriteOp]:
        store = self.require_store()
        ops: list[WriteOp] = []
        for key in timeline.periods:
            for doc in await store.query(user_packages_collection(timeline.id, key)):
                ops.append(WriteOp.delete(package_path(timeline.id, key, doc["user_id"])))
            ops.append(WriteOp.delete(period_path(timeline.id, key)))
        return ops

    async def generate_packages_for_timeline(self, timeline_id: str) -> OperationResult[int]:
        """Create a pending package for every (user, active period) pair that lacks one.

        Returns:
            Number of records created. Running it twice creates nothing the
            second time.
        """
        require(timeline_id, "timeline_id")
        timer = start_timer()
        try:
            store = self.require_store()
            timeline = await self._require_active(timeline_id)
            users = [u for u in await store.query(USERS_COLLECTION, {"role": "user"}) if u.get("id")]
            now = self._clock.now()

            ops: list[WriteOp] = []
            for period in timeline.active_periods():
                existing = {
                    d.get("user_id")
                    for d in await store.query(user_packages_collection(timeline.id, period.key))
                }
                for user in users:
                    if user["id"] in existing:
                        continue
                    record = PackageRecord(
                        user_id=user["id"],
                        timeline_id=timeline.id,
                        period_key=period.key,
                        period_number=period.number,
                        period_label=period.label,
                        delivery_date=period.due_date,
                        status=PackageStatus.PENDING,
                        package_id=f"PKG{generate_ulid()}",
                        created_at=now,
                        updated_at=now,
                    )
                    ops.append(WriteOp.set(package_path(timeline.id, period.key, user["id"]), record.to_document()))

            if ops:
                await store.batch_commit(ops)
            self.invalidate(None)
            logger.info(
                "packages_generated",
                timeline_id=timeline.id,
                users=len(users),
                created=len(ops),
            )
            return OperationResult.ok(len(ops), elapsed_ms=timer.elapsed_ms)
        except Exception as exc:
            return fail_from_exception(exc, "generate_packages", timer)

    async def reset_timeline_packages(self, timeline_id: str) -> OperationResult[int]:
        """Delete every package document of the active timeline; keep the timeline."""
        require(timeline_id, "timeline_id")
        timer = start_timer()
        try:
            timeline = await self._require_active(timeline_id)
            ops = await self._package_delete_ops(timeline)
            deleted = sum(1 for op in ops if "/user_packages/" in op.path)
            await self.require_store().batch_commit(ops)
            self.invalidate(None)
            logger.info("packages_reset", timeline_id=timeline.id, deleted=deleted)
            return OperationResult.ok(deleted, elapsed_ms=timer.elapsed_ms)
        except Exception as exc:
            return fail_from_exception(exc, "reset_packages", timer)

    async def get_packages_by_period(
        self, timeline_id: str, period_key: str
    ) -> OperationResult[list[PackageRecord]]:
        """Stored packages of one period, with display status when the timeline is active."""
        require(timeline_id, "timeline_id")
        require(period_key, "period_key")
        timer = start_timer()
        try:
            docs = await self.require_store().query(user_packages_collection(timeline_id, period_key))
            try:
                timeline: TimelineConfig | None = await self.load_active_timeline()
            except NotFoundError:
                timeline = None
            if timeline is not None and timeline.id != timeline_id:
                timeline = None

            period = timeline.period(period_key) if timeline else None
            clock = self.clock_for(timeline)
            records = []
            for doc in docs:
                record = PackageRecord.from_document(doc, timeline_id=timeline_id, period=period)
                if timeline is not None:
                    record.status = resolve_status(record, clock)
                records.append(record)
            records.sort(key=lambda r: r.user_id)
            return OperationResult.ok(records, elapsed_ms=timer.elapsed_ms)
        except Exception as exc:
            return fail_from_exception(exc, "get_packages_by_period", timer)


__all__ = ["TimelineService", "InvalidationHook", "TIMELINE_CACHE_KEY"]
