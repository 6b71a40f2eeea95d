"""
Public operations.

Transport-agnostic entry points used by the CLI and by embedding
applications. Every function takes a :class:`~parcelspine.container.ParcelContainer`
first and returns an :class:`~parcelspine.core.result.OperationResult`,
except :func:`get_package_summary` (pure) and :func:`subscribe`.

Missing or malformed parameters raise
:class:`~parcelspine.core.errors.ValidationError` before any I/O; every other
failure comes back as a failed result.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any

from parcelspine.container import ParcelContainer
from parcelspine.core.events import Listener
from parcelspine.core.result import OperationResult
from parcelspine.models import (
    PackageHistory,
    PackageRecord,
    PickupConfirmation,
    Priority,
    RefreshSource,
    TimelineConfig,
    TimelineTemplate,
)
from parcelspine.packages.summary import PackageSummary, summarize
from parcelspine.requests import CreateTemplateRequest, CreateTimelineRequest

# ------------------------------------------------------------------ #
# Timeline
# ------------------------------------------------------------------ #


async def create_timeline_template(
    container: ParcelContainer, request: CreateTemplateRequest
) -> OperationResult[TimelineTemplate]:
    return await container.timelines.create_template(request)


async def list_timeline_templates(container: ParcelContainer) -> OperationResult[list[TimelineTemplate]]:
    return await container.timelines.list_templates()


async def create_active_timeline(
    container: ParcelContainer, request: CreateTimelineRequest
) -> OperationResult[TimelineConfig]:
    """Replace the active timeline; every cached view is invalidated."""
    return await container.timelines.create_active_timeline(request)


async def get_active_timeline(container: ParcelContainer) -> OperationResult[TimelineConfig]:
    return await container.timelines.get_active_timeline()


async def set_simulation_date(
    container: ParcelContainer, instant: datetime | str
) -> OperationResult[TimelineConfig]:
    return await container.timelines.set_simulation_date(instant)


async def delete_active_timeline(
    container: ParcelContainer, purge_packages: bool = False
) -> OperationResult[dict[str, Any]]:
    return await container.timelines.delete_active_timeline(purge_packages)


async def generate_packages_for_timeline(
    container: ParcelContainer, timeline_id: str
) -> OperationResult[int]:
    """Create missing pending packages for every user and active period."""
    return await container.timelines.generate_packages_for_timeline(timeline_id)


async def reset_timeline_packages(container: ParcelContainer, timeline_id: str) -> OperationResult[int]:
    return await container.timelines.reset_timeline_packages(timeline_id)


async def get_packages_by_period(
    container: ParcelContainer, timeline_id: str, period_key: str
) -> OperationResult[list[PackageRecord]]:
    return await container.timelines.get_packages_by_period(timeline_id, period_key)


# ------------------------------------------------------------------ #
# Packages
# ------------------------------------------------------------------ #


async def get_user_package_history(
    container: ParcelContainer, user_id: str
) -> OperationResult[PackageHistory]:
    """One record per active period, ascending, with display statuses."""
    return await container.materializer.get_history(user_id)


async def update_user_package_status(
    container: ParcelContainer,
    timeline_id: str,
    period_key: str,
    user_id: str,
    patch: Mapping[str, Any],
) -> OperationResult[PackageRecord]:
    return await container.materializer.upsert_status(timeline_id, period_key, user_id, patch)


async def process_package_pickup(
    container: ParcelContainer,
    timeline_id: str,
    period_key: str,
    user_id: str,
    access_method: str,
) -> OperationResult[PickupConfirmation]:
    return await container.materializer.pickup(timeline_id, period_key, user_id, access_method)


def get_package_summary(records: Iterable[PackageRecord | Mapping[str, Any]]) -> OperationResult[PackageSummary]:
    return OperationResult.ok(summarize(records))


async def refresh_user_packages(
    container: ParcelContainer,
    user_id: str,
    *,
    force: bool = False,
    source: RefreshSource | str = RefreshSource.MANUAL,
) -> OperationResult[PackageHistory]:
    """Throttled, deduplicated refresh that notifies subscribers."""
    return await container.manager.refresh(user_id, force=force, source=source)


def subscribe(container: ParcelContainer, callback: Listener) -> Callable[[], None]:
    """Register a listener for package events; returns the unsubscribe function."""
    return container.notifier.subscribe(callback)


# ------------------------------------------------------------------ #
# Users
# ------------------------------------------------------------------ #


async def get_user_priority(container: ParcelContainer, user_id: str) -> OperationResult[Priority]:
    return await container.materializer.get_user_priority(user_id)


async def update_user_priority(
    container: ParcelContainer, user_id: str, priority: Priority | str
) -> OperationResult[Priority]:
    return await container.materializer.update_user_priority(user_id, priority)


__all__ = [
    "create_timeline_template",
    "list_timeline_templates",
    "create_active_timeline",
    "get_active_timeline",
    "set_simulation_date",
    "delete_active_timeline",
    "generate_packages_for_timeline",
    "reset_timeline_packages",
    "get_packages_by_period",
    "get_user_package_history",
    "update_user_package_status",
    "process_package_pickup",
    "get_package_summary",
    "refresh_user_packages",
    "subscribe",
    "get_user_priority",
    "update_user_priority",
]
