"""
Status resolution and ordering helpers.

The only derived status is ``overdue``: a pending record whose delivery
date is strictly before the clock's "now". Terminal statuses pass through
and nothing here writes to the store.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from typing import Any

from parcelspine.core.clock import Clock
from parcelspine.models import PackageRecord, PackageStatus

# Lower sorts first.
_STATUS_RANK = {
    PackageStatus.OVERDUE: 0,
    PackageStatus.RETURNED: 0,
    PackageStatus.PENDING: 1,
    PackageStatus.DELIVERED: 2,
    PackageStatus.PICKED_UP: 3,
}


def resolve_status(record: PackageRecord, clock: Clock) -> PackageStatus:
    """Effective display status of *record* at ``clock.now()``."""
    stored = record.stored_status or record.status
    if stored.is_terminal:
        return stored
    if stored is PackageStatus.PENDING and record.delivery_date < clock.now():
        return PackageStatus.OVERDUE
    return stored


def status_rank(status: PackageStatus | str) -> int:
    try:
        return _STATUS_RANK[PackageStatus(status)]
    except ValueError:
        return len(_STATUS_RANK)


def sort_by_status(records: Iterable[PackageRecord]) -> list[PackageRecord]:
    """Attention-first order; ties by period number."""
    return sorted(records, key=lambda r: (status_rank(r.status), r.period_number))


def next_package_due(records: Iterable[PackageRecord]) -> PackageRecord | None:
    """Earliest still-pending record, by delivery date."""
    pending = [r for r in records if r.status is PackageStatus.PENDING]
    return min(pending, key=lambda r: r.delivery_date, default=None)


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def completion_percentage(records: Iterable[Any]) -> int:
    """Share of delivered or picked-up records, as a whole percentage."""
    statuses = [_status_of(r) for r in records]
    if not statuses:
        return 0
    done = sum(1 for s in statuses if s in (PackageStatus.DELIVERED, PackageStatus.PICKED_UP))
    return round_half_up(done / len(statuses) * 100)


def _status_of(record: Any) -> PackageStatus | None:
    value = record.get("status") if isinstance(record, dict) else getattr(record, "status", None)
    try:
        return PackageStatus(value) if value is not None else None
    except ValueError:
        return None


__all__ = [
    "resolve_status",
    "status_rank",
    "sort_by_status",
    "next_package_due",
    "round_half_up",
    "completion_percentage",
]
