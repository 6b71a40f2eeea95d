"""Pure reductions over package records."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, replace
from datetime import timedelta
from typing import Any

from parcelspine.core.clock import Clock
from parcelspine.models import PackageRecord, PackageStatus, Priority
from parcelspine.timeline.status import round_half_up

# Days until estimated delivery, by priority.
PRIORITY_LEAD_DAYS = {Priority.HIGH: 1, Priority.NORMAL: 3}


@dataclass(frozen=True, slots=True)
class PackageSummary:
    """Counts and weights of a set of records.

    Overdue records count toward ``total`` and ``total_weight`` only.
    """

    total: int = 0
    delivered: int = 0
    pending: int = 0
    picked_up: int = 0
    returned: int = 0
    total_weight: float = 0
    delivered_weight: float = 0
    pending_weight: float = 0
    progress_percentage: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _field(record: PackageRecord | Mapping[str, Any], name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def summarize(records: Iterable[PackageRecord | Mapping[str, Any]]) -> PackageSummary:
    """Count records per status and total their weights.

    Example:
        >>> summarize([{"status": "delivered", "weight": 2}, {"status": "pending", "weight": 3}])
        PackageSummary(total=2, delivered=1, pending=1, picked_up=0, returned=0, total_weight=5, delivered_weight=2, pending_weight=3, progress_percentage=50)
    """
    counts = {status: 0 for status in PackageStatus}
    total = 0
    total_weight: float = 0
    delivered_weight: float = 0

    for record in records:
        total += 1
        weight = _field(record, "weight") or 0
        total_weight += weight
        try:
            status = PackageStatus(_field(record, "status"))
        except ValueError:
            continue
        counts[status] += 1
        if status is PackageStatus.DELIVERED:
            delivered_weight += weight

    delivered = counts[PackageStatus.DELIVERED]
    return PackageSummary(
        total=total,
        delivered=delivered,
        pending=counts[PackageStatus.PENDING],
        picked_up=counts[PackageStatus.PICKED_UP],
        returned=counts[PackageStatus.RETURNED],
        total_weight=total_weight,
        delivered_weight=delivered_weight,
        pending_weight=total_weight - delivered_weight,
        progress_percentage=round_half_up(delivered / total * 100) if total else 0,
    )


def apply_priority(
    records: Iterable[PackageRecord], priority: Priority | str, clock: Clock
) -> list[PackageRecord]:
    """Stamp priority and an estimated delivery on pending records.

    Returns new records; the inputs are not modified.
    """
    level = Priority(priority)
    estimate = clock.now() + timedelta(days=PRIORITY_LEAD_DAYS[level])
    return [
        replace(r, priority=level, estimated_delivery=estimate)
        if r.status is PackageStatus.PENDING
        else r
        for r in records
    ]


__all__ = ["PRIORITY_LEAD_DAYS", "PackageSummary", "summarize", "apply_priority"]
