"""
parcelspine.timeline - period generation, status resolution and the
active-timeline lifecycle.
"""

from parcelspine.timeline.periods import (
    advance,
    amount_per_period,
    generate_periods,
    parse_period_key,
    period_key,
    period_label,
)
from parcelspine.timeline.service import TIMELINE_CACHE_KEY, InvalidationHook, TimelineService
from parcelspine.timeline.status import (
    completion_percentage,
    next_package_due,
    resolve_status,
    round_half_up,
    sort_by_status,
    status_rank,
)

__all__ = [
    "advance",
    "amount_per_period",
    "generate_periods",
    "parse_period_key",
    "period_key",
    "period_label",
    "TIMELINE_CACHE_KEY",
    "InvalidationHook",
    "TimelineService",
    "completion_percentage",
    "next_package_due",
    "resolve_status",
    "round_half_up",
    "sort_by_status",
    "status_rank",
]
