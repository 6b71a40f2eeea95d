"""
Period generation.

A timeline of ``duration`` periods starting at ``start_date`` has one
period per index ``i`` in ``1..duration``, due at ``advance(start_date,
cadence, i)``. Holidays are inactive and carry no amount; the total amount
is spread over the remaining periods, rounded up.

Calendar arithmetic:
    Years and months use ``dateutil.relativedelta``, which clamps to the
    last valid day of the target month. Every offset is taken from
    ``start_date`` rather than from the previous due date, so a Jan 31
    monthly timeline is due Feb 29, Mar 31, Apr 30 (2024) instead of
    drifting to the 29th.

Examples:
    >>> from datetime import datetime, UTC
    >>> periods = generate_periods("daily", 5, datetime(2024, 1, 1, tzinfo=UTC), {3}, 8)
    >>> [p.amount for p in periods.values()]
    [2, 2, 0, 2, 2]
    >>> periods["period_3"].active
    False
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta

from parcelspine.core.errors import ValidationError
from parcelspine.core.timestamps import parse_instant
from parcelspine.models import CadenceType, Period

PERIOD_KEY_PREFIX = "period_"


def _cadence(cadence: CadenceType | str) -> CadenceType | None:
    if isinstance(cadence, CadenceType):
        return cadence
    try:
        return CadenceType(str(cadence).lower())
    except ValueError:
        return None


def advance(start: datetime, cadence: CadenceType | str, i: int) -> datetime:
    """Instant ``i`` cadence steps after *start*.

    Unknown cadences advance by ``i`` days.
    """
    kind = _cadence(cadence)
    if kind is CadenceType.YEARLY:
        return start + relativedelta(years=i)
    if kind is CadenceType.MONTHLY:
        return start + relativedelta(months=i)
    if kind is CadenceType.WEEKLY:
        return start + timedelta(days=7 * i)
    if kind is CadenceType.HOURLY:
        return start + timedelta(hours=i)
    if kind is CadenceType.MINUTE:
        return start + timedelta(minutes=i)
    return start + timedelta(days=i)


def period_key(number: int) -> str:
    return f"{PERIOD_KEY_PREFIX}{number}"


def parse_period_key(key: str) -> int:
    """``"period_7"`` → ``7``."""
    if not key.startswith(PERIOD_KEY_PREFIX):
        raise ValidationError(f"Invalid period key '{key}'", field="period_key", value=key)
    suffix = key[len(PERIOD_KEY_PREFIX) :]
    if not suffix.isdigit() or int(suffix) < 1:
        raise ValidationError(f"Invalid period key '{key}'", field="period_key", value=key)
    return int(suffix)


def period_label(cadence: CadenceType | str, number: int) -> str:
    kind = _cadence(cadence)
    prefix = kind.label if kind is not None else "Period"
    return f"{prefix} {number}"


def amount_per_period(total_amount: float, active_count: int) -> int:
    """``ceil(total / active)``, or 0 when nothing is active."""
    if active_count <= 0:
        return 0
    return math.ceil(total_amount / active_count)


def generate_periods(
    cadence: CadenceType | str,
    duration: int,
    start_date: datetime | str,
    holidays: Iterable[int] = (),
    total_amount: float = 0,
) -> dict[str, Period]:
    """Build the ordered ``period_key → Period`` map of a timeline."""
    if duration < 0:
        raise ValidationError("duration must not be negative", field="duration", value=duration)
    start = parse_instant(start_date)
    holiday_set = {h for h in holidays if 1 <= h <= duration}
    active_count = duration - len(holiday_set)
    amount = amount_per_period(total_amount, active_count)

    periods: dict[str, Period] = {}
    for i in range(1, duration + 1):
        is_holiday = i in holiday_set
        key = period_key(i)
        periods[key] = Period(
            number=i,
            key=key,
            label=period_label(cadence, i),
            due_date=advance(start, cadence, i),
            active=not is_holiday,
            amount=0 if is_holiday else amount,
            is_holiday=is_holiday,
        )
    return periods


__all__ = [
    "PERIOD_KEY_PREFIX",
    "advance",
    "period_key",
    "parse_period_key",
    "period_label",
    "amount_per_period",
    "generate_periods",
]
