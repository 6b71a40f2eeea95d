"""
Domain models.

Plain dataclasses for timelines, periods and package records, plus their
document (store) encoding. Instants are aware UTC datetimes in memory and
ISO 8601 strings in documents; enums are stored by value.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from parcelspine.core.timestamps import from_iso8601, parse_instant, to_iso8601, utc_now


class CadenceType(str, Enum):
    """Length of one timeline period."""

    YEARLY = "yearly"
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    DAILY = "daily"
    HOURLY = "hourly"
    MINUTE = "minute"

    @property
    def label(self) -> str:
        return _CADENCE_LABELS[self]


_CADENCE_LABELS = {
    CadenceType.YEARLY: "Year",
    CadenceType.MONTHLY: "Month",
    CadenceType.WEEKLY: "Week",
    CadenceType.DAILY: "Day",
    CadenceType.HOURLY: "Hour",
    CadenceType.MINUTE: "Minute",
}


class TimelineMode(str, Enum):
    """``auto`` follows real time, ``manual`` follows the simulation date."""

    AUTO = "auto"
    MANUAL = "manual"


class PackageStatus(str, Enum):
    """Package status.

    ``OVERDUE`` is display-only: the resolver derives it for lapsed pending
    records and it is never written to the store.
    """

    PENDING = "pending"
    DELIVERED = "delivered"
    PICKED_UP = "picked_up"
    RETURNED = "returned"
    OVERDUE = "overdue"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_storable(self) -> bool:
        return self is not PackageStatus.OVERDUE


TERMINAL_STATUSES = frozenset(
    {PackageStatus.DELIVERED, PackageStatus.PICKED_UP, PackageStatus.RETURNED}
)


class Priority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"


class RefreshSource(str, Enum):
    """What triggered a refresh; selects the throttle window."""

    MANUAL = "manual"
    LOGIN = "login"
    PER_USER = "per_user"
    PAGE_NAVIGATION = "page_navigation"
    APP_RESUME = "app_resume"


class AppState(str, Enum):
    ACTIVE = "active"
    BACKGROUND = "background"
    INACTIVE = "inactive"


# ── Timeline ────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Period:
    """One numbered slot of a timeline."""

    number: int
    key: str
    label: str
    due_date: datetime
    active: bool
    amount: int
    is_holiday: bool

    def to_document(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "key": self.key,
            "label": self.label,
            "due_date": to_iso8601(self.due_date),
            "active": self.active,
            "amount": self.amount,
            "is_holiday": self.is_holiday,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> Period:
        return cls(
            number=int(doc["number"]),
            key=doc.get("key") or f"period_{doc['number']}",
            label=doc["label"],
            due_date=parse_instant(doc["due_date"]),
            active=bool(doc["active"]),
            amount=int(doc["amount"]),
            is_holiday=bool(doc.get("is_holiday", not doc["active"])),
        )


@dataclass
class TimelineConfig:
    """The active delivery timeline.

    ``periods`` is fully determined by cadence, duration, start date,
    holidays and total amount; it is stored alongside for readers.
    """

    id: str
    name: str
    cadence: CadenceType
    duration: int
    start_date: datetime
    mode: TimelineMode = TimelineMode.AUTO
    simulation_date: datetime | None = None
    holidays: frozenset[int] = frozenset()
    total_amount: int = 0
    base_amount: int | None = None
    periods: dict[str, Period] = field(default_factory=dict)
    status: str = "active"
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def period(self, key: str) -> Period | None:
        return self.periods.get(key)

    def active_periods(self) -> list[Period]:
        """Non-holiday periods in ascending order."""
        return sorted((p for p in self.periods.values() if p.active), key=lambda p: p.number)

    @property
    def active_count(self) -> int:
        return sum(1 for p in self.periods.values() if p.active)

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "cadence": self.cadence.value,
            "duration": self.duration,
            "start_date": to_iso8601(self.start_date),
            "mode": self.mode.value,
            "simulation_date": to_iso8601(self.simulation_date),
            "holidays": sorted(self.holidays),
            "total_amount": self.total_amount,
            "base_amount": self.base_amount,
            "periods": {key: p.to_document() for key, p in self.periods.items()},
            "status": self.status,
            "created_at": to_iso8601(self.created_at),
            "updated_at": to_iso8601(self.updated_at),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> TimelineConfig:
        periods = {
            key: Period.from_document(value) for key, value in (doc.get("periods") or {}).items()
        }
        return cls(
            id=doc["id"],
            name=doc.get("name") or doc["id"],
            cadence=CadenceType(doc["cadence"]),
            duration=int(doc["duration"]),
            start_date=parse_instant(doc["start_date"]),
            mode=TimelineMode(doc.get("mode", "auto")),
            simulation_date=from_iso8601(doc.get("simulation_date")),
            holidays=frozenset(int(h) for h in doc.get("holidays") or ()),
            total_amount=doc.get("total_amount", 0),
            base_amount=doc.get("base_amount"),
            periods=dict(sorted(periods.items(), key=lambda item: item[1].number)),
            status=doc.get("status", "active"),
            created_at=from_iso8601(doc.get("created_at")) or utc_now(),
            updated_at=from_iso8601(doc.get("updated_at")) or utc_now(),
        )

    def to_dict(self) -> dict[str, Any]:
        return self.to_document()


@dataclass
class TimelineTemplate:
    """Reusable timeline shape an administrator can start from."""

    id: str
    name: str
    cadence: CadenceType
    duration: int
    base_weight: float = 0
    delivery_days: list[int] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "cadence": self.cadence.value,
            "duration": self.duration,
            "base_weight": self.base_weight,
            "delivery_days": list(self.delivery_days),
            "created_at": to_iso8601(self.created_at),
            "updated_at": to_iso8601(self.updated_at),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> TimelineTemplate:
        return cls(
            id=doc["id"],
            name=doc.get("name", ""),
            cadence=CadenceType(doc["cadence"]),
            duration=int(doc["duration"]),
            base_weight=doc.get("base_weight", 0),
            delivery_days=list(doc.get("delivery_days") or []),
            created_at=from_iso8601(doc.get("created_at")) or utc_now(),
            updated_at=from_iso8601(doc.get("updated_at")) or utc_now(),
        )

    def to_dict(self) -> dict[str, Any]:
        return self.to_document()


# ── Packages ────────────────────────────────────────────────────────────

# Fields a status patch may carry.
PATCHABLE_FIELDS = frozenset(
    {
        "status",
        "pickup_date",
        "access_method",
        "notes",
        "weight",
        "dimensions",
        "priority",
        "estimated_delivery",
    }
)

_DATETIME_FIELDS = frozenset({"delivery_date", "pickup_date", "estimated_delivery", "created_at", "updated_at"})


@dataclass
class PackageRecord:
    """Package for one (timeline, period, user) tuple.

    ``status`` is what readers should display. For records produced by a
    history read, ``stored_status`` holds the persisted value behind it
    (they differ only when a lapsed pending record displays as overdue) and
    ``persisted`` is ``False`` for records synthesized because nothing was
    stored yet.
    """

    user_id: str
    timeline_id: str
    period_key: str
    period_number: int
    period_label: str
    delivery_date: datetime
    status: PackageStatus = PackageStatus.PENDING
    id: str = ""
    package_id: str = ""
    pickup_date: datetime | None = None
    access_method: str | None = None
    notes: str = ""
    weight: float = 0
    dimensions: str = ""
    priority: Priority | None = None
    estimated_delivery: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    stored_status: PackageStatus | None = None
    persisted: bool = True

    def __post_init__(self) -> None:
        if not self.id:
            self.id = f"{self.user_id}_{self.period_key}"
        if self.stored_status is None:
            self.stored_status = self.status

    def to_document(self) -> dict[str, Any]:
        """Store encoding; always carries the stored status."""
        stored = self.stored_status or self.status
        return {
            "id": self.id,
            "package_id": self.package_id,
            "user_id": self.user_id,
            "timeline_id": self.timeline_id,
            "period": self.period_key,
            "period_number": self.period_number,
            "period_label": self.period_label,
            "delivery_date": to_iso8601(self.delivery_date),
            "status": stored.value,
            "pickup_date": to_iso8601(self.pickup_date),
            "access_method": self.access_method,
            "notes": self.notes,
            "weight": self.weight,
            "dimensions": self.dimensions,
            "priority": self.priority.value if self.priority else None,
            "estimated_delivery": to_iso8601(self.estimated_delivery),
            "created_at": to_iso8601(self.created_at),
            "updated_at": to_iso8601(self.updated_at),
        }

    @classmethod
    def from_document(
        cls,
        doc: dict[str, Any],
        *,
        timeline_id: str | None = None,
        period: Period | None = None,
    ) -> PackageRecord:
        period_key = doc.get("period") or (period.key if period else "")
        return cls(
            id=doc.get("id", ""),
            package_id=doc.get("package_id", ""),
            user_id=doc["user_id"],
            timeline_id=doc.get("timeline_id") or timeline_id or "",
            period_key=period_key,
            period_number=int(doc.get("period_number") or (period.number if period else 0)),
            period_label=doc.get("period_label") or (period.label if period else ""),
            delivery_date=parse_instant(doc.get("delivery_date") or period.due_date),  # type: ignore[union-attr]
            status=PackageStatus(doc.get("status", "pending")),
            pickup_date=from_iso8601(doc.get("pickup_date")),
            access_method=doc.get("access_method"),
            notes=doc.get("notes") or "",
            weight=doc.get("weight") or 0,
            dimensions=doc.get("dimensions") or "",
            priority=Priority(doc["priority"]) if doc.get("priority") else None,
            estimated_delivery=from_iso8601(doc.get("estimated_delivery")),
            created_at=from_iso8601(doc.get("created_at")) or utc_now(),
            updated_at=from_iso8601(doc.get("updated_at")) or utc_now(),
            persisted=True,
        )

    def to_dict(self) -> dict[str, Any]:
        d = self.to_document()
        d["status"] = self.status.value
        d["stored_status"] = (self.stored_status or self.status).value
        d["persisted"] = self.persisted
        return d


def encode_patch(patch: dict[str, Any]) -> dict[str, Any]:
    """Convert a patch of record fields into document values."""
    encoded: dict[str, Any] = {}
    for key, value in patch.items():
        if isinstance(value, Enum):
            value = value.value
        elif key in _DATETIME_FIELDS and value is not None:
            value = to_iso8601(parse_instant(value))
        encoded[key] = value
    return encoded


@dataclass
class PackageHistory:
    """A user's materialized packages under the active timeline."""

    records: list[PackageRecord]
    timeline: TimelineConfig

    def copy(self) -> PackageHistory:
        """Copy with fresh record objects, so callers cannot edit a cached view."""
        return PackageHistory(records=[replace(r) for r in self.records], timeline=self.timeline)

    def record_for(self, period_key: str) -> PackageRecord | None:
        return next((r for r in self.records if r.period_key == period_key), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timeline": self.timeline.to_document(),
            "records": [r.to_dict() for r in self.records],
        }


@dataclass(frozen=True, slots=True)
class PickupConfirmation:
    """What a successful pickup reports back."""

    user_id: str
    period_key: str
    status: PackageStatus
    pickup_date: datetime
    access_method: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "period_key": self.period_key,
            "status": self.status.value,
            "pickup_date": to_iso8601(self.pickup_date),
            "access_method": self.access_method,
        }


__all__ = [
    "CadenceType",
    "TimelineMode",
    "PackageStatus",
    "TERMINAL_STATUSES",
    "Priority",
    "RefreshSource",
    "AppState",
    "Period",
    "TimelineConfig",
    "TimelineTemplate",
    "PATCHABLE_FIELDS",
    "PackageRecord",
    "encode_patch",
    "PackageHistory",
    "PickupConfirmation",
]
