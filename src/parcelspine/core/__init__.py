"""
parcelspine.core - platform primitives shared by every layer.

Modules
-------
cache       CacheStore -- TTL + LRU memoization with an injected clock
clock       Clock protocol, SystemClock, FixedClock, TimelineClock
errors      ParcelError hierarchy
events      Notifier listener registry
logging     structlog configuration
result      OperationResult envelope
settings    ParcelSettings (pydantic-settings)
timestamps  UTC helpers and ULIDs
"""

from parcelspine.core.cache import CacheEntry, CacheStore
from parcelspine.core.clock import Clock, FixedClock, SystemClock, TimelineClock
from parcelspine.core.errors import (
    BackendUnavailableError,
    DocumentExistsError,
    DocumentNotFoundError,
    ErrorCategory,
    NotFoundError,
    PackageNotFoundError,
    ParcelError,
    PeriodNotFoundError,
    RefreshInProgressError,
    StoreError,
    TimelineNotFoundError,
    ValidationError,
)
from parcelspine.core.events import EventType, Notifier
from parcelspine.core.result import OperationError, OperationResult

__all__ = [
    "CacheEntry",
    "CacheStore",
    "Clock",
    "FixedClock",
    "SystemClock",
    "TimelineClock",
    "BackendUnavailableError",
    "DocumentExistsError",
    "DocumentNotFoundError",
    "ErrorCategory",
    "NotFoundError",
    "PackageNotFoundError",
    "ParcelError",
    "PeriodNotFoundError",
    "RefreshInProgressError",
    "StoreError",
    "TimelineNotFoundError",
    "ValidationError",
    "EventType",
    "Notifier",
    "OperationError",
    "OperationResult",
]
