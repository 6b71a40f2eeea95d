"""
ULID generation and UTC timestamp utilities (stdlib-only).

Every record that crosses the store boundary carries instants as ISO 8601
strings; everything inside the process works with timezone-aware UTC
``datetime`` values. This module is the single place that converts between
the two.

Manifesto:
    Due dates, simulation dates, cache timestamps and pickup dates all mix
    in the same comparisons. One naive ``datetime`` slipping in raises
    ``TypeError`` deep inside a status comparison. Normalise at the edges:

    - **utc_now():** Timezone-aware UTC datetime
    - **ensure_utc():** Naive values are treated as UTC
    - **parse_instant():** Accepts datetime, date or ISO string
    - **generate_ulid():** Time-sortable package identifiers

Tags:
    timestamps, ulid, utc, datetime, stdlib-only, serialization

Doc-Types:
    - API Reference
    - Utility Documentation
"""

from __future__ import annotations

import random
import time
from datetime import UTC, date, datetime


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Return *dt* as an aware UTC datetime (naive values are assumed UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_instant(value: datetime | date | str) -> datetime:
    """Coerce a datetime, date or ISO 8601 string into an aware UTC datetime.

    Dates become midnight UTC. A trailing ``Z`` is accepted.

    Raises:
        ValueError: If *value* is a string that is not ISO 8601.
        TypeError: If *value* is of an unsupported type.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return ensure_utc(datetime.fromisoformat(text))
    raise TypeError(f"Cannot interpret {type(value).__name__} as an instant")


def to_iso8601(dt: datetime | None) -> str | None:
    """Convert datetime to ISO 8601 string."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()


def from_iso8601(s: str | None) -> datetime | None:
    """Parse ISO 8601 string to an aware UTC datetime."""
    if s is None:
        return None
    return parse_instant(s)


def generate_ulid() -> str:
    """
    Generate a ULID-like identifier.

    Format: 26 characters, base32 encoded, time-sortable.
    """
    # Time component: milliseconds since epoch (48 bits -> 10 chars)
    timestamp_ms = int(time.time() * 1000)
    timestamp_chars = _encode_base32(timestamp_ms, 10)

    # Random component (80 bits -> 16 chars)
    random_part = "".join(random.choices(_ENCODING, k=16))

    return timestamp_chars + random_part


# ULID base32 alphabet (Crockford's)
_ENCODING = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_ENCODING_LEN = len(_ENCODING)


def _encode_base32(value: int, length: int) -> str:
    """Encode integer to base32 string of fixed length."""
    result = []
    for _ in range(length):
        result.append(_ENCODING[value % _ENCODING_LEN])
        value //= _ENCODING_LEN
    return "".join(reversed(result))


__all__ = [
    "utc_now",
    "ensure_utc",
    "parse_instant",
    "to_iso8601",
    "from_iso8601",
    "generate_ulid",
]
