"""
Document store protocol (ASYNC).

Every piece of persistent state lives in a hierarchical document store:
slash-separated paths address JSON-like documents, and a *collection* is a
path minus its last segment. Domain code talks to the store only through
:class:`DocumentStore`, so the in-memory store used by tests and the SQLite
store used by the CLI are interchangeable with a hosted backend.

Architecture:
    ::

        DocumentStore Protocol:
        ┌────────────────────────────────────────────────────────────┐
        │ get(path)                   → dict | None                  │
        │ query(collection, filters)  → list[dict] (direct children) │
        │ create(path, value, overwrite=True)                        │
        │ update(path, patch)         (DocumentNotFoundError)        │
        │ delete(path)                                               │
        │ batch_commit([WriteOp])     (all or nothing)               │
        │ close()                                                    │
        └────────────────────────────────────────────────────────────┘

Path layout:
    ::

        active_timeline/current
        timeline_templates/<template_id>
        packages/<timeline_id>
        packages/<timeline_id>/periods/<period_key>
        packages/<timeline_id>/periods/<period_key>/user_packages/<user_id>
        users/<user_id>

Guardrails:
    ❌ DON'T: Build path strings by hand in services
    ✅ DO: Use the path helpers below

    ❌ DON'T: Rely on ``create(..., overwrite=False)`` for locking
    ✅ DO: Treat it as a best-effort guard against double creation

Tags:
    storage, protocol, documents, async

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from parcelspine.core.errors import ValidationError


class WriteKind(str, Enum):
    SET = "set"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class WriteOp:
    """One write inside a batch."""

    kind: WriteKind
    path: str
    value: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def set(cls, path: str, value: dict[str, Any]) -> WriteOp:
        return cls(WriteKind.SET, path, value)

    @classmethod
    def update(cls, path: str, patch: dict[str, Any]) -> WriteOp:
        return cls(WriteKind.UPDATE, path, patch)

    @classmethod
    def delete(cls, path: str) -> WriteOp:
        return cls(WriteKind.DELETE, path)


@runtime_checkable
class DocumentStore(Protocol):
    """Async hierarchical document store."""

    async def get(self, path: str) -> dict[str, Any] | None:
        """Return the document at *path*, or ``None``."""
        ...

    async def query(
        self, collection: str, filters: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Documents directly under *collection* whose fields equal *filters*."""
        ...

    async def create(self, path: str, value: dict[str, Any], *, overwrite: bool = True) -> None:
        """Write a document; with ``overwrite=False`` raise ``DocumentExistsError`` if present."""
        ...

    async def update(self, path: str, patch: dict[str, Any]) -> None:
        """Merge *patch* into an existing document; raise ``DocumentNotFoundError`` if absent."""
        ...

    async def delete(self, path: str) -> None:
        """Remove a document. No-op if absent."""
        ...

    async def batch_commit(self, ops: list[WriteOp]) -> None:
        """Apply every op or none of them."""
        ...

    async def close(self) -> None: ...


# =============================================================================
# PATHS
# =============================================================================

ACTIVE_TIMELINE_PATH = "active_timeline/current"
TEMPLATES_COLLECTION = "timeline_templates"
USERS_COLLECTION = "users"


def normalize_path(path: str) -> str:
    """Strip surrounding slashes and reject empty segments."""
    cleaned = path.strip("/")
    if not cleaned or any(not part for part in cleaned.split("/")):
        raise ValidationError(f"Invalid document path '{path}'", field="path", value=path)
    return cleaned


def parent_collection(path: str) -> str:
    """The collection a document lives in (its path minus the last segment)."""
    head, _, _ = normalize_path(path).rpartition("/")
    return head


def template_path(template_id: str) -> str:
    return f"{TEMPLATES_COLLECTION}/{template_id}"


def user_path(user_id: str) -> str:
    return f"{USERS_COLLECTION}/{user_id}"


def timeline_packages_path(timeline_id: str) -> str:
    return f"packages/{timeline_id}"


def periods_collection(timeline_id: str) -> str:
    return f"packages/{timeline_id}/periods"


def period_path(timeline_id: str, period_key: str) -> str:
    return f"{periods_collection(timeline_id)}/{period_key}"


def user_packages_collection(timeline_id: str, period_key: str) -> str:
    return f"{period_path(timeline_id, period_key)}/user_packages"


def package_path(timeline_id: str, period_key: str, user_id: str) -> str:
    return f"{user_packages_collection(timeline_id, period_key)}/{user_id}"


__all__ = [
    "WriteKind",
    "WriteOp",
    "DocumentStore",
    "ACTIVE_TIMELINE_PATH",
    "TEMPLATES_COLLECTION",
    "USERS_COLLECTION",
    "normalize_path",
    "parent_collection",
    "template_path",
    "user_path",
    "timeline_packages_path",
    "periods_collection",
    "period_path",
    "user_packages_collection",
    "package_path",
]
