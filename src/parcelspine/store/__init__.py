"""
parcelspine.store - document store contract and implementations.
"""

from parcelspine.store.base import (
    ACTIVE_TIMELINE_PATH,
    TEMPLATES_COLLECTION,
    USERS_COLLECTION,
    DocumentStore,
    WriteKind,
    WriteOp,
    normalize_path,
    package_path,
    parent_collection,
    period_path,
    periods_collection,
    template_path,
    timeline_packages_path,
    user_packages_collection,
    user_path,
)
from parcelspine.store.memory import InMemoryDocumentStore
from parcelspine.store.sqlite import SQLiteDocumentStore

__all__ = [
    "ACTIVE_TIMELINE_PATH",
    "TEMPLATES_COLLECTION",
    "USERS_COLLECTION",
    "DocumentStore",
    "WriteKind",
    "WriteOp",
    "normalize_path",
    "package_path",
    "parent_collection",
    "period_path",
    "periods_collection",
    "template_path",
    "timeline_packages_path",
    "user_packages_collection",
    "user_path",
    "InMemoryDocumentStore",
    "SQLiteDocumentStore",
]
