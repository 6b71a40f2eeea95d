"""In-memory document store for tests and single-process use."""

from __future__ import annotations

import asyncio
import copy
from typing import Any

from parcelspine.core.errors import DocumentExistsError, DocumentNotFoundError, ValidationError
from parcelspine.store.base import WriteKind, WriteOp, normalize_path, parent_collection


class InMemoryDocumentStore:
    """
    Dict-backed :class:`~parcelspine.store.base.DocumentStore`.

    Documents are deep-copied on the way in and out so callers never share
    mutable state with the store. A single ``asyncio.Lock`` serialises
    writes; batches are validated before anything is applied.

    Attributes:
        reads: Number of ``get`` calls served (tests use it to observe caching).
    """

    def __init__(self, documents: dict[str, dict[str, Any]] | None = None):
        self._docs: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        self.reads = 0
        for path, value in (documents or {}).items():
            self._docs[normalize_path(path)] = copy.deepcopy(value)

    async def get(self, path: str) -> dict[str, Any] | None:
        self.reads += 1
        doc = self._docs.get(normalize_path(path))
        return copy.deepcopy(doc) if doc is not None else None

    async def query(
        self, collection: str, filters: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        collection = normalize_path(collection)
        filters = filters or {}
        matches = []
        for path in sorted(self._docs):
            if parent_collection(path) != collection:
                continue
            doc = self._docs[path]
            if all(doc.get(k) == v for k, v in filters.items()):
                matches.append(copy.deepcopy(doc))
        return matches

    async def create(self, path: str, value: dict[str, Any], *, overwrite: bool = True) -> None:
        path = normalize_path(path)
        async with self._lock:
            if not overwrite and path in self._docs:
                raise DocumentExistsError(path)
            self._docs[path] = copy.deepcopy(value)

    async def update(self, path: str, patch: dict[str, Any]) -> None:
        path = normalize_path(path)
        async with self._lock:
            if path not in self._docs:
                raise DocumentNotFoundError(path)
            self._docs[path].update(copy.deepcopy(patch))

    async def delete(self, path: str) -> None:
        async with self._lock:
            self._docs.pop(normalize_path(path), None)

    async def batch_commit(self, ops: list[WriteOp]) -> None:
        async with self._lock:
            staged = dict(self._docs)
            for op in ops:
                path = normalize_path(op.path)
                if op.kind is WriteKind.SET:
                    staged[path] = copy.deepcopy(op.value)
                elif op.kind is WriteKind.UPDATE:
                    if path not in staged:
                        raise DocumentNotFoundError(path)
                    staged[path] = {**staged[path], **copy.deepcopy(op.value)}
                elif op.kind is WriteKind.DELETE:
                    staged.pop(path, None)
                else:
                    raise ValidationError(f"Unknown write kind {op.kind!r}", field="kind")
            self._docs = staged

    async def close(self) -> None:
        return None

    def paths(self) -> list[str]:
        """Every stored path, sorted."""
        return sorted(self._docs)

    def __len__(self) -> int:
        return len(self._docs)

    def __repr__(self) -> str:
        return f"InMemoryDocumentStore(documents={len(self._docs)})"


__all__ = ["InMemoryDocumentStore"]
