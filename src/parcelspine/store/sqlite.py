"""SQLite document store.

Documents are JSON text in a single ``documents`` table keyed by path, with
the parent collection stored alongside for ``query``. Blocking ``sqlite3``
calls run in a worker thread via ``asyncio.to_thread``; a lock serialises
access to the one connection.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from pathlib import Path
from typing import Any

from parcelspine.core.errors import (
    DocumentExistsError,
    DocumentNotFoundError,
    StoreError,
    ValidationError,
)
from parcelspine.core.logging import get_logger
from parcelspine.store.base import WriteKind, WriteOp, normalize_path, parent_collection

logger = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    path TEXT PRIMARY KEY,
    collection TEXT NOT NULL,
    body TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents (collection);
"""


class SQLiteDocumentStore:
    """
    :class:`~parcelspine.store.base.DocumentStore` on a SQLite file.

    Example:
        store = SQLiteDocumentStore("~/.parcelspine/parcelspine.db")
        await store.create("users/u1", {"role": "user"})
        await store.close()
    """

    def __init__(self, path: str | Path = ":memory:", *, timeout: float = 5.0):
        self._path = str(path)
        if self._path != ":memory:":
            db_file = Path(self._path).expanduser()
            db_file.parent.mkdir(parents=True, exist_ok=True)
            self._path = str(db_file)
        try:
            self._conn = sqlite3.connect(self._path, timeout=timeout, check_same_thread=False)
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to open SQLite store: {e}", cause=e) from e
        self._lock = threading.Lock()

    @property
    def path(self) -> str:
        return self._path

    async def _run(self, fn, *args):
        return await asyncio.to_thread(self._locked, fn, *args)

    def _locked(self, fn, *args):
        with self._lock:
            if self._conn is None:
                raise StoreError("SQLite store is closed")
            try:
                return fn(self._conn, *args)
            except sqlite3.Error as e:
                raise StoreError(f"SQLite error: {e}", cause=e) from e

    # ── Reads ────────────────────────────────────────────────────

    async def get(self, path: str) -> dict[str, Any] | None:
        path = normalize_path(path)

        def _get(conn: sqlite3.Connection) -> dict[str, Any] | None:
            row = conn.execute("SELECT body FROM documents WHERE path = ?", (path,)).fetchone()
            return json.loads(row[0]) if row else None

        return await self._run(_get)

    async def query(
        self, collection: str, filters: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        collection = normalize_path(collection)
        filters = filters or {}

        def _query(conn: sqlite3.Connection) -> list[dict[str, Any]]:
            rows = conn.execute(
                "SELECT body FROM documents WHERE collection = ? ORDER BY path", (collection,)
            ).fetchall()
            docs = [json.loads(row[0]) for row in rows]
            return [d for d in docs if all(d.get(k) == v for k, v in filters.items())]

        return await self._run(_query)

    # ── Writes ───────────────────────────────────────────────────

    async def create(self, path: str, value: dict[str, Any], *, overwrite: bool = True) -> None:
        path = normalize_path(path)
        body = json.dumps(value)

        def _create(conn: sqlite3.Connection) -> None:
            with conn:
                if overwrite:
                    _upsert(conn, path, body)
                    return
                try:
                    conn.execute(
                        "INSERT INTO documents (path, collection, body) VALUES (?, ?, ?)",
                        (path, parent_collection(path), body),
                    )
                except sqlite3.IntegrityError as e:
                    raise DocumentExistsError(path, cause=e) from e

        await self._run(_create)

    async def update(self, path: str, patch: dict[str, Any]) -> None:
        path = normalize_path(path)

        def _update(conn: sqlite3.Connection) -> None:
            with conn:
                _merge(conn, path, patch)

        await self._run(_update)

    async def delete(self, path: str) -> None:
        path = normalize_path(path)

        def _delete(conn: sqlite3.Connection) -> None:
            with conn:
                conn.execute("DELETE FROM documents WHERE path = ?", (path,))

        await self._run(_delete)

    async def batch_commit(self, ops: list[WriteOp]) -> None:
        def _batch(conn: sqlite3.Connection) -> None:
            # ``with conn`` rolls back if any op raises
            with conn:
                for op in ops:
                    path = normalize_path(op.path)
                    if op.kind is WriteKind.SET:
                        _upsert(conn, path, json.dumps(op.value))
                    elif op.kind is WriteKind.UPDATE:
                        _merge(conn, path, op.value)
                    elif op.kind is WriteKind.DELETE:
                        conn.execute("DELETE FROM documents WHERE path = ?", (path,))
                    else:
                        raise ValidationError(f"Unknown write kind {op.kind!r}", field="kind")

        await self._run(_batch)
        logger.debug("batch_committed", ops=len(ops), db=self._path)

    async def close(self) -> None:
        def _close() -> None:
            with self._lock:
                if self._conn is not None:
                    self._conn.close()
                    self._conn = None

        await asyncio.to_thread(_close)

    def __repr__(self) -> str:
        return f"SQLiteDocumentStore({self._path!r})"


def _upsert(conn: sqlite3.Connection, path: str, body: str) -> None:
    conn.execute(
        "INSERT INTO documents (path, collection, body) VALUES (?, ?, ?) "
        "ON CONFLICT(path) DO UPDATE SET body = excluded.body",
        (path, parent_collection(path), body),
    )


def _merge(conn: sqlite3.Connection, path: str, patch: dict[str, Any]) -> None:
    row = conn.execute("SELECT body FROM documents WHERE path = ?", (path,)).fetchone()
    if row is None:
        raise DocumentNotFoundError(path)
    merged = {**json.loads(row[0]), **patch}
    conn.execute("UPDATE documents SET body = ? WHERE path = ?", (json.dumps(merged), path))


__all__ = ["SQLiteDocumentStore"]
