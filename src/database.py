"""Document store: collections of JSON documents keyed by id, persisted in SQLite.

Every collection lives in one ``documents`` table. Filters are evaluated with
SQLite JSON functions so callers can express the usual document-store queries:

    store = DocumentStore("state.db")
    await store.query(
        "missions",
        [("lifecycleStatus", "==", "ACTIVE"), ("isActive", "==", True)],
        order_by="createdAt",
        descending=True,
        limit=20,
    )
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import secrets
from collections.abc import AsyncIterator, Iterable, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import aiosqlite

from config import CFG

logger = logging.getLogger(__name__)

SQLITE_BUSY_TIMEOUT_MS = 5000
WRITE_RETRY_ATTEMPTS = 3
WRITE_RETRY_BASE_DELAY_SEC = 0.05
DOCUMENT_ID_BYTES = 10  # 20 hex chars

FIELD_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
COMPARISON_OPERATORS = {"==": "=", "!=": "!=", "<": "<", "<=": "<=", ">": ">", ">=": ">="}
QUERY_OPERATORS = frozenset(COMPARISON_OPERATORS) | {"in", "array-contains"}

Filter = tuple[str, str, Any]


class StoreError(RuntimeError):
    """Base document store error."""


class DocumentNotFoundError(StoreError):
    """Raised when updating a document that doesn't exist."""


class InvalidQueryError(StoreError):
    """Raised when a filter or ordering can't be expressed."""


@dataclass(slots=True)
class Document:
    id: str
    data: dict[str, Any]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current UTC timestamp in ISO-8601."""
    return utc_now().isoformat()


def parse_iso_utc(raw_value: Any) -> datetime | None:
    """Parse ISO-8601 text (or pass a datetime through) as an aware UTC datetime."""
    if raw_value is None or raw_value == "":
        return None
    if isinstance(raw_value, datetime):
        parsed = raw_value
    else:
        text = str(raw_value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def new_document_id() -> str:
    return secrets.token_hex(DOCUMENT_ID_BYTES)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _encode(data: Mapping[str, Any]) -> str:
    return json.dumps(dict(data), ensure_ascii=False, separators=(",", ":"), default=_json_default)


def _decode(raw: str | bytes | None) -> dict[str, Any]:
    if not raw:
        return {}
    value = json.loads(raw)
    return value if isinstance(value, dict) else {}


def _field_path(field: str) -> str:
    parts = str(field).split(".")
    if not all(FIELD_NAME_RE.match(part) for part in parts):
        raise InvalidQueryError(f"Invalid field name: {field!r}")
    return "$." + ".".join(parts)


def _sql_value(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (str, int, float)):
        return value
    raise InvalidQueryError(f"Unsupported filter value type: {type(value).__name__}")


def build_where_clause(collection: str, filters: Iterable[Filter]) -> tuple[str, list[Any]]:
    """Translate document filters into a SQL WHERE clause and its parameters."""
    clauses = ["collection = ?"]
    params: list[Any] = [collection]
    for field, op, value in filters:
        path = _field_path(field)
        if op not in QUERY_OPERATORS:
            raise InvalidQueryError(f"Unsupported operator: {op!r}")
        if op in ("==", "!=") and value is None:
            clauses.append(f"json_extract(data, ?) IS {'NOT ' if op == '!=' else ''}NULL")
            params.append(path)
        elif op in COMPARISON_OPERATORS:
            clauses.append(f"json_extract(data, ?) {COMPARISON_OPERATORS[op]} ?")
            params.extend([path, _sql_value(value)])
        elif op == "in":
            values = [_sql_value(item) for item in value]
            if not values:
                clauses.append("0")
                continue
            placeholders = ", ".join("?" for _ in values)
            clauses.append(f"json_extract(data, ?) IN ({placeholders})")
            params.append(path)
            params.extend(values)
        else:
            clauses.append("EXISTS (SELECT 1 FROM json_each(data, ?) WHERE json_each.value = ?)")
            params.extend([path, _sql_value(value)])
    return " AND ".join(clauses), params


async def apply_sqlite_pragmas(db: aiosqlite.Connection) -> None:
    """Apply SQLite settings for concurrent access from several processes."""
    await db.execute("PRAGMA journal_mode=WAL;")
    await db.execute("PRAGMA synchronous=NORMAL;")
    await db.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS};")


@asynccontextmanager
async def open_db(db_path: str | None = None) -> AsyncIterator[aiosqlite.Connection]:
    """Open an autocommit connection; multi-statement writes use explicit transactions."""
    async with aiosqlite.connect(db_path or CFG.db_path, isolation_level=None) as db:
        db.row_factory = aiosqlite.Row
        await apply_sqlite_pragmas(db)
        yield db


def _is_locked_error(error: BaseException) -> bool:
    return isinstance(error, aiosqlite.OperationalError) and "database is locked" in str(error).lower()


async def execute_write_with_retry(
    db: aiosqlite.Connection,
    query: str,
    params: Sequence[Any] = (),
) -> aiosqlite.Cursor:
    """Execute write query with lightweight retry on lock contention."""
    for attempt in range(WRITE_RETRY_ATTEMPTS):
        try:
            return await db.execute(query, params)
        except aiosqlite.OperationalError as error:
            if not _is_locked_error(error) or attempt >= WRITE_RETRY_ATTEMPTS - 1:
                raise
            await asyncio.sleep(WRITE_RETRY_BASE_DELAY_SEC * (2**attempt))
    raise RuntimeError("Unexpected retry loop state")


async def init_db(db_path: str | None = None) -> None:
    """Create the documents table and indexes."""
    async with open_db(db_path) as db:
        await db.execute(
            """CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                id TEXT NOT NULL,
                data TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (collection, id)
            )"""
        )
        await db.execute(
            "CREATE INDEX IF NOT EXISTS idx_documents_collection_created ON documents (collection, created_at)"
        )


async def _select_document(db: aiosqlite.Connection, collection: str, doc_id: str) -> dict[str, Any] | None:
    async with db.execute(
        "SELECT data FROM documents WHERE collection = ? AND id = ?",
        (collection, str(doc_id)),
    ) as cur:
        row = await cur.fetchone()
    return _decode(row["data"]) if row else None


async def _write_document(
    db: aiosqlite.Connection,
    collection: str,
    doc_id: str,
    data: Mapping[str, Any],
) -> None:
    now = utc_now_iso()
    await execute_write_with_retry(
        db,
        """INSERT INTO documents(collection, id, data, created_at, updated_at)
           VALUES(?, ?, ?, ?, ?)
           ON CONFLICT(collection, id) DO UPDATE SET
               data = excluded.data,
               updated_at = excluded.updated_at""",
        (collection, str(doc_id), _encode(data), now, now),
    )


class DocumentTransaction:
    """Single-writer view of the store; every read and write shares one lock."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        return await _select_document(self._db, collection, doc_id)

    async def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        await _write_document(self._db, collection, doc_id, data)

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        current = await _select_document(self._db, collection, doc_id)
        if current is None:
            raise DocumentNotFoundError(f"{collection}/{doc_id} not found")
        current.update(fields)
        await _write_document(self._db, collection, doc_id, current)
        return current

    async def delete(self, collection: str, doc_id: str) -> bool:
        cursor = await self._db.execute(
            "DELETE FROM documents WHERE collection = ? AND id = ?",
            (collection, str(doc_id)),
        )
        return bool(cursor.rowcount)


class DocumentStore:
    """Get/query/update capability over named collections."""

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = db_path or CFG.db_path

    async def init(self) -> None:
        await init_db(self.db_path)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[DocumentTransaction]:
        """Run reads and writes under one ``BEGIN IMMEDIATE`` lock.

        Concurrent transactions against the same file are serialized, so a
        read-compare-write sequence inside the block can't interleave with
        another writer.
        """
        async with open_db(self.db_path) as db:
            await execute_write_with_retry(db, "BEGIN IMMEDIATE")
            try:
                yield DocumentTransaction(db)
            except BaseException:
                await db.execute("ROLLBACK")
                raise
            await db.execute("COMMIT")

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        async with open_db(self.db_path) as db:
            return await _select_document(db, collection, doc_id)

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        *,
        merge: bool = False,
    ) -> None:
        if not merge:
            async with open_db(self.db_path) as db:
                await _write_document(db, collection, doc_id, data)
            return
        async with self.transaction() as tx:
            current = await tx.get(collection, doc_id) or {}
            current.update(data)
            await tx.set(collection, doc_id, current)

    async def add(self, collection: str, data: Mapping[str, Any]) -> str:
        """Insert a document under a generated id and return the id."""
        doc_id = new_document_id()
        async with open_db(self.db_path) as db:
            await _write_document(db, collection, doc_id, data)
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        """Shallow-merge fields into an existing document."""
        async with self.transaction() as tx:
            return await tx.update(collection, doc_id, fields)

    async def increment(
        self,
        collection: str,
        doc_id: str,
        deltas: Mapping[str, int | float],
        extra: Mapping[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Add deltas to numeric fields (missing counts as 0). Returns None for a missing doc."""
        async with self.transaction() as tx:
            current = await tx.get(collection, doc_id)
            if current is None:
                return None
            for field, delta in deltas.items():
                current[field] = (current.get(field) or 0) + delta
            if extra:
                current.update(extra)
            await tx.set(collection, doc_id, current)
            return current

    async def batch_update(self, collection: str, updates: Mapping[str, Mapping[str, Any]]) -> int:
        """Apply several shallow updates atomically. Missing documents are skipped."""
        changed = 0
        async with self.transaction() as tx:
            for doc_id, fields in updates.items():
                current = await tx.get(collection, doc_id)
                if current is None:
                    continue
                current.update(fields)
                await tx.set(collection, doc_id, current)
                changed += 1
        return changed

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with open_db(self.db_path) as db:
            cursor = await execute_write_with_retry(
                db,
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (collection, str(doc_id)),
            )
            return bool(cursor.rowcount)

    async def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[Document]:
        where_sql, params = build_where_clause(collection, filters)
        sql = f"SELECT id, data FROM documents WHERE {where_sql}"
        if order_by:
            sql += f" ORDER BY json_extract(data, ?) {'DESC' if descending else 'ASC'}, id"
            params.append(_field_path(order_by))
        else:
            sql += " ORDER BY created_at, id"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(max(0, int(limit)))
        async with open_db(self.db_path) as db:
            async with db.execute(sql, params) as cur:
                rows = await cur.fetchall()
        return [Document(id=str(row["id"]), data=_decode(row["data"])) for row in rows]

    async def list_ids(self, collection: str) -> list[str]:
        async with open_db(self.db_path) as db:
            async with db.execute(
                "SELECT id FROM documents WHERE collection = ? ORDER BY id",
                (collection,),
            ) as cur:
                rows = await cur.fetchall()
        return [str(row[0]) for row in rows]
