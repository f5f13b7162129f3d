"""SQLite document store - sync (sqlite3 stdlib) and async (aiosqlite).

Every collection lives in one ``documents`` table; records are stored as
JSON text keyed by (collection, JSON-encoded id), so int and str ids stay
distinct. Identifiers must be JSON-serializable.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Sequence
from typing import Any

from doc_populate.core.exceptions import LookupFailure, PersistenceError
from doc_populate.mapping.plan import Projection
from doc_populate.store.filters import matches, run_lookup

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    pk         TEXT NOT NULL,
    body       TEXT NOT NULL,
    PRIMARY KEY (collection, pk)
)
"""

_UPSERT = (
    "INSERT INTO documents (collection, pk, body) VALUES (:collection, :pk, :body) "
    "ON CONFLICT (collection, pk) DO UPDATE SET body = excluded.body"
)

_DELETE = "DELETE FROM documents WHERE collection = :collection AND pk = :pk"

_SELECT_ALL = "SELECT body FROM documents WHERE collection = :collection ORDER BY rowid"

# Stay well below SQLITE_MAX_VARIABLE_NUMBER on older builds
_CHUNK_SIZE = 500


def _encode_pk(pk: Any) -> str:
    return json.dumps(pk)


def _select_by_ids(count: int) -> str:
    placeholders = ", ".join(f":id{i}" for i in range(count))
    return (
        "SELECT body FROM documents "
        f"WHERE collection = :collection AND pk IN ({placeholders})"
    )


def _chunks(ids: list[Any]) -> list[tuple[str, dict[str, Any]]]:
    """Split ids into (sql, params) pairs of bounded size."""
    statements = []
    for start in range(0, len(ids), _CHUNK_SIZE):
        chunk = ids[start : start + _CHUNK_SIZE]
        params = {f"id{i}": _encode_pk(pk) for i, pk in enumerate(chunk)}
        statements.append((_select_by_ids(len(chunk)), params))
    return statements


def _order_by_ids(bodies: list[str], ids: list[Any], id_field: str) -> list[dict[str, Any]]:
    by_id = {}
    for body in bodies:
        record = json.loads(body)
        by_id[record.get(id_field)] = record
    return [by_id[pk] for pk in ids if pk in by_id]


def _prepare_record(record: dict[str, Any], id_field: str) -> tuple[Any, str]:
    pk = record.get(id_field)
    if pk is None:
        pk = uuid.uuid4().hex
    body = json.dumps({**record, id_field: pk})
    return pk, body


class SqliteStore:
    """Synchronous document store on stdlib sqlite3.

    Args:
        database: Database file path, or ":memory:".
        id_field: Name of the identifier field.
    """

    def __init__(self, database: str = ":memory:", id_field: str = "_id") -> None:
        self._id_field = id_field
        self._conn = sqlite3.connect(database)
        self._conn.row_factory = sqlite3.Row
        if database != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(_CREATE_TABLE)
        self._conn.commit()

    @property
    def id_field(self) -> str:
        return self._id_field

    def close(self) -> None:
        """Close the underlying connection."""
        self._conn.close()

    def __enter__(self) -> SqliteStore:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def insert_many(self, collection: str, records: list[dict[str, Any]]) -> list[Any]:
        """Save every record of *records*; returns their identifiers."""
        return [self.save(collection, record) for record in records]

    def find_by_ids(
        self,
        target_type: str,
        ids: Sequence[Any],
        *,
        match: dict[str, Any] | None = None,
        select: Projection | None = None,
        limit: int | None = None,
        sort: tuple[tuple[str, int], ...] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch records by identifier, in *ids* order unless sorted."""
        unique_ids = list(dict.fromkeys(ids))
        logger.debug("SQLite lookup on %s: %d ids", target_type, len(unique_ids))
        bodies: list[str] = []
        try:
            for sql, params in _chunks(unique_ids):
                cursor = self._conn.execute(sql, {"collection": target_type, **params})
                bodies.extend(row["body"] for row in cursor.fetchall())
            candidates = _order_by_ids(bodies, unique_ids, self._id_field)
            return run_lookup(
                candidates,
                match=match,
                select=select,
                limit=limit,
                sort=sort,
                id_field=self._id_field,
            )
        except (sqlite3.Error, ValueError, TypeError) as e:
            raise LookupFailure(target_type, [], str(e)) from e

    def find(
        self,
        collection: str,
        match: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch every record of *collection* matching *match*."""
        try:
            cursor = self._conn.execute(_SELECT_ALL, {"collection": collection})
            records = [json.loads(row["body"]) for row in cursor.fetchall()]
            return [r for r in records if matches(r, match)]
        except (sqlite3.Error, ValueError) as e:
            raise LookupFailure(collection, [], str(e)) from e

    def save(self, collection: str, record: dict[str, Any]) -> Any:
        """Insert or replace *record*, assigning a hex uuid id when missing."""
        try:
            pk, body = _prepare_record(record, self._id_field)
            self._conn.execute(
                _UPSERT, {"collection": collection, "pk": _encode_pk(pk), "body": body}
            )
            self._conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as e:
            self._conn.rollback()
            raise PersistenceError(f"Cannot save to '{collection}': {e}") from e
        return pk

    def remove(self, collection: str, pk: Any) -> bool:
        """Delete a record; returns True if it existed."""
        try:
            cursor = self._conn.execute(_DELETE, {"collection": collection, "pk": _encode_pk(pk)})
            self._conn.commit()
        except (sqlite3.Error, TypeError) as e:
            self._conn.rollback()
            raise PersistenceError(f"Cannot remove from '{collection}': {e}") from e
        return cursor.rowcount > 0


class AsyncSqliteStore:
    """Asynchronous document store using aiosqlite.

    Call ``connect()`` (or use ``async with``) before the first query.

    Args:
        database: Database file path, or ":memory:".
        id_field: Name of the identifier field.
    """

    def __init__(self, database: str = ":memory:", id_field: str = "_id") -> None:
        self._database = database
        self._id_field = id_field
        self._conn: Any = None

    @property
    def id_field(self) -> str:
        return self._id_field

    async def connect(self) -> AsyncSqliteStore:
        """Open the connection and create the documents table."""
        import aiosqlite

        if self._conn is None:
            self._conn = await aiosqlite.connect(self._database)
            self._conn.row_factory = aiosqlite.Row
            if self._database != ":memory:":
                await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.execute(_CREATE_TABLE)
            await self._conn.commit()
        return self

    async def close(self) -> None:
        """Close the connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> AsyncSqliteStore:
        return await self.connect()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _connection(self) -> Any:
        if self._conn is None:
            await self.connect()
        return self._conn

    async def find_by_ids_async(
        self,
        target_type: str,
        ids: Sequence[Any],
        *,
        match: dict[str, Any] | None = None,
        select: Projection | None = None,
        limit: int | None = None,
        sort: tuple[tuple[str, int], ...] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch records by identifier, in *ids* order unless sorted."""
        conn = await self._connection()
        unique_ids = list(dict.fromkeys(ids))
        logger.debug("SQLite lookup on %s: %d ids", target_type, len(unique_ids))
        bodies: list[str] = []
        try:
            for sql, params in _chunks(unique_ids):
                cursor = await conn.execute(sql, {"collection": target_type, **params})
                bodies.extend(row["body"] for row in await cursor.fetchall())
            candidates = _order_by_ids(bodies, unique_ids, self._id_field)
            return run_lookup(
                candidates,
                match=match,
                select=select,
                limit=limit,
                sort=sort,
                id_field=self._id_field,
            )
        except (sqlite3.Error, ValueError, TypeError) as e:
            raise LookupFailure(target_type, [], str(e)) from e

    async def find_async(
        self,
        collection: str,
        match: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch every record of *collection* matching *match*."""
        conn = await self._connection()
        try:
            cursor = await conn.execute(_SELECT_ALL, {"collection": collection})
            records = [json.loads(row["body"]) for row in await cursor.fetchall()]
            return [r for r in records if matches(r, match)]
        except (sqlite3.Error, ValueError) as e:
            raise LookupFailure(collection, [], str(e)) from e

    async def save_async(self, collection: str, record: dict[str, Any]) -> Any:
        """Insert or replace *record*, assigning a hex uuid id when missing."""
        conn = await self._connection()
        try:
            pk, body = _prepare_record(record, self._id_field)
            await conn.execute(
                _UPSERT, {"collection": collection, "pk": _encode_pk(pk), "body": body}
            )
            await conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as e:
            await conn.rollback()
            raise PersistenceError(f"Cannot save to '{collection}': {e}") from e
        return pk

    async def remove_async(self, collection: str, pk: Any) -> bool:
        """Delete a record; returns True if it existed."""
        conn = await self._connection()
        try:
            cursor = await conn.execute(_DELETE, {"collection": collection, "pk": _encode_pk(pk)})
            await conn.commit()
        except (sqlite3.Error, TypeError) as e:
            await conn.rollback()
            raise PersistenceError(f"Cannot remove from '{collection}': {e}") from e
        return cursor.rowcount > 0
