"""In-memory document store - sync and async interfaces over plain dicts."""

from __future__ import annotations

import copy
import uuid
from collections.abc import Sequence
from typing import Any

from doc_populate.core.exceptions import LookupFailure, PersistenceError
from doc_populate.mapping.plan import Projection
from doc_populate.store.filters import matches, run_lookup


class MemoryStore:
    """Document store keeping collections in process memory.

    Records are copied on the way in and out, so callers never share
    state with the store.

    Args:
        id_field: Name of the identifier field.
    """

    def __init__(self, id_field: str = "_id") -> None:
        self._id_field = id_field
        self._collections: dict[str, dict[Any, dict[str, Any]]] = {}

    @property
    def id_field(self) -> str:
        return self._id_field

    def insert_many(self, collection: str, records: list[dict[str, Any]]) -> list[Any]:
        """Save every record of *records*; returns their identifiers."""
        return [self.save(collection, record) for record in records]

    def count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))

    # --- Sync interface ---

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
        records = self._collections.get(target_type, {})
        candidates = [copy.deepcopy(records[i]) for i in dict.fromkeys(ids) if i in records]
        try:
            return run_lookup(
                candidates,
                match=match,
                select=select,
                limit=limit,
                sort=sort,
                id_field=self._id_field,
            )
        except (ValueError, TypeError) as e:
            raise LookupFailure(target_type, [], str(e)) from e

    def find(
        self,
        collection: str,
        match: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch every record of *collection* matching *match*."""
        records = self._collections.get(collection, {}).values()
        try:
            return [copy.deepcopy(r) for r in records if matches(r, match)]
        except ValueError as e:
            raise LookupFailure(collection, [], str(e)) from e

    def save(self, collection: str, record: dict[str, Any]) -> Any:
        """Insert or replace *record*, assigning a hex uuid id when missing."""
        pk = record.get(self._id_field)
        if pk is None:
            pk = uuid.uuid4().hex
        try:
            stored = copy.deepcopy(record)
        except Exception as e:
            raise PersistenceError(f"Cannot store record in '{collection}': {e}") from e
        stored[self._id_field] = pk
        self._collections.setdefault(collection, {})[pk] = stored
        return pk

    def remove(self, collection: str, pk: Any) -> bool:
        """Delete a record; returns True if it existed."""
        return self._collections.get(collection, {}).pop(pk, None) is not None

    # --- Async interface ---

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
        """Async variant of find_by_ids."""
        return self.find_by_ids(
            target_type, ids, match=match, select=select, limit=limit, sort=sort
        )

    async def find_async(
        self,
        collection: str,
        match: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Async variant of find."""
        return self.find(collection, match)

    async def save_async(self, collection: str, record: dict[str, Any]) -> Any:
        """Async variant of save."""
        return self.save(collection, record)

    async def remove_async(self, collection: str, pk: Any) -> bool:
        """Async variant of remove."""
        return self.remove(collection, pk)
