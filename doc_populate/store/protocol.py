"""Store protocols.

The populators depend only on the query executor protocols. Stores that
also implement the document store protocols can back materialized
documents, which then support save() and remove().
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from doc_populate.mapping.plan import Projection


@runtime_checkable
class QueryExecutor(Protocol):
    """Synchronous lookup of documents by identifier."""

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
        """Return records of *target_type* whose id is in *ids*.

        Results are further constrained by *match*, projected by *select*
        (the id field is always kept), ordered by *sort* and capped at
        *limit*. Without *sort*, records come back in *ids* order.
        """
        ...


@runtime_checkable
class AsyncQueryExecutor(Protocol):
    """Asynchronous lookup of documents by identifier."""

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
        """Async variant of QueryExecutor.find_by_ids."""
        ...


@runtime_checkable
class DocumentStore(QueryExecutor, Protocol):
    """Synchronous store with persistence operations."""

    def find(
        self,
        collection: str,
        match: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Return every record of *collection* matching *match*."""
        ...

    def save(self, collection: str, record: dict[str, Any]) -> Any:
        """Insert or replace *record*; returns its identifier."""
        ...

    def remove(self, collection: str, pk: Any) -> bool:
        """Delete the record with identifier *pk*; returns True if it existed."""
        ...


@runtime_checkable
class AsyncDocumentStore(AsyncQueryExecutor, Protocol):
    """Asynchronous store with persistence operations."""

    async def find_async(
        self,
        collection: str,
        match: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Return every record of *collection* matching *match*."""
        ...

    async def save_async(self, collection: str, record: dict[str, Any]) -> Any:
        """Insert or replace *record*; returns its identifier."""
        ...

    async def remove_async(self, collection: str, pk: Any) -> bool:
        """Delete the record with identifier *pk*; returns True if it existed."""
        ...
