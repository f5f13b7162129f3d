"""Repository base classes.

Thin wrappers over a store + populator for collection-oriented usage.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from doc_populate.core.engine import AsyncPopulator, Populator
from doc_populate.core.exceptions import DocumentNotBoundError

T = TypeVar("T")


class Repository(Generic[T]):
    """Base repository for one collection.

    Subclasses define concrete data access methods on top of get/find.

    Args:
        populator: Populator whose executor is a DocumentStore.
        collection: Collection served by this repository.
    """

    def __init__(self, populator: Populator, collection: str) -> None:
        self.populator = populator
        self.collection = collection
        self.store = populator.materializer.store
        if self.store is None:
            raise DocumentNotBoundError(collection)

    def _materialize(self, row: dict[str, Any], lean: bool) -> T:
        return self.populator.materializer.materialize(  # type: ignore[return-value]
            self.collection, row, lean=lean
        )

    def get(self, pk: Any, populate: Any = None, *, lean: bool = False) -> T | None:
        """Fetch one document by id, optionally populating references."""
        rows = self.store.find_by_ids(self.collection, [pk])
        if not rows:
            return None
        document = self._materialize(rows[0], lean)
        if populate:
            self.populator.populate(
                document, populate, source_type=self.collection, lean=lean or None
            )
        return document

    def find(
        self, match: dict[str, Any] | None = None, populate: Any = None, *, lean: bool = False
    ) -> list[T]:
        """Fetch every matching document, optionally populating references."""
        rows = self.store.find(self.collection, match)
        documents = [self._materialize(row, lean) for row in rows]
        if populate and documents:
            self.populator.populate(
                documents, populate, source_type=self.collection, lean=lean or None
            )
        return documents

    def create(self, record: dict[str, Any]) -> T:
        """Save a new record and return it as a document."""
        document = self._materialize(record, False)
        document.save()  # type: ignore[attr-defined]
        return document


class AsyncRepository(Generic[T]):
    """Async variant of Repository."""

    def __init__(self, populator: AsyncPopulator, collection: str) -> None:
        self.populator = populator
        self.collection = collection
        self.store = populator.materializer.store
        if self.store is None:
            raise DocumentNotBoundError(collection)

    def _materialize(self, row: dict[str, Any], lean: bool) -> T:
        return self.populator.materializer.materialize(  # type: ignore[return-value]
            self.collection, row, lean=lean
        )

    async def get(self, pk: Any, populate: Any = None, *, lean: bool = False) -> T | None:
        """Fetch one document by id, optionally populating references."""
        rows = await self.store.find_by_ids_async(self.collection, [pk])
        if not rows:
            return None
        document = self._materialize(rows[0], lean)
        if populate:
            await self.populator.populate(
                document, populate, source_type=self.collection, lean=lean or None
            )
        return document

    async def find(
        self, match: dict[str, Any] | None = None, populate: Any = None, *, lean: bool = False
    ) -> list[T]:
        """Fetch every matching document, optionally populating references."""
        rows = await self.store.find_async(self.collection, match)
        documents = [self._materialize(row, lean) for row in rows]
        if populate and documents:
            await self.populator.populate(
                documents, populate, source_type=self.collection, lean=lean or None
            )
        return documents

    async def create(self, record: dict[str, Any]) -> T:
        """Save a new record and return it as a document."""
        document = self._materialize(record, False)
        await document.save_async()  # type: ignore[attr-defined]
        return document
