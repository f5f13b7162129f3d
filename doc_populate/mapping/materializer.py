"""Row-to-document materializer.

Wraps raw lookup rows into Document entities bound to their collection
and store. In lean mode rows come back as plain dicts.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from doc_populate.mapping.document import Document
from doc_populate.mapping.plan import Projection

if TYPE_CHECKING:
    from doc_populate.core.registry import ReferenceRegistry


class DocumentMaterializer:
    """Turns lookup rows into documents.

    Detection order:
    1. lean -> plain dict copy, no save/remove
    2. document class registered for the type -> that class
    3. otherwise -> Document

    Documents carry the reference paths of their type and the projection
    they were loaded with, so save() writes ids and never drops fields
    that were not selected.

    Args:
        registry: Registry used to find per-type document classes.
        store: Store bound to materialized documents for save/remove.
        id_field: Name of the identifier field.
    """

    def __init__(
        self,
        registry: ReferenceRegistry,
        store: Any = None,
        id_field: str = "_id",
    ) -> None:
        self._registry = registry
        self._store = store
        self._id_field = id_field

    @property
    def store(self) -> Any:
        return self._store

    def materialize(
        self,
        target_type: str,
        row: dict[str, Any],
        *,
        lean: bool = False,
        select: Projection | None = None,
    ) -> Document | dict[str, Any]:
        """Materialize a single row."""
        if lean:
            return dict(row)
        document_class = self._registry.document_class(target_type)
        return document_class(
            target_type,
            dict(row),
            store=self._store,
            id_field=self._id_field,
            projection=select,
            references=[d.field_path for d in self._registry.references_for(target_type)],
        )

    def materialize_many(
        self,
        target_type: str,
        rows: list[dict[str, Any]],
        *,
        lean: bool = False,
        select: Projection | None = None,
    ) -> list[Document | dict[str, Any]]:
        """Materialize all rows via materialize."""
        return [self.materialize(target_type, row, lean=lean, select=select) for row in rows]
