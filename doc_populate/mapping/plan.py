"""Population plan data classes.

Frozen dataclasses representing registered references and compiled,
validated population plans. Used by PopulationExecutor at execution time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from doc_populate.core.enums import Cardinality


@dataclass(frozen=True)
class ReferenceDescriptor:
    """Static metadata for one reference field of a document type."""

    source_type: str
    field_path: str
    target_type: str | None
    cardinality: Cardinality = Cardinality.SINGLE
    id_type: type | None = None

    @property
    def is_many(self) -> bool:
        return self.cardinality is Cardinality.MANY


@dataclass(frozen=True)
class Projection:
    """Normalized field selection (inclusive or exclusive)."""

    fields: tuple[str, ...]
    exclude: bool = False

    def apply(self, record: dict[str, Any], id_field: str) -> dict[str, Any]:
        """Project *record*, always keeping the identifier field."""
        if self.exclude:
            dropped = set(self.fields) - {id_field}
            return {k: v for k, v in record.items() if k not in dropped}
        kept = set(self.fields) | {id_field}
        return {k: v for k, v in record.items() if k in kept}


@dataclass(frozen=True)
class ResolvedSpec:
    """A populate request bound to its reference descriptor."""

    path: str
    descriptor: ReferenceDescriptor
    target_type: str
    match: dict[str, Any] | None = None
    select: Projection | None = None
    limit: int | None = None
    sort: tuple[tuple[str, int], ...] | None = None
    lean: bool | None = None
    children: tuple[ResolvedSpec, ...] = field(default_factory=tuple)

    @property
    def is_many(self) -> bool:
        return self.descriptor.is_many

    @property
    def scoped(self) -> bool:
        """Whether lookups must be issued per source document.

        A limit caps each document's own sub-selection, so it cannot be
        applied to a batch shared by several documents.
        """
        if self.limit is not None:
            return True
        return self.is_many and self.match is not None

    @property
    def depth(self) -> int:
        """Number of population levels this spec drives, itself included."""
        if not self.children:
            return 1
        return 1 + max(child.depth for child in self.children)
