"""Population executor.

Splits one population step into two halves so sync and async populators
share all the logic:

* ``prepare`` scans the source documents, collects raw identifiers per
  (document, path) slot and plans the lookup requests;
* ``apply`` materializes the lookup rows and substitutes them in place.

Everything built here lives only for the duration of one call.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from doc_populate.core.exceptions import StrictModeViolation
from doc_populate.mapping.document import Slot, as_populatable, iter_slots
from doc_populate.mapping.materializer import DocumentMaterializer
from doc_populate.mapping.plan import Projection, ResolvedSpec
from doc_populate.mapping.protocol import TracksPopulation

logger = logging.getLogger(__name__)


class _Kind(Enum):
    IDENTIFIER = "identifier"
    CONTENT = "content"
    INVALID = "invalid"


_UNCHANGED = object()


@dataclass(frozen=True)
class LookupRequest:
    """One query the executor needs answered."""

    target_type: str
    ids: tuple[Any, ...]
    match: dict[str, Any] | None = None
    select: Projection | None = None
    limit: int | None = None
    sort: tuple[tuple[str, int], ...] | None = None
    scoped: bool = False


@dataclass
class _Target:
    """A source document together with its slots for one path."""

    document: Any
    slots: list[Slot]
    raw: list[Any]
    fanned: bool
    ids: list[Any]
    request: int | None = None


@dataclass
class PopulationBatch:
    """Prepared state of one ResolvedSpec over a set of documents."""

    spec: ResolvedSpec
    targets: list[_Target] = field(default_factory=list)
    requests: list[LookupRequest] = field(default_factory=list)
    existing: list[Any] = field(default_factory=list)


def _unique(values: list[Any]) -> tuple[Any, ...]:
    return tuple(dict.fromkeys(values))


class PopulationExecutor:
    """Collects reference ids and substitutes looked-up documents.

    Args:
        materializer: Builds documents from lookup rows.
        id_field: Name of the identifier field in lookup rows.
        lean: Default lean mode when a spec does not set one.
        strict: Raise on reference values that are neither ids nor documents.
    """

    def __init__(
        self,
        materializer: DocumentMaterializer,
        *,
        id_field: str = "_id",
        lean: bool = False,
        strict: bool = False,
    ) -> None:
        self._materializer = materializer
        self._id_field = id_field
        self._lean = lean
        self._strict = strict

    def prepare(self, documents: list[Any], spec: ResolvedSpec) -> PopulationBatch:
        """Scan *documents* for ids at ``spec.path`` and plan lookups.

        Raises:
            StrictModeViolation: In strict mode, for unusable field values.
        """
        batch = PopulationBatch(spec=spec)
        segments = tuple(spec.path.split("."))

        for document in documents:
            slots, fanned = iter_slots(document, segments)
            if not slots:
                continue
            raw = [slot.value for slot in slots]
            ids: list[Any] = []
            for value in raw:
                ids.extend(self._identifiers(value, spec))
                batch.existing.extend(self._contents(value, spec))
            batch.targets.append(_Target(document, slots, raw, fanned, ids))

        if spec.scoped:
            for target in batch.targets:
                if target.ids:
                    target.request = len(batch.requests)
                    batch.requests.append(self._request(spec, _unique(target.ids)))
        else:
            all_ids = _unique([i for target in batch.targets for i in target.ids])
            if all_ids:
                batch.requests.append(self._request(spec, all_ids))
                for target in batch.targets:
                    if target.ids:
                        target.request = 0

        logger.debug(
            "Prepared '%s' -> %s: %d documents with slots, %d lookups",
            spec.path,
            spec.target_type,
            len(batch.targets),
            len(batch.requests),
        )
        return batch

    def apply(
        self,
        batch: PopulationBatch,
        responses: list[list[dict[str, Any]]],
        *,
        lean: bool | None = None,
    ) -> list[Any]:
        """Substitute looked-up documents into the prepared slots.

        Args:
            batch: Result of prepare().
            responses: Rows for each request of the batch, in request order.
            lean: Per-call lean mode, used when the spec does not set one.

        Returns:
            The unique documents now held at ``spec.path``, freshly
            materialized or already populated, used as sources for nested
            population.
        """
        spec = batch.spec
        if spec.lean is not None:
            lean = spec.lean
        elif lean is None:
            lean = self._lean

        found_per_request: list[dict[Any, Any]] = []
        for request, rows in zip(batch.requests, responses):
            wanted = set(request.ids)
            found: dict[Any, Any] = {}
            for row in rows:
                key = row.get(self._id_field)
                if key in found or key not in wanted:
                    continue
                found[key] = self._materializer.materialize(
                    spec.target_type, row, lean=lean, select=spec.select
                )
            found_per_request.append(found)

        substituted = 0
        for target in batch.targets:
            if target.request is None:
                continue
            found = found_per_request[target.request]
            changed = False
            for slot, value in zip(target.slots, target.raw):
                new_value = self._substitute(value, found, spec)
                if new_value is not _UNCHANGED:
                    slot.owner.set_field(slot.key, new_value)
                    changed = True
            if changed:
                substituted += 1
                if isinstance(target.document, TracksPopulation):
                    target.document.mark_populated(
                        spec.path, target.raw if target.fanned else target.raw[0]
                    )

        children: dict[int, Any] = {}
        for found in found_per_request:
            for document in found.values():
                children.setdefault(id(document), document)
        for document in batch.existing:
            children.setdefault(id(document), document)

        logger.debug(
            "Populated '%s' on %d documents with %d %s documents",
            spec.path,
            substituted,
            len(children),
            spec.target_type,
        )
        return list(children.values())

    def _request(self, spec: ResolvedSpec, ids: tuple[Any, ...]) -> LookupRequest:
        return LookupRequest(
            target_type=spec.target_type,
            ids=ids,
            match=spec.match,
            select=spec.select,
            limit=spec.limit,
            sort=spec.sort,
            scoped=spec.scoped,
        )

    def _classify(self, value: Any, spec: ResolvedSpec) -> _Kind:
        id_type = spec.descriptor.id_type
        if isinstance(value, bool) and id_type is not bool:
            return _Kind.INVALID
        if id_type is not None and isinstance(value, id_type):
            return _Kind.IDENTIFIER
        if isinstance(value, Mapping) or as_populatable(value) is not None:
            return _Kind.CONTENT
        if id_type is None:
            return _Kind.IDENTIFIER
        return _Kind.INVALID

    def _check(self, value: Any, spec: ResolvedSpec) -> bool:
        kind = self._classify(value, spec)
        if kind is _Kind.INVALID and self._strict:
            raise StrictModeViolation(spec.path, value, spec.descriptor.id_type or object)
        return kind is _Kind.IDENTIFIER

    def _contents(self, value: Any, spec: ResolvedSpec) -> list[Any]:
        """Already-populated documents held by one slot value."""
        if value is None:
            return []
        items = value if isinstance(value, list) else [value]
        return [
            v for v in items if v is not None and self._classify(v, spec) is _Kind.CONTENT
        ]

    def _identifiers(self, value: Any, spec: ResolvedSpec) -> list[Any]:
        """Raw ids held by one slot value, in order, duplicates kept."""
        if value is None:
            return []
        if spec.is_many:
            items = value if isinstance(value, list) else [value]
            return [v for v in items if v is not None and self._check(v, spec)]
        return [value] if self._check(value, spec) else []

    def _substitute(self, value: Any, found: dict[Any, Any], spec: ResolvedSpec) -> Any:
        if value is None:
            return _UNCHANGED

        if not spec.is_many:
            if self._classify(value, spec) is _Kind.IDENTIFIER and value in found:
                return found[value]
            return _UNCHANGED

        items = value if isinstance(value, list) else [value]
        kinds = [self._classify(v, spec) if v is not None else _Kind.INVALID for v in items]
        if _Kind.IDENTIFIER not in kinds:
            return _UNCHANGED

        if spec.sort is not None:
            wanted = {v for v, k in zip(items, kinds) if k is _Kind.IDENTIFIER}
            ordered = [doc for key, doc in found.items() if key in wanted]
            return ordered + [v for v, k in zip(items, kinds) if k is not _Kind.IDENTIFIER]

        result: list[Any] = []
        for item, kind in zip(items, kinds):
            if kind is not _Kind.IDENTIFIER:
                result.append(item)
            elif item in found:
                result.append(found[item])
        return result
