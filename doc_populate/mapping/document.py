"""Materialized document entity and field-access views.

A Document wraps one stored record. It is bound to its collection and
store, so it can be saved or removed, and it remembers the raw ids of
every path population substituted.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, MutableMapping
from dataclasses import dataclass
from typing import Any

from doc_populate.core.exceptions import DocumentNotBoundError
from doc_populate.core.paths import normalize_path
from doc_populate.mapping.plan import Projection
from doc_populate.mapping.protocol import Populatable

logger = logging.getLogger(__name__)


class RecordView:
    """Populatable view over a plain mapping."""

    __slots__ = ("_record",)

    def __init__(self, record: MutableMapping[str, Any]) -> None:
        self._record = record

    def has_field(self, name: str) -> bool:
        return name in self._record

    def get_field(self, name: str) -> Any:
        return self._record.get(name)

    def set_field(self, name: str, value: Any) -> None:
        self._record[name] = value


class AttributeView:
    """Populatable view over an object with attributes (dataclass, model, ...)."""

    __slots__ = ("_obj",)

    def __init__(self, obj: Any) -> None:
        self._obj = obj

    def has_field(self, name: str) -> bool:
        return hasattr(self._obj, name)

    def get_field(self, name: str) -> Any:
        return getattr(self._obj, name, None)

    def set_field(self, name: str, value: Any) -> None:
        setattr(self._obj, name, value)


def as_populatable(obj: Any) -> Populatable | None:
    """Return a Populatable for *obj*, or None for scalars."""
    if obj is None or isinstance(obj, (str, bytes, int, float, bool)):
        return None
    if isinstance(obj, Populatable):
        return obj
    if isinstance(obj, MutableMapping):
        return RecordView(obj)
    if hasattr(obj, "__dict__"):
        return AttributeView(obj)
    return None


@dataclass
class Slot:
    """One place in a document where a reference value lives."""

    owner: Populatable
    key: str

    @property
    def value(self) -> Any:
        return self.owner.get_field(self.key)


def iter_slots(document: Any, segments: tuple[str, ...]) -> tuple[list[Slot], bool]:
    """Find every slot addressed by *segments* inside *document*.

    Arrays met before the last segment fan out to each element. The
    returned flag is True when such fan-out happened, in which case the
    document may hold any number of slots for the path.
    """
    slots: list[Slot] = []
    fanned = False

    def walk(obj: Any, depth: int) -> None:
        nonlocal fanned
        view = as_populatable(obj)
        if view is None:
            return
        name = segments[depth]
        if not view.has_field(name):
            return
        if depth == len(segments) - 1:
            slots.append(Slot(view, name))
            return
        value = view.get_field(name)
        if isinstance(value, list):
            fanned = True
            for item in value:
                walk(item, depth + 1)
        else:
            walk(value, depth + 1)

    walk(document, 0)
    return slots, fanned


def _snapshot(value: Any) -> Any:
    return list(value) if isinstance(value, list) else value


def _plain(value: Any, as_ids: bool) -> Any:
    if isinstance(value, Document):
        return value.pk if as_ids else value.to_dict()
    if isinstance(value, dict):
        return {k: _plain(v, as_ids) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v, as_ids) for v in value]
    return value


def _reference_id(value: Any, id_field: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(id_field)
    if isinstance(value, list):
        return [v.get(id_field) if isinstance(v, Mapping) else v for v in value]
    return value


def _merge(stored: list[dict[str, Any]], record: dict[str, Any]) -> dict[str, Any]:
    if not stored:
        return record
    merged = dict(stored[0])
    merged.update(record)
    return merged


class Document:
    """Stateful entity for one record of a collection.

    Fields are reachable as attributes or items. Assigning a field directly
    clears population tracking for it, which is how a manually assigned
    reference becomes indistinguishable from a looked-up one.

    Args:
        collection: Name of the document type / collection.
        data: The record. Kept by reference, not copied.
        store: Store used by save() and remove().
        id_field: Name of the identifier field.
        projection: Field selection the record was loaded with, if any.
            save() merges a projected record into the stored one.
        references: Reference field paths of the collection. Mappings found
            there are stored as their identifier.
    """

    def __init__(
        self,
        collection: str,
        data: dict[str, Any] | None = None,
        *,
        store: Any = None,
        id_field: str = "_id",
        projection: Projection | None = None,
        references: Iterable[str] = (),
    ) -> None:
        object.__setattr__(self, "_collection", collection)
        object.__setattr__(self, "_data", data if data is not None else {})
        object.__setattr__(self, "_store", store)
        object.__setattr__(self, "_id_field", id_field)
        object.__setattr__(self, "_projection", projection)
        object.__setattr__(self, "_references", tuple(normalize_path(p) for p in references))
        object.__setattr__(self, "_populated", {})

    # --- Field access ---

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._data[name]
        except KeyError:
            raise AttributeError(
                f"'{self._collection}' document has no field '{name}'"
            ) from None

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            self.set_field(name, value)

    def __getitem__(self, name: str) -> Any:
        return self._data[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self.set_field(name, value)

    def __contains__(self, name: object) -> bool:
        return name in self._data

    def get(self, name: str, default: Any = None) -> Any:
        return self._data.get(name, default)

    def has_field(self, name: str) -> bool:
        return name in self._data

    def get_field(self, name: str) -> Any:
        return self._data.get(name)

    def set_field(self, name: str, value: Any) -> None:
        self._data[name] = value
        self._clear_populated(name)

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def pk(self) -> Any:
        """Identifier of this document."""
        return self._data.get(self._id_field)

    @property
    def store(self) -> Any:
        return self._store

    @property
    def projection(self) -> Projection | None:
        """Field selection this document was loaded with."""
        return self._projection

    # --- Population tracking ---

    def mark_populated(self, path: str, raw: Any) -> None:
        self._populated[normalize_path(path)] = _snapshot(raw)

    def populated(self, path: str) -> Any:
        """Raw ids stored at *path* before population, or None."""
        return self._populated.get(normalize_path(path))

    def is_populated(self, path: str) -> bool:
        return normalize_path(path) in self._populated

    @property
    def populated_paths(self) -> list[str]:
        return sorted(self._populated)

    def depopulate(self, path: str | None = None) -> Document:
        """Put the raw ids back at *path*, or at every populated path."""
        paths = [normalize_path(path)] if path is not None else list(self._populated)
        for p in paths:
            if p not in self._populated:
                continue
            raw = self._populated.pop(p)
            slots, fanned = iter_slots(self, tuple(p.split(".")))
            if fanned:
                for slot, value in zip(slots, raw):
                    slot.owner.set_field(slot.key, value)
            elif slots:
                slots[0].owner.set_field(slots[0].key, raw)
        return self

    def _clear_populated(self, name: str) -> None:
        prefix = name + "."
        for path in [p for p in self._populated if p == name or p.startswith(prefix)]:
            del self._populated[path]

    # --- Conversion ---

    def to_dict(self) -> dict[str, Any]:
        """Plain copy of the record, populated documents included as dicts."""
        return _plain(self._data, as_ids=False)

    def to_record(self) -> dict[str, Any]:
        """Plain copy of the record with referenced documents reduced to ids.

        Besides Document instances, plain mappings held at a reference path
        (lean population, manual assignment) are reduced to their id.
        """
        record = _plain(self._data, as_ids=True)
        for path in dict.fromkeys(self._references + tuple(self._populated)):
            slots, _ = iter_slots(record, tuple(path.split(".")))
            for slot in slots:
                if isinstance(slot.owner, RecordView):
                    slot.owner.set_field(slot.key, _reference_id(slot.value, self._id_field))
        return record

    # --- Persistence ---

    def save(self) -> Document:
        """Write this document to its collection.

        References are stored as identifiers, whether they were populated
        or assigned by hand. A document loaded with a projection only
        overwrites the fields it holds.
        """
        store = self._require_store()
        record = self.to_record()
        if self._projection is not None and self.pk is not None:
            record = _merge(store.find_by_ids(self._collection, [self.pk]), record)
        pk = store.save(self._collection, record)
        self._data[self._id_field] = pk
        return self

    def remove(self) -> bool:
        """Delete this document from its own collection.

        For a populated sub-document this deletes the referenced document
        itself, not the reference held by the parent.
        """
        logger.debug("Removing %s %r", self._collection, self.pk)
        return bool(self._require_store().remove(self._collection, self.pk))

    async def save_async(self) -> Document:
        """Async variant of save()."""
        store = self._require_store()
        record = self.to_record()
        if self._projection is not None and self.pk is not None:
            stored = await store.find_by_ids_async(self._collection, [self.pk])
            record = _merge(stored, record)
        pk = await store.save_async(self._collection, record)
        self._data[self._id_field] = pk
        return self

    async def remove_async(self) -> bool:
        """Async variant of remove()."""
        logger.debug("Removing %s %r", self._collection, self.pk)
        return bool(await self._require_store().remove_async(self._collection, self.pk))

    def _require_store(self) -> Any:
        if self._store is None:
            raise DocumentNotBoundError(self._collection)
        return self._store

    # --- Dunder ---

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Document):
            return NotImplemented
        if self._collection != other._collection:
            return False
        if self.pk is not None or other.pk is not None:
            return bool(self.pk == other.pk)
        return self._data == other._data

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._collection!r}, {self._data!r})"
