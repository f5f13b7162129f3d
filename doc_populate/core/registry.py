"""Reference Registry - declares document types and their reference fields.

Key convention:
    ("Story", "author")          -> Story.author points at one Person
    ("Story", "fans")            -> Story.fans holds many Person ids
    ("Post", "comments.author")  -> every element of Post.comments has an author
"""

from __future__ import annotations

import dataclasses
import json
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, ValidationError

from doc_populate.core.enums import Cardinality
from doc_populate.core.exceptions import (
    DuplicateReferenceError,
    IdentifierTypeMismatchError,
    ReferenceConfigError,
    RegistryFrozenError,
    UnknownReferenceError,
)
from doc_populate.core.paths import normalize_path
from doc_populate.mapping.plan import ReferenceDescriptor

if TYPE_CHECKING:
    from doc_populate.mapping.document import Document

# Identifier type names accepted in schema files
_ID_TYPES: dict[str, type] = {
    "str": str,
    "int": int,
    "uuid": uuid.UUID,
}


class _ReferenceDefinition(BaseModel):
    ref: str | None = None
    many: bool = False


class _TypeDefinition(BaseModel):
    id_type: str = "str"
    refs: dict[str, str | _ReferenceDefinition] = Field(default_factory=dict)


class ReferenceRegistry:
    """Holds document types and the reference descriptors between them.

    Build once at startup, freeze, then share read-only with every
    populator for the lifetime of the application.
    """

    def __init__(self) -> None:
        self._id_types: dict[str, type] = {}
        self._document_classes: dict[str, type[Document]] = {}
        self._references: dict[tuple[str, str], ReferenceDescriptor] = {}
        self._frozen = False

    @classmethod
    def from_dict(cls, schema: dict[str, Any]) -> ReferenceRegistry:
        """Build a frozen registry from a schema mapping.

        Example:
            {
                "Person": {"id_type": "int", "refs": {"friends": {"ref": "Person", "many": true}}},
                "Story": {"id_type": "int", "refs": {"author": "Person"}},
            }

        Raises:
            ReferenceConfigError: If the schema is malformed or inconsistent.
        """
        try:
            types = {name: _TypeDefinition.model_validate(d) for name, d in schema.items()}
        except ValidationError as e:
            raise ReferenceConfigError(f"Invalid reference schema: {e}") from e

        registry = cls()
        for name, definition in types.items():
            if definition.id_type not in _ID_TYPES:
                raise ReferenceConfigError(
                    f"Unknown id_type '{definition.id_type}' for '{name}'. "
                    f"Known: {sorted(_ID_TYPES)}"
                )
            registry.register_type(name, id_type=_ID_TYPES[definition.id_type])

        for name, definition in types.items():
            for path, ref in definition.refs.items():
                if isinstance(ref, str):
                    ref = _ReferenceDefinition(ref=ref)
                registry.register(
                    name,
                    path,
                    ref.ref,
                    cardinality=Cardinality.MANY if ref.many else Cardinality.SINGLE,
                )
        return registry.freeze()

    @classmethod
    def from_file(cls, path: Path | str) -> ReferenceRegistry:
        """Build a frozen registry from a JSON schema file."""
        text = Path(path).read_text(encoding="utf-8")
        try:
            schema = json.loads(text)
        except json.JSONDecodeError as e:
            raise ReferenceConfigError(f"Invalid JSON in {path}: {e}") from e
        return cls.from_dict(schema)

    def register_type(
        self,
        name: str,
        *,
        id_type: type = str,
        document_class: type[Document] | None = None,
    ) -> ReferenceRegistry:
        """Declare a document type and the type of its identifiers."""
        self._check_writable()
        self._id_types[name] = id_type
        if document_class is not None:
            self._document_classes[name] = document_class
        return self

    def register(
        self,
        source_type: str,
        path: str,
        target_type: str | None,
        *,
        cardinality: Cardinality | str = Cardinality.SINGLE,
        id_type: type | None = None,
    ) -> ReferenceRegistry:
        """Declare a reference field.

        Args:
            source_type: Type holding the reference.
            path: Dotted field path; array indices are ignored.
            target_type: Referenced type, or None when the caller must supply
                one per populate call.
            cardinality: "single" or "many".
            id_type: Identifier type stored in the field. Defaults to the
                target type's identifier type.

        Raises:
            DuplicateReferenceError: If the (source_type, path) pair exists.
        """
        self._check_writable()
        key = (source_type, normalize_path(path))
        if key in self._references:
            raise DuplicateReferenceError(*key)
        self._references[key] = ReferenceDescriptor(
            source_type=source_type,
            field_path=key[1],
            target_type=target_type,
            cardinality=Cardinality(cardinality),
            id_type=id_type,
        )
        return self

    def freeze(self) -> ReferenceRegistry:
        """Validate all references and make the registry read-only.

        Raises:
            ReferenceConfigError: If a source or target type is undeclared.
            IdentifierTypeMismatchError: If a reference's id type differs
                from its target's.
        """
        if self._frozen:
            return self

        for key, descriptor in self._references.items():
            if descriptor.source_type not in self._id_types:
                raise ReferenceConfigError(
                    f"Reference '{descriptor.source_type}.{descriptor.field_path}' "
                    f"belongs to undeclared type '{descriptor.source_type}'"
                )
            if descriptor.target_type is None:
                continue
            expected = self._id_types.get(descriptor.target_type)
            if expected is None:
                raise ReferenceConfigError(
                    f"Reference '{descriptor.source_type}.{descriptor.field_path}' "
                    f"points at undeclared type '{descriptor.target_type}'"
                )
            if descriptor.id_type is None:
                self._references[key] = dataclasses.replace(descriptor, id_type=expected)
            elif descriptor.id_type is not expected:
                raise IdentifierTypeMismatchError(
                    descriptor.source_type,
                    descriptor.field_path,
                    descriptor.target_type,
                    expected,
                    descriptor.id_type,
                )

        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def describe(self, source_type: str, path: str) -> ReferenceDescriptor | None:
        """Look up the descriptor for *path* on *source_type*, or None."""
        return self._references.get((source_type, normalize_path(path)))

    def get(self, source_type: str, path: str) -> ReferenceDescriptor:
        """Look up a descriptor.

        Raises:
            UnknownReferenceError: If no reference matches.
        """
        descriptor = self.describe(source_type, path)
        if descriptor is None:
            raise UnknownReferenceError(source_type, path)
        return descriptor

    def has(self, source_type: str, path: str) -> bool:
        """Check if a reference is registered."""
        return self.describe(source_type, path) is not None

    def has_type(self, name: str) -> bool:
        return name in self._id_types

    def identifier_type(self, name: str) -> type | None:
        """Identifier type of a declared document type."""
        return self._id_types.get(name)

    def document_class(self, name: str) -> type[Document]:
        """Entity class used to materialize documents of *name*."""
        from doc_populate.mapping.document import Document

        return self._document_classes.get(name, Document)

    def references_for(self, source_type: str) -> list[ReferenceDescriptor]:
        """All references declared on *source_type*, sorted by path."""
        return sorted(
            (d for (src, _), d in self._references.items() if src == source_type),
            key=lambda d: d.field_path,
        )

    @property
    def type_names(self) -> list[str]:
        """List all declared types, sorted alphabetically."""
        return sorted(self._id_types)

    def __len__(self) -> int:
        """Number of registered references."""
        return len(self._references)

    def _check_writable(self) -> None:
        if self._frozen:
            raise RegistryFrozenError("Registry is frozen; declare types before freeze()")
