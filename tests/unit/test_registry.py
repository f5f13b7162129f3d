"""Unit tests for ReferenceRegistry."""

from __future__ import annotations

import json
import uuid
from pathlib import Path

import pytest

from doc_populate.core.enums import Cardinality
from doc_populate.core.exceptions import (
    DuplicateReferenceError,
    IdentifierTypeMismatchError,
    ReferenceConfigError,
    RegistryFrozenError,
    UnknownReferenceError,
)
from doc_populate.core.registry import ReferenceRegistry
from doc_populate.mapping.document import Document


class TestReferenceRegistry:
    def test_describe_returns_descriptor(self, registry: ReferenceRegistry) -> None:
        descriptor = registry.describe("Story", "fans")
        assert descriptor is not None
        assert descriptor.target_type == "Person"
        assert descriptor.cardinality is Cardinality.MANY
        assert descriptor.is_many is True

    def test_describe_unknown_returns_none(self, registry: ReferenceRegistry) -> None:
        assert registry.describe("Story", "title") is None

    def test_get_raises_for_unknown(self, registry: ReferenceRegistry) -> None:
        with pytest.raises(UnknownReferenceError, match="Story.title"):
            registry.get("Story", "title")

    def test_has(self, registry: ReferenceRegistry) -> None:
        assert registry.has("Story", "author") is True
        assert registry.has("Person", "author") is False

    def test_array_indices_ignored(self, registry: ReferenceRegistry) -> None:
        assert registry.has("Post", "comments.0.author")
        assert registry.has("Post", "comments.$.author")
        assert registry.describe("Post", "comments.3.author").field_path == "comments.author"

    def test_freeze_fills_id_type_from_target(self, registry: ReferenceRegistry) -> None:
        assert registry.get("Story", "author").id_type is int
        assert registry.get("Post", "comments.author").id_type is int

    def test_unset_target_keeps_no_id_type(self, registry: ReferenceRegistry) -> None:
        descriptor = registry.get("Post", "attachment")
        assert descriptor.target_type is None
        assert descriptor.id_type is None

    def test_duplicate_registration(self, open_registry: ReferenceRegistry) -> None:
        with pytest.raises(DuplicateReferenceError, match="Story.author"):
            open_registry.register("Story", "author", "Person")

    def test_duplicate_after_normalization(self, open_registry: ReferenceRegistry) -> None:
        with pytest.raises(DuplicateReferenceError):
            open_registry.register("Post", "comments.0.author", "Person")

    def test_cardinality_accepts_string(self, open_registry: ReferenceRegistry) -> None:
        open_registry.register("Person", "mentor", "Person", cardinality="single")
        assert open_registry.get("Person", "mentor").cardinality is Cardinality.SINGLE

    def test_mismatched_id_type_raises_on_freeze(self, open_registry: ReferenceRegistry) -> None:
        open_registry.register("Person", "mentor", "Person", id_type=str)
        with pytest.raises(IdentifierTypeMismatchError) as exc_info:
            open_registry.freeze()
        assert exc_info.value.expected is int
        assert exc_info.value.actual is str

    def test_undeclared_target_raises_on_freeze(self, open_registry: ReferenceRegistry) -> None:
        open_registry.register("Story", "publisher", "Company")
        with pytest.raises(ReferenceConfigError, match="Company"):
            open_registry.freeze()

    def test_undeclared_source_raises_on_freeze(self, open_registry: ReferenceRegistry) -> None:
        open_registry.register("Comment", "author", "Person")
        with pytest.raises(ReferenceConfigError, match="Comment"):
            open_registry.freeze()

    def test_frozen_registry_rejects_writes(self, registry: ReferenceRegistry) -> None:
        assert registry.frozen is True
        with pytest.raises(RegistryFrozenError):
            registry.register("Person", "mentor", "Person")
        with pytest.raises(RegistryFrozenError):
            registry.register_type("Company")

    def test_freeze_is_idempotent(self, registry: ReferenceRegistry) -> None:
        assert registry.freeze() is registry

    def test_references_for_sorted_by_path(self, registry: ReferenceRegistry) -> None:
        paths = [d.field_path for d in registry.references_for("Story")]
        assert paths == ["author", "fans"]

    def test_len_and_type_names(self, registry: ReferenceRegistry) -> None:
        assert len(registry) == 5
        assert registry.type_names == ["Person", "Post", "Story"]
        assert registry.has_type("Person")
        assert registry.identifier_type("Post") is str
        assert registry.identifier_type("Company") is None

    def test_document_class_defaults_to_document(self, registry: ReferenceRegistry) -> None:
        assert registry.document_class("Person") is Document

    def test_custom_document_class(self) -> None:
        class Person(Document):
            pass

        registry = ReferenceRegistry().register_type("Person", document_class=Person)
        assert registry.document_class("Person") is Person


class TestRegistryFromSchema:
    def test_from_dict(self) -> None:
        registry = ReferenceRegistry.from_dict(
            {
                "Person": {"id_type": "int", "refs": {"friends": {"ref": "Person", "many": True}}},
                "Story": {"id_type": "int", "refs": {"author": "Person"}},
            }
        )
        assert registry.frozen
        assert registry.get("Person", "friends").is_many
        assert registry.get("Story", "author").id_type is int

    def test_uuid_id_type(self) -> None:
        registry = ReferenceRegistry.from_dict(
            {"Account": {"id_type": "uuid"}, "Order": {"refs": {"account": "Account"}}}
        )
        assert registry.get("Order", "account").id_type is uuid.UUID

    def test_unknown_id_type(self) -> None:
        with pytest.raises(ReferenceConfigError, match="Unknown id_type"):
            ReferenceRegistry.from_dict({"Person": {"id_type": "decimal"}})

    def test_malformed_schema(self) -> None:
        with pytest.raises(ReferenceConfigError, match="Invalid reference schema"):
            ReferenceRegistry.from_dict({"Person": {"refs": {"friends": {"many": "lots"}}}})

    def test_undeclared_target_in_schema(self) -> None:
        with pytest.raises(ReferenceConfigError):
            ReferenceRegistry.from_dict({"Story": {"refs": {"author": "Person"}}})

    def test_from_file(self, tmp_path: Path) -> None:
        schema_file = tmp_path / "refs.json"
        schema_file.write_text(
            json.dumps({"Person": {}, "Story": {"refs": {"author": "Person"}}}),
            encoding="utf-8",
        )
        registry = ReferenceRegistry.from_file(schema_file)
        assert registry.get("Story", "author").id_type is str

    def test_from_file_invalid_json(self, tmp_path: Path) -> None:
        schema_file = tmp_path / "refs.json"
        schema_file.write_text("{not json", encoding="utf-8")
        with pytest.raises(ReferenceConfigError, match="Invalid JSON"):
            ReferenceRegistry.from_file(schema_file)
