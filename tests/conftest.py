"""Shared test fixtures."""

from __future__ import annotations

import pytest

from doc_populate.core.enums import Cardinality
from doc_populate.core.registry import ReferenceRegistry
from doc_populate.store.memory import MemoryStore

PEOPLE = [
    {"_id": 1, "name": "Aaron", "age": 30, "friends": [2, 3]},
    {"_id": 2, "name": "Bea", "age": 18, "friends": [1]},
    {"_id": 3, "name": "Cy", "age": 25, "friends": [1, 2]},
    {"_id": 4, "name": "Dee", "age": 40, "friends": []},
]

STORIES = [
    {"_id": 10, "title": "Casino Royale", "author": 1, "fans": [1, 2, 3]},
    {"_id": 11, "title": "Live and Let Die", "author": 3, "fans": [2, 1, 2, 4]},
]


def build_registry() -> ReferenceRegistry:
    """Person/Story schema used across the suite (not frozen)."""
    registry = ReferenceRegistry()
    registry.register_type("Person", id_type=int)
    registry.register_type("Story", id_type=int)
    registry.register_type("Post", id_type=str)
    registry.register("Person", "friends", "Person", cardinality=Cardinality.MANY)
    registry.register("Story", "author", "Person")
    registry.register("Story", "fans", "Person", cardinality=Cardinality.MANY)
    registry.register("Post", "comments.author", "Person")
    registry.register("Post", "attachment", None)
    return registry


@pytest.fixture
def registry() -> ReferenceRegistry:
    """Frozen Person/Story registry."""
    return build_registry().freeze()


@pytest.fixture
def store() -> MemoryStore:
    """In-memory store seeded with people and stories."""
    memory = MemoryStore()
    memory.insert_many("Person", PEOPLE)
    memory.insert_many("Story", STORIES)
    return memory


@pytest.fixture
def open_registry() -> ReferenceRegistry:
    """Person/Story registry still accepting declarations."""
    return build_registry()
