"""Unit tests for Populator and AsyncPopulator."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any
from unittest.mock import MagicMock

import pytest

from doc_populate.core.config import PopulateConfig
from doc_populate.core.engine import AsyncPopulator, Populator
from doc_populate.core.exceptions import (
    InvalidSpecError,
    LookupFailure,
    MaxDepthExceededError,
    StrictModeViolation,
    UnknownReferenceError,
)
from doc_populate.core.registry import ReferenceRegistry
from doc_populate.mapping.document import Document
from doc_populate.store.memory import MemoryStore


@dataclass
class StoryRecord:
    title: str
    author: Any = None


@dataclass(frozen=True)
class Sku:
    code: str


class FailingStore:
    """Query executor failing on the n-th lookup."""

    def __init__(self, store: MemoryStore, fail_on: int) -> None:
        self._store = store
        self._fail_on = fail_on
        self.calls = 0

    def find_by_ids(self, target_type: str, ids: Any, **options: Any) -> list[dict[str, Any]]:
        self.calls += 1
        if self.calls == self._fail_on:
            raise RuntimeError("connection lost")
        return self._store.find_by_ids(target_type, ids, **options)


class RecordingStore:
    """Async query executor recording how many lookups overlap."""

    def __init__(self, store: MemoryStore, fail: bool = False) -> None:
        self._store = store
        self._fail = fail
        self.active = 0
        self.peak = 0
        self.calls: list[tuple[str, list[Any]]] = []

    async def find_by_ids_async(
        self, target_type: str, ids: Any, **options: Any
    ) -> list[dict[str, Any]]:
        self.calls.append((target_type, list(ids)))
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(0.01)
            if self._fail:
                raise RuntimeError("connection lost")
            return self._store.find_by_ids(target_type, ids, **options)
        finally:
            self.active -= 1


class StallingStore:
    """Async query executor failing projected lookups while the others stall."""

    def __init__(self) -> None:
        self.cancelled = 0

    async def find_by_ids_async(
        self, target_type: str, ids: Any, **options: Any
    ) -> list[dict[str, Any]]:
        if options.get("select") is not None:
            await asyncio.sleep(0.01)
            raise RuntimeError("connection lost")
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return []


@pytest.fixture
def populator(registry: ReferenceRegistry, store: MemoryStore) -> Populator:
    return Populator(registry, store)


def load(populator: Populator, store: MemoryStore, collection: str, pk: Any) -> Any:
    """Materialize one stored record as a bound document."""
    row = store.find_by_ids(collection, [pk])[0]
    return populator.materializer.materialize(collection, row)


def names(values: list[Any]) -> list[str]:
    return [v["name"] for v in values]


class TestPopulator:
    def test_single_document_returned(self, populator: Populator, store: MemoryStore) -> None:
        story = load(populator, store, "Story", 10)
        assert populator.populate(story, "author") is story
        assert story.author.name == "Aaron"

    def test_list_returned(self, populator: Populator) -> None:
        stories = [{"author": 1}, {"author": 3}]
        assert populator.populate(stories, "author", source_type="Story") is stories
        assert names([s["author"] for s in stories]) == ["Aaron", "Cy"]

    def test_empty_input(self, registry: ReferenceRegistry, store: MemoryStore) -> None:
        executor = MagicMock(wraps=store)
        documents: list[Any] = []
        assert Populator(registry, executor).populate(documents, "author") is documents
        executor.find_by_ids.assert_not_called()

    def test_source_type_required_for_records(self, populator: Populator) -> None:
        with pytest.raises(InvalidSpecError, match="source_type"):
            populator.populate([{"author": 1}], "author")

    def test_attribute_objects(self, populator: Populator) -> None:
        story = StoryRecord(title="Dr. No", author=2)
        populator.populate(story, "author", source_type="Story")
        assert story.author.name == "Bea"

    def test_filtering(self, populator: Populator, store: MemoryStore) -> None:
        story = load(populator, store, "Story", 10)
        populator.populate(story, {"path": "fans", "match": {"age": {"$gte": 21}}})
        assert names(story.fans) == ["Aaron", "Cy"]
        assert story.populated("fans") == [1, 2, 3]

    def test_order_preserved_with_duplicates(
        self, populator: Populator, store: MemoryStore
    ) -> None:
        story = load(populator, store, "Story", 11)
        populator.populate(story, "fans")
        assert [f.pk for f in story.fans] == [2, 1, 2, 4]
        assert story.fans[0] is story.fans[2]

    def test_missing_single_reference(self, populator: Populator) -> None:
        story = {"author": 99}
        populator.populate(story, "author", source_type="Story")
        assert story["author"] == 99

    def test_recursive_population(self, populator: Populator, store: MemoryStore) -> None:
        person = load(populator, store, "Person", 1)
        populator.populate(person, {"path": "friends", "populate": {"path": "friends"}})
        assert names(person.friends) == ["Bea", "Cy"]
        assert names(person.friends[0].friends) == ["Aaron"]
        assert names(person.friends[1].friends) == ["Aaron", "Bea"]
        assert person.friends[0].populated("friends") == [1]
        assert person.friends[1].friends[1].friends == [1]

    def test_dotted_chain(self, populator: Populator, store: MemoryStore) -> None:
        story = load(populator, store, "Story", 10)
        populator.populate(story, "author.friends")
        assert names(story.author.friends) == ["Bea", "Cy"]

    def test_nested_spec_descends_into_populated_content(
        self, populator: Populator, store: MemoryStore
    ) -> None:
        story = load(populator, store, "Story", 10)
        populator.populate(story, "author")
        populator.populate(story, {"path": "author", "populate": "friends"})
        assert names(story.author.friends) == ["Bea", "Cy"]

    def test_idempotent(self, registry: ReferenceRegistry, store: MemoryStore) -> None:
        executor = MagicMock(wraps=store)
        populator = Populator(registry, executor)
        story = {"author": 1, "fans": [1, 2]}
        populator.populate(story, "author fans", source_type="Story")
        author, fans = story["author"], list(story["fans"])
        populator.populate(story, "author fans", source_type="Story")
        assert story["author"] is author
        assert story["fans"] == fans
        assert executor.find_by_ids.call_count == 1

    def test_manual_assignment(self, registry: ReferenceRegistry, store: MemoryStore) -> None:
        executor = MagicMock(wraps=store)
        populator = Populator(registry, executor)
        author = Document("Person", {"_id": 7, "name": "Ian"})
        story = Document("Story", {"_id": 12, "author": 1})
        story.author = author
        populator.populate(story, "author")
        assert story.author is author
        assert story.is_populated("author") is False
        executor.find_by_ids.assert_not_called()

    def test_identical_lookups_merged(
        self, registry: ReferenceRegistry, store: MemoryStore
    ) -> None:
        executor = MagicMock(wraps=store)
        story = {"author": 1, "fans": [1, 2, 3]}
        Populator(registry, executor).populate(story, "author fans", source_type="Story")
        executor.find_by_ids.assert_called_once()
        assert executor.find_by_ids.call_args.args == ("Person", [1, 2, 3])
        assert story["author"] == story["fans"][0]

    def test_different_options_not_merged(
        self, registry: ReferenceRegistry, store: MemoryStore
    ) -> None:
        executor = MagicMock(wraps=store)
        story = {"author": 1, "fans": [1, 2, 3]}
        Populator(registry, executor).populate(
            story, [{"path": "author", "select": "name"}, "fans"], source_type="Story"
        )
        assert executor.find_by_ids.call_count == 2
        assert story["author"].to_dict() == {"_id": 1, "name": "Aaron"}

    def test_limit_scoped_per_document(
        self, registry: ReferenceRegistry, store: MemoryStore
    ) -> None:
        executor = MagicMock(wraps=store)
        stories = [{"fans": [1, 2, 3]}, {"fans": [3, 4]}]
        Populator(registry, executor).populate(
            stories, {"path": "fans", "options": {"limit": 1}}, source_type="Story"
        )
        assert executor.find_by_ids.call_count == 2
        assert [[f.pk for f in s["fans"]] for s in stories] == [[1], [3]]

    def test_sort(self, populator: Populator) -> None:
        story = {"fans": [1, 2, 3]}
        populator.populate(
            story, {"path": "fans", "options": {"sort": {"age": 1}}}, source_type="Story"
        )
        assert names(story["fans"]) == ["Bea", "Cy", "Aaron"]

    def test_lean_call(self, populator: Populator) -> None:
        story = {"author": 1}
        populator.populate(
            story, {"path": "author", "populate": "friends"}, source_type="Story", lean=True
        )
        assert type(story["author"]) is dict
        assert names(story["author"]["friends"]) == ["Bea", "Cy"]

    def test_lean_config(self, registry: ReferenceRegistry, store: MemoryStore) -> None:
        populator = Populator(registry, store, PopulateConfig(lean=True))
        story = {"author": 1}
        populator.populate(story, "author", source_type="Story")
        assert type(story["author"]) is dict

    def test_populated_document_persistence(
        self, populator: Populator, store: MemoryStore
    ) -> None:
        story = load(populator, store, "Story", 10)
        populator.populate(story, "author")
        story.author.name = "Aaron II"
        story.author.save()
        assert store.find_by_ids("Person", [1])[0]["name"] == "Aaron II"
        story.author.remove()
        assert store.count("Person") == 3
        assert story.depopulate("author").author == 1

    def test_projected_document_save_keeps_other_fields(
        self, populator: Populator, store: MemoryStore
    ) -> None:
        story = load(populator, store, "Story", 10)
        populator.populate(story, {"path": "author", "select": "name"})
        story.author.name = "Renamed"
        story.author.save()
        assert store.find_by_ids("Person", [1]) == [
            {"_id": 1, "name": "Renamed", "age": 30, "friends": [2, 3]}
        ]

    def test_lean_populated_document_saved_with_ids(
        self, populator: Populator, store: MemoryStore
    ) -> None:
        story = load(populator, store, "Story", 10)
        populator.populate(story, "author fans", lean=True)
        assert type(story.author) is dict
        story.title = "Casino Royale (1953)"
        story.save()
        record = store.find_by_ids("Story", [10])[0]
        assert record["author"] == 1
        assert record["fans"] == [1, 2, 3]

    def test_assigned_mapping_saved_as_id(self, populator: Populator, store: MemoryStore) -> None:
        story = load(populator, store, "Story", 10)
        populator.populate(story, "author")
        story.author = {"_id": 3, "name": "Cy"}
        story.fans = [{"_id": 4, "name": "Dee"}, 2]
        story.save()
        record = store.find_by_ids("Story", [10])[0]
        assert record["author"] == 3
        assert record["fans"] == [4, 2]

    def test_zero_limit_populates_everything(
        self, registry: ReferenceRegistry, store: MemoryStore
    ) -> None:
        executor = MagicMock(wraps=store)
        stories = [{"fans": [1, 2, 3]}, {"fans": [3, 4]}]
        Populator(registry, executor).populate(
            stories, {"path": "fans", "options": {"limit": 0}}, source_type="Story"
        )
        assert executor.find_by_ids.call_count == 1
        assert [[f.pk for f in s["fans"]] for s in stories] == [[1, 2, 3], [3, 4]]

    def test_object_identifiers_looked_up(self) -> None:
        registry = (
            ReferenceRegistry()
            .register_type("Product", id_type=Sku)
            .register_type("Order", id_type=int)
            .register("Order", "product", "Product")
            .register("Order", "extras", "Product", cardinality="many")
            .freeze()
        )
        store = MemoryStore()
        store.insert_many(
            "Product",
            [{"_id": Sku("A-1"), "name": "Widget"}, {"_id": Sku("B-2"), "name": "Gadget"}],
        )
        order = {"product": Sku("A-1"), "extras": [Sku("B-2"), Sku("A-1")]}
        Populator(registry, store).populate(order, "product extras", source_type="Order")
        assert order["product"].name == "Widget"
        assert names(order["extras"]) == ["Gadget", "Widget"]

    def test_resolution_errors_before_lookups(
        self, registry: ReferenceRegistry, store: MemoryStore
    ) -> None:
        executor = MagicMock(wraps=store)
        story = {"author": 1}
        with pytest.raises(UnknownReferenceError):
            Populator(registry, executor).populate(story, "author title", source_type="Story")
        assert story["author"] == 1
        executor.find_by_ids.assert_not_called()

    def test_max_depth(self, registry: ReferenceRegistry, store: MemoryStore) -> None:
        executor = MagicMock(wraps=store)
        populator = Populator(registry, executor, PopulateConfig(max_depth=1))
        with pytest.raises(MaxDepthExceededError):
            populator.populate(
                {"fans": [1]}, {"path": "fans", "populate": "friends"}, source_type="Story"
            )
        executor.find_by_ids.assert_not_called()

    def test_strict_config(self, registry: ReferenceRegistry, store: MemoryStore) -> None:
        populator = Populator(registry, store, PopulateConfig(strict=True))
        with pytest.raises(StrictModeViolation):
            populator.populate({"author": "1"}, "author", source_type="Story")

    def test_custom_id_field(self, registry: ReferenceRegistry) -> None:
        store = MemoryStore(id_field="id")
        store.save("Person", {"id": 1, "name": "Aaron"})
        populator = Populator(registry, store, PopulateConfig(id_field="id"))
        story = {"author": 1}
        populator.populate(story, "author", source_type="Story")
        assert story["author"].pk == 1

    def test_lookup_failure_wraps_error(self, registry: ReferenceRegistry) -> None:
        executor = MagicMock()
        executor.find_by_ids.side_effect = RuntimeError("boom")
        story = {"author": 1, "fans": [2]}
        with pytest.raises(LookupFailure, match="boom") as exc_info:
            Populator(registry, executor).populate(story, "author fans", source_type="Story")
        assert exc_info.value.paths == ["author", "fans"]
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert story == {"author": 1, "fans": [2]}

    def test_lookup_failure_passes_through(self, registry: ReferenceRegistry) -> None:
        failure = LookupFailure("Person", [], "down")
        executor = MagicMock()
        executor.find_by_ids.side_effect = failure
        with pytest.raises(LookupFailure) as exc_info:
            Populator(registry, executor).populate({"author": 1}, "author", source_type="Story")
        assert exc_info.value is failure

    def test_failure_keeps_completed_levels(
        self, registry: ReferenceRegistry, store: MemoryStore
    ) -> None:
        executor = FailingStore(store, fail_on=2)
        story = {"fans": [2, 3]}
        with pytest.raises(LookupFailure, match="friends"):
            Populator(registry, executor).populate(
                story, {"path": "fans", "populate": "friends"}, source_type="Story"
            )
        assert names(story["fans"]) == ["Bea", "Cy"]
        assert story["fans"][0].friends == [1]

    def test_from_schema(self, store: MemoryStore) -> None:
        schema = {
            "Person": {"id_type": "int"},
            "Story": {"id_type": "int", "refs": {"author": "Person"}},
        }
        populator = Populator.from_schema(schema, store)
        story = {"author": 3}
        populator.populate(story, "author", source_type="Story")
        assert story["author"].name == "Cy"
        assert populator.executor is store

    def test_registry_frozen_on_construction(
        self, open_registry: ReferenceRegistry, store: MemoryStore
    ) -> None:
        Populator(open_registry, store)
        assert open_registry.frozen is True

    def test_plan(self, populator: Populator) -> None:
        (plan,) = populator.plan("Story", {"path": "fans", "populate": "friends"})
        assert plan.path == "fans"
        assert plan.depth == 2


class TestAsyncPopulator:
    async def test_parity_with_sync(self, registry: ReferenceRegistry, store: MemoryStore) -> None:
        sync_stories = [{"author": 1, "fans": [1, 2, 3]}, {"author": 3, "fans": [2, 1, 2, 4]}]
        async_stories = [
            {"author": s["author"], "fans": list(s["fans"])} for s in sync_stories
        ]
        spec = [{"path": "fans", "match": {"age": {"$gte": 21}}}, "author"]

        Populator(registry, store).populate(sync_stories, spec, source_type="Story")
        await AsyncPopulator(registry, store).populate(async_stories, spec, source_type="Story")

        for expected, actual in zip(sync_stories, async_stories):
            assert actual["author"].pk == expected["author"].pk
            assert [f.pk for f in actual["fans"]] == [f.pk for f in expected["fans"]]

    async def test_documents_bound_to_async_store(
        self, registry: ReferenceRegistry, store: MemoryStore
    ) -> None:
        story = {"author": 1}
        await AsyncPopulator(registry, store).populate(story, "author", source_type="Story")
        assert story["author"].store is store
        assert await story["author"].remove_async() is True

    async def test_lookups_run_concurrently(
        self, registry: ReferenceRegistry, store: MemoryStore
    ) -> None:
        executor = RecordingStore(store)
        story = {"author": 1, "fans": [2, 3]}
        await AsyncPopulator(registry, executor).populate(
            story, [{"path": "author", "select": "name"}, "fans"], source_type="Story"
        )
        assert len(executor.calls) == 2
        assert executor.peak == 2
        assert story["author"].name == "Aaron"

    async def test_sequential_when_not_concurrent(
        self, registry: ReferenceRegistry, store: MemoryStore
    ) -> None:
        executor = RecordingStore(store)
        populator = AsyncPopulator(registry, executor, PopulateConfig(concurrent=False))
        story = {"author": 1, "fans": [2, 3]}
        await populator.populate(
            story, [{"path": "author", "select": "name"}, "fans"], source_type="Story"
        )
        assert executor.peak == 1
        assert names(story["fans"]) == ["Bea", "Cy"]

    async def test_recursive(self, registry: ReferenceRegistry, store: MemoryStore) -> None:
        executor = RecordingStore(store)
        story = {"author": 1}
        await AsyncPopulator(registry, executor).populate(
            story, "author.friends", source_type="Story"
        )
        assert names(story["author"].friends) == ["Bea", "Cy"]
        assert [c[1] for c in executor.calls] == [[1], [2, 3]]

    async def test_lookup_failure(self, registry: ReferenceRegistry, store: MemoryStore) -> None:
        executor = RecordingStore(store, fail=True)
        story = {"author": 1}
        with pytest.raises(LookupFailure, match="connection lost"):
            await AsyncPopulator(registry, executor).populate(
                story, "author", source_type="Story"
            )
        assert story["author"] == 1

    async def test_failure_cancels_sibling_lookups(self, registry: ReferenceRegistry) -> None:
        executor = StallingStore()
        story = {"author": 1, "fans": [2, 3]}
        with pytest.raises(LookupFailure, match="connection lost"):
            await AsyncPopulator(registry, executor).populate(
                story, [{"path": "author", "select": "name"}, "fans"], source_type="Story"
            )
        assert executor.cancelled == 1
        assert story == {"author": 1, "fans": [2, 3]}

    async def test_empty_input(self, registry: ReferenceRegistry, store: MemoryStore) -> None:
        executor = RecordingStore(store)
        assert await AsyncPopulator(registry, executor).populate([], "author") == []
        assert executor.calls == []
