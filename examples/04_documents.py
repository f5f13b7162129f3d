"""
Example 04: Documents, Manual Assignment and Persistence

This example demonstrates save/remove on populated documents, manual
assignment of references and depopulate.
"""

from doc_populate import Cardinality, Document, MemoryStore, Populator, ReferenceRegistry


def main():
    registry = ReferenceRegistry()
    registry.register_type("Person", id_type=int)
    registry.register_type("Story", id_type=int)
    registry.register("Story", "author", "Person")
    registry.register("Story", "fans", "Person", cardinality=Cardinality.MANY)

    store = MemoryStore()
    store.insert_many("Person", [{"_id": 1, "name": "Ian"}, {"_id": 2, "name": "Kingsley"}])
    store.insert_many("Story", [{"_id": 10, "title": "Moonraker", "author": 1, "fans": [2]}])

    populator = Populator(registry, store)

    print("=== Documents ===\n")

    story = populator.materializer.materialize("Story", store.find_by_ids("Story", [10])[0])
    populator.populate(story, "author fans")

    # References are written back as ids
    story.title = "Moonraker (1955)"
    story.save()
    print(f"Stored record: {store.find_by_ids('Story', [10])[0]}\n")

    # Manual assignment needs no lookup and is not tracked
    story.author = Document("Person", {"_id": 2, "name": "Kingsley"}, store=store)
    print(f"Author now: {story.author.name}, tracked: {story.is_populated('author')}\n")

    # Back to raw ids
    story.depopulate()
    print(f"Depopulated fans: {story.fans}\n")

    # remove() deletes the referenced document itself
    populator.populate(story, "fans")
    story.fans[0].remove()
    print(f"People left: {store.count('Person')}")


if __name__ == "__main__":
    main()
