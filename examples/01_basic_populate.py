"""
Example 01: Basic Population

This example demonstrates single and many reference population with
DocPopulate's Populator and an in-memory store.
"""

from doc_populate import Cardinality, MemoryStore, Populator, ReferenceRegistry


def main():
    # Declare document types and their references once, at startup
    registry = ReferenceRegistry()
    registry.register_type("Person", id_type=int)
    registry.register_type("Story", id_type=int)
    registry.register("Story", "author", "Person")
    registry.register("Story", "fans", "Person", cardinality=Cardinality.MANY)

    store = MemoryStore()
    store.insert_many(
        "Person",
        [
            {"_id": 1, "name": "Ian", "age": 56},
            {"_id": 2, "name": "Vesper", "age": 28},
            {"_id": 3, "name": "Felix", "age": 35},
        ],
    )
    store.insert_many("Story", [{"_id": 10, "title": "Casino Royale", "author": 1, "fans": [2, 3]}])

    populator = Populator(registry, store)

    print("=== Basic Population ===\n")

    row = store.find_by_ids("Story", [10])[0]
    story = populator.materializer.materialize("Story", row)

    # Several paths in one call, separated by whitespace
    populator.populate(story, "author fans")
    print(f"Title:  {story.title}")
    print(f"Author: {story.author.name}")
    print(f"Fans:   {[fan.name for fan in story.fans]}\n")

    # The original ids stay available
    print(f"Raw author id: {story.populated('author')}")
    print(f"Raw fan ids:   {story.populated('fans')}\n")

    # Plain dicts work too, given their type
    records = [{"title": "Dr. No", "author": 3}]
    populator.populate(records, "author", source_type="Story")
    print(f"Plain record author: {records[0]['author'].name}")


if __name__ == "__main__":
    main()
