"""
Example 02: Filtering, Projection and Options

This example demonstrates match / select / limit / sort on populated
references using the populate_path builder.
"""

from doc_populate import MemoryStore, Populator, populate_path


def main():
    store = MemoryStore()
    store.insert_many(
        "Person",
        [
            {"_id": 1, "name": "Ian", "age": 56, "email": "ian@example.com"},
            {"_id": 2, "name": "Tiffany", "age": 17, "email": "tiffany@example.com"},
            {"_id": 3, "name": "Felix", "age": 35, "email": "felix@example.com"},
        ],
    )
    store.insert_many("Story", [{"_id": 10, "title": "Goldfinger", "fans": [1, 2, 3]}])

    populator = Populator.from_schema(
        {
            "Person": {"id_type": "int"},
            "Story": {"id_type": "int", "refs": {"fans": {"ref": "Person", "many": True}}},
        },
        store,
    )

    print("=== Match and Select ===\n")

    story = {"fans": [1, 2, 3]}
    spec = populate_path("fans").match({"age": {"$gte": 21}}).select("name -_id")
    populator.populate(story, spec, source_type="Story")
    print("Adult fans (name only):")
    for fan in story["fans"]:
        print(f"  - {fan.to_dict()}")
    print()

    story = {"fans": [1, 2, 3]}
    spec = populate_path("fans").sort(age=-1).limit(2)
    populator.populate(story, spec, source_type="Story")
    print(f"Two oldest fans: {[fan.name for fan in story['fans']]}\n")

    # Same request as a mapping, returning plain dicts
    story = {"fans": [1, 2, 3]}
    populator.populate(
        story,
        {"path": "fans", "select": ["name", "age"], "options": {"lean": True}},
        source_type="Story",
    )
    print(f"Lean fans: {story['fans']}")


if __name__ == "__main__":
    main()
