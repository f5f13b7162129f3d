"""
Example 06: Repository Pattern

This example demonstrates subclassing Repository over a SQLite store,
with the reference schema loaded from a JSON file.
"""

import json
import tempfile
from pathlib import Path

from doc_populate import Document, Populator, ReferenceRegistry, SqliteStore
from doc_populate.repository import Repository


class StoryRepository(Repository[Document]):
    def by_author(self, author_id):
        return self.find({"author": author_id}, populate="author")

    def with_adult_fans(self, pk):
        return self.get(pk, populate={"path": "fans", "match": {"age": {"$gte": 21}}})


def main():
    workdir = Path(tempfile.mkdtemp())
    schema_file = workdir / "references.json"
    schema_file.write_text(
        json.dumps(
            {
                "Person": {"id_type": "int"},
                "Story": {
                    "id_type": "int",
                    "refs": {"author": "Person", "fans": {"ref": "Person", "many": True}},
                },
            }
        )
    )
    registry = ReferenceRegistry.from_file(schema_file)

    with SqliteStore(str(workdir / "docs.db")) as store:
        store.insert_many(
            "Person",
            [
                {"_id": 1, "name": "Ian", "age": 56},
                {"_id": 2, "name": "Solitaire", "age": 19},
                {"_id": 3, "name": "Quarrel", "age": 40},
            ],
        )
        store.insert_many(
            "Story",
            [
                {"_id": 10, "title": "Live and Let Die", "author": 1, "fans": [2, 3]},
                {"_id": 11, "title": "Dr. No", "author": 1, "fans": [3]},
            ],
        )

        stories = StoryRepository(Populator(registry, store), "Story")

        print("=== Repository Pattern ===\n")

        for story in stories.by_author(1):
            print(f"{story.title} by {story.author.name}")
        print()

        story = stories.with_adult_fans(10)
        print(f"Adult fans of {story.title}: {[fan.name for fan in story.fans]}\n")

        created = stories.create({"title": "Moonraker", "author": 1, "fans": []})
        print(f"Created story {created.pk!r}")


if __name__ == "__main__":
    main()
