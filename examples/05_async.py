"""
Example 05: Async Support

This example demonstrates AsyncPopulator against the aiosqlite-backed
store. Lookups of one level run concurrently.
"""

import asyncio
import logging
import tempfile
from pathlib import Path

from doc_populate import AsyncPopulator, AsyncSqliteStore, ReferenceRegistry
from doc_populate.repository import AsyncRepository

SCHEMA = {
    "Person": {"id_type": "int", "refs": {"friends": {"ref": "Person", "many": True}}},
    "Story": {
        "id_type": "int",
        "refs": {"author": "Person", "fans": {"ref": "Person", "many": True}},
    },
}


async def main():
    logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")

    db_path = Path(tempfile.mkdtemp()) / "docs.db"
    registry = ReferenceRegistry.from_dict(SCHEMA)

    async with AsyncSqliteStore(str(db_path)) as store:
        for person in (
            {"_id": 1, "name": "Ian", "friends": [2]},
            {"_id": 2, "name": "Ann", "friends": [1]},
        ):
            await store.save_async("Person", person)
        await store.save_async(
            "Story", {"_id": 10, "title": "Thunderball", "author": 1, "fans": [2]}
        )

        print("=== Async Population ===\n")

        stories = AsyncRepository(AsyncPopulator(registry, store), "Story")
        story = await stories.get(
            10, populate=[{"path": "author", "select": "name"}, "fans.friends"]
        )
        print(f"Author: {story.author.name}")
        print(f"Fans' friends: {[f.name for fan in story.fans for f in fan.friends]}")

    db_path.unlink()


if __name__ == "__main__":
    asyncio.run(main())
