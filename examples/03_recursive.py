"""
Example 03: Recursive Population

This example demonstrates nested populate specs, dotted chains across
references and the max_depth bound.
"""

from doc_populate import MaxDepthExceededError, MemoryStore, PopulateConfig, Populator


def main():
    store = MemoryStore()
    store.insert_many(
        "User",
        [
            {"_id": 1, "name": "Val", "friends": [2, 3]},
            {"_id": 2, "name": "Guillermo", "friends": [1, 3]},
            {"_id": 3, "name": "Alex", "friends": [1]},
        ],
    )
    schema = {"User": {"id_type": "int", "refs": {"friends": {"ref": "User", "many": True}}}}
    populator = Populator.from_schema(schema, store, PopulateConfig(max_depth=2))

    print("=== Recursive Population ===\n")

    val = populator.materializer.materialize("User", store.find_by_ids("User", [1])[0])
    populator.populate(val, {"path": "friends", "populate": {"path": "friends"}})
    for friend in val.friends:
        print(f"{friend.name} is friends with {[f.name for f in friend.friends]}")
    print()

    # "friends.friends" is the same request written as a chain
    alex = populator.materializer.materialize("User", store.find_by_ids("User", [3])[0])
    populator.populate(alex, "friends.friends")
    print(f"Friends of Alex's friends: {[f.name for f in alex.friends[0].friends]}\n")

    try:
        populator.populate(val, "friends.friends.friends")
    except MaxDepthExceededError as e:
        print(f"Rejected before any lookup: {e}")


if __name__ == "__main__":
    main()
