"""
Example: Basic usage of PostgMem
Demonstrates storing, searching, fetching and deleting memories.
"""

import sys
import os

# Add the parent directory to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from postgmem import MemoryStore, MemoryStoreError, PostgMemConfig, setup_logging


def main():
    """
    Example usage of MemoryStore against the configured database.
    """
    setup_logging()

    print("=" * 60)
    print("PostgMem Example")
    print("=" * 60)
    print()

    try:
        store = MemoryStore.from_config(PostgMemConfig)
        store.initialize_schema()
    except MemoryStoreError as e:
        print(f"Could not open the memory store: {e}")
        print("Set POSTGMEM_DB_* and POSTGMEM_EMBEDDING_* environment variables (or a .env file).")
        return 1

    try:
        print("Storing a memory:")
        print("-" * 60)
        memory = store.store_memory(
            memory_type="note",
            content='{"fact": "The sky is blue"}',
            source="example",
            tags=["weather", "color"],
            confidence=0.9
        )
        print(f"  Stored {memory.id} at {memory.created_at.isoformat()}")
        print()

        print("Searching:")
        print("-" * 60)
        query = "What color is the sky?"
        print(f"Query: {query}")
        results = store.search(query, limit=5, min_similarity=0.5, filter_tags=["weather"])
        if results:
            for i, result in enumerate(results, 1):
                print(f"  {i}. {result.content} (distance: {result.distance:.3f})")
        else:
            print("  No memories found")
        print()

        print("Fetching by id:")
        print("-" * 60)
        fetched = store.get(memory.id)
        if fetched:
            data = fetched.to_dict()
            data['embedding'] = f"<{len(data['embedding'])} floats>"
            print(f"  {data}")
        else:
            print("  not found")
        print()

        print("Deleting:")
        print("-" * 60)
        print(f"  First delete: {store.delete(memory.id)}")
        print(f"  Second delete: {store.delete(memory.id)}")
    except MemoryStoreError as e:
        print(f"Memory operation failed: {e}")
        return 1
    finally:
        store.close()

    print()
    print("=" * 60)
    print("Example complete!")
    print("=" * 60)
    return 0


if __name__ == "__main__":
    sys.exit(main())
