"""Session key-value stores backing progress descriptors, job registries and UI preferences."""

from infrastructure.store.kv import InMemoryKeyValueStore, JsonFileKeyValueStore, KeyValueStore, make_store

__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "make_store",
]
