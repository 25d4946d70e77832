"""
Persistence module.

Durable key-value stores for engine state that must survive reloads.
"""
from .persistent_store import (
    InMemoryStore,
    JsonFileStore,
    PersistentStore,
    RedisStore,
    create_store,
)

__all__ = [
    "InMemoryStore",
    "JsonFileStore",
    "PersistentStore",
    "RedisStore",
    "create_store",
]
