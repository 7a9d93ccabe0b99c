"""
Store Infrastructure
Distributed (Redis) store, process-local fallback and the dual backend
"""
from throttlekit.infrastructure.store.backend import DualBackend
from throttlekit.infrastructure.store.memory_store import MemoryStore
from throttlekit.infrastructure.store.redis_store import RedisStore
from throttlekit.infrastructure.store.store_protocol import Clock, KeyValueStore, system_clock

__all__ = [
    "Clock",
    "DualBackend",
    "KeyValueStore",
    "MemoryStore",
    "RedisStore",
    "system_clock",
]
