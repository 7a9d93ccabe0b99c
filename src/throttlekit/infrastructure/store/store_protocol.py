"""
Key-Value Store Protocol (Abstract Interface)
Contract shared by the distributed store and the process-local fallback
"""
from __future__ import annotations

import time
from typing import Callable, Optional, Protocol, runtime_checkable

# Wall-clock source in epoch seconds; injectable so tests can move time.
Clock = Callable[[], float]


def system_clock() -> float:
    return time.time()


@runtime_checkable
class KeyValueStore(Protocol):
    """
    Minimal async key-value contract used by the limiter and credential cache.

    Every TTL is expressed in milliseconds. Implementations backed by a remote
    service must raise StoreUnavailableError for any connection, timeout or
    protocol failure so the dual backend can fall back.
    """

    async def get(self, key: str) -> Optional[str]:
        """Return the stored string or None if absent/expired."""
        ...

    async def set(
        self,
        key: str,
        value: str,
        ttl_ms: Optional[int] = None,
        nx: bool = False,
    ) -> bool:
        """
        Store a value with an optional TTL.

        Args:
            key: Store key
            value: String payload
            ttl_ms: Time-to-live in milliseconds (None for no expiration)
            nx: Only set if the key does not exist

        Returns:
            True if the value was written
        """
        ...

    async def delete(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""
        ...

    async def incr_with_expire(self, key: str, ttl_ms: int) -> int:
        """
        Atomically increment a counter (created at 0) and (re)set its TTL.

        Returns:
            The counter value after the increment
        """
        ...

    async def set_and_delete(
        self,
        set_key: str,
        value: str,
        ttl_ms: int,
        delete_key: str,
        nx: bool = True,
    ) -> bool:
        """
        Atomically set one key (optionally only if absent) and delete another.

        Returns:
            True if set_key was written by this call
        """
        ...

    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        ...
