from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from throttlekit.infrastructure.store.store_protocol import Clock, system_clock


@dataclass(slots=True)
class _Entry:
    value: str
    expires_at: Optional[float] = None  # epoch seconds; None = no expiry

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class MemoryStore:
    """
    Process-local key-value store with TTL expiry.

    Reproduces the distributed store's primitives (INCR+EXPIRE, SET NX + DEL
    in one step) under a single asyncio.Lock, so the same limiter logic runs
    unchanged against it. Expired entries are invisible to reads; memory is
    reclaimed lazily on access and by purge_expired().
    """

    def __init__(self, clock: Clock = system_clock) -> None:
        self._clock = clock
        self._data: dict[str, _Entry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._data)

    def _deadline(self, ttl_ms: Optional[int]) -> Optional[float]:
        if ttl_ms is None:
            return None
        return self._clock() + ttl_ms / 1000.0

    def _live(self, key: str) -> Optional[_Entry]:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.expired(self._clock()):
            del self._data[key]
            return None
        return entry

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            entry = self._live(key)
            return None if entry is None else entry.value

    async def set(
        self,
        key: str,
        value: str,
        ttl_ms: Optional[int] = None,
        nx: bool = False,
    ) -> bool:
        async with self._lock:
            if nx and self._live(key) is not None:
                return False
            self._data[key] = _Entry(value, self._deadline(ttl_ms))
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            existed = self._live(key) is not None
            self._data.pop(key, None)
            return existed

    async def incr_with_expire(self, key: str, ttl_ms: int) -> int:
        async with self._lock:
            entry = self._live(key)
            count = (int(entry.value) if entry is not None else 0) + 1
            self._data[key] = _Entry(str(count), self._deadline(ttl_ms))
            return count

    async def set_and_delete(
        self,
        set_key: str,
        value: str,
        ttl_ms: int,
        delete_key: str,
        nx: bool = True,
    ) -> bool:
        async with self._lock:
            was_set = not (nx and self._live(set_key) is not None)
            if was_set:
                self._data[set_key] = _Entry(value, self._deadline(ttl_ms))
            self._data.pop(delete_key, None)
            return was_set

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    async def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        async with self._lock:
            now = self._clock()
            expired = [k for k, entry in self._data.items() if entry.expired(now)]
            for k in expired:
                del self._data[k]
            return len(expired)

    async def clear(self) -> None:
        async with self._lock:
            self._data.clear()
