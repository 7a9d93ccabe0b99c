"""
Dual Backend
Distributed store as source of truth, process-local store as silent fallback
"""
from __future__ import annotations

from typing import Awaitable, Callable, Optional, TypeVar

from throttlekit.exceptions import StoreUnavailableError
from throttlekit.infrastructure.observability.logger import get_logger
from throttlekit.infrastructure.store.memory_store import MemoryStore
from throttlekit.infrastructure.store.store_protocol import KeyValueStore

logger = get_logger(__name__)

T = TypeVar("T")


class DualBackend:
    """
    Two-layer store strategy.

    ``run()`` executes a whole operation against the primary (distributed)
    store; if the primary raises StoreUnavailableError the same operation is
    re-run against the process-local fallback. An operation therefore never
    mixes state from both stores. With no primary configured every operation
    goes straight to the fallback, which gives identical observable behaviour
    minus cross-instance sharing.

    The ``*_primary`` helpers are best-effort accessors for callers (the
    credential cache) that keep their own local layer.
    """

    def __init__(self, primary: Optional[KeyValueStore], fallback: MemoryStore) -> None:
        self.primary = primary
        self.fallback = fallback
        self._degraded = False

    @property
    def has_primary(self) -> bool:
        return self.primary is not None

    @property
    def degraded(self) -> bool:
        return self._degraded

    def _mark_failure(self, op: str, exc: StoreUnavailableError) -> None:
        if not self._degraded:
            logger.warning(
                "Distributed store unavailable, using process-local state",
                op=op,
                error=exc.message,
            )
        else:
            logger.debug("Distributed store still unavailable", op=op)
        self._degraded = True

    def _mark_success(self) -> None:
        if self._degraded:
            logger.info("Distributed store recovered")
        self._degraded = False

    async def run(
        self,
        operation: Callable[[KeyValueStore], Awaitable[T]],
        *,
        op: str = "operation",
    ) -> T:
        if self.primary is not None:
            try:
                result = await operation(self.primary)
            except StoreUnavailableError as e:
                self._mark_failure(op, e)
            else:
                self._mark_success()
                return result
        return await operation(self.fallback)

    async def read_primary(self, key: str) -> Optional[str]:
        if self.primary is None:
            return None
        try:
            value = await self.primary.get(key)
        except StoreUnavailableError as e:
            self._mark_failure("read", e)
            return None
        self._mark_success()
        return value

    async def write_primary(self, key: str, value: str, ttl_ms: int) -> bool:
        if self.primary is None:
            return False
        try:
            await self.primary.set(key, value, ttl_ms=ttl_ms)
        except StoreUnavailableError as e:
            self._mark_failure("write", e)
            return False
        self._mark_success()
        return True

    async def delete_primary(self, key: str) -> bool:
        if self.primary is None:
            return False
        try:
            await self.primary.delete(key)
        except StoreUnavailableError as e:
            self._mark_failure("delete", e)
            return False
        self._mark_success()
        return True

    async def close(self) -> None:
        if self.primary is not None:
            await self.primary.close()
        await self.fallback.close()
