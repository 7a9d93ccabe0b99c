"""
Redis Store Implementation
Async Redis-backed distributed store with bounded, normalised failures
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from throttlekit.exceptions import StoreUnavailableError
from throttlekit.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class RedisStore:
    """
    Distributed key-value store over redis.asyncio.

    Every command is bounded by ``operation_timeout`` on top of the socket
    timeout. Connection errors, timeouts and protocol errors all surface as
    StoreUnavailableError; callers never see a RedisError.

    Attributes:
        redis: Async Redis client
        namespace: Prefix for all keys (e.g. "nols")
    """

    def __init__(
        self,
        client: Redis,
        namespace: str = "nols",
        operation_timeout: float = 1.0,
    ) -> None:
        self.redis = client
        self.namespace = namespace.strip(":")
        self.operation_timeout = operation_timeout

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        namespace: str = "nols",
        socket_timeout: float = 2.0,
        operation_timeout: float = 1.0,
        max_connections: int = 50,
    ) -> "RedisStore":
        # NOTE: from_url is sync; it does not connect until the first command
        client = redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
            health_check_interval=30,
            max_connections=max_connections,
        )
        return cls(client, namespace=namespace, operation_timeout=operation_timeout)

    # ---------- low-level helpers ----------

    def _k(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def _guard(self, op: str, fn: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await asyncio.wait_for(fn(), timeout=self.operation_timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            # Message carries the command name only; keys may hold identities
            raise StoreUnavailableError(
                f"Redis {op} failed: {type(e).__name__}",
                details={"op": op},
            ) from e

    # ---------- KeyValueStore ----------

    async def get(self, key: str) -> Optional[str]:
        return await self._guard("GET", lambda: self.redis.get(self._k(key)))

    async def set(
        self,
        key: str,
        value: str,
        ttl_ms: Optional[int] = None,
        nx: bool = False,
    ) -> bool:
        result = await self._guard(
            "SET",
            lambda: self.redis.set(self._k(key), value, px=ttl_ms, nx=nx),
        )
        return bool(result)

    async def delete(self, key: str) -> bool:
        return (await self._guard("DEL", lambda: self.redis.delete(self._k(key)))) > 0

    async def incr_with_expire(self, key: str, ttl_ms: int) -> int:
        async def _run() -> int:
            pipe = self.redis.pipeline(transaction=True)
            pipe.incr(self._k(key))
            pipe.pexpire(self._k(key), ttl_ms)
            count, _ = await pipe.execute()
            return int(count)

        return await self._guard("INCR", _run)

    async def set_and_delete(
        self,
        set_key: str,
        value: str,
        ttl_ms: int,
        delete_key: str,
        nx: bool = True,
    ) -> bool:
        async def _run() -> bool:
            pipe = self.redis.pipeline(transaction=True)
            pipe.set(self._k(set_key), value, px=ttl_ms, nx=nx)
            pipe.delete(self._k(delete_key))
            was_set, _ = await pipe.execute()
            return bool(was_set)

        return await self._guard("MULTI", _run)

    async def ping(self) -> bool:
        try:
            return bool(await self._guard("PING", self.redis.ping))
        except StoreUnavailableError as e:
            logger.warning("Redis PING failed", error=e.message)
            return False

    async def close(self) -> None:
        try:
            await self.redis.aclose()
        except (RedisError, OSError) as e:
            logger.debug("Redis close failed", error=type(e).__name__)
