import asyncio
import random

import pytest

from throttlekit.config import Settings
from throttlekit.exceptions import StoreUnavailableError
from throttlekit.infrastructure.store import DualBackend, MemoryStore


class ManualClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FailingStore:
    """Distributed store that is always down."""

    def __init__(self):
        self.calls = 0

    async def _fail(self, *args, **kwargs):
        self.calls += 1
        raise StoreUnavailableError("Redis GET failed: ConnectionError")

    get = set = delete = incr_with_expire = set_and_delete = _fail

    async def ping(self):
        return False

    async def close(self):
        return None


class SwitchableStore(MemoryStore):
    """Shared in-memory 'distributed' store that can be taken down and brought back."""

    def __init__(self, clock):
        super().__init__(clock=clock)
        self.down = False

    def _check(self):
        if self.down:
            raise StoreUnavailableError("Redis command failed: TimeoutError")

    async def get(self, key):
        self._check()
        return await super().get(key)

    async def set(self, key, value, ttl_ms=None, nx=False):
        self._check()
        return await super().set(key, value, ttl_ms=ttl_ms, nx=nx)

    async def delete(self, key):
        self._check()
        return await super().delete(key)

    async def incr_with_expire(self, key, ttl_ms):
        self._check()
        return await super().incr_with_expire(key, ttl_ms)

    async def set_and_delete(self, set_key, value, ttl_ms, delete_key, nx=True):
        self._check()
        return await super().set_and_delete(set_key, value, ttl_ms, delete_key, nx=nx)


class LatentStore(SwitchableStore):
    """Shared store whose every call suspends, like a network round trip.

    Without this, concurrent callers against an in-memory store never
    interleave: an uncontended asyncio.Lock does not yield.
    """

    def __init__(self, clock, max_latency=0.003):
        super().__init__(clock)
        self.max_latency = max_latency

    async def _pause(self):
        await asyncio.sleep(random.uniform(0, self.max_latency))

    async def get(self, key):
        await self._pause()
        value = await super().get(key)
        await self._pause()
        return value

    async def set(self, key, value, ttl_ms=None, nx=False):
        await self._pause()
        result = await super().set(key, value, ttl_ms=ttl_ms, nx=nx)
        await self._pause()
        return result

    async def delete(self, key):
        await self._pause()
        result = await super().delete(key)
        await self._pause()
        return result

    async def incr_with_expire(self, key, ttl_ms):
        await self._pause()
        result = await super().incr_with_expire(key, ttl_ms)
        await self._pause()
        return result

    async def set_and_delete(self, set_key, value, ttl_ms, delete_key, nx=True):
        await self._pause()
        result = await super().set_and_delete(set_key, value, ttl_ms, delete_key, nx=nx)
        await self._pause()
        return result


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def local_backend(clock):
    """Process-local only deployment (no REDIS_URL)."""
    return DualBackend(None, MemoryStore(clock=clock))


@pytest.fixture
def shared_store(clock):
    return SwitchableStore(clock)


@pytest.fixture
def redis_backend(clock, shared_store):
    """Healthy distributed store plus local fallback."""
    return DualBackend(shared_store, MemoryStore(clock=clock))


@pytest.fixture
def broken_backend(clock):
    """Distributed store configured but always erroring."""
    return DualBackend(FailingStore(), MemoryStore(clock=clock))


@pytest.fixture
def latent_store(clock):
    return LatentStore(clock)


@pytest.fixture
def latent_backend(clock, latent_store):
    """Healthy distributed store with network-like latency on every call."""
    return DualBackend(latent_store, MemoryStore(clock=clock))


@pytest.fixture(params=["local", "redis", "latent", "broken"])
def any_backend(request, local_backend, redis_backend, latent_backend, broken_backend):
    backends = {
        "local": local_backend,
        "redis": redis_backend,
        "latent": latent_backend,
        "broken": broken_backend,
    }
    return backends[request.param]


@pytest.fixture
def gateway_settings():
    return Settings(
        azampay_client_id="client-123",
        azampay_client_secret="secret-abcdefghijklmnopqrstuvwxyz",
        azampay_app_name="nolsaf",
        azampay_auth_url="https://auth.example.test",
        azampay_api_url="https://api.example.test",
    )


@pytest.fixture
def failing_store():
    return FailingStore()
