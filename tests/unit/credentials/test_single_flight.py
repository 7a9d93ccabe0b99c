import asyncio
import json

import pytest

from throttlekit.credentials import FetchedCredential, InFlightRegistry, SingleFlightCache
from throttlekit.exceptions import CredentialFetchError

pytestmark = pytest.mark.asyncio


class CountingFetch:
    """Fetch adapter that returns tok-1, tok-2, ... with a fixed lifetime."""

    def __init__(self, clock, lifetime=3600, delay=0.01, error=None):
        self.clock = clock
        self.lifetime = lifetime
        self.delay = delay
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return FetchedCredential(value=f"tok-{self.calls}", expires_at=self.clock() + self.lifetime)


def _cache(backend, fetch, clock, **kwargs):
    return SingleFlightCache("azampay", fetch, backend, clock=clock, **kwargs)


async def test_concurrent_callers_share_one_fetch(any_backend, clock):
    fetch = CountingFetch(clock)
    cache = _cache(any_backend, fetch, clock)

    values = await asyncio.gather(*(cache.get() for _ in range(50)))

    assert fetch.calls == 1
    assert set(values) == {"tok-1"}


async def test_no_refetch_while_usable(local_backend, clock):
    fetch = CountingFetch(clock)
    cache = _cache(local_backend, fetch, clock)

    assert await cache.get() == "tok-1"
    clock.advance(1000)
    assert await cache.get() == "tok-1"
    assert fetch.calls == 1


async def test_skew_margin_triggers_early_refresh(local_backend, clock):
    fetch = CountingFetch(clock, lifetime=3600)
    cache = _cache(local_backend, fetch, clock, clock_skew_seconds=60)

    assert await cache.get() == "tok-1"
    assert cache.cached.expires_at == clock.now + 3540

    clock.advance(3539)
    assert await cache.get() == "tok-1"

    clock.advance(2)
    assert await cache.get() == "tok-2"
    assert fetch.calls == 2


async def test_failure_is_shared_and_not_cached(local_backend, clock):
    fetch = CountingFetch(clock, error=RuntimeError("connection reset by peer: secret=abc"))
    cache = _cache(local_backend, fetch, clock)

    results = await asyncio.gather(*(cache.get() for _ in range(10)), return_exceptions=True)

    assert fetch.calls == 1
    assert all(isinstance(r, CredentialFetchError) for r in results)
    assert "secret" not in str(results[0])

    fetch.error = None
    assert await cache.get() == "tok-2"
    assert fetch.calls == 2


async def test_credential_fetch_errors_pass_through(local_backend, clock):
    raised = CredentialFetchError("gateway said no")
    cache = _cache(local_backend, CountingFetch(clock, error=raised), clock)

    with pytest.raises(CredentialFetchError) as exc_info:
        await cache.get()
    assert exc_info.value is raised


async def test_fetch_timeout(local_backend, clock):
    fetch = CountingFetch(clock, delay=1.0)
    cache = _cache(local_backend, fetch, clock, fetch_timeout_seconds=0.05)

    with pytest.raises(CredentialFetchError, match="timed out"):
        await cache.get()
    assert cache.cached is None


async def test_invalidate_forces_refetch(redis_backend, shared_store, clock):
    fetch = CountingFetch(clock)
    cache = _cache(redis_backend, fetch, clock)
    await cache.get()
    assert await shared_store.get(cache.store_key) is not None

    await cache.invalidate()

    assert cache.cached is None
    assert await shared_store.get(cache.store_key) is None
    assert await cache.get() == "tok-2"


async def test_value_is_persisted_for_other_instances(clock, redis_backend):
    fetch_a = CountingFetch(clock)
    fetch_b = CountingFetch(clock)
    first = _cache(redis_backend, fetch_a, clock)
    second = _cache(redis_backend, fetch_b, clock)

    assert await first.get() == "tok-1"
    assert await second.get() == "tok-1"
    assert fetch_b.calls == 0


async def test_persisted_payload_and_ttl(redis_backend, shared_store, clock):
    cache = _cache(redis_backend, CountingFetch(clock, lifetime=3600), clock)
    await cache.get()

    payload = json.loads(await shared_store.get("credential:azampay"))
    assert payload == {"value": "tok-1", "expires_at": clock.now + 3540}

    clock.advance(3541)
    assert await shared_store.get("credential:azampay") is None


async def test_short_lived_values_are_not_persisted(redis_backend, shared_store, clock):
    fetch = CountingFetch(clock, lifetime=65)
    cache = _cache(redis_backend, fetch, clock, min_cacheable_ttl_seconds=10)

    assert await cache.get() == "tok-1"
    assert await shared_store.get(cache.store_key) is None


async def test_shared_value_is_capped_locally(redis_backend, shared_store, clock):
    await shared_store.set(
        "credential:azampay",
        json.dumps({"value": "remote", "expires_at": clock.now + 86400}),
    )
    cache = _cache(redis_backend, CountingFetch(clock), clock, local_ttl_cap_seconds=3300)

    assert await cache.get() == "remote"
    assert cache.cached.expires_at == clock.now + 3300


async def test_bare_token_in_shared_store_is_accepted(redis_backend, shared_store, clock):
    await shared_store.set("credential:azampay", "legacy-token")
    fetch = CountingFetch(clock)
    cache = _cache(redis_backend, fetch, clock)

    assert await cache.get() == "legacy-token"
    assert fetch.calls == 0


async def test_expired_shared_value_is_ignored(redis_backend, shared_store, clock):
    await shared_store.set(
        "credential:azampay",
        json.dumps({"value": "stale", "expires_at": clock.now - 1}),
    )
    cache = _cache(redis_backend, CountingFetch(clock), clock)

    assert await cache.get() == "tok-1"


async def test_store_outage_falls_back_to_fetch(broken_backend, clock):
    fetch = CountingFetch(clock)
    cache = _cache(broken_backend, fetch, clock)

    assert await cache.get() == "tok-1"
    assert await cache.get() == "tok-1"
    assert fetch.calls == 1


async def test_cancelled_waiter_does_not_cancel_refresh(local_backend, clock):
    fetch = CountingFetch(clock, delay=0.05)
    cache = _cache(local_backend, fetch, clock)

    owner = asyncio.create_task(cache.get())
    await asyncio.sleep(0)
    waiter = asyncio.create_task(cache.get())
    await asyncio.sleep(0.01)
    waiter.cancel()

    assert await owner == "tok-1"
    with pytest.raises(asyncio.CancelledError):
        await waiter


async def test_late_shared_miss_does_not_trigger_second_fetch(latent_backend, latent_store, clock):
    # Shared reads that miss can return after the refresh has finished
    latent_store.max_latency = 0.03
    fetch = CountingFetch(clock, delay=0.005)
    cache = _cache(latent_backend, fetch, clock)

    values = await asyncio.gather(*(cache.get() for _ in range(50)))

    assert fetch.calls == 1
    assert set(values) == {"tok-1"}


async def test_cancelling_first_caller_does_not_fail_others(local_backend, clock):
    fetch = CountingFetch(clock, delay=0.05)
    cache = _cache(local_backend, fetch, clock)

    first = asyncio.create_task(cache.get())
    await asyncio.sleep(0)
    second = asyncio.create_task(cache.get())
    await asyncio.sleep(0.01)
    first.cancel()

    assert await second == "tok-1"
    with pytest.raises(asyncio.CancelledError):
        await first
    assert fetch.calls == 1
    assert cache.cached.value == "tok-1"


async def test_refresh_completes_with_no_callers_left(local_backend, clock):
    fetch = CountingFetch(clock, delay=0.02)
    cache = _cache(local_backend, fetch, clock)

    only = asyncio.create_task(cache.get())
    await asyncio.sleep(0.005)
    only.cancel()
    await asyncio.sleep(0.05)

    assert cache.cached.value == "tok-1"
    assert await cache.get() == "tok-1"
    assert fetch.calls == 1


async def test_registry_shares_one_task_and_forgets_it():
    registry = InFlightRegistry()
    started = []

    async def refresh():
        started.append(1)
        await asyncio.sleep(0.01)
        return "v"

    task = registry.join_or_start("x", refresh)
    again = registry.join_or_start("x", refresh)
    assert again is task
    assert registry.in_flight("x")

    assert await task == "v"
    await asyncio.sleep(0)
    assert not registry.in_flight("x")
    assert started == [1]
