"""
Single-Flight Refreshing Cache
One externally fetched value, TTL-bounded, with at most one fetch in flight per process
"""
from __future__ import annotations

import asyncio
import json
from typing import Awaitable, Callable, Optional

from throttlekit.exceptions import CredentialFetchError
from throttlekit.infrastructure.observability.logger import get_logger
from throttlekit.infrastructure.store.backend import DualBackend
from throttlekit.infrastructure.store.store_protocol import Clock, system_clock
from throttlekit.credentials.models import CachedCredential, FetchedCredential

logger = get_logger(__name__)

FetchFn = Callable[[], Awaitable[FetchedCredential]]
RefreshFn = Callable[[], Awaitable[str]]


class InFlightRegistry:
    """
    Register of running refreshes keyed by cache identity.

    The first caller for a name starts the refresh as its own task; later
    callers receive the same task. The task belongs to no request, so
    cancelling any caller (the starter included) leaves it running for the
    others. A finished task is dropped from the register.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task] = {}

    def join_or_start(self, name: str, refresh: RefreshFn) -> asyncio.Task:
        # No await between lookup and insert: the check-and-set cannot interleave
        task = self._tasks.get(name)
        if task is not None and not task.done():
            return task
        task = asyncio.get_running_loop().create_task(refresh(), name=f"refresh:{name}")
        self._tasks[name] = task
        task.add_done_callback(lambda done: self._release(name, done))
        return task

    def _release(self, name: str, task: asyncio.Task) -> None:
        if self._tasks.get(name) is task:
            del self._tasks[name]
        if not task.cancelled():
            # Mark retrieved so a failure nobody waited for does not warn at GC
            task.exception()

    def in_flight(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and not task.done()


class SingleFlightCache:
    """
    Caches a single credential (e.g. a gateway bearer token).

    get() order: process-local value -> distributed store -> join or start
    one refresh. The refresh is a task of its own that every caller awaits
    through asyncio.shield, so a cancelled caller never fails the others. It
    re-checks both copies first, then installs the value locally,
    best-effort persists it to the distributed store and hands the same value
    (or the same CredentialFetchError) to every caller that waited on it.
    Failures are never cached.
    """

    def __init__(
        self,
        name: str,
        fetch: FetchFn,
        backend: DualBackend,
        *,
        clock_skew_seconds: int = 60,
        min_cacheable_ttl_seconds: int = 10,
        local_ttl_cap_seconds: int = 55 * 60,
        fetch_timeout_seconds: float = 10.0,
        registry: Optional[InFlightRegistry] = None,
        clock: Clock = system_clock,
    ) -> None:
        self.name = name
        self.backend = backend
        self.clock_skew_seconds = clock_skew_seconds
        self.min_cacheable_ttl_seconds = min_cacheable_ttl_seconds
        self.local_ttl_cap_seconds = local_ttl_cap_seconds
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self._fetch = fetch
        self._registry = registry or InFlightRegistry()
        self._clock = clock
        self._local: Optional[CachedCredential] = None

    @property
    def store_key(self) -> str:
        return f"credential:{self.name}"

    @property
    def cached(self) -> Optional[CachedCredential]:
        return self._local

    # ---------- public API ----------

    async def get(self) -> str:
        now = self._clock()
        local = self._local
        if local is not None and local.usable(now):
            return local.value

        shared = await self._read_shared(now)
        if shared is not None:
            self._local = shared
            return shared.value

        task = self._registry.join_or_start(self.name, self._run_refresh)
        # shield: a cancelled caller must not cancel the shared refresh
        return await asyncio.shield(task)

    async def invalidate(self) -> None:
        """Drop the cached value locally and in the distributed store.

        A refresh already in flight is left to finish.
        """
        self._local = None
        await self.backend.delete_primary(self.store_key)
        logger.info("Credential invalidated", credential=self.name)

    # ---------- refresh ----------

    async def _run_refresh(self) -> str:
        # A caller whose reads missed may join after an earlier refresh has
        # already finished; re-check before spending a fetch
        now = self._clock()
        local = self._local
        if local is not None and local.usable(now):
            return local.value
        shared = await self._read_shared(now)
        if shared is not None:
            self._local = shared
            return shared.value

        try:
            credential = await self._refresh()
        except CredentialFetchError:
            raise
        except Exception as e:
            raise CredentialFetchError(f"{self.name}: fetch failed ({type(e).__name__})") from e
        return credential.value

    async def _refresh(self) -> CachedCredential:
        try:
            fetched = await asyncio.wait_for(self._fetch(), timeout=self.fetch_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise CredentialFetchError(
                f"{self.name}: fetch timed out after {self.fetch_timeout_seconds:g}s"
            ) from e

        credential = CachedCredential(
            value=fetched.value,
            expires_at=fetched.expires_at - self.clock_skew_seconds,
        )
        now = self._clock()
        self._local = credential
        await self._persist(credential, now)
        logger.info(
            "Credential refreshed",
            credential=self.name,
            expires_in=int(credential.remaining_seconds(now)),
        )
        return credential

    # ---------- distributed copy ----------

    async def _persist(self, credential: CachedCredential, now: float) -> None:
        ttl_seconds = int(credential.remaining_seconds(now))
        if ttl_seconds < self.min_cacheable_ttl_seconds:
            return
        payload = json.dumps({"value": credential.value, "expires_at": credential.expires_at})
        await self.backend.write_primary(self.store_key, payload, ttl_seconds * 1000)

    async def _read_shared(self, now: float) -> Optional[CachedCredential]:
        raw = await self.backend.read_primary(self.store_key)
        if not raw:
            return None

        cap = now + self.local_ttl_cap_seconds
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            data = None
        if not isinstance(data, dict):
            # Bare token written by an older instance; expiry unknown
            return CachedCredential(value=raw, expires_at=cap)

        value = data.get("value")
        expires_at = data.get("expires_at")
        if not isinstance(value, str) or not value:
            return None
        if not isinstance(expires_at, (int, float)) or isinstance(expires_at, bool):
            return CachedCredential(value=value, expires_at=cap)
        credential = CachedCredential(value=value, expires_at=min(float(expires_at), cap))
        return credential if credential.usable(now) else None
