"""
Attempt Limiter
Lockout after N consecutive failures, with automatic expiry of locks and streaks
"""
from __future__ import annotations

import hashlib
import math
from typing import Optional, Tuple, Union

from throttlekit.exceptions import AccountLockedError, InvalidKeyError
from throttlekit.infrastructure.observability.logger import get_logger
from throttlekit.infrastructure.store.backend import DualBackend
from throttlekit.infrastructure.store.store_protocol import Clock, KeyValueStore, system_clock
from throttlekit.limiter.models import AttemptStatus, FailureResult, LimiterPolicy

logger = get_logger(__name__)

LimiterKey = Union[str, int]


def _parse_lock(raw: Optional[str]) -> Optional[float]:
    # Lock values are epoch milliseconds
    if raw is None:
        return None
    try:
        return int(raw) / 1000.0
    except (TypeError, ValueError):
        return None


def _parse_count(raw: Optional[str]) -> int:
    if raw is None:
        return 0
    try:
        return max(0, int(raw))
    except (TypeError, ValueError):
        return 0


class AttemptLimiter:
    """
    Tracks consecutive failures per identity and escalates to a timed lockout.

    Per key, two store entries:
      <prefix>:fail:<id>  failure streak counter, TTL = streak window (refreshed per failure)
      <prefix>:lock:<id>  lock expiry in epoch ms, TTL = lockout duration

    Reaching ``max_failures`` sets the lock (SET NX) and deletes the counter in
    one transaction, so a key is accumulating or locked, never both, and two
    racing failures cannot both claim the lock or extend it.

    Locks set through the distributed store are mirrored into the local
    fallback and checked there first; locks are never lifted early, so a
    locally known lock is always valid.
    """

    def __init__(
        self,
        backend: DualBackend,
        policy: LimiterPolicy,
        clock: Clock = system_clock,
    ) -> None:
        self.backend = backend
        self.policy = policy
        self._clock = clock

    # ---------- keys ----------

    def normalize(self, identity: str) -> str:
        """Hook for specialisations (e.g. case-folding e-mail addresses)."""
        return identity

    def _identity(self, key: LimiterKey) -> str:
        # bool is an int subclass; reject it explicitly
        if isinstance(key, bool) or not isinstance(key, (str, int)):
            raise InvalidKeyError(
                f"Limiter key must be str or int, got {type(key).__name__}",
                details={"prefix": self.policy.prefix},
            )
        identity = self.normalize(str(key).strip())
        if not identity:
            raise InvalidKeyError("Limiter key must be non-empty", details={"prefix": self.policy.prefix})
        return identity

    def _fail_key(self, identity: str) -> str:
        return f"{self.policy.prefix}:fail:{identity}"

    def _lock_key(self, identity: str) -> str:
        return f"{self.policy.prefix}:lock:{identity}"

    @staticmethod
    def _key_hash(identity: str) -> str:
        # Identities are PII (e-mails); logs only carry a short digest
        return hashlib.sha256(identity.encode("utf-8")).hexdigest()[:12]

    # ---------- helpers ----------

    def _to_status(self, failures: int, locked_until: Optional[float], now: float) -> AttemptStatus:
        locked = locked_until is not None and locked_until > now
        if locked:
            return AttemptStatus(
                locked=True,
                locked_until=locked_until,
                remaining_attempts=0,
                failures=0,
                retry_after_seconds=max(1, math.ceil(locked_until - now)),
            )
        return AttemptStatus(
            locked=False,
            locked_until=None,
            remaining_attempts=max(0, self.policy.max_failures - failures),
            failures=failures,
            retry_after_seconds=None,
        )

    async def _local_lock(self, identity: str, now: float) -> Optional[float]:
        locked_until = _parse_lock(await self.backend.fallback.get(self._lock_key(identity)))
        if locked_until is not None and locked_until > now:
            return locked_until
        return None

    async def _mirror_lock(self, identity: str, locked_until: float, now: float) -> None:
        remaining_ms = int((locked_until - now) * 1000)
        if remaining_ms <= 0:
            return
        await self.backend.fallback.set(
            self._lock_key(identity),
            str(int(locked_until * 1000)),
            ttl_ms=remaining_ms,
            nx=True,
        )

    # ---------- operations ----------

    async def status(self, key: LimiterKey) -> AttemptStatus:
        """Pure read. Expired locks and aged-out streaks read as a fresh key."""
        identity = self._identity(key)
        now = self._clock()

        local = await self._local_lock(identity, now)
        if local is not None:
            return self._to_status(0, local, now)

        async def _read(store: KeyValueStore) -> Tuple[int, Optional[float]]:
            locked_until = _parse_lock(await store.get(self._lock_key(identity)))
            failures = _parse_count(await store.get(self._fail_key(identity)))
            return failures, locked_until

        failures, locked_until = await self.backend.run(_read, op="status")
        return self._to_status(failures, locked_until, now)

    async def record_failure(self, key: LimiterKey) -> FailureResult:
        """
        Count one failure; lock the key when the streak reaches max_failures.

        While locked this is a no-op that reports the existing lock: it never
        extends the lockout and never counts.
        """
        identity = self._identity(key)
        now = self._clock()
        policy = self.policy

        local = await self._local_lock(identity, now)
        if local is not None:
            return FailureResult(
                locked=True, just_locked=False, remaining_attempts=0, failures=0, locked_until=local
            )

        fail_key = self._fail_key(identity)
        lock_key = self._lock_key(identity)

        async def _record(store: KeyValueStore) -> Tuple[Optional[float], bool, int]:
            locked_until = _parse_lock(await store.get(lock_key))
            if locked_until is not None and locked_until > now:
                return locked_until, False, 0

            failures = await store.incr_with_expire(fail_key, policy.streak_ttl_ms)
            if failures < policy.max_failures:
                # A concurrent caller may have locked the key since our check
                concurrent = _parse_lock(await store.get(lock_key))
                if concurrent is not None and concurrent > now:
                    await store.delete(fail_key)
                    return concurrent, False, 0
                return None, False, failures

            until = now + policy.lockout_seconds
            was_set = await store.set_and_delete(
                lock_key,
                str(int(until * 1000)),
                policy.lockout_ms,
                fail_key,
                nx=True,
            )
            if was_set:
                return until, True, 0
            existing = _parse_lock(await store.get(lock_key))
            return (existing if existing is not None else until), False, 0

        locked_until, just_locked, failures = await self.backend.run(_record, op="record_failure")

        if locked_until is not None:
            await self._mirror_lock(identity, locked_until, now)
            if just_locked:
                logger.warning(
                    "Attempt limit reached, key locked",
                    prefix=policy.prefix,
                    key_hash=self._key_hash(identity),
                    max_failures=policy.max_failures,
                    lockout_seconds=policy.lockout_seconds,
                )
            return FailureResult(
                locked=True,
                just_locked=just_locked,
                remaining_attempts=0,
                failures=0,
                locked_until=locked_until,
            )

        return FailureResult(
            locked=False,
            just_locked=False,
            remaining_attempts=max(0, policy.max_failures - failures),
            failures=failures,
            locked_until=None,
        )

    async def record_success(self, key: LimiterKey) -> None:
        """
        Forget the failure streak. An active lock is left in place: a correct
        attempt does not forgive a lockout already in force.
        """
        identity = self._identity(key)
        fail_key = self._fail_key(identity)

        async def _clear(store: KeyValueStore) -> bool:
            return await store.delete(fail_key)

        await self.backend.run(_clear, op="record_success")
        if self.backend.has_primary:
            # Drop any streak accumulated locally while degraded
            await self.backend.fallback.delete(fail_key)

    async def ensure_not_locked(self, key: LimiterKey) -> AttemptStatus:
        """Return the status, or raise AccountLockedError with retry details."""
        current = await self.status(key)
        if current.locked:
            raise AccountLockedError(
                "Too many failed attempts. Try again later.",
                details={
                    "locked_until": current.to_dict()["locked_until"],
                    "retry_after_seconds": current.retry_after_seconds,
                },
            )
        return current
