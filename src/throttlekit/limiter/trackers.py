"""
Attempt limiter specialisations for the two call sites:
- failed password logins, keyed by account identity
- booking check-in code verification, keyed by property owner
"""
from __future__ import annotations

from typing import Optional

from throttlekit.config import Settings
from throttlekit.infrastructure.observability.logger import get_logger
from throttlekit.infrastructure.store.backend import DualBackend
from throttlekit.infrastructure.store.store_protocol import Clock, KeyValueStore, system_clock
from throttlekit.limiter.attempt_limiter import AttemptLimiter, LimiterKey
from throttlekit.limiter.models import FailureResult, LimiterPolicy

logger = get_logger(__name__)

LOGIN_PREFIX = "auth:login"
LOGIN_IP_PREFIX = "auth:login-ip"
BOOKING_CODE_PREFIX = "owner:booking-code"

# Per-IP counters are monitoring only and never lock anybody out
IP_WINDOW_SECONDS = 60 * 60


class LoginAttemptTracker(AttemptLimiter):
    """Failed-login lockout keyed by e-mail / username / phone."""

    def __init__(
        self,
        backend: DualBackend,
        policy: LimiterPolicy,
        clock: Clock = system_clock,
        log_failed_attempts: bool = True,
    ) -> None:
        super().__init__(backend, policy, clock)
        self.log_failed_attempts = log_failed_attempts

    @classmethod
    def from_settings(
        cls,
        backend: DualBackend,
        settings: Settings,
        clock: Clock = system_clock,
    ) -> "LoginAttemptTracker":
        policy = LimiterPolicy(
            prefix=LOGIN_PREFIX,
            max_failures=settings.login_max_failures,
            lockout_seconds=settings.login_lockout_seconds,
            streak_ttl_seconds=settings.login_streak_ttl_seconds,
        )
        return cls(backend, policy, clock, log_failed_attempts=settings.login_log_failed_attempts)

    def normalize(self, identity: str) -> str:
        return identity.lower()

    def _ip_key(self, source_ip: str) -> str:
        return f"{LOGIN_IP_PREFIX}:{source_ip.strip()}"

    async def record_failure(
        self,
        key: LimiterKey,
        source_ip: Optional[str] = None,
    ) -> FailureResult:
        result = await super().record_failure(key)

        if source_ip:
            ip_key = self._ip_key(source_ip)

            async def _count_ip(store: KeyValueStore) -> int:
                return await store.incr_with_expire(ip_key, IP_WINDOW_SECONDS * 1000)

            await self.backend.run(_count_ip, op="record_ip_failure")

        if self.log_failed_attempts:
            logger.warning(
                "Failed login attempt",
                key_hash=self._key_hash(self._identity(key)),
                source_ip=source_ip,
                failures=result.failures,
                max_failures=self.policy.max_failures,
                locked=result.locked,
            )
        return result

    async def ip_failure_count(self, source_ip: str) -> int:
        """Failed logins seen from one address in the last hour (monitoring)."""
        ip_key = self._ip_key(source_ip)

        async def _read(store: KeyValueStore) -> int:
            raw = await store.get(ip_key)
            return int(raw) if raw else 0

        return await self.backend.run(_read, op="ip_failure_count")


class BookingCodeAttemptTracker(AttemptLimiter):
    """Check-in code verification lockout keyed by property owner id."""

    @classmethod
    def from_settings(
        cls,
        backend: DualBackend,
        settings: Settings,
        clock: Clock = system_clock,
    ) -> "BookingCodeAttemptTracker":
        policy = LimiterPolicy(
            prefix=BOOKING_CODE_PREFIX,
            max_failures=settings.booking_code_max_failures,
            lockout_seconds=settings.booking_code_lockout_seconds,
            streak_ttl_seconds=settings.booking_code_streak_ttl_seconds,
        )
        return cls(backend, policy, clock)
