from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from throttlekit.exceptions import ConfigurationError


def _iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class LimiterPolicy:
    """Per-instantiation limits for an AttemptLimiter."""

    prefix: str
    max_failures: int
    lockout_seconds: int
    streak_ttl_seconds: int

    def __post_init__(self) -> None:
        if not self.prefix.strip(":"):
            raise ConfigurationError("Limiter prefix must be non-empty")
        if self.max_failures < 1:
            raise ConfigurationError("max_failures must be >= 1")
        if self.lockout_seconds <= 0:
            raise ConfigurationError("lockout_seconds must be > 0")
        if self.streak_ttl_seconds <= 0:
            raise ConfigurationError("streak_ttl_seconds must be > 0")

    @property
    def lockout_ms(self) -> int:
        return self.lockout_seconds * 1000

    @property
    def streak_ttl_ms(self) -> int:
        return self.streak_ttl_seconds * 1000


@dataclass(frozen=True)
class AttemptStatus:
    locked: bool
    locked_until: Optional[float]  # epoch seconds
    remaining_attempts: int
    failures: int
    retry_after_seconds: Optional[int]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "locked": self.locked,
            "locked_until": _iso(self.locked_until),
            "remaining_attempts": self.remaining_attempts,
            "retry_after_seconds": self.retry_after_seconds,
        }


@dataclass(frozen=True)
class FailureResult:
    locked: bool
    just_locked: bool
    remaining_attempts: int
    failures: int
    locked_until: Optional[float]  # epoch seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "locked": self.locked,
            "just_locked": self.just_locked,
            "locked_until": _iso(self.locked_until),
            "remaining_attempts": self.remaining_attempts,
        }
