from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class FetchedCredential:
    """What a fetch adapter returns: the raw value and its natural expiry (epoch seconds)."""

    value: str = field(repr=False)
    expires_at: float


@dataclass(frozen=True)
class CachedCredential:
    """A credential with its effective expiry (natural expiry minus clock-skew margin)."""

    value: str = field(repr=False)
    expires_at: float

    def usable(self, now: float) -> bool:
        return now < self.expires_at

    def remaining_seconds(self, now: float) -> float:
        return self.expires_at - now
