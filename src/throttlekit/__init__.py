"""
throttlekit: resilient attempt limiting and single-flight credential caching
backed by Redis with a process-local fallback.
"""
from throttlekit.config import Settings, get_settings, load_settings
from throttlekit.container import Container
from throttlekit.credentials import GatewayClient, GatewayTokenFetcher, SingleFlightCache
from throttlekit.exceptions import (
    AccountLockedError,
    ConfigurationError,
    CredentialFetchError,
    DomainError,
    InvalidKeyError,
)
from throttlekit.limiter import (
    AttemptLimiter,
    AttemptStatus,
    BookingCodeAttemptTracker,
    FailureResult,
    LimiterPolicy,
    LoginAttemptTracker,
)

__all__ = [
    "AccountLockedError",
    "AttemptLimiter",
    "AttemptStatus",
    "BookingCodeAttemptTracker",
    "ConfigurationError",
    "Container",
    "CredentialFetchError",
    "DomainError",
    "FailureResult",
    "GatewayClient",
    "GatewayTokenFetcher",
    "InvalidKeyError",
    "LimiterPolicy",
    "LoginAttemptTracker",
    "Settings",
    "SingleFlightCache",
    "get_settings",
    "load_settings",
]
