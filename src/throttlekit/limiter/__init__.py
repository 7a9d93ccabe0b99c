"""
Attempt Limiting
Generic lockout-after-N-failures and its login / booking-code specialisations
"""
from throttlekit.limiter.attempt_limiter import AttemptLimiter
from throttlekit.limiter.models import AttemptStatus, FailureResult, LimiterPolicy
from throttlekit.limiter.trackers import BookingCodeAttemptTracker, LoginAttemptTracker

__all__ = [
    "AttemptLimiter",
    "AttemptStatus",
    "BookingCodeAttemptTracker",
    "FailureResult",
    "LimiterPolicy",
    "LoginAttemptTracker",
]
