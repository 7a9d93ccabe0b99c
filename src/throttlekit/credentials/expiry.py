from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any

# Substituted when the source omits or garbles the expiry; shorter than the
# gateway's usual 60 minute token lifetime.
DEFAULT_LIFETIME_SECONDS = 50 * 60

# Epoch values below this are seconds, at or above it milliseconds
_MS_THRESHOLD = 1e12


def _from_number(value: float) -> float | None:
    if not math.isfinite(value) or value <= 0:
        return None
    return value / 1000.0 if value >= _MS_THRESHOLD else float(value)


def _from_iso(value: str) -> float | None:
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    ts = parsed.timestamp()
    return ts if ts > 0 else None


def parse_expiry(raw: Any, now: float) -> float:
    """Normalise an expiry field to an absolute instant in epoch seconds.

    Accepts ISO-8601 timestamps and Unix epoch values in seconds or
    milliseconds (numbers or numeric strings). Anything missing or
    unparsable yields ``now + DEFAULT_LIFETIME_SECONDS``.
    """
    result: float | None = None
    if isinstance(raw, bool) or raw is None:
        result = None
    elif isinstance(raw, (int, float)):
        result = _from_number(float(raw))
    elif isinstance(raw, str) and raw.strip():
        try:
            result = _from_number(float(raw))
        except ValueError:
            result = _from_iso(raw)
    if result is None:
        return now + DEFAULT_LIFETIME_SECONDS
    return result
