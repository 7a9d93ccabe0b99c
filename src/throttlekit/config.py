"""
Centralized configuration for the throttling / credential caching core.

- Pure Python (dataclasses + stdlib), no Pydantic.
- Loads from OS env; optionally parses a .env file if python-dotenv is installed.
- Strong typing & validation in __post_init__.
- Immutable singleton via functools.lru_cache.
- Secrets never logged (masked).
"""

from __future__ import annotations

import functools
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional, cast
from urllib.parse import urlparse

from throttlekit.exceptions import ConfigurationError


# ------------------------------------------------------------------------------
# Optional .env loader
# ------------------------------------------------------------------------------
def _maybe_load_dotenv(env_path: Path) -> None:
    if not env_path.exists():
        return
    from dotenv import load_dotenv

    load_dotenv(dotenv_path=str(env_path), override=False)


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------
def _mask_secret(value: Optional[str]) -> str:
    if not value:
        return "<unset>"
    if len(value) <= 8:
        return "***"
    return value[:2] + "…" + value[-2:]


def _get_env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(key, default)
    if v is not None and v.strip() == "":
        return default
    return v


def _get_env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    v = v.strip().lower()
    return v in {"1", "true", "t", "yes", "y", "on"}


def _get_env_int(key: str, default: int) -> int:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        return default
    try:
        return int(v)
    except ValueError:
        raise ConfigurationError(f"Env var {key} must be an integer")


def _get_env_float(key: str, default: float) -> float:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        return default
    try:
        return float(v)
    except ValueError:
        raise ConfigurationError(f"Env var {key} must be a number")


def _validate_choice(value: str, *, choices: tuple[str, ...], key: str) -> str:
    if value not in choices:
        raise ConfigurationError(f"{key} must be one of {choices}, got {value!r}")
    return value


def _validate_url(value: Optional[str], *, key: str, allowed_schemes: tuple[str, ...]) -> Optional[str]:
    if value in (None, ""):
        return None
    parsed = urlparse(value)
    if parsed.scheme not in allowed_schemes or not parsed.netloc:
        raise ConfigurationError(f"{key} must be a valid URL with scheme in {allowed_schemes}")
    return value


def _validate_positive(value: float, *, key: str) -> None:
    if value <= 0:
        raise ConfigurationError(f"{key} must be > 0")


# ------------------------------------------------------------------------------
# Settings dataclass (immutable)
# ------------------------------------------------------------------------------
EnvName = Literal["local", "dev", "staging", "prod"]


@dataclass(frozen=True)
class Settings:
    # Environment
    environment: EnvName = "local"
    log_level: str = "INFO"
    log_json: bool = True

    # Distributed store (absent => process-local only)
    redis_url: Optional[str] = None
    redis_namespace: str = "nols"
    redis_socket_timeout: float = 2.0
    redis_operation_timeout_seconds: float = 1.0

    # Login failure tracker
    login_max_failures: int = 5
    login_lockout_seconds: int = 5 * 60
    login_streak_ttl_seconds: int = 5 * 60
    login_log_failed_attempts: bool = True

    # Booking check-in code tracker
    booking_code_max_failures: int = 3
    booking_code_lockout_seconds: int = 5 * 60
    booking_code_streak_ttl_seconds: int = 15 * 60

    # Background sweep of the process-local store
    store_sweep_interval_seconds: int = 5 * 60

    # Payment gateway credentials
    azampay_auth_url: str = "https://authenticator.azampay.co.tz"
    azampay_api_url: str = "https://sandbox.azampay.co.tz"
    azampay_app_name: str = ""
    azampay_client_id: Optional[str] = None
    azampay_client_secret: Optional[str] = None

    # Bearer token cache
    gateway_fetch_timeout_seconds: float = 10.0
    gateway_clock_skew_seconds: int = 60
    gateway_min_cacheable_ttl_seconds: int = 10
    gateway_local_ttl_cap_seconds: int = 55 * 60

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "environment",
            _validate_choice(self.environment, choices=("local", "dev", "staging", "prod"), key="ENVIRONMENT"),
        )

        if self.redis_url:
            _validate_url(self.redis_url, key="REDIS_URL", allowed_schemes=("redis", "rediss", "unix"))
        _validate_url(self.azampay_auth_url, key="AZAMPAY_AUTH_URL", allowed_schemes=("http", "https"))
        _validate_url(self.azampay_api_url, key="AZAMPAY_API_URL", allowed_schemes=("http", "https"))

        if not self.redis_namespace.strip(":").strip():
            raise ConfigurationError("REDIS_NAMESPACE must be non-empty")

        for key, value in (
            ("REDIS_SOCKET_TIMEOUT", self.redis_socket_timeout),
            ("REDIS_OPERATION_TIMEOUT_SECONDS", self.redis_operation_timeout_seconds),
            ("LOGIN_MAX_FAILURES", self.login_max_failures),
            ("LOGIN_LOCKOUT_SECONDS", self.login_lockout_seconds),
            ("LOGIN_STREAK_TTL_SECONDS", self.login_streak_ttl_seconds),
            ("BOOKING_CODE_MAX_FAILURES", self.booking_code_max_failures),
            ("BOOKING_CODE_LOCKOUT_SECONDS", self.booking_code_lockout_seconds),
            ("BOOKING_CODE_STREAK_TTL_SECONDS", self.booking_code_streak_ttl_seconds),
            ("STORE_SWEEP_INTERVAL_SECONDS", self.store_sweep_interval_seconds),
            ("GATEWAY_FETCH_TIMEOUT_SECONDS", self.gateway_fetch_timeout_seconds),
            ("GATEWAY_LOCAL_TTL_CAP_SECONDS", self.gateway_local_ttl_cap_seconds),
        ):
            _validate_positive(value, key=key)

        if self.gateway_clock_skew_seconds < 0:
            raise ConfigurationError("GATEWAY_CLOCK_SKEW_SECONDS must be >= 0")
        if self.gateway_min_cacheable_ttl_seconds < 0:
            raise ConfigurationError("GATEWAY_MIN_CACHEABLE_TTL_SECONDS must be >= 0")

        if not re.fullmatch(r"(?i)DEBUG|INFO|WARNING|ERROR|CRITICAL", self.log_level.strip()):
            raise ConfigurationError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")

    @property
    def distributed_store_enabled(self) -> bool:
        return bool(self.redis_url)

    # Safe dict (for debug prints without secrets)
    def safe_dict(self) -> dict:
        return {
            "environment": self.environment,
            "log_level": self.log_level,
            "log_json": self.log_json,
            "redis_url": "<masked>" if self.redis_url else "<unset>",
            "redis_namespace": self.redis_namespace,
            "redis_operation_timeout_seconds": self.redis_operation_timeout_seconds,
            "login_max_failures": self.login_max_failures,
            "login_lockout_seconds": self.login_lockout_seconds,
            "login_streak_ttl_seconds": self.login_streak_ttl_seconds,
            "booking_code_max_failures": self.booking_code_max_failures,
            "booking_code_lockout_seconds": self.booking_code_lockout_seconds,
            "booking_code_streak_ttl_seconds": self.booking_code_streak_ttl_seconds,
            "store_sweep_interval_seconds": self.store_sweep_interval_seconds,
            "azampay_auth_url": self.azampay_auth_url,
            "azampay_api_url": self.azampay_api_url,
            "azampay_client_id": _mask_secret(self.azampay_client_id),
            "azampay_client_secret": _mask_secret(self.azampay_client_secret),
            "gateway_fetch_timeout_seconds": self.gateway_fetch_timeout_seconds,
            "gateway_clock_skew_seconds": self.gateway_clock_skew_seconds,
        }


# ------------------------------------------------------------------------------
# Loader
# ------------------------------------------------------------------------------
def load_settings() -> Settings:
    """Build a fresh Settings from the current environment."""
    return Settings(
        environment=cast(EnvName, _get_env_str("ENVIRONMENT", "local") or "local"),
        log_level=_get_env_str("LOG_LEVEL", "INFO") or "INFO",
        log_json=_get_env_bool("LOG_JSON", True),
        redis_url=_get_env_str("REDIS_URL", None),
        redis_namespace=_get_env_str("REDIS_NAMESPACE", "nols") or "nols",
        redis_socket_timeout=_get_env_float("REDIS_SOCKET_TIMEOUT", 2.0),
        redis_operation_timeout_seconds=_get_env_float("REDIS_OPERATION_TIMEOUT_SECONDS", 1.0),
        login_max_failures=_get_env_int("LOGIN_MAX_FAILURES", 5),
        login_lockout_seconds=_get_env_int("LOGIN_LOCKOUT_SECONDS", 5 * 60),
        login_streak_ttl_seconds=_get_env_int("LOGIN_STREAK_TTL_SECONDS", 5 * 60),
        login_log_failed_attempts=_get_env_bool("LOGIN_LOG_FAILED_ATTEMPTS", True),
        booking_code_max_failures=_get_env_int("BOOKING_CODE_MAX_FAILURES", 3),
        booking_code_lockout_seconds=_get_env_int("BOOKING_CODE_LOCKOUT_SECONDS", 5 * 60),
        booking_code_streak_ttl_seconds=_get_env_int("BOOKING_CODE_STREAK_TTL_SECONDS", 15 * 60),
        store_sweep_interval_seconds=_get_env_int("STORE_SWEEP_INTERVAL_SECONDS", 5 * 60),
        azampay_auth_url=(_get_env_str("AZAMPAY_AUTH_URL", "https://authenticator.azampay.co.tz") or "").rstrip("/"),
        azampay_api_url=(_get_env_str("AZAMPAY_API_URL", "https://sandbox.azampay.co.tz") or "").rstrip("/"),
        azampay_app_name=_get_env_str("AZAMPAY_APP_NAME", "") or "",
        azampay_client_id=_get_env_str("AZAMPAY_CLIENT_ID", None),
        azampay_client_secret=_get_env_str("AZAMPAY_CLIENT_SECRET", None),
        gateway_fetch_timeout_seconds=_get_env_float("GATEWAY_FETCH_TIMEOUT_SECONDS", 10.0),
        gateway_clock_skew_seconds=_get_env_int("GATEWAY_CLOCK_SKEW_SECONDS", 60),
        gateway_min_cacheable_ttl_seconds=_get_env_int("GATEWAY_MIN_CACHEABLE_TTL_SECONDS", 10),
        gateway_local_ttl_cap_seconds=_get_env_int("GATEWAY_LOCAL_TTL_CAP_SECONDS", 55 * 60),
    )


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Attempt to load .env from the working directory
    _maybe_load_dotenv(Path.cwd() / ".env")
    return load_settings()
