"""
Structured Logging
structlog setup for the throttling core; secret-bearing fields never reach a renderer
"""
from __future__ import annotations

import logging
import sys
from typing import Any, MutableMapping

import structlog

# Event keys whose values are credentials. Limiter identities are logged as
# key_hash, never raw, so they are not listed here.
REDACTED_KEYS = frozenset(
    {
        "access_token",
        "authorization",
        "client_secret",
        "password",
        "secret",
        "token",
        "value",
    }
)
REDACTED = "<redacted>"


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Processor replacing credential values with a placeholder."""
    for key in event_dict.keys() & REDACTED_KEYS:
        event_dict[key] = REDACTED
    return event_dict


def configure_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """
    Route structlog through stdlib logging on stdout.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (LOG_LEVEL)
        json_logs: JSON lines for deployments, console rendering for local runs (LOG_JSON)
    """
    level = getattr(logging, log_level.strip().upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=False)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            redact_secrets,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
