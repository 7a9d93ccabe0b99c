"""
Observability Infrastructure
Structured logging
"""
from throttlekit.infrastructure.observability.logger import configure_logging, get_logger, redact_secrets

__all__ = [
    "configure_logging",
    "get_logger",
    "redact_secrets",
]
