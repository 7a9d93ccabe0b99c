from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


# ───────────────────────── Base & Domain Exceptions ─────────────────────────
class DomainError(Exception):
    """Base class for domain-level errors. Components raise these, never HTTPException."""
    code: str = "domain_error"
    status_code: int = status.HTTP_400_BAD_REQUEST
    message: str
    details: Optional[Dict[str, Any]]

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message or self.__class__.__name__)
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.message = message or self.__class__.__name__
        self.details = details


class InvalidKeyError(DomainError):
    code = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class ConfigurationError(DomainError):
    """Operator/programmer error detected at construction time. Fatal."""
    code = "configuration_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class AccountLockedError(DomainError):
    code = "account_locked"
    status_code = status.HTTP_423_LOCKED

    @property
    def retry_after_seconds(self) -> int:
        return int((self.details or {}).get("retry_after_seconds", 0))


class CredentialFetchError(DomainError):
    """The external credential endpoint could not produce a usable token.

    The message never contains the response body or any secret value.
    """
    code = "credential_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class StoreUnavailableError(DomainError):
    """The distributed store failed (refused, timed out, protocol error).

    Internal only: the dual backend recovers from it and it never reaches callers.
    """
    code = "store_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


# ───────────────────────────── Helpers ──────────────────────────────────────

def _problem(
    code: str,
    message: str,
    details: Optional[Dict[str, Any]],
    correlation_id: Optional[str],
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"code": code, "message": message}
    if details:
        body["details"] = details
    if correlation_id:
        body["correlation_id"] = correlation_id
    return body


def _extract_correlation_id(req: Request) -> Optional[str]:
    return getattr(getattr(req, "state", None), "request_id", None)


# ─────────────────────────── Registration ───────────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AccountLockedError)
    async def handle_locked(req: Request, exc: AccountLockedError):
        return JSONResponse(
            status_code=exc.status_code,
            content=_problem(exc.code, exc.message, exc.details, _extract_correlation_id(req)),
            headers={"Retry-After": str(max(1, exc.retry_after_seconds))},
        )

    @app.exception_handler(CredentialFetchError)
    async def handle_credential_unavailable(req: Request, exc: CredentialFetchError):
        # Generic message only; fetch internals stay in the logs
        return JSONResponse(
            status_code=exc.status_code,
            content=_problem(
                exc.code,
                "Service temporarily unavailable",
                None,
                _extract_correlation_id(req),
            ),
        )

    @app.exception_handler(DomainError)
    async def handle_app_error(req: Request, exc: DomainError):
        return JSONResponse(
            status_code=exc.status_code,
            content=_problem(exc.code, exc.message, exc.details, _extract_correlation_id(req)),
        )
