"""
Payment Gateway Authentication
Bearer token fetch adapter and an authorised client that retries once on 401

SECURITY:
- Secret values are never logged; only the names of missing env vars.
- Gateway response bodies are never logged or forwarded to callers.
- Every outbound call has a hard timeout.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from throttlekit.config import Settings
from throttlekit.credentials.expiry import parse_expiry
from throttlekit.credentials.models import FetchedCredential
from throttlekit.credentials.single_flight import SingleFlightCache
from throttlekit.exceptions import ConfigurationError, CredentialFetchError
from throttlekit.infrastructure.observability.logger import get_logger
from throttlekit.infrastructure.store.backend import DualBackend
from throttlekit.infrastructure.store.store_protocol import Clock, system_clock

logger = get_logger(__name__)

TOKEN_PATH = "/AppRegistration/GenerateToken"


class GatewayTokenFetcher:
    """
    Exchanges the configured client credentials for a bearer token.

    Callable with no arguments, so an instance is the ``fetch`` of a
    SingleFlightCache.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        clock: Clock = system_clock,
    ) -> None:
        missing = [
            name
            for name, value in (
                ("AZAMPAY_CLIENT_ID", settings.azampay_client_id),
                ("AZAMPAY_CLIENT_SECRET", settings.azampay_client_secret),
            )
            if not value
        ]
        if missing:
            # Name the missing keys, never the values
            raise ConfigurationError(
                f"Payment gateway auth: missing required env var(s): {', '.join(missing)}",
                details={"missing": missing},
            )
        self._url = settings.azampay_auth_url.rstrip("/") + TOKEN_PATH
        self._app_name = settings.azampay_app_name
        self._client_id = settings.azampay_client_id
        self._client_secret = settings.azampay_client_secret
        self._timeout = settings.gateway_fetch_timeout_seconds
        self._http = http_client
        self._clock = clock

    async def __call__(self) -> FetchedCredential:
        try:
            response = await self._http.post(
                self._url,
                json={
                    "appName": self._app_name,
                    "clientId": self._client_id,
                    "clientSecret": self._client_secret,
                },
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            raise CredentialFetchError("Payment gateway auth: authenticator timed out") from e
        except httpx.HTTPError as e:
            # Exception text may echo the request; report the type only
            raise CredentialFetchError(
                f"Payment gateway auth: network error reaching authenticator ({type(e).__name__})"
            ) from e

        if not response.is_success:
            raise CredentialFetchError(
                f"Payment gateway auth: authenticator returned HTTP {response.status_code}",
                details={"status": response.status_code},
            )

        try:
            body = response.json()
        except ValueError as e:
            raise CredentialFetchError("Payment gateway auth: authenticator returned non-JSON body") from e

        data = body.get("data") if isinstance(body, dict) else None
        token = data.get("accessToken") if isinstance(data, dict) else None
        if not (isinstance(body, dict) and body.get("success") is True) or not isinstance(token, str) or not token:
            success = body.get("success") if isinstance(body, dict) else None
            raise CredentialFetchError(f"Payment gateway auth: token fetch failed (success={success})")

        return FetchedCredential(value=token, expires_at=parse_expiry(data.get("expire"), self._clock()))


class GatewayClient:
    """
    Authorised JSON client for the payment gateway API.

    A 401 means the cached token was rejected: the cache is invalidated, a new
    token is obtained and the request is retried exactly once.
    """

    def __init__(
        self,
        token_cache: SingleFlightCache,
        http_client: httpx.AsyncClient,
        base_url: str,
        timeout: float = 10.0,
    ) -> None:
        self.token_cache = token_cache
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def _post(
        self,
        url: str,
        payload: Dict[str, Any],
        token: str,
        headers: Optional[Dict[str, str]],
    ) -> httpx.Response:
        merged = dict(headers or {})
        merged["Authorization"] = f"Bearer {token}"
        return await self._http.post(url, json=payload, headers=merged, timeout=self._timeout)

    async def post_json(
        self,
        path: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """POST with a bearer token; CredentialFetchError if no token can be obtained."""
        url = f"{self._base_url}/{path.lstrip('/')}"
        token = await self.token_cache.get()
        response = await self._post(url, payload, token, headers)
        if response.status_code != httpx.codes.UNAUTHORIZED:
            return response

        logger.warning("Gateway rejected bearer token, refreshing", path=path)
        cached = self.token_cache.cached
        # Another caller may already have replaced the rejected token
        if cached is not None and cached.value == token:
            await self.token_cache.invalidate()
        token = await self.token_cache.get()
        return await self._post(url, payload, token, headers)


def build_gateway_token_cache(
    settings: Settings,
    http_client: httpx.AsyncClient,
    backend: DualBackend,
    clock: Clock = system_clock,
) -> SingleFlightCache:
    """Wire a GatewayTokenFetcher into a SingleFlightCache from settings."""
    return SingleFlightCache(
        "azampay",
        GatewayTokenFetcher(settings, http_client, clock=clock),
        backend,
        clock_skew_seconds=settings.gateway_clock_skew_seconds,
        min_cacheable_ttl_seconds=settings.gateway_min_cacheable_ttl_seconds,
        local_ttl_cap_seconds=settings.gateway_local_ttl_cap_seconds,
        fetch_timeout_seconds=settings.gateway_fetch_timeout_seconds,
        clock=clock,
    )
