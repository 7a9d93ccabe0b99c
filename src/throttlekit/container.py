"""
Process wiring: builds every component from Settings and owns their lifecycle.

Usage (e.g. in an ASGI lifespan):

    container = Container.build(get_settings())
    await container.start()
    ...
    await container.aclose()
"""
from __future__ import annotations

from typing import Optional

import httpx

from throttlekit.config import Settings
from throttlekit.credentials.gateway import GatewayClient, build_gateway_token_cache
from throttlekit.credentials.single_flight import SingleFlightCache
from throttlekit.infrastructure.observability.logger import configure_logging, get_logger
from throttlekit.infrastructure.store.backend import DualBackend
from throttlekit.infrastructure.store.memory_store import MemoryStore
from throttlekit.infrastructure.store.redis_store import RedisStore
from throttlekit.infrastructure.store.store_protocol import Clock, KeyValueStore, system_clock
from throttlekit.limiter.trackers import BookingCodeAttemptTracker, LoginAttemptTracker
from throttlekit.workers.store_sweep_worker import StoreSweepWorker

logger = get_logger(__name__)


class Container:
    def __init__(
        self,
        settings: Settings,
        backend: DualBackend,
        login_tracker: LoginAttemptTracker,
        booking_code_tracker: BookingCodeAttemptTracker,
        sweeper: StoreSweepWorker,
        http_client: Optional[httpx.AsyncClient] = None,
        gateway_token_cache: Optional[SingleFlightCache] = None,
        gateway_client: Optional[GatewayClient] = None,
        owns_http_client: bool = False,
    ) -> None:
        self.settings = settings
        self.backend = backend
        self.login_tracker = login_tracker
        self.booking_code_tracker = booking_code_tracker
        self.sweeper = sweeper
        self.http_client = http_client
        self.gateway_token_cache = gateway_token_cache
        self.gateway_client = gateway_client
        self._owns_http_client = owns_http_client

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        primary: Optional[KeyValueStore] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        with_gateway: bool = True,
        clock: Clock = system_clock,
    ) -> "Container":
        """
        Construct all components.

        Args:
            settings: Validated settings
            primary: Distributed store override; defaults to RedisStore when
                REDIS_URL is set, otherwise process-local only
            http_client: Shared httpx client for the gateway; created if absent
            with_gateway: Build the payment gateway token cache and client.
                Missing gateway secrets raise ConfigurationError here.
            clock: Wall-clock source

        Raises:
            ConfigurationError: invalid or missing required configuration
        """
        if primary is None and settings.redis_url:
            primary = RedisStore.from_url(
                settings.redis_url,
                namespace=settings.redis_namespace,
                socket_timeout=settings.redis_socket_timeout,
                operation_timeout=settings.redis_operation_timeout_seconds,
            )
        backend = DualBackend(primary, MemoryStore(clock=clock))

        gateway_token_cache = None
        gateway_client = None
        owns_http_client = False
        if with_gateway:
            if http_client is None:
                http_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.gateway_fetch_timeout_seconds))
                owns_http_client = True
            gateway_token_cache = build_gateway_token_cache(settings, http_client, backend, clock=clock)
            gateway_client = GatewayClient(
                gateway_token_cache,
                http_client,
                settings.azampay_api_url,
                timeout=settings.gateway_fetch_timeout_seconds,
            )

        return cls(
            settings=settings,
            backend=backend,
            login_tracker=LoginAttemptTracker.from_settings(backend, settings, clock),
            booking_code_tracker=BookingCodeAttemptTracker.from_settings(backend, settings, clock),
            sweeper=StoreSweepWorker(backend.fallback, interval=settings.store_sweep_interval_seconds),
            http_client=http_client,
            gateway_token_cache=gateway_token_cache,
            gateway_client=gateway_client,
            owns_http_client=owns_http_client,
        )

    async def start(self, *, configure_logs: bool = False) -> None:
        if configure_logs:
            configure_logging(self.settings.log_level, json_logs=self.settings.log_json)
        if self.backend.primary is not None and not await self.backend.primary.ping():
            logger.warning("Distributed store unreachable at startup; starting in process-local mode")
        self.sweeper.start()
        logger.info("Throttling core started", settings=self.settings.safe_dict())

    async def aclose(self) -> None:
        await self.sweeper.stop()
        if self._owns_http_client and self.http_client is not None:
            await self.http_client.aclose()
        await self.backend.close()

    async def __aenter__(self) -> "Container":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
