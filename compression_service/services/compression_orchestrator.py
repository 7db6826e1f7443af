"""
Compression Orchestrator Service
================================

WHAT IS THE COMPRESSION ORCHESTRATOR?
-------------------------------------
The CompressionOrchestrator is the single entry point for compressing an
image. It does not talk to any provider API itself; it coordinates the
deduplicator, the quality tier selector, the circuit breakers, the racer
and the metrics collector so that one ``compress()`` call either returns a
compressed buffer or a classified failure.

THE REQUEST LIFECYCLE:
----------------------

┌─────────────────────────────────────────────────────────────────┐
│ STAGE 1: DEDUP CHECK                                            │
│ - Same dedupe key already in flight? Await that outcome instead │
└─────────────────────────────────────────────────────────────────┘
                            ↓
┌─────────────────────────────────────────────────────────────────┐
│ STAGE 2: TIER SELECTION                                         │
│ - Input size → (quality, target width)                          │
└─────────────────────────────────────────────────────────────────┘
                            ↓
┌─────────────────────────────────────────────────────────────────┐
│ STAGE 3: PROVIDER SELECTION                                     │
│ - Configured providers, in priority order, whose circuit allows │
│   an attempt. None eligible → fail immediately, no I/O          │
└─────────────────────────────────────────────────────────────────┘
                            ↓
┌─────────────────────────────────────────────────────────────────┐
│ STAGE 4/5: PROVIDER RACE                                        │
│ - One retried attempt per provider, concurrently                │
│ - First success wins; every settled attempt updates its circuit │
└─────────────────────────────────────────────────────────────────┘
                            ↓
┌─────────────────────────────────────────────────────────────────┐
│ STAGE 6: METRICS                                                │
│ - Totals, bytes, EWMA latency, per-provider tallies             │
└─────────────────────────────────────────────────────────────────┘

STATE OWNERSHIP:
----------------
Circuit table, in-flight registry and metrics belong to this instance and
live as long as it does. Nothing is module-level. Build one orchestrator
per process (see ``create_compression_orchestrator``) and inject it.

THREAD SAFETY:
--------------
Not thread-safe, and it does not need to be: all shared state is mutated
in synchronous sections of a single event loop. Running it from several
threads would require ordinary locks around that state.
"""

import asyncio
import time
import uuid
from typing import Any

import httpx

from compression_service.core.config.constants import Stage
from compression_service.core.config.settings import Settings, get_settings
from compression_service.core.exceptions import (
    CompressionError,
    InvalidImageError,
    NoProviderAvailableError,
)
from compression_service.core.logging.logger import (
    clear_request_id,
    get_logger,
    get_request_id,
    log_stage,
    set_request_id,
)
from compression_service.core.resilience.circuit_breaker import CircuitBreakerRegistry
from compression_service.core.resilience.request_deduplicator import RequestDeduplicator
from compression_service.models import (
    CompressionRequest,
    CompressionResult,
    CompressionServiceConfig,
    ProviderHealth,
    ProviderQuota,
    QualityTier,
)
from compression_service.monitoring.metrics_collector import MetricsCollector
from compression_service.providers.base_provider import BaseCompressionProvider
from compression_service.providers.provider_registry import build_providers
from compression_service.services.provider_racer import ProviderRacer
from compression_service.services.quality_tiers import QualityTierSelector

logger = get_logger(__name__)


class CompressionOrchestrator:
    """
    Resilient multi-provider image compression.

    Args:
        config: Service configuration, built once at startup
        providers: Provider instances by name; discovered from ``config``
            when omitted. Only configured providers named in
            ``config.provider_priority`` are attempted, in that order.
        client: Shared httpx client for discovered providers
        clock: Monotonic clock for circuit breakers, injectable for tests

    Usage:
        orchestrator = create_compression_orchestrator()
        result = await orchestrator.compress(data, dedupe_key="uploads/a.jpg")
    """

    def __init__(
        self,
        config: CompressionServiceConfig | None = None,
        providers: dict[str, BaseCompressionProvider] | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        clock=time.monotonic,
    ):
        self.config = config or CompressionServiceConfig()
        self._tiers = QualityTierSelector(self.config.quality_tiers)

        if providers is None:
            providers = build_providers(self.config, client=client)
        self._providers = dict(providers)

        # Only providers named in the priority list are ever attempted
        self._attempt_order = [
            name for name in self.config.provider_priority if name in self._providers
        ]
        self._known_order = self._attempt_order + [
            name for name in self._providers if name not in self._attempt_order
        ]

        configured = self.get_configured_providers()
        self._circuits = CircuitBreakerRegistry(
            self.config.circuit_breaker, providers=configured, clock=clock
        )
        self._metrics = MetricsCollector()
        self._deduplicator: RequestDeduplicator[CompressionResult] = RequestDeduplicator()
        self._racer = ProviderRacer(
            self._circuits,
            self._metrics,
            max_attempts=self.config.max_retries,
            retry_delay_ms=self.config.retry_delay_ms,
            max_retry_delay_ms=self.config.max_retry_delay_ms,
            cancel_losing_attempts=self.config.cancel_losing_attempts,
        )

        logger.info(
            "CompressionOrchestrator initialized",
            stage="0.0",
            configured_providers=configured,
            provider_priority=list(self.config.provider_priority),
            cancel_losing_attempts=self.config.cancel_losing_attempts,
        )

    # ========================================================================
    # MAIN ENTRY POINT
    # ========================================================================

    async def compress(self, image_data: bytes, dedupe_key: str | None = None) -> CompressionResult:
        """
        Compress ``image_data`` with the first provider that succeeds.

        Args:
            image_data: Raw image bytes (treated as opaque)
            dedupe_key: Optional key; concurrent calls sharing it run once

        Returns:
            CompressionResult from the winning provider

        Raises:
            InvalidImageError: ``image_data`` is empty
            NoProviderAvailableError: Nothing configured or every circuit open
            AllProvidersFailedError: Every attempted provider failed
        """
        if not image_data:
            raise InvalidImageError("Cannot compress an empty image", details={"size": 0})

        if dedupe_key and dedupe_key in self._deduplicator:
            self._metrics.record_deduplicated()

        log_stage(
            logger,
            Stage.DEDUP_CHECK,
            "Compression requested",
            level="debug",
            dedupe_key=dedupe_key,
            input_bytes=len(image_data),
        )
        return await self._deduplicator.run(dedupe_key, lambda: self._do_compress(image_data))

    async def _do_compress(self, image_data: bytes) -> CompressionResult:
        """The single underlying operation behind one or more compress() calls."""
        inherited_request_id = get_request_id()
        set_request_id(inherited_request_id or uuid.uuid4().hex[:12])
        try:
            return await self._run_pipeline(image_data)
        finally:
            if inherited_request_id is None:
                clear_request_id()

    async def _run_pipeline(self, image_data: bytes) -> CompressionResult:
        start_time = time.perf_counter()
        input_bytes = len(image_data)

        try:
            # STAGE 2: tier selection
            tier = self.select_tier(input_bytes)
            request = CompressionRequest(
                image_data=image_data,
                target_width=tier.width,
                quality=tier.quality,
            )
            log_stage(
                logger,
                Stage.TIER_SELECTION,
                "Quality tier selected",
                input_bytes=input_bytes,
                quality=tier.quality,
                width=tier.width,
            )

            # STAGE 3: eligible providers, consuming half-open trial slots
            eligible = [
                self._providers[name]
                for name in self.get_configured_providers()
                if self._circuits.can_attempt(name)
            ]
            if not eligible:
                raise NoProviderAvailableError(
                    "No compression providers available (all circuits open or unconfigured)",
                    request_id=get_request_id(),
                    details={"configured": self.get_configured_providers()},
                ).with_suggestion("Store the original bytes and retry after the circuit reset timeout")

            log_stage(
                logger,
                Stage.PROVIDER_SELECTION,
                "Providers selected",
                providers=[provider.name for provider in eligible],
            )

            # STAGE 4/5: race
            outcome = await self._racer.race(eligible, request)

        except CompressionError as e:
            latency_ms = (time.perf_counter() - start_time) * 1000
            self._metrics.record_failure(e.category.value, latency_ms)
            log_stage(
                logger,
                Stage.METRICS,
                "Compression failed",
                level="warning",
                error_type=type(e).__name__,
                category=e.category.value,
                error=e.message,
                latency_ms=round(latency_ms, 2),
            )
            raise

        # STAGE 6: metrics
        result = outcome.result
        result.latency_ms = round((time.perf_counter() - start_time) * 1000, 2)
        self._metrics.record_success(input_bytes, result, result.latency_ms)

        log_stage(
            logger,
            Stage.METRICS,
            "Compression complete",
            provider=result.provider,
            method=result.method,
            input_bytes=input_bytes,
            output_bytes=result.size,
            saved_percent=round((1 - result.size / input_bytes) * 100),
            latency_ms=result.latency_ms,
        )
        return result

    # ========================================================================
    # POLICY HELPERS
    # ========================================================================

    def select_tier(self, byte_size: int) -> QualityTier:
        return self._tiers.select_tier(byte_size)

    def should_compress(self, byte_size: int) -> bool:
        """Caller-side policy: inputs below the skip threshold are stored as-is."""
        return byte_size >= self.config.skip_threshold

    # ========================================================================
    # INTROSPECTION
    # ========================================================================

    def get_configured_providers(self) -> list[str]:
        """Configured providers in attempt order."""
        return [name for name in self._attempt_order if self._providers[name].is_configured()]

    def has_available_provider(self) -> bool:
        """True when at least one configured provider's circuit would allow an attempt."""
        return any(self._circuits.is_available(name) for name in self.get_configured_providers())

    async def check_health(self) -> dict[str, ProviderHealth]:
        """
        Probe every known provider concurrently, configured or not.

        STAGE-H.1: Health check
        """
        names = list(self._known_order)
        results = await asyncio.gather(*(self._providers[name].check_health() for name in names))
        health = dict(zip(names, results))
        logger.info(
            "Health check complete",
            stage=Stage.HEALTH_CHECK.value,
            statuses={name: h.status.value for name, h in health.items()},
        )
        return health

    def get_quotas(self) -> dict[str, ProviderQuota]:
        return {name: self._providers[name].get_quota() for name in self.get_configured_providers()}

    def get_circuits(self) -> dict[str, dict[str, Any]]:
        return self._circuits.get_all_stats()

    def get_metrics(self) -> dict[str, Any]:
        return self._metrics.snapshot()

    def get_debug_info(self) -> dict[str, dict[str, Any]]:
        return {
            name: self._providers[name].get_debug_info()
            for name in self.get_configured_providers()
        }

    @property
    def circuits(self) -> CircuitBreakerRegistry:
        return self._circuits

    @property
    def metrics_collector(self) -> MetricsCollector:
        return self._metrics

    @property
    def providers(self) -> dict[str, BaseCompressionProvider]:
        return dict(self._providers)

    @property
    def in_flight(self) -> int:
        return len(self._deduplicator)

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def wait_for_background_tasks(self) -> None:
        """Wait for losing race attempts and provider cleanup tasks."""
        await self._racer.wait_for_detached()
        for provider in self._providers.values():
            await provider.wait_for_background_tasks()

    async def aclose(self) -> None:
        await self._racer.wait_for_detached()
        for provider in self._providers.values():
            await provider.aclose()
        logger.info("CompressionOrchestrator closed", stage="0.9")


def create_compression_orchestrator(
    settings: Settings | None = None,
    client: httpx.AsyncClient | None = None,
) -> CompressionOrchestrator:
    """
    Build an orchestrator from settings, reading configuration exactly once.

    Args:
        settings: Settings instance; the global one when omitted
        client: Optional shared httpx client for all providers
    """
    settings = settings or get_settings()
    return CompressionOrchestrator(settings.to_service_config(), client=client)

