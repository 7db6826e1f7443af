#!/usr/bin/env python3
"""
Base Provider Abstract Class

This module defines the abstract base class for all compression providers.
Concrete implementations (TinyPNG, Cloudinary) inherit from this class.

Architectural Decision: Abstract base class for consistent patterns
- Common interface for all providers, so adding one needs no orchestrator change
- Every network call bounded by asyncio.wait_for and the httpx timeout
- Transport failures classified into the provider error taxonomy in one place
- Detached background work tracked so it can be awaited on shutdown

Author: System Architect
Date: 2026-10-19
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Coroutine
from dataclasses import asdict, replace
from typing import Any

import httpx

from compression_service.core.config.constants import (
    DOWNLOAD_TIMEOUT_MS,
    HEALTH_CHECK_TIMEOUT_MS,
    HEALTH_SCORE_OK_THRESHOLD,
    PROVIDER_LIMITS,
    REQUEST_TIMEOUT_MS,
    HealthState,
    ProviderName,
    Stage,
)
from compression_service.core.exceptions import (
    ProviderAPIError,
    ProviderError,
    ProviderNetworkError,
    ProviderNotConfiguredError,
    ProviderQuotaExceededError,
    ProviderTimeoutError,
)
from compression_service.core.logging.logger import get_logger
from compression_service.models import (
    CompressionRequest,
    CompressionResult,
    ProviderHealth,
    ProviderQuota,
)

logger = get_logger(__name__)


def latency_penalty(latency_ms: float) -> int:
    """Health score deduction for a slow probe."""
    if latency_ms > 2000:
        return 30
    if latency_ms > 1000:
        return 15
    if latency_ms > 500:
        return 5
    return 0


def mask_secret(value: str, visible: int) -> str:
    """Keep the first ``visible`` characters of a credential."""
    return value[:visible] + "..." if value else "not set"


class BaseCompressionProvider(ABC):
    """
    Abstract base class for compression providers.

    STAGE-5: Provider base class

    This class provides:
    - compress() template: configuration and quota guards, latency, logging
    - check_health() template: unconfigured short-circuit, timeout messages
    - _request(): bounded HTTP call with error classification
    - Quota record handling and background task tracking

    Subclasses must implement:
    - is_configured(): Credential presence check
    - _compress_internal(): Provider-specific compression
    - _probe_health(): Provider-specific connectivity probe
    - update_quota(): Provider-specific quota arithmetic
    - get_debug_info(): Masked diagnostics

    Usage:
        class TinyPNGProvider(BaseCompressionProvider):
            name = ProviderName.TINYPNG.value

            async def _compress_internal(self, request):
                ...
    """

    name: str = ""
    display_name: str = ""

    def __init__(
        self,
        *,
        timeout_ms: int = REQUEST_TIMEOUT_MS,
        download_timeout_ms: int = DOWNLOAD_TIMEOUT_MS,
        health_timeout_ms: int = HEALTH_CHECK_TIMEOUT_MS,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize base provider.

        STAGE-5.0: Provider initialization

        Args:
            timeout_ms: Bound for upload/transform calls
            download_timeout_ms: Bound for result downloads
            health_timeout_ms: Bound for health probes
            client: Shared httpx client; one is created lazily when omitted
        """
        self.timeout_ms = timeout_ms
        self.download_timeout_ms = download_timeout_ms
        self.health_timeout_ms = health_timeout_ms

        self._client = client
        self._owns_client = client is None
        self._background_tasks: set[asyncio.Task] = set()

        self._quota = ProviderQuota.fresh(self.name, self.monthly_limit)

        logger.info(
            "Provider initialized",
            stage="5.0",
            provider=self.name,
            configured=self.is_configured(),
        )

    @property
    def monthly_limit(self) -> int:
        """Monthly quota of the free tier; override for providers without a built-in entry."""
        return PROVIDER_LIMITS[ProviderName(self.name)]["monthly"]

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    # ------------------------------------------------------------------
    # Capability set
    # ------------------------------------------------------------------

    @abstractmethod
    def is_configured(self) -> bool:
        """True iff the required credentials are present."""

    async def compress(self, request: CompressionRequest) -> CompressionResult:
        """
        Compress and resize an image.

        STAGE-5.1: Provider compression

        Raises:
            ProviderNotConfiguredError: Credentials missing
            ProviderQuotaExceededError: Quota known to be exhausted, or reported by the API
            ProviderTimeoutError / ProviderNetworkError / ProviderAPIError: Call failed
        """
        if not self.is_configured():
            raise ProviderNotConfiguredError(
                f"{self.display_name} credentials not configured", provider=self.name
            )

        if self._quota.exhausted:
            raise ProviderQuotaExceededError(
                f"{self.display_name} quota exhausted", provider=self.name
            )

        start_time = time.perf_counter()
        logger.debug(
            "Provider compression started",
            stage=Stage.PROVIDER_CALL.value,
            provider=self.name,
            input_bytes=request.size,
            target_width=request.target_width,
            quality=request.quality,
        )

        try:
            result = await self._compress_internal(request)
        except ProviderError as e:
            logger.warning(
                "Provider compression failed",
                stage=Stage.PROVIDER_CALL.value,
                provider=self.name,
                error_type=e.error_type.value,
                error=e.message,
            )
            raise

        if not result.buffer:
            raise ProviderAPIError(
                f"{self.display_name} returned an empty image", provider=self.name
            )

        result.latency_ms = round((time.perf_counter() - start_time) * 1000, 2)
        logger.info(
            "Provider compression succeeded",
            stage=Stage.PROVIDER_CALL.value,
            provider=self.name,
            method=result.method,
            input_bytes=request.size,
            output_bytes=result.size,
            latency_ms=result.latency_ms,
        )
        return result

    @abstractmethod
    async def _compress_internal(self, request: CompressionRequest) -> CompressionResult:
        """
        Provider-specific compression.

        STAGE-5.2: Provider-specific call

        Must raise a ProviderError subclass on failure.
        """

    async def check_health(self) -> ProviderHealth:
        """
        Probe provider connectivity.

        STAGE-H.1: Provider health check

        Never raises: failures are reported as status ``error``.
        """
        if not self.is_configured():
            return ProviderHealth(
                provider=self.name,
                status=HealthState.UNCONFIGURED,
                health_score=0,
                latency_ms=0,
                message=self.unconfigured_message,
                configured=False,
            )

        start_time = time.perf_counter()
        try:
            health = await self._probe_health(start_time)
        except ProviderTimeoutError:
            health = self._error_health(
                start_time, f"Request timeout ({self.health_timeout_ms / 1000:g}s)"
            )
        except ProviderError as e:
            health = self._error_health(start_time, e.message)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning(
                "Unreadable health response",
                stage=Stage.HEALTH_CHECK.value,
                provider=self.name,
                error=str(e),
            )
            health = self._error_health(start_time, f"API error: {e}")

        logger.info(
            "Provider health checked",
            stage=Stage.HEALTH_CHECK.value,
            provider=self.name,
            status=health.status.value,
            health_score=health.health_score,
            latency_ms=health.latency_ms,
        )
        return health

    @abstractmethod
    async def _probe_health(self, start_time: float) -> ProviderHealth:
        """Provider-specific probe; ``start_time`` is a perf_counter reading."""

    @property
    def unconfigured_message(self) -> str:
        return f"{self.display_name} credentials not configured"

    def get_quota(self) -> ProviderQuota:
        return replace(self._quota)

    @abstractmethod
    def update_quota(self, used: float) -> None:
        """Record usage reported by the provider."""

    @abstractmethod
    def get_debug_info(self) -> dict[str, Any]:
        """Credential-masked diagnostic snapshot."""

    def _quota_debug(self) -> dict[str, Any]:
        return asdict(self._quota)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return round((time.perf_counter() - start_time) * 1000, 2)

    def _health(
        self, start_time: float, score: int, message: str, status: HealthState | None = None
    ) -> ProviderHealth:
        if status is None:
            status = HealthState.OK if score >= HEALTH_SCORE_OK_THRESHOLD else HealthState.DEGRADED
        return ProviderHealth(
            provider=self.name,
            status=status,
            health_score=max(0, score),
            latency_ms=self._elapsed_ms(start_time),
            message=message,
            configured=True,
        )

    def _error_health(self, start_time: float, message: str) -> ProviderHealth:
        return self._health(start_time, 0, message, status=HealthState.ERROR)

    async def _request(
        self, method: str, url: str, *, timeout_ms: int | None = None, **kwargs
    ) -> httpx.Response:
        """
        Perform one bounded HTTP call.

        Raises:
            ProviderTimeoutError: The call exceeded ``timeout_ms``
            ProviderNetworkError: Transport-level failure
        """
        timeout_s = (timeout_ms or self.timeout_ms) / 1000
        try:
            return await asyncio.wait_for(
                self.client.request(method, url, timeout=timeout_s, **kwargs),
                timeout=timeout_s,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise ProviderTimeoutError.from_exception(
                e,
                message=f"{self.display_name} request timed out after {timeout_s:g}s",
                provider=self.name,
            ) from e
        except httpx.TransportError as e:
            raise ProviderNetworkError.from_exception(
                e,
                message=f"{self.display_name} network error: {e.__class__.__name__}",
                provider=self.name,
            ) from e

    def _spawn_background(self, coro: Coroutine[Any, Any, Any], description: str) -> asyncio.Task:
        """Run ``coro`` detached; failures are logged and never reach the caller."""
        task = asyncio.create_task(self._run_detached(coro, description))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def _run_detached(self, coro: Coroutine[Any, Any, Any], description: str) -> None:
        try:
            await coro
        except Exception as e:
            logger.warning(
                "Background task failed",
                stage=Stage.CLEANUP.value,
                provider=self.name,
                task=description,
                error_type=type(e).__name__,
                error=str(e),
            )

    @property
    def pending_background_tasks(self) -> int:
        return len(self._background_tasks)

    async def wait_for_background_tasks(self) -> None:
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Wait for detached work, then close the HTTP client if we created it."""
        await self.wait_for_background_tasks()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
