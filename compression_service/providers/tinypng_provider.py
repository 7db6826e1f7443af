#!/usr/bin/env python3
"""
TinyPNG Compression Provider Implementation

Two-phase compression against the Tinify API:

1. ``POST /shrink`` uploads the raw bytes and returns a compressed,
   unsized result plus the running ``Compression-Count`` usage counter.
2. ``POST <output url>`` with a ``resize`` body asks for a fit-within-width
   version of that result.

Resize is best-effort: if phase 2 fails for any reason the phase-1 output
is downloaded and returned instead. Compression itself is not optional.

Author: System Architect
Date: 2026-10-19
"""

import time
from typing import Any

import httpx

from compression_service.core.config.constants import (
    HEADER_COMPRESSION_COUNT,
    TINYPNG_API_BASE,
    ProviderName,
    Stage,
)
from compression_service.core.exceptions import (
    ProviderAPIError,
    ProviderError,
    ProviderQuotaExceededError,
)
from compression_service.core.logging.logger import get_logger
from compression_service.models import (
    CompressionRequest,
    CompressionResult,
    ProviderHealth,
    TinyPNGConfig,
)
from compression_service.providers.base_provider import (
    BaseCompressionProvider,
    latency_penalty,
    mask_secret,
)

logger = get_logger(__name__)


class TinyPNGProvider(BaseCompressionProvider):
    """
    Concrete implementation of the TinyPNG provider.

    STAGE-TINYPNG: TinyPNG provider operations

    Quota is a per-call counter read from every response. A 429 marks the
    provider exhausted; later calls fail without a network round-trip.
    """

    name = ProviderName.TINYPNG.value
    display_name = "TinyPNG"

    def __init__(
        self,
        config: TinyPNGConfig | None = None,
        *,
        api_base: str = TINYPNG_API_BASE,
        **kwargs,
    ):
        self.config = config or TinyPNGConfig()
        self.api_base = api_base.rstrip("/")
        super().__init__(**kwargs)

    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    @property
    def unconfigured_message(self) -> str:
        return "TINIFY_API_KEY not configured"

    @property
    def _auth(self) -> tuple[str, str]:
        return ("api", self.config.api_key)

    def _record_usage(self, response: httpx.Response) -> None:
        count = response.headers.get(HEADER_COMPRESSION_COUNT)
        if not count:
            return
        try:
            self.update_quota(int(count))
        except ValueError:
            logger.debug(
                "Ignoring unparseable compression counter",
                stage=Stage.PROVIDER_CALL.value,
                provider=self.name,
                value=count,
            )

    async def _compress_internal(self, request: CompressionRequest) -> CompressionResult:
        """
        Shrink, then resize with fallback to the unsized result.

        STAGE-TINYPNG.1: Shrink
        STAGE-TINYPNG.2: Resize (best effort)
        """
        response = await self._request(
            "POST",
            f"{self.api_base}/shrink",
            auth=self._auth,
            content=request.image_data,
        )
        self._record_usage(response)

        if response.status_code == 429:
            self._quota.exhausted = True
            raise ProviderQuotaExceededError(
                "TinyPNG rate limited - quota exhausted", provider=self.name
            )

        if not response.is_success:
            raise ProviderAPIError(
                f"TinyPNG compression failed ({response.status_code}): {response.text[:100]}",
                provider=self.name,
                status_code=response.status_code,
            )

        try:
            output_url = response.json()["output"]["url"]
        except (ValueError, KeyError, TypeError) as e:
            raise ProviderAPIError(
                "TinyPNG returned an unreadable shrink response",
                provider=self.name,
                status_code=response.status_code,
            ) from e

        try:
            resized = await self._request(
                "POST",
                output_url,
                auth=self._auth,
                json={
                    "resize": {
                        "method": "fit",
                        "width": request.target_width,
                        "height": request.target_width,
                    }
                },
            )
            if resized.is_success and resized.content:
                return CompressionResult(
                    buffer=resized.content,
                    method=f"tinypng@{request.target_width}px",
                    provider=self.name,
                    quality=request.quality,
                )
            logger.warning(
                "TinyPNG resize rejected, falling back to unsized output",
                stage="TINYPNG.2",
                status_code=resized.status_code,
            )
        except ProviderError as e:
            logger.warning(
                "TinyPNG resize failed, falling back to unsized output",
                stage="TINYPNG.2",
                error_type=e.error_type.value,
                error=e.message,
            )

        download = await self._request(
            "GET",
            output_url,
            auth=self._auth,
            timeout_ms=self.download_timeout_ms,
        )
        if not download.is_success:
            raise ProviderAPIError(
                f"TinyPNG download failed: {download.status_code}",
                provider=self.name,
                status_code=download.status_code,
            )

        return CompressionResult(
            buffer=download.content,
            method="tinypng",
            provider=self.name,
            quality=request.quality,
        )

    async def _probe_health(self, start_time: float) -> ProviderHealth:
        """
        Empty-body shrink: rejected as 400/415, which proves reachability and auth.

        STAGE-TINYPNG.H: Health probe
        """
        response = await self._request(
            "POST",
            f"{self.api_base}/shrink",
            auth=self._auth,
            content=b"",
            timeout_ms=self.health_timeout_ms,
        )
        self._record_usage(response)

        if response.status_code in (400, 415):
            score = 100 - latency_penalty(self._elapsed_ms(start_time))
            percent = self._quota.percent_used
            if percent > 90:
                score -= 20
            elif percent > 75:
                score -= 10
            return self._health(
                start_time,
                score,
                f"Connected. Used: {self._quota.used}/{self._quota.limit} ({percent:.0f}%)",
            )

        if response.status_code == 429:
            self._quota.exhausted = True
            return self._error_health(start_time, "Quota exhausted")

        return self._error_health(start_time, f"Unexpected status: {response.status_code}")

    def update_quota(self, used: float) -> None:
        used = int(used)
        limit = self._quota.limit
        self._quota.used = used
        self._quota.remaining = max(0, limit - used)
        self._quota.percent_used = used / limit * 100
        self._quota.exhausted = used >= limit
        self._quota.last_checked = time.time()

    def get_debug_info(self) -> dict[str, Any]:
        return {
            "provider": self.name,
            "configured": self.is_configured(),
            "api_key_prefix": mask_secret(self.config.api_key, 8),
            "quota": self._quota_debug(),
            "api_base": self.api_base,
        }
