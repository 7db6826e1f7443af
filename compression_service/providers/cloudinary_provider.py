#!/usr/bin/env python3
"""
Cloudinary Compression Provider Implementation

Single-phase signed upload: the transformation (adaptive quality, automatic
format, width limit) is part of the upload request itself, so the returned
``secure_url`` already points at the compressed asset. The temporary upload
is deleted afterwards by a detached background task.

Quota is not a per-call counter here; it is derived from the account usage
percentage reported by the usage endpoint, which doubles as health probe.

Author: System Architect
Date: 2026-10-19
"""

import hashlib
import secrets
import time
from typing import Any

from compression_service.core.config.constants import (
    CLOUDINARY_API_BASE,
    HealthState,
    ProviderName,
    Stage,
)
from compression_service.core.exceptions import (
    ProviderAPIError,
    ProviderQuotaExceededError,
)
from compression_service.core.logging.logger import get_logger
from compression_service.models import (
    CloudinaryConfig,
    CompressionRequest,
    CompressionResult,
    ProviderHealth,
)
from compression_service.providers.base_provider import (
    BaseCompressionProvider,
    latency_penalty,
    mask_secret,
)

logger = get_logger(__name__)


def create_signature(params: dict[str, str], secret: str) -> str:
    """SHA-1 hex digest of the sorted ``k=v`` pairs joined by ``&``, followed by the secret."""
    payload = "&".join(f"{key}={params[key]}" for key in sorted(params))
    return hashlib.sha1((payload + secret).encode("utf-8")).hexdigest()


def build_transformation(quality: str, width: int) -> str:
    return f"q_auto:{quality},f_auto,w_{width},c_limit"


class CloudinaryProvider(BaseCompressionProvider):
    """
    Concrete implementation of the Cloudinary provider.

    STAGE-CLOUDINARY: Cloudinary provider operations
    """

    name = ProviderName.CLOUDINARY.value
    display_name = "Cloudinary"

    def __init__(
        self,
        config: CloudinaryConfig | None = None,
        *,
        api_base: str = CLOUDINARY_API_BASE,
        **kwargs,
    ):
        self.config = config or CloudinaryConfig()
        self.api_base = api_base.rstrip("/")
        super().__init__(**kwargs)

    def is_configured(self) -> bool:
        return bool(self.config.cloud_name and self.config.api_key and self.config.api_secret)

    def _api_url(self, endpoint: str) -> str:
        return f"{self.api_base}/v1_1/{self.config.cloud_name}/{endpoint}"

    def _signed_params(self, params: dict[str, str]) -> dict[str, str]:
        return {
            **params,
            "api_key": self.config.api_key,
            "signature": create_signature(params, self.config.api_secret),
        }

    async def _compress_internal(self, request: CompressionRequest) -> CompressionResult:
        """
        Signed upload with inline transformation, then download.

        STAGE-CLOUDINARY.1: Upload + transform
        STAGE-CLOUDINARY.2: Download
        STAGE-CLOUDINARY.3: Detached cleanup
        """
        public_id = f"temp_{secrets.token_hex(8)}"
        params = self._signed_params({
            "public_id": public_id,
            "timestamp": str(int(time.time())),
            "transformation": build_transformation(request.quality, request.target_width),
        })

        upload = await self._request(
            "POST",
            self._api_url("image/upload"),
            data=params,
            files={"file": ("upload", request.image_data, "application/octet-stream")},
        )

        if upload.status_code in (420, 429):
            raise ProviderQuotaExceededError(
                f"Cloudinary rate limited ({upload.status_code})", provider=self.name
            )

        if not upload.is_success:
            raise ProviderAPIError(
                f"Cloudinary upload failed ({upload.status_code}): {upload.text[:100]}",
                provider=self.name,
                status_code=upload.status_code,
            )

        try:
            try:
                secure_url = upload.json()["secure_url"]
            except (ValueError, KeyError, TypeError) as e:
                raise ProviderAPIError(
                    "Cloudinary returned an unreadable upload response",
                    provider=self.name,
                    status_code=upload.status_code,
                ) from e

            download = await self._request(
                "GET", secure_url, timeout_ms=self.download_timeout_ms
            )
        finally:
            self._spawn_background(self._destroy_asset(public_id), f"destroy {public_id}")

        if not download.is_success:
            raise ProviderAPIError(
                f"Cloudinary download failed: {download.status_code}",
                provider=self.name,
                status_code=download.status_code,
            )

        return CompressionResult(
            buffer=download.content,
            method=f"cloudinary@{request.target_width}px",
            provider=self.name,
            quality=request.quality,
        )

    async def _destroy_asset(self, public_id: str) -> None:
        """
        Delete a temporary upload.

        STAGE-C.1: Remote cleanup
        """
        params = self._signed_params({
            "public_id": public_id,
            "timestamp": str(int(time.time())),
        })
        response = await self._request("POST", self._api_url("image/destroy"), data=params)
        if response.is_success:
            logger.debug(
                "Temporary asset destroyed",
                stage=Stage.CLEANUP.value,
                provider=self.name,
                public_id=public_id,
            )
        else:
            logger.warning(
                "Temporary asset cleanup rejected",
                stage=Stage.CLEANUP.value,
                provider=self.name,
                public_id=public_id,
                status_code=response.status_code,
            )

    async def _probe_health(self, start_time: float) -> ProviderHealth:
        """
        Read account usage; updates the quota record as a side effect.

        STAGE-CLOUDINARY.H: Health probe
        """
        response = await self._request(
            "GET",
            self._api_url("usage"),
            auth=(self.config.api_key, self.config.api_secret),
            timeout_ms=self.health_timeout_ms,
        )

        if not response.is_success:
            return self._error_health(start_time, f"API error: HTTP {response.status_code}")

        try:
            data = response.json()
            credits = data.get("credits") or {}
            used_percent = float(credits.get("used_percent") or 0)
        except (ValueError, TypeError, AttributeError):
            return self._error_health(start_time, "API error: unreadable usage response")

        if credits:
            self.update_quota(used_percent)

        score = 100 - latency_penalty(self._elapsed_ms(start_time))
        if used_percent >= 90:
            score -= 30
        elif used_percent >= 75:
            score -= 15

        status = None
        if score < 70 and used_percent >= 100:
            status = HealthState.ERROR
        return self._health(
            start_time,
            score,
            f"Connected. Credits used: {used_percent:.1f}%. Plan: {data.get('plan') or 'unknown'}",
            status=status,
        )

    def update_quota(self, used: float) -> None:
        """``used`` is the account usage percentage."""
        used_percent = float(used)
        limit = self._quota.limit
        used_credits = round(used_percent / 100 * limit)
        self._quota.used = used_credits
        self._quota.remaining = max(0, limit - used_credits)
        self._quota.percent_used = used_percent
        self._quota.exhausted = used_percent >= 100
        self._quota.last_checked = time.time()

    def get_debug_info(self) -> dict[str, Any]:
        return {
            "provider": self.name,
            "configured": self.is_configured(),
            "cloud_name": self.config.cloud_name or "not set",
            "api_key_prefix": mask_secret(self.config.api_key, 6),
            "quota": self._quota_debug(),
        }
