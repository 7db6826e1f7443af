"""
Compression Domain Models

Plain dataclasses shared by providers, the resilience layer and the
orchestrator. They carry no behaviour beyond small conveniences; anything
that talks to the network lives in ``compression_service.providers``.
"""

import math
import time
from dataclasses import dataclass, field

from compression_service.core.config.constants import (
    CB_FAILURE_THRESHOLD,
    CB_HALF_OPEN_MAX_ATTEMPTS,
    CB_RESET_TIMEOUT_MS,
    CB_SUCCESSES_TO_CLOSE,
    DEFAULT_QUALITY_TIER_TABLE,
    DOWNLOAD_TIMEOUT_MS,
    HEALTH_CHECK_TIMEOUT_MS,
    MAX_RETRIES,
    REQUEST_TIMEOUT_MS,
    RETRY_BASE_DELAY_MS,
    RETRY_MAX_DELAY_MS,
    SKIP_THRESHOLD_BYTES,
    CircuitState,
    HealthState,
    ProviderName,
)


@dataclass(frozen=True)
class CompressionRequest:
    """
    A single compression job handed to a provider.

    Attributes:
        image_data: Raw image bytes (opaque)
        target_width: Target width in pixels
        quality: Quality tier label ("good", "eco", "low")
        dedupe_key: Optional caller-supplied deduplication key
    """
    image_data: bytes
    target_width: int
    quality: str
    dedupe_key: str | None = None

    @property
    def size(self) -> int:
        return len(self.image_data)


@dataclass
class CompressionResult:
    """
    Output of a successful compression.

    Attributes:
        buffer: Compressed image bytes
        method: Method descriptor, e.g. "tinypng@800px"
        provider: Provider that produced the buffer
        quality: Quality tier label used
        latency_ms: Provider processing time in milliseconds
    """
    buffer: bytes
    method: str
    provider: str
    quality: str | None = None
    latency_ms: float = 0.0

    @property
    def size(self) -> int:
        return len(self.buffer)


@dataclass
class ProviderHealth:
    """Result of a provider connectivity probe."""
    provider: str
    status: HealthState
    health_score: int
    latency_ms: float
    message: str
    configured: bool
    last_checked: float = field(default_factory=time.time)


@dataclass
class ProviderQuota:
    """Tracked usage against a provider's periodic allowance."""
    provider: str
    used: int
    limit: int
    remaining: int
    percent_used: float
    exhausted: bool = False
    last_checked: float = 0.0

    @classmethod
    def fresh(cls, provider: str, limit: int) -> "ProviderQuota":
        """Quota record for a provider that has not been called yet."""
        return cls(
            provider=provider,
            used=0,
            limit=limit,
            remaining=limit,
            percent_used=0.0,
        )


@dataclass
class CircuitBreakerState:
    """Mutable per-provider circuit breaker state."""
    state: CircuitState = CircuitState.CLOSED
    failures: int = 0
    last_failure_time: float = 0.0
    half_open_attempts: int = 0
    consecutive_successes: int = 0


@dataclass(frozen=True)
class QualityTier:
    """
    Size-based compression policy.

    A tier matches every input whose size is <= max_size.
    """
    max_size: float
    quality: str
    width: int

    @property
    def unbounded(self) -> bool:
        return math.isinf(self.max_size)


DEFAULT_QUALITY_TIERS: tuple[QualityTier, ...] = tuple(
    QualityTier(max_size=max_size, quality=quality, width=width)
    for max_size, quality, width in DEFAULT_QUALITY_TIER_TABLE
)


@dataclass
class ServiceMetrics:
    """Cumulative counters over the orchestrator's lifetime."""
    requests_total: int = 0
    requests_success: int = 0
    requests_failed: int = 0
    bytes_processed: int = 0
    bytes_saved: int = 0
    avg_latency_ms: float = 0.0
    compressions_by_provider: dict[str, int] = field(
        default_factory=lambda: {name.value: 0 for name in ProviderName}
    )
    failures_by_provider: dict[str, int] = field(
        default_factory=lambda: {name.value: 0 for name in ProviderName}
    )
    start_time: float = field(default_factory=time.time)


# ============================================================================
# Configuration Records
# ============================================================================


@dataclass(frozen=True)
class TinyPNGConfig:
    """Credentials for the TinyPNG backend."""
    api_key: str = ""


@dataclass(frozen=True)
class CloudinaryConfig:
    """Credentials for the Cloudinary backend."""
    cloud_name: str = ""
    api_key: str = ""
    api_secret: str = ""


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = CB_FAILURE_THRESHOLD
    reset_timeout_ms: int = CB_RESET_TIMEOUT_MS
    half_open_max_attempts: int = CB_HALF_OPEN_MAX_ATTEMPTS
    successes_to_close: int = CB_SUCCESSES_TO_CLOSE


@dataclass(frozen=True)
class CompressionServiceConfig:
    """
    Everything the orchestrator needs, built once at startup.

    Credentials are optional: a provider whose credentials are missing is
    excluded from attempts rather than failing construction.
    """
    provider_priority: tuple[str, ...] = (
        ProviderName.TINYPNG.value,
        ProviderName.CLOUDINARY.value,
    )
    timeout_ms: int = REQUEST_TIMEOUT_MS
    download_timeout_ms: int = DOWNLOAD_TIMEOUT_MS
    health_timeout_ms: int = HEALTH_CHECK_TIMEOUT_MS
    max_retries: int = MAX_RETRIES
    retry_delay_ms: int = RETRY_BASE_DELAY_MS
    max_retry_delay_ms: int = RETRY_MAX_DELAY_MS
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    quality_tiers: tuple[QualityTier, ...] = DEFAULT_QUALITY_TIERS
    skip_threshold: int = SKIP_THRESHOLD_BYTES
    cancel_losing_attempts: bool = False
    tinypng: TinyPNGConfig | None = None
    cloudinary: CloudinaryConfig | None = None
