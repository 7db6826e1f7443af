"""
System Constants and Enumerations

This module defines system-wide constants and enumerations used across
the compression service.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for magic numbers
- Type-safe enums for state management
- Easy to update and track changes

Author: System Architect
Date: 2026-10-19
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for logging)
# ============================================================================


class Stage(str, Enum):
    """
    Compression processing stages.

    Format: {SEQUENCE}_{DESCRIPTIVE_NAME}

    Each stage represents a major phase of a compress() call and is attached
    to log entries as ``stage=...`` so a single request can be followed
    through the logs.
    """

    DEDUP_CHECK = "1.0_DEDUP_CHECK"
    TIER_SELECTION = "2.0_TIER_SELECTION"
    PROVIDER_SELECTION = "3.0_PROVIDER_SELECTION"
    PROVIDER_RACE = "4.0_PROVIDER_RACE"
    PROVIDER_CALL = "5.0_PROVIDER_CALL"
    METRICS = "6.0_METRICS"

    # Circuit breaker sub-stages
    CB_STATE_CHECK = "CB.1_CIRCUIT_STATE_CHECK"
    CB_TRANSITION = "CB.2_CIRCUIT_TRANSITION"

    # Health / quota
    HEALTH_CHECK = "H.1_HEALTH_CHECK"
    CLEANUP = "C.1_REMOTE_CLEANUP"


class ProviderName(str, Enum):
    """Supported compression backends."""

    TINYPNG = "tinypng"
    CLOUDINARY = "cloudinary"


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class HealthState(str, Enum):
    """Provider health status values."""

    OK = "ok"
    DEGRADED = "degraded"
    ERROR = "error"
    UNCONFIGURED = "unconfigured"


class ErrorType(str, Enum):
    """Classification attached to every provider error."""

    TIMEOUT = "timeout"
    QUOTA = "quota"
    VALIDATION = "validation"
    NETWORK = "network"
    SERVICE = "service"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


class FailureCategory(str, Enum):
    """
    Top-level failure axis exposed to callers of compress().

    TRANSIENT: timeout/network, worth retrying later
    EXHAUSTED: every provider reported quota exhaustion
    STRUCTURAL: nothing configured or every circuit open
    REJECTED: providers refused the input (validation/service)
    """

    TRANSIENT = "transient"
    EXHAUSTED = "exhausted"
    STRUCTURAL = "structural"
    REJECTED = "rejected"


# ============================================================================
# Timeouts (milliseconds)
# ============================================================================

REQUEST_TIMEOUT_MS = 30_000
DOWNLOAD_TIMEOUT_MS = 20_000
HEALTH_CHECK_TIMEOUT_MS = 10_000

# ============================================================================
# Retry Configuration
# ============================================================================

MAX_RETRIES = 2
RETRY_BASE_DELAY_MS = 1_000
RETRY_MAX_DELAY_MS = 5_000

# ============================================================================
# Circuit Breaker Defaults
# ============================================================================

CB_FAILURE_THRESHOLD = 3
CB_RESET_TIMEOUT_MS = 60_000
CB_HALF_OPEN_MAX_ATTEMPTS = 1
CB_SUCCESSES_TO_CLOSE = 2

# ============================================================================
# Sizes
# ============================================================================

KB = 1024
MB = 1024 * KB

SKIP_THRESHOLD_BYTES = 100 * KB

# (max_size, quality, width) - last tier is unbounded
DEFAULT_QUALITY_TIER_TABLE: tuple[tuple[float, str, int], ...] = (
    (500 * KB, "good", 1000),
    (1 * MB, "eco", 900),
    (3 * MB, "eco", 800),
    (5 * MB, "low", 700),
    (float("inf"), "low", 600),
)

# ============================================================================
# Metrics
# ============================================================================

# EWMA weight given to the newest latency sample
LATENCY_EWMA_WEIGHT = 0.1

# ============================================================================
# Health Scoring
# ============================================================================

HEALTH_SCORE_OK_THRESHOLD = 70

# ============================================================================
# Provider Limits
# ============================================================================

PROVIDER_LIMITS: dict[ProviderName, dict[str, int]] = {
    ProviderName.TINYPNG: {"monthly": 500, "warning_threshold": 450},
    ProviderName.CLOUDINARY: {"monthly": 25, "warning_threshold": 22},  # credits
}

# ============================================================================
# Provider Endpoints
# ============================================================================

TINYPNG_API_BASE = "https://api.tinify.com"
CLOUDINARY_API_BASE = "https://api.cloudinary.com"

HEADER_COMPRESSION_COUNT = "Compression-Count"

# ============================================================================
# Log Correlation
# ============================================================================

HEADER_REQUEST_ID = "X-Request-ID"
