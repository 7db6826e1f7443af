from .compression import (
    DEFAULT_QUALITY_TIERS,
    CircuitBreakerConfig,
    CircuitBreakerState,
    CloudinaryConfig,
    CompressionRequest,
    CompressionResult,
    CompressionServiceConfig,
    ProviderHealth,
    ProviderQuota,
    QualityTier,
    ServiceMetrics,
    TinyPNGConfig,
)

__all__ = [
    "DEFAULT_QUALITY_TIERS",
    "CircuitBreakerConfig",
    "CircuitBreakerState",
    "CloudinaryConfig",
    "CompressionRequest",
    "CompressionResult",
    "CompressionServiceConfig",
    "ProviderHealth",
    "ProviderQuota",
    "QualityTier",
    "ServiceMetrics",
    "TinyPNGConfig",
]
