"""
Image Compression Service

Resilient multi-provider image compression: provider racing with retry,
per-provider circuit breakers, size-based quality tiers, in-flight request
deduplication and service metrics.

Usage:
    from compression_service import create_compression_orchestrator

    orchestrator = create_compression_orchestrator()
    result = await orchestrator.compress(image_bytes, dedupe_key="uploads/a.jpg")
"""

from compression_service.core.config.settings import Settings, get_settings
from compression_service.core.exceptions import (
    AllProvidersFailedError,
    CompressionBaseError,
    CompressionError,
    ConfigurationError,
    InvalidImageError,
    NoProviderAvailableError,
    ProviderError,
)
from compression_service.models import (
    CompressionRequest,
    CompressionResult,
    CompressionServiceConfig,
    ProviderHealth,
    ProviderQuota,
    QualityTier,
    ServiceMetrics,
)
from compression_service.services import CompressionOrchestrator, create_compression_orchestrator

__version__ = "1.0.0"

__all__ = [
    "CompressionOrchestrator",
    "create_compression_orchestrator",
    "Settings",
    "get_settings",
    "CompressionRequest",
    "CompressionResult",
    "CompressionServiceConfig",
    "ProviderHealth",
    "ProviderQuota",
    "QualityTier",
    "ServiceMetrics",
    "CompressionBaseError",
    "CompressionError",
    "ConfigurationError",
    "ProviderError",
    "AllProvidersFailedError",
    "NoProviderAvailableError",
    "InvalidImageError",
]
