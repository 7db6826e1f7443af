"""
Exception Module

Structured exception hierarchy for the compression service.

Module Structure:
-----------------
- **base.py**: CompressionBaseError base class + ConfigurationError
- **provider.py**: Per-provider errors, each classified by ErrorType
- **compression.py**: Errors surfaced by compress(), each with a FailureCategory

Usage:
------
```python
from compression_service.core.exceptions import (
    AllProvidersFailedError,
    NoProviderAvailableError,
)

try:
    result = await orchestrator.compress(data, dedupe_key=path)
except NoProviderAvailableError:
    ...  # structural: store the original bytes
except AllProvidersFailedError as e:
    if e.is_retryable:
        ...
```

Author: System Architect
Date: 2026-10-19
"""

from compression_service.core.exceptions.base import CompressionBaseError, ConfigurationError
from compression_service.core.exceptions.compression import (
    AllProvidersFailedError,
    CompressionError,
    InvalidImageError,
    NoProviderAvailableError,
    classify_error,
)
from compression_service.core.exceptions.provider import (
    ProviderAPIError,
    ProviderError,
    ProviderNetworkError,
    ProviderNotConfiguredError,
    ProviderQuotaExceededError,
    ProviderTimeoutError,
)

__all__ = [
    # Base
    "CompressionBaseError",
    "ConfigurationError",
    # Provider
    "ProviderError",
    "ProviderTimeoutError",
    "ProviderNetworkError",
    "ProviderQuotaExceededError",
    "ProviderAPIError",
    "ProviderNotConfiguredError",
    # Compression
    "CompressionError",
    "AllProvidersFailedError",
    "NoProviderAvailableError",
    "InvalidImageError",
    "classify_error",
]
