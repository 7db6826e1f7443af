"""
Configuration Module

Centralized, type-safe configuration for the compression service.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: System-wide constants, enums, and defaults

Usage:
------
```python
from compression_service.core.config import get_settings
from compression_service.core.config.constants import Stage, CircuitState

settings = get_settings()
config = settings.to_service_config()

log_level = settings.logging.LOG_LEVEL
threshold = config.circuit_breaker.failure_threshold
```

Environment Variables:
---------------------
```bash
# Providers (missing credentials silently disable a provider)
TINIFY_API_KEY=...
CLOUDINARY_CLOUD_NAME=...
CLOUDINARY_API_KEY=...
CLOUDINARY_API_SECRET=...

# Orchestration
COMPRESSION_PROVIDER_PRIORITY='["tinypng", "cloudinary"]'
COMPRESSION_TIMEOUT_MS=30000
COMPRESSION_MAX_RETRIES=2

# Circuit Breaker
CB_FAILURE_THRESHOLD=3
CB_RESET_TIMEOUT_MS=60000

# Logging
LOG_LEVEL=INFO
LOG_FORMAT=json
```

Testing:
-------
```python
import os
from compression_service.core.config import reload_settings

os.environ["TINIFY_API_KEY"] = "test-key"
settings = reload_settings()
assert settings.to_service_config().tinypng.api_key == "test-key"
```

Author: System Architect
Date: 2026-10-19
"""

from compression_service.core.config.constants import (
    CB_FAILURE_THRESHOLD,
    CB_HALF_OPEN_MAX_ATTEMPTS,
    CB_RESET_TIMEOUT_MS,
    CB_SUCCESSES_TO_CLOSE,
    DOWNLOAD_TIMEOUT_MS,
    HEADER_REQUEST_ID,
    HEALTH_CHECK_TIMEOUT_MS,
    MAX_RETRIES,
    PROVIDER_LIMITS,
    REQUEST_TIMEOUT_MS,
    RETRY_BASE_DELAY_MS,
    RETRY_MAX_DELAY_MS,
    SKIP_THRESHOLD_BYTES,
    CircuitState,
    ErrorType,
    FailureCategory,
    HealthState,
    ProviderName,
    Stage,
)
from compression_service.core.config.settings import Settings, get_settings, reload_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "reload_settings",
    # Enums
    "Stage",
    "ProviderName",
    "CircuitState",
    "HealthState",
    "ErrorType",
    "FailureCategory",
    # Timeouts
    "REQUEST_TIMEOUT_MS",
    "DOWNLOAD_TIMEOUT_MS",
    "HEALTH_CHECK_TIMEOUT_MS",
    # Retry
    "MAX_RETRIES",
    "RETRY_BASE_DELAY_MS",
    "RETRY_MAX_DELAY_MS",
    # Circuit breaker
    "CB_FAILURE_THRESHOLD",
    "CB_RESET_TIMEOUT_MS",
    "CB_HALF_OPEN_MAX_ATTEMPTS",
    "CB_SUCCESSES_TO_CLOSE",
    # Policy
    "SKIP_THRESHOLD_BYTES",
    "PROVIDER_LIMITS",
    # HTTP headers
    "HEADER_REQUEST_ID",
]
