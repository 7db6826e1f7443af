"""
Compression Exceptions

Top-level errors surfaced by ``CompressionOrchestrator.compress()``. Every
one carries a ``FailureCategory`` so callers can decide whether to retry
later, fall back to the original bytes or alert an operator.

Author: System Architect
Date: 2026-10-19
"""

import asyncio
from typing import Any

from compression_service.core.config.constants import ErrorType, FailureCategory
from compression_service.core.exceptions.base import CompressionBaseError
from compression_service.core.exceptions.provider import ProviderError

_TRANSIENT_TYPES = frozenset({ErrorType.TIMEOUT, ErrorType.NETWORK})


def classify_error(exc: BaseException) -> ErrorType:
    """Map any exception raised by a provider attempt to an ErrorType."""
    if isinstance(exc, ProviderError):
        return exc.error_type
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ErrorType.TIMEOUT
    if isinstance(exc, (ConnectionError, OSError)):
        return ErrorType.NETWORK
    return ErrorType.UNKNOWN


class CompressionError(CompressionBaseError):
    """Base exception for failures of a whole compress() call."""

    category: FailureCategory = FailureCategory.REJECTED

    @property
    def is_retryable(self) -> bool:
        """True when retrying the same call later may succeed."""
        return self.category == FailureCategory.TRANSIENT

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["category"] = self.category.value
        data["retryable"] = self.is_retryable
        return data


class AllProvidersFailedError(CompressionError):
    """
    Raised when every attempted provider failed.

    Attributes:
        failures: One reason per attempted provider, ``{provider: message}``
        error_types: ``{provider: ErrorType}`` for the same providers
    """

    def __init__(
        self,
        failures: dict[str, BaseException],
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.failures = {
            provider: str(exc) or exc.__class__.__name__ for provider, exc in failures.items()
        }
        self.error_types = {provider: classify_error(exc) for provider, exc in failures.items()}
        reasons = "; ".join(f"{provider}: {reason}" for provider, reason in self.failures.items())
        super().__init__(
            f"All compression providers failed: {reasons}",
            request_id=request_id,
            details={"failures": dict(self.failures), **(details or {})},
        )

    @property
    def category(self) -> FailureCategory:  # type: ignore[override]
        types = set(self.error_types.values())
        if types & _TRANSIENT_TYPES:
            return FailureCategory.TRANSIENT
        if types and types == {ErrorType.QUOTA}:
            return FailureCategory.EXHAUSTED
        return FailureCategory.REJECTED


class NoProviderAvailableError(CompressionError):
    """
    Raised immediately when no provider is eligible for an attempt.

    Either nothing is configured or every configured provider's circuit is
    open. No network I/O happens before this is raised.
    """

    category = FailureCategory.STRUCTURAL


class InvalidImageError(CompressionError):
    """Raised when compress() receives an empty byte buffer."""

    category = FailureCategory.REJECTED
