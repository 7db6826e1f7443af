"""
Compression Provider Exceptions

All exceptions raised by provider variants (TinyPNG, Cloudinary). Each one
carries the provider name and an ``ErrorType`` so the orchestrator can
decide whether to retry and how to categorize an aggregate failure.

Author: System Architect
Date: 2026-10-19
"""

from typing import Any

from compression_service.core.config.constants import ErrorType
from compression_service.core.exceptions.base import CompressionBaseError


class ProviderError(CompressionBaseError):
    """Base exception for compression provider errors."""

    error_type: ErrorType = ErrorType.UNKNOWN
    retryable: bool = True

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, request_id=request_id, details=details)
        self.provider = provider
        if provider:
            self.details.setdefault("provider", provider)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["provider"] = self.provider
        data["category"] = self.error_type.value
        return data

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        request_id: str | None = None,
        provider: str | None = None,
        **details
    ) -> "ProviderError":
        error_message = message or str(exc) or exc.__class__.__name__
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details
        }
        return cls(error_message, provider=provider, request_id=request_id, details=error_details)


class ProviderTimeoutError(ProviderError):
    """
    Raised when a provider network operation exceeds its time bound.

    Common causes:
    - Slow provider response
    - Large upload over a slow link
    """

    error_type = ErrorType.TIMEOUT


class ProviderNetworkError(ProviderError):
    """
    Raised on transport-level failures.

    Common causes:
    - Connection reset or refused
    - DNS resolution failure
    """

    error_type = ErrorType.NETWORK


class ProviderQuotaExceededError(ProviderError):
    """
    Raised when a provider reports usage exhaustion.

    The provider stays unusable until its external quota window resets, so
    retrying inside the same call is pointless.
    """

    error_type = ErrorType.QUOTA
    retryable = False


class ProviderAPIError(ProviderError):
    """
    Raised when a provider answers with a non-success status not explained by quota.

    4xx responses are classified as validation errors, everything else as
    service errors.
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, provider=provider, request_id=request_id, details=details)
        self.status_code = status_code
        if status_code is not None:
            self.details.setdefault("status_code", status_code)

    @property
    def error_type(self) -> ErrorType:  # type: ignore[override]
        if self.status_code is not None and 400 <= self.status_code < 500:
            return ErrorType.VALIDATION
        return ErrorType.SERVICE


class ProviderNotConfiguredError(ProviderError):
    """Raised when an unconfigured provider is asked to do work."""

    error_type = ErrorType.CONFIGURATION
    retryable = False
