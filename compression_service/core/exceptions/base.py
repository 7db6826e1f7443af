"""
Base Exception Class

This module contains the base exception class that every compression
service exception inherits from, plus ConfigurationError.

Author: System Architect
Date: 2026-10-19
"""

from typing import Any


class CompressionBaseError(Exception):
    """
    Base exception for all compression service errors.

    All custom exceptions inherit from this class to enable:
    - Consistent error handling
    - Request ID correlation
    - Structured error logging

    Attributes:
        message: Error message
        request_id: Request ID for correlation (if available)
        details: Additional error details (dict)

    Example:
        raise ProviderAPIError(
            "Shrink failed",
            provider="tinypng",
            status_code=400,
            details={"body": "Input file is empty"}
        )
    """

    def __init__(
        self, message: str, request_id: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.request_id = request_id
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging/API responses.

        Returns:
            Dict with error_type, message, request_id, and details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "request_id": self.request_id,
            "details": self.details,
        }

    def with_suggestion(self, suggestion: str) -> "CompressionBaseError":
        """Add a suggestion to help callers fix the error (chainable)."""
        self.details["suggestion"] = suggestion
        return self

    def with_context(self, **context) -> "CompressionBaseError":
        """Add additional context to the error details (chainable)."""
        self.details.update(context)
        return self

    def __repr__(self) -> str:
        details_str = f", details={self.details}" if self.details else ""
        request_id_str = f", request_id='{self.request_id}'" if self.request_id else ""
        return f"{self.__class__.__name__}(message='{self.message}'{request_id_str}{details_str})"

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        message: str | None = None,
        request_id: str | None = None,
        **details
    ) -> "CompressionBaseError":
        """
        Create an error of this class from another exception.

        Useful for wrapping third-party exceptions (httpx, asyncio) with
        additional context.

        Example:
            >>> try:
            ...     await client.post(url)
            ... except httpx.ConnectError as e:
            ...     raise CompressionBaseError.from_exception(e, url=url)
        """
        error_message = message or str(exc) or exc.__class__.__name__
        error_details = {
            "original_error": exc.__class__.__name__,
            "original_message": str(exc),
            **details
        }
        return cls(error_message, request_id=request_id, details=error_details)


class ConfigurationError(CompressionBaseError):
    """Raised when configuration is invalid (e.g. a malformed quality tier table)."""
    pass
