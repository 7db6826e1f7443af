"""
Resilience Module - Core Resilience Components

Failure isolation and load shaping for provider calls:

- CircuitBreaker / CircuitBreakerRegistry: per-provider failure isolation
- create_retry_decorator: bounded exponential backoff (tenacity)
- RequestDeduplicator: one in-flight operation per dedupe key

Author: System Architect
Date: 2026-10-19
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerRegistry
from .request_deduplicator import RequestDeduplicator
from .retry import create_retry_decorator, is_retryable_error

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "RequestDeduplicator",
    "create_retry_decorator",
    "is_retryable_error",
]
