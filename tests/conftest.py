"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import os
import sys

import httpx
import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from compression_service.core.logging.logger import clear_request_id  # noqa: E402
from compression_service.models import (  # noqa: E402
    CircuitBreakerConfig,
    CompressionRequest,
    CompressionServiceConfig,
)
from tests.test_fixtures.provider_factory import ProviderTestFactory  # noqa: E402

KB = 1024


# ============================================================================
# Clock Fixtures
# ============================================================================


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def circuit_config():
    """Default thresholds: open after 3 failures, 60s reset, 1 trial, 2 to close."""
    return CircuitBreakerConfig(
        failure_threshold=3,
        reset_timeout_ms=60_000,
        half_open_max_attempts=1,
        successes_to_close=2,
    )


@pytest.fixture
def make_config(circuit_config):
    """
    Build a CompressionServiceConfig for stub providers.

    Retries happen without backoff so tests stay fast.
    """

    def _make(priority=("alpha", "beta"), **overrides):
        values = {
            "provider_priority": tuple(priority),
            "max_retries": 2,
            "retry_delay_ms": 0,
            "max_retry_delay_ms": 0,
            "circuit_breaker": circuit_config,
        }
        values.update(overrides)
        return CompressionServiceConfig(**values)

    return _make


@pytest.fixture
def provider_factory():
    return ProviderTestFactory


@pytest.fixture
def sample_request():
    return CompressionRequest(image_data=b"x" * (400 * KB), target_width=1000, quality="good")


@pytest.fixture
def image_bytes():
    """A 400KB opaque payload (falls in the 'good' tier)."""
    return b"\x89PNG" + b"x" * (400 * KB - 4)


# ============================================================================
# HTTP Fixtures
# ============================================================================


@pytest.fixture
def mock_http_client():
    """
    Build an httpx.AsyncClient backed by a handler function.

    Usage:
        client = mock_http_client(lambda request: httpx.Response(200))
    """
    def _make(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture(autouse=True)
def reset_request_id():
    """Request IDs are context-local; make sure no test leaks one."""
    clear_request_id()
    yield
    clear_request_id()
