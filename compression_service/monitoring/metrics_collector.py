#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

Two views of the same events:
- ``ServiceMetrics``: cumulative counters owned by one orchestrator,
  returned by ``get_metrics()`` (request totals, bytes, EWMA latency,
  per-provider tallies, uptime)
- Prometheus counters/histograms in the default registry, exported at
  ``/metrics`` for scraping

Counters are updated synchronously when an underlying operation settles,
so no locking is needed under a single event loop.

Architectural Decision: prometheus-client for industry-standard metrics
- Compatible with Grafana dashboards
- Histogram buckets for latency percentiles

Author: System Architect
Date: 2026-10-19
"""

import time
from dataclasses import asdict
from typing import Any

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from compression_service.core.config.constants import LATENCY_EWMA_WEIGHT, CircuitState, Stage
from compression_service.core.logging.logger import get_logger
from compression_service.models import CompressionResult, ServiceMetrics

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

REQUEST_COUNT = Counter(
    'compression_requests_total',
    'Total number of compress() operations',
    ['status', 'provider']
)

REQUEST_DURATION = Histogram(
    'compression_request_duration_seconds',
    'Duration of a compress() operation',
    ['status'],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0)
)

BYTES_PROCESSED = Counter(
    'compression_bytes_processed_total',
    'Input bytes successfully compressed'
)

BYTES_SAVED = Counter(
    'compression_bytes_saved_total',
    'Bytes saved by compression'
)

FAILURES = Counter(
    'compression_failures_total',
    'Failed compress() operations by category',
    ['category']
)

PROVIDER_ATTEMPTS = Counter(
    'compression_provider_attempts_total',
    'Provider attempts by outcome',
    ['provider', 'status']  # success, timeout, quota, validation, network, service, ...
)

PROVIDER_LATENCY = Histogram(
    'compression_provider_latency_seconds',
    'Provider attempt latency',
    ['provider'],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0)
)

CIRCUIT_BREAKER_STATE = Gauge(
    'compression_circuit_breaker_state',
    'Circuit breaker state (0=closed, 1=half-open, 2=open)',
    ['provider']
)

DEDUPLICATED_REQUESTS = Counter(
    'compression_deduplicated_requests_total',
    'Calls that joined an in-flight operation instead of starting one'
)

APP_INFO = Info(
    'compression_app',
    'Application information'
)

_CIRCUIT_STATE_VALUES = {
    CircuitState.CLOSED.value: 0,
    CircuitState.HALF_OPEN.value: 1,
    CircuitState.OPEN.value: 2,
}


class MetricsCollector:
    """
    Metrics owned by one orchestrator instance.

    STAGE-6: Metrics collection

    Usage:
        metrics = MetricsCollector()
        metrics.record_success(input_bytes=len(data), result=result, latency_ms=812.0)
        snapshot = metrics.snapshot()
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._metrics = ServiceMetrics(start_time=clock())
        logger.info("Metrics collector initialized", stage="M.0")

    # =========================================================================
    # Request Metrics
    # =========================================================================

    def record_success(self, input_bytes: int, result: CompressionResult, latency_ms: float) -> None:
        """Record a compress() operation that produced a result."""
        m = self._metrics
        m.requests_total += 1
        m.requests_success += 1
        m.bytes_processed += input_bytes
        m.bytes_saved += input_bytes - result.size
        m.avg_latency_ms = (
            m.avg_latency_ms * (1 - LATENCY_EWMA_WEIGHT) + latency_ms * LATENCY_EWMA_WEIGHT
        )
        m.compressions_by_provider[result.provider] = (
            m.compressions_by_provider.get(result.provider, 0) + 1
        )

        REQUEST_COUNT.labels(status="success", provider=result.provider).inc()
        REQUEST_DURATION.labels(status="success").observe(latency_ms / 1000)
        BYTES_PROCESSED.inc(input_bytes)
        BYTES_SAVED.inc(max(0, input_bytes - result.size))

        logger.debug(
            "Success recorded",
            stage=Stage.METRICS.value,
            provider=result.provider,
            avg_latency_ms=round(m.avg_latency_ms, 2),
        )

    def record_failure(self, category: str, latency_ms: float = 0.0) -> None:
        """Record a compress() operation that failed."""
        m = self._metrics
        m.requests_total += 1
        m.requests_failed += 1

        REQUEST_COUNT.labels(status="failure", provider="none").inc()
        REQUEST_DURATION.labels(status="failure").observe(latency_ms / 1000)
        FAILURES.labels(category=category).inc()

    def record_deduplicated(self) -> None:
        DEDUPLICATED_REQUESTS.inc()

    # =========================================================================
    # Provider Metrics
    # =========================================================================

    def record_provider_attempt(
        self, provider: str, status: str, latency_ms: float | None = None
    ) -> None:
        """Record the settled outcome of one provider attempt (after retries)."""
        if status != "success":
            self._metrics.failures_by_provider[provider] = (
                self._metrics.failures_by_provider.get(provider, 0) + 1
            )
        PROVIDER_ATTEMPTS.labels(provider=provider, status=status).inc()
        if latency_ms is not None:
            PROVIDER_LATENCY.labels(provider=provider).observe(latency_ms / 1000)

    def set_circuit_state(self, provider: str, state: str) -> None:
        CIRCUIT_BREAKER_STATE.labels(provider=provider).set(_CIRCUIT_STATE_VALUES.get(state, 0))

    def set_app_info(self, name: str, version: str, environment: str) -> None:
        APP_INFO.info({'app_name': name, 'version': version, 'environment': environment})

    # =========================================================================
    # Export
    # =========================================================================

    @property
    def metrics(self) -> ServiceMetrics:
        return self._metrics

    def snapshot(self) -> dict[str, Any]:
        """ServiceMetrics as a dict plus ``uptime_ms``."""
        data = asdict(self._metrics)
        data["avg_latency_ms"] = round(data["avg_latency_ms"], 2)
        data["uptime_ms"] = round((self._clock() - self._metrics.start_time) * 1000)
        return data

    @staticmethod
    def get_prometheus_metrics() -> bytes:
        """Prometheus text exposition of the default registry."""
        return generate_latest(REGISTRY)

    @staticmethod
    def get_content_type() -> str:
        return CONTENT_TYPE_LATEST
