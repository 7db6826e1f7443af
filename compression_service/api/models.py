"""
API Response Models
===================

Pydantic response models for the operational endpoints. They mirror the
dataclasses in ``compression_service.models`` so the OpenAPI schema
documents exactly what the orchestrator reports.
"""

from typing import Any

from pydantic import BaseModel, Field

from compression_service.models import ProviderHealth, ProviderQuota


class ProviderHealthResponse(BaseModel):
    """Result of one provider health probe."""

    provider: str
    status: str = Field(..., description="ok, degraded, error or unconfigured")
    health_score: int = Field(..., ge=0, le=100)
    latency_ms: float = Field(..., ge=0)
    message: str
    configured: bool
    last_checked: float

    @classmethod
    def from_health(cls, health: ProviderHealth) -> "ProviderHealthResponse":
        return cls(
            provider=health.provider,
            status=health.status.value,
            health_score=health.health_score,
            latency_ms=round(health.latency_ms, 2),
            message=health.message,
            configured=health.configured,
            last_checked=health.last_checked,
        )


class HealthReportResponse(BaseModel):
    """
    Aggregate health across every known provider.

    ``status`` is "healthy" when at least one provider probed ok,
    "degraded" when none is ok but one is degraded, "unhealthy" otherwise.
    """

    status: str
    timestamp: str
    providers: dict[str, ProviderHealthResponse]


class ProviderQuotaResponse(BaseModel):
    provider: str
    used: int = Field(..., ge=0)
    limit: int = Field(..., ge=0)
    remaining: int = Field(..., ge=0)
    percent_used: float = Field(..., ge=0)
    exhausted: bool
    last_checked: float

    @classmethod
    def from_quota(cls, quota: ProviderQuota) -> "ProviderQuotaResponse":
        return cls(
            provider=quota.provider,
            used=quota.used,
            limit=quota.limit,
            remaining=quota.remaining,
            percent_used=round(quota.percent_used, 2),
            exhausted=quota.exhausted,
            last_checked=quota.last_checked,
        )


class CircuitResponse(BaseModel):
    state: str = Field(..., description="closed, open or half-open")
    failures: int = Field(..., ge=0)


class ServiceMetricsResponse(BaseModel):
    """Cumulative counters of one orchestrator instance."""

    requests_total: int
    requests_success: int
    requests_failed: int
    bytes_processed: int
    bytes_saved: int
    avg_latency_ms: float
    compressions_by_provider: dict[str, int]
    failures_by_provider: dict[str, int]
    start_time: float
    uptime_ms: int


class DebugResponse(BaseModel):
    providers: dict[str, dict[str, Any]]
    in_flight: int
