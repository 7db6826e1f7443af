"""
Compression Service Routes
==========================

Read-only operational endpoints. Compression itself is a library call
(``CompressionOrchestrator.compress``); these routes only report on it.

    GET /api/v1/compression/health    probe every known provider
    GET /api/v1/compression/quotas    quota records of configured providers
    GET /api/v1/compression/circuits  breaker state per configured provider
    GET /api/v1/compression/metrics   cumulative service counters
    GET /api/v1/compression/debug     masked provider configuration
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Response, status

from compression_service.api.dependencies import OrchestratorDep
from compression_service.api.models import (
    CircuitResponse,
    DebugResponse,
    HealthReportResponse,
    ProviderHealthResponse,
    ProviderQuotaResponse,
    ServiceMetricsResponse,
)
from compression_service.core.config.constants import HealthState

router = APIRouter(prefix="/compression", tags=["Compression"])


def _overall_status(statuses: list[HealthState]) -> str:
    if HealthState.OK in statuses:
        return "healthy"
    if HealthState.DEGRADED in statuses:
        return "degraded"
    return "unhealthy"


@router.get("/health", response_model=HealthReportResponse)
async def provider_health(orchestrator: OrchestratorDep, response: Response):
    """
    Probe every known provider, configured or not.

    Responds 503 when no provider is usable so load balancers can act on it.
    """
    health = await orchestrator.check_health()
    overall = _overall_status([h.status for h in health.values()])
    if overall == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthReportResponse(
        status=overall,
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        providers={name: ProviderHealthResponse.from_health(h) for name, h in health.items()},
    )


@router.get("/quotas", response_model=dict[str, ProviderQuotaResponse])
async def provider_quotas(orchestrator: OrchestratorDep):
    return {
        name: ProviderQuotaResponse.from_quota(quota)
        for name, quota in orchestrator.get_quotas().items()
    }


@router.get("/circuits", response_model=dict[str, CircuitResponse])
async def circuit_states(orchestrator: OrchestratorDep):
    return orchestrator.get_circuits()


@router.get("/metrics", response_model=ServiceMetricsResponse)
async def service_metrics(orchestrator: OrchestratorDep):
    return orchestrator.get_metrics()


@router.get("/debug", response_model=DebugResponse)
async def debug_info(orchestrator: OrchestratorDep):
    """Provider configuration with secrets reduced to short prefixes."""
    return DebugResponse(
        providers=orchestrator.get_debug_info(),
        in_flight=orchestrator.in_flight,
    )
