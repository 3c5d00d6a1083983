"""
Health check endpoints.

GET /health               - process liveness for load balancers
GET /health/observability - tracing service reachability (cached probe)
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from pmcopilot import __version__
from pmcopilot.observability import ObservabilityClient
from pmcopilot.server.deps import get_observability
from pmcopilot.server.schemas import HealthResponse, ObservabilityHealthResponse


router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Returns basic health status. Use this for load balancer health checks.
    """
    return HealthResponse(status="healthy", version=__version__)


@router.get("/health/observability", response_model=ObservabilityHealthResponse)
async def observability_health(
    observability: ObservabilityClient = Depends(get_observability),
) -> ObservabilityHealthResponse:
    """
    Tracing service status.

    Probes at most once per health check interval; concurrent requests
    share one probe.
    """
    status = await observability.health_status()
    return ObservabilityHealthResponse(
        status="healthy" if status["healthy"] else "unhealthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        **status,
    )
