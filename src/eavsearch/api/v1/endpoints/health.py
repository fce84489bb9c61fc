"""Health check endpoints — System and backend health monitoring."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from eavsearch import __version__
from eavsearch.adapters.base.adapter import BackendHealth
from eavsearch.api.deps import get_dispatcher
from eavsearch.core.dispatcher import QueryDispatcher

router = APIRouter()


class HealthResponse(BaseModel):
    """System health check response."""

    status: str = Field(description="Health status (e.g. 'healthy')")
    version: str = Field(description="Server version")
    service: str = Field(description="Service name ('eavsearch')")
    default_backend: str = Field(description="Backend used when a request names none")
    active_backends: list[str] = Field(description="Currently initialized backends")


class BackendHealthResponse(BaseModel):
    """Per-backend health check response."""

    backends: dict[str, BackendHealth] = Field(description="Map of backend name to its health status")


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="System Health Check",
    description="Returns overall system health, server version, and the active backends.",
)
async def health_check(
    dispatcher: QueryDispatcher = Depends(get_dispatcher),
) -> HealthResponse:
    return HealthResponse(
        status="healthy",
        version=__version__,
        service="eavsearch",
        default_backend=dispatcher.settings.search.default_backend,
        active_backends=dispatcher.adapter_registry.active_adapters,
    )


@router.get(
    "/health/backends",
    response_model=BackendHealthResponse,
    summary="Backend Health Check",
    description="Run health checks on every active backend: status, latency, and a diagnostic message.",
)
async def backend_health(
    dispatcher: QueryDispatcher = Depends(get_dispatcher),
) -> BackendHealthResponse:
    """Check health of all backends."""
    return BackendHealthResponse(backends=await dispatcher.health())
