"""
Service banner, liveness and the versioned API root.

Endpoints:
    GET /          Service banner (unauthenticated)
    GET /health    Liveness (unauthenticated)
    GET /v1        API version, health and job counts
"""

from __future__ import annotations

from fastapi import APIRouter

from astraops import __version__
from astraops.api.deps import Settings, Store
from astraops.api.schemas.common import ApiInfoResponse, HealthResponse, JobMetrics
from astraops.core.timestamps import to_iso8601, utc_now

root_router = APIRouter()
router = APIRouter()


@root_router.get("/")
async def banner(settings: Settings) -> dict[str, str]:
    return {"service": settings.api_title, "version": __version__}


@root_router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    return HealthResponse(version=__version__)


@router.get("", response_model=ApiInfoResponse)
async def api_info(store: Store, settings: Settings) -> ApiInfoResponse:
    """Version, status and active/total job counts."""
    counts = store.counts()
    return ApiInfoResponse(
        message=f"AstraOps API v{settings.api_version}",
        version=settings.api_version,
        timestamp=to_iso8601(utc_now()),
        metrics=JobMetrics(active_jobs=counts["active"], total_jobs=counts["total"]),
    )
