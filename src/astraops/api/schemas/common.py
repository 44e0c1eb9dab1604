"""
Common API schemas - the error envelope and service banners.

Every non-2xx response uses :class:`ErrorResponse`; its ``errors`` list
holds human-readable messages, one per problem.

Doc-Types: API_REFERENCE
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from astraops.jobs.models import CamelModel


class ErrorResponse(BaseModel):
    """Error envelope for all 4xx/5xx responses."""

    status: int = Field(description="HTTP status code, repeated in the body")
    errors: list[str] = Field(description="Human-readable error messages")


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str


class JobMetrics(CamelModel):
    active_jobs: int
    total_jobs: int


class ApiInfoResponse(CamelModel):
    """``GET /v1`` body."""

    message: str
    version: str
    status: str = "healthy"
    timestamp: str
    metrics: JobMetrics
