"""
Job schemas - handles, status, monitoring access and debug listings.

Field names are camelCase on the wire (``jobId``,
``cleanedJobsOlderThanHours``).

Doc-Types: API_REFERENCE
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from astraops.jobs.models import CamelModel, JobStatus, Phases


class JobHandle(CamelModel):
    """Returned (202) when a deploy, destroy or simulation is accepted."""

    job_id: str
    status: JobStatus
    phases: Phases
    message: str


class JobStatusResponse(JobHandle):
    duration: str | None = Field(default=None, description="Present once the job is terminal")


class MonitoringResponse(CamelModel):
    status: int = 200
    url: str
    username: str
    password: str


class CleanupResponse(CamelModel):
    status: int = 200
    cleaned_jobs_older_than_hours: int
    cleaned_jobs: int


class JobListResponse(CamelModel):
    status: int = 200
    jobs: list[dict[str, Any]]
