"""
Debug router - inspect and prune the in-memory job registry.

Endpoints:
    POST /debug/jobs/cleanup?hours=N   Drop jobs started N+ hours ago
    GET  /debug/jobs                   Every job, newest first
"""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Query

from astraops.api.deps import Store
from astraops.api.schemas.jobs import CleanupResponse, JobListResponse

router = APIRouter(prefix="/debug")

MAX_AGE_HOURS = timedelta.max // timedelta(hours=1)


@router.post("/jobs/cleanup", response_model=CleanupResponse)
async def cleanup_jobs(store: Store, hours: int = Query(24, description="Minimum age, clamped to >= 0")) -> CleanupResponse:
    hours = max(0, hours)
    removed = store.sweep_older_than(timedelta(hours=min(hours, MAX_AGE_HOURS)))
    return CleanupResponse(cleaned_jobs_older_than_hours=hours, cleaned_jobs=removed)


@router.get("/jobs", response_model=JobListResponse)
async def list_jobs(store: Store) -> JobListResponse:
    jobs = []
    for job in store.list_jobs():
        summary = job.summary()
        if job.status.is_terminal:
            summary["duration"] = store.duration(job.id)
        jobs.append(summary)
    return JobListResponse(jobs=jobs)
