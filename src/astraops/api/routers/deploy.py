"""
Deploy router - start deploy, destroy and simulated runs; query status;
set up monitoring.

Endpoints:
    POST /deploy                         Start a deploy (202)
    POST /destroy                        Start a destroy (202)
    POST /deploy/simulate                Start a scripted fake deploy (202)
    GET  /deploy/{job_id}/status         Job status and phases
    POST /deploy/{job_id}/monitoring     Install monitoring on a deployed job

Handlers only validate, create the job and hand it to the orchestrator;
they never wait for a workflow to make progress.

Tags:
    astraops, api, deploy, destroy, monitoring

Doc-Types: API_REFERENCE
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Request

from astraops.api.deps import Orchestrator, Store
from astraops.api.schemas.common import ErrorResponse
from astraops.api.schemas.jobs import JobHandle, JobStatusResponse, MonitoringResponse
from astraops.api.validation import parse_deploy_request
from astraops.core.errors import NotFoundError
from astraops.core.logging import get_logger
from astraops.jobs.models import Job, JobStatus, WorkflowKind

log = get_logger(__name__)

router = APIRouter()

_ERRORS: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
}


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def _handle(job: Job, message: str) -> JobHandle:
    return JobHandle(job_id=job.id, status=job.status, phases=job.phases.model_copy(), message=message)


# ── Start ────────────────────────────────────────────────────────────────


@router.post("/deploy", status_code=202, response_model=JobHandle, responses=_ERRORS)
async def start_deploy(request: Request, store: Store, orchestrator: Orchestrator) -> JobHandle:
    body = parse_deploy_request(await _json_body(request))
    job = store.create_job(body, kind=WorkflowKind.DEPLOY)
    orchestrator.start_deploy(job)
    return _handle(job, f"Deployment initiated using provided IAM role for account {body.account_id}")


@router.post("/destroy", status_code=202, response_model=JobHandle, responses=_ERRORS)
async def start_destroy(request: Request, store: Store, orchestrator: Orchestrator) -> JobHandle:
    body = parse_deploy_request(await _json_body(request))
    job = store.create_job(body, kind=WorkflowKind.DESTROY)
    orchestrator.start_destroy(job)
    return _handle(job, "Destroy initiated")


@router.post("/deploy/simulate", status_code=202, response_model=JobHandle, responses=_ERRORS)
async def start_simulation(request: Request, store: Store, orchestrator: Orchestrator) -> JobHandle:
    body = parse_deploy_request(await _json_body(request))
    job = store.create_job(body, kind=WorkflowKind.DEPLOY, simulated=True)
    orchestrator.start_simulation(job)
    return _handle(job, f"Simulation initiated for account {body.account_id}")


# ── Status ───────────────────────────────────────────────────────────────


def _status_message(job: Job, duration: str) -> str:
    noun = "Destroy" if job.kind is WorkflowKind.DESTROY else "Deployment"
    if job.status is JobStatus.COMPLETED:
        return f"{noun} completed successfully in {duration}"
    if job.status is JobStatus.FAILED:
        return f"{noun} failed"
    return f"{noun} in progress"


@router.get(
    "/deploy/{job_id}/status",
    response_model=JobStatusResponse,
    response_model_exclude_none=True,
    responses={404: {"model": ErrorResponse}},
)
async def job_status(job_id: str, store: Store) -> JobStatusResponse:
    job = store.get_job(job_id)
    if job is None:
        raise NotFoundError("Job not found").with_context(job_id=job_id)
    duration = store.duration(job_id)
    return JobStatusResponse(
        job_id=job.id,
        status=job.status,
        phases=job.phases.model_copy(),
        message=_status_message(job, duration),
        duration=duration if job.status.is_terminal else None,
    )


# ── Monitoring ───────────────────────────────────────────────────────────


@router.post(
    "/deploy/{job_id}/monitoring",
    response_model=MonitoringResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def setup_monitoring(job_id: str, orchestrator: Orchestrator) -> MonitoringResponse:
    """Install kube-prometheus-stack on the job's cluster and return Grafana access.

    Blocks until the install finishes; follow
    ``GET /deploy/{job_id}/monitoring/logs`` for progress.
    """
    access = await orchestrator.setup_monitoring(job_id)
    return MonitoringResponse(url=access.url, username=access.username, password=access.password)
