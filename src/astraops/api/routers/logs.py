"""
Log streaming router - Server-Sent Events per job.

Endpoints:
    GET /deploy/{job_id}/logs               Deploy (or simulated deploy) output
    GET /destroy/{job_id}/logs              Destroy output
    GET /deploy/{job_id}/monitoring/logs    Monitoring setup output

Each stream replays the job's structured history as ``log`` events,
then follows live ``log`` and ``raw`` events, and ends by itself once
the watched workflow reaches its terminal entry.  Idle streams get a
``raw`` heartbeat.

Tags:
    astraops, api, sse, streaming, logs

Doc-Types: API_REFERENCE
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from astraops.api.deps import Settings, Store
from astraops.api.schemas.common import ErrorResponse
from astraops.core.errors import NotFoundError
from astraops.core.logging import get_logger
from astraops.jobs.gateway import LogStreamGateway, StreamEvent
from astraops.jobs.models import WorkflowKind
from astraops.jobs.store import JobStore

log = get_logger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def _frames(gateway: LogStreamGateway) -> AsyncIterator[str]:
    try:
        async for event in gateway.events():
            yield event.encode()
    except Exception as exc:
        # A broken stream must never reach the job; tell the client and stop.
        log.warning("stream.failed", job_id=gateway.job_id, error=str(exc), error_type=type(exc).__name__)
        yield StreamEvent("error", json.dumps({"type": "error", "message": "Failed to setup log stream"})).encode()
    finally:
        gateway.close()


def _stream(store: JobStore, job_id: str, kind: WorkflowKind | None, heartbeat_seconds: float) -> StreamingResponse:
    job = store.get_job(job_id)
    if job is None:
        raise NotFoundError("Job not found").with_context(job_id=job_id)
    gateway = LogStreamGateway(store, job_id, kind or job.kind, heartbeat_seconds=heartbeat_seconds)
    log.info("stream.requested", job_id=job_id, kind=gateway.kind.value)
    return StreamingResponse(_frames(gateway), media_type="text/event-stream", headers=SSE_HEADERS)


_RESPONSES = {404: {"model": ErrorResponse}}


@router.get("/deploy/{job_id}/logs", responses=_RESPONSES)
async def deploy_logs(job_id: str, store: Store, settings: Settings) -> StreamingResponse:
    return _stream(store, job_id, None, settings.heartbeat_seconds)


@router.get("/destroy/{job_id}/logs", responses=_RESPONSES)
async def destroy_logs(job_id: str, store: Store, settings: Settings) -> StreamingResponse:
    return _stream(store, job_id, None, settings.heartbeat_seconds)


@router.get("/deploy/{job_id}/monitoring/logs", responses=_RESPONSES)
async def monitoring_logs(job_id: str, store: Store, settings: Settings) -> StreamingResponse:
    return _stream(store, job_id, WorkflowKind.MONITORING, settings.heartbeat_seconds)
