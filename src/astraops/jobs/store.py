"""
In-memory job store - the single source of truth for job state.

Manifesto:
    Every job mutation flows through a narrow set of methods so that
    concurrent orchestrations and many stream readers never touch a job
    record directly.  Mutating an unknown job is a logged no-op rather
    than an exception: a job can be swept while it is still running, and
    the orchestrator's control flow must not depend on the store.

Architecture:
    ::

        JobStore
        ├── _jobs: {job_id: Job}          guarded by _lock (registry ops)
        │                                 Job._lock guards one job's fields
        └── bus: LogBus
              append_log  → append under job lock, then publish_log
              append_raw  → publish_raw only (never persisted)

Guardrails:
    - ``end_time`` is stamped once, on the first terminal transition
    - terminal job statuses are sticky
    - phase statuses only move forward (PENDING → RUNNING → terminal)

Tags:
    astraops, jobs, store, in-memory, thread-safe

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
import uuid
from datetime import UTC, datetime, timedelta

from astraops.core.events import LogBus
from astraops.core.events.memory import InMemoryLogBus
from astraops.core.logging import get_logger
from astraops.core.timestamps import format_duration, utc_now
from astraops.jobs.models import (
    DeployRequest,
    Job,
    JobStatus,
    LogEntry,
    LogLevel,
    LogPhase,
    PhaseName,
    PhaseStatus,
    WorkflowKind,
)

log = get_logger(__name__)

EARLIEST = datetime.min.replace(tzinfo=UTC)


def new_job_id() -> str:
    """``job-`` followed by eight hex characters."""
    return f"job-{uuid.uuid4().hex[:8]}"


class JobStore:
    """Registry of jobs for the lifetime of the process.

    Parameters
    ----------
    bus
        Fan-out bus that receives every appended entry and raw line.
        A private :class:`InMemoryLogBus` is created when omitted.
    """

    def __init__(self, bus: LogBus | None = None) -> None:
        self.bus: LogBus = bus if bus is not None else InMemoryLogBus()
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def create_job(
        self,
        request: DeployRequest,
        *,
        kind: WorkflowKind = WorkflowKind.DEPLOY,
        simulated: bool = False,
    ) -> Job:
        with self._lock:
            job_id = new_job_id()
            while job_id in self._jobs:
                job_id = new_job_id()
            job = Job(id=job_id, kind=kind, simulated=simulated, request=request)
            self._jobs[job_id] = job
        log.info("job.created", job_id=job_id, kind=kind.value, simulated=simulated)
        return job

    def get_job(self, job_id: str) -> Job | None:
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(self) -> list[Job]:
        """All jobs, newest first."""
        with self._lock:
            jobs = list(self._jobs.values())
        return sorted(jobs, key=lambda j: j.start_time, reverse=True)

    def counts(self) -> dict[str, int]:
        with self._lock:
            jobs = list(self._jobs.values())
        active = sum(1 for j in jobs if not j.status.is_terminal)
        return {"active": active, "total": len(jobs)}

    def _require(self, job_id: str, operation: str) -> Job | None:
        job = self.get_job(job_id)
        if job is None:
            log.warning("job.unknown", job_id=job_id, operation=operation)
        return job

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def update_status(self, job_id: str, status: JobStatus) -> None:
        job = self._require(job_id, "update_status")
        if job is None:
            return
        with job._lock:
            if job.status.is_terminal:
                if status != job.status:
                    log.warning(
                        "job.status_rejected",
                        job_id=job_id,
                        current=job.status.value,
                        requested=status.value,
                    )
                return
            job.status = status
            if status.is_terminal and job.end_time is None:
                job.end_time = utc_now()
        log.info("job.status", job_id=job_id, status=status.value)

    def update_phase(self, job_id: str, phase: PhaseName, status: PhaseStatus) -> None:
        job = self._require(job_id, "update_phase")
        if job is None:
            return
        with job._lock:
            current = job.phases.get(phase)
            if status.rank <= current.rank:
                log.warning(
                    "job.phase_rejected",
                    job_id=job_id,
                    phase=phase.value,
                    current=current.value,
                    requested=status.value,
                )
                return
            setattr(job.phases, phase.value, status)
        log.info("job.phase", job_id=job_id, phase=phase.value, status=status.value)

    def update_monitoring(self, job_id: str, status: JobStatus) -> None:
        job = self._require(job_id, "update_monitoring")
        if job is None:
            return
        with job._lock:
            job.monitoring = status

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------

    def append_log(self, job_id: str, entry: LogEntry) -> LogEntry | None:
        """Append *entry* to the job's history, then publish it.

        Returns the stored entry (with ``timestamp`` and ``seq`` filled
        in), or None if the job is unknown.
        """
        job = self._require(job_id, "append_log")
        if job is None:
            return None
        with job._publish_lock:
            with job._lock:
                stored = entry.model_copy(
                    update={
                        "timestamp": entry.timestamp or utc_now(),
                        "seq": len(job.logs),
                    }
                )
                job.logs.append(stored)
            # Callbacks run with the data lock released.
            self.bus.publish_log(job_id, stored)
        return stored

    def log(self, job_id: str, phase: LogPhase, level: LogLevel, message: str) -> LogEntry | None:
        """Shorthand for :meth:`append_log`."""
        return self.append_log(job_id, LogEntry(phase=phase, level=level, message=message))

    def append_raw(self, job_id: str, line: str) -> None:
        """Publish a raw process line.  Raw lines are not kept in history."""
        if self._require(job_id, "append_raw") is None:
            return
        self.bus.publish_raw(job_id, line)

    def snapshot_logs(self, job_id: str) -> list[LogEntry]:
        job = self.get_job(job_id)
        if job is None:
            return []
        with job._lock:
            return list(job.logs)

    # ------------------------------------------------------------------
    # Derived
    # ------------------------------------------------------------------

    def duration(self, job_id: str) -> str:
        """``end_time`` (or now) minus ``start_time``, as ``"Xm Ys"`` / ``"Ys"``."""
        job = self.get_job(job_id)
        if job is None:
            return "0s"
        end = job.end_time or utc_now()
        return format_duration((end - job.start_time).total_seconds())

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep_older_than(self, max_age: timedelta) -> int:
        """Remove every job started at or before ``now - max_age``.

        An age reaching past the earliest representable time removes nothing.
        """
        now = utc_now()
        if max_age > now - EARLIEST:
            return 0
        cutoff = now - max_age
        with self._lock:
            stale = [job_id for job_id, job in self._jobs.items() if job.start_time <= cutoff]
            for job_id in stale:
                del self._jobs[job_id]
        if stale:
            log.info("jobs.swept", count=len(stale), max_age_seconds=max_age.total_seconds())
        return len(stale)
