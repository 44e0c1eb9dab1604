"""
Job lifecycle: models, the in-memory store, the orchestrator and the
per-connection streaming gateway.

Tags:
    astraops, jobs, orchestration, streaming
"""

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
from astraops.jobs.store import JobStore

__all__ = [
    "DeployRequest",
    "Job",
    "JobStatus",
    "JobStore",
    "LogEntry",
    "LogLevel",
    "LogPhase",
    "PhaseName",
    "PhaseStatus",
    "WorkflowKind",
]
