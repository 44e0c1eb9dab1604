"""Job, log entry and request models.

Wire shapes are camelCase (``jobId``, ``infrastructureSetup``,
``astraopsConfig``); Python attributes are snake_case.  Every model
accepts both spellings on input.

Tags:
    jobs, models, pydantic, astraops
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_serializer
from pydantic.alias_generators import to_camel

from astraops.core.timestamps import to_iso8601, utc_now


class CamelModel(BaseModel):
    """Base model with camelCase aliases on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Enums ────────────────────────────────────────────────────────────────


class JobStatus(str, Enum):
    """Job lifecycle.  COMPLETED and FAILED are terminal."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class PhaseStatus(str, Enum):
    """Status of a single phase."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"

    @property
    def rank(self) -> int:
        """Position in the forward-only order PENDING < RUNNING < terminal."""
        if self is PhaseStatus.PENDING:
            return 0
        if self is PhaseStatus.RUNNING:
            return 1
        return 2

    @property
    def is_terminal(self) -> bool:
        return self.rank == 2


class PhaseName(str, Enum):
    """Fixed phases, in execution order."""

    AUTH = "auth"
    INFRASTRUCTURE = "infrastructure_setup"
    APPLICATION = "application_deploy"


class LogPhase(str, Enum):
    AUTH = "auth"
    INFRASTRUCTURE = "infrastructure"
    DEPLOYMENT = "deployment"
    MONITORING = "monitoring"
    ERROR = "error"


class LogLevel(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    SUCCESS = "success"


class WorkflowKind(str, Enum):
    """Which workflow a job (or a stream over it) follows."""

    DEPLOY = "deploy"
    DESTROY = "destroy"
    MONITORING = "monitoring"


# ── Log entries ──────────────────────────────────────────────────────────


class LogEntry(BaseModel):
    """Structured narrative entry.  Immutable once appended.

    ``timestamp`` and ``seq`` are assigned by the job store on append;
    ``seq`` is the entry's position in the job's log history.
    """

    model_config = ConfigDict(frozen=True)

    phase: LogPhase
    level: LogLevel
    message: str
    timestamp: datetime | None = None
    seq: int | None = None

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime | None) -> str | None:
        return to_iso8601(value) if value is not None else None


@dataclass(frozen=True)
class TerminalSignal:
    """``(phase, level, message-prefix)`` combination that ends a stream."""

    phase: LogPhase
    level: LogLevel
    prefix: str

    def matches(self, entry: LogEntry) -> bool:
        return (
            entry.phase == self.phase
            and entry.level == self.level
            and entry.message.startswith(self.prefix)
        )


DEPLOY_SUCCEEDED = "Deployment completed successfully"
DEPLOY_FAILED = "Deployment failed"
DESTROY_SUCCEEDED = "Destroy completed successfully"
DESTROY_FAILED = "Destroy failed"
MONITORING_SUCCEEDED = "Monitoring setup completed"
MONITORING_FAILED = "Monitoring setup failed"

TERMINAL_SIGNALS: dict[WorkflowKind, tuple[TerminalSignal, ...]] = {
    WorkflowKind.DEPLOY: (
        TerminalSignal(LogPhase.DEPLOYMENT, LogLevel.SUCCESS, DEPLOY_SUCCEEDED),
        TerminalSignal(LogPhase.ERROR, LogLevel.ERROR, DEPLOY_FAILED),
    ),
    WorkflowKind.DESTROY: (
        TerminalSignal(LogPhase.DEPLOYMENT, LogLevel.SUCCESS, DESTROY_SUCCEEDED),
        TerminalSignal(LogPhase.ERROR, LogLevel.ERROR, DESTROY_FAILED),
    ),
    WorkflowKind.MONITORING: (
        TerminalSignal(LogPhase.MONITORING, LogLevel.SUCCESS, MONITORING_SUCCEEDED),
        TerminalSignal(LogPhase.ERROR, LogLevel.ERROR, MONITORING_FAILED),
    ),
}


def is_terminal_entry(kind: WorkflowKind, entry: LogEntry) -> bool:
    """True if *entry* is the terminal signal of a *kind* workflow."""
    return any(signal.matches(entry) for signal in TERMINAL_SIGNALS[kind])


# ── Request ──────────────────────────────────────────────────────────────


class AwsCredentials(CamelModel):
    """Short-lived STS credentials supplied by the caller."""

    access_key_id: str
    secret_access_key: str = Field(repr=False)
    session_token: str = Field(repr=False)
    expiration: str | None = None


class ServiceConfig(CamelModel):
    name: str
    image: str
    port: int
    environment: dict[str, Any] | None = None
    storage: str | None = None


class AstraopsConfig(CamelModel):
    application_name: str
    services: list[ServiceConfig]


class DeployRequest(CamelModel):
    """Immutable input of a deploy/destroy/simulate job."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    account_id: str
    region: str
    role_arn: str
    aws_credentials: AwsCredentials | None = None
    astraops_config: AstraopsConfig

    @property
    def application_name(self) -> str:
        """Application name doubles as cluster name and namespace."""
        return self.astraops_config.application_name


# ── Job ──────────────────────────────────────────────────────────────────


class Phases(CamelModel):
    auth: PhaseStatus = PhaseStatus.PENDING
    infrastructure_setup: PhaseStatus = PhaseStatus.PENDING
    application_deploy: PhaseStatus = PhaseStatus.PENDING

    def get(self, phase: PhaseName) -> PhaseStatus:
        return getattr(self, phase.value)

    def all_succeeded(self) -> bool:
        """Every phase ended COMPLETED or SKIPPED."""
        ok = (PhaseStatus.COMPLETED, PhaseStatus.SKIPPED)
        return all(self.get(p) in ok for p in PhaseName)


class Job(CamelModel):
    """Lifecycle record of one deploy/destroy request.

    Only :class:`~astraops.jobs.store.JobStore` mutates a Job; everything
    else reads it.  ``_lock`` serialises mutation of one job.
    """

    id: str
    kind: WorkflowKind = WorkflowKind.DEPLOY
    simulated: bool = False
    status: JobStatus = JobStatus.PENDING
    phases: Phases = Field(default_factory=Phases)
    monitoring: JobStatus | None = None
    request: DeployRequest
    start_time: datetime = Field(default_factory=utc_now)
    end_time: datetime | None = None
    logs: list[LogEntry] = Field(default_factory=list)

    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)
    # Serialises append+publish so bus order matches history order.
    # Reentrant: a subscriber may log to the same job from its callback.
    _publish_lock: Any = PrivateAttr(default_factory=threading.RLock)

    @field_serializer("start_time", "end_time")
    def _serialize_times(self, value: datetime | None) -> str | None:
        return to_iso8601(value) if value is not None else None

    def summary(self) -> dict[str, Any]:
        """Wire-shaped view without the request credentials or log history."""
        return {
            "jobId": self.id,
            "kind": self.kind.value,
            "simulated": self.simulated,
            "status": self.status.value,
            "phases": self.phases.model_dump(by_alias=True, mode="json"),
            "monitoring": self.monitoring.value if self.monitoring else None,
            "applicationName": self.request.application_name,
            "region": self.request.region,
            "startTime": to_iso8601(self.start_time),
            "endTime": to_iso8601(self.end_time) if self.end_time else None,
            "logCount": len(self.logs),
        }
