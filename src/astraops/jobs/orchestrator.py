"""
Job orchestrator - drives deploy, destroy, simulation and monitoring runs.

Manifesto:
    A request handler only creates the job and hands it here; the
    workflow then runs as a detached asyncio task that nobody awaits.
    Every run ends through :meth:`JobOrchestrator._finish`, which appends
    the terminal entry, sets the terminal status and erases the job's
    credentials, whatever happened before.

Architecture:
    ::

        start_deploy(job)      → task: run_deploy(job_id)
            auth → infrastructure_setup → application_deploy
        start_destroy(job)     → task: run_destroy(job_id)
            auth (request credentials only) → infrastructure_setup
        start_simulation(job)  → task: run_simulation(job_id)
        setup_monitoring(id)   → awaited by the caller, returns access info

    Each phase moves PENDING → RUNNING → COMPLETED | SKIPPED | FAILED.
    The first FAILED phase ends the run; later phases stay PENDING.

Guardrails:
    - an exception escaping a phase fails that phase; it is logged with
      its traceback and never reaches the task boundary
    - credentials live in the :class:`CredentialVault` between auth and
      the terminal transition only

Tags:
    astraops, orchestrator, asyncio, workflow, jobs

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from astraops.core.errors import CredentialsError, ExecutionError, JobStateConflict, NotFoundError
from astraops.core.logging import get_logger, job_context
from astraops.core.settings import AstraOpsBaseSettings
from astraops.deploy.executors import (
    ApplicationApplyExecutor,
    ExecutorResult,
    InfrastructureApplyExecutor,
    InfrastructureDestroyExecutor,
    InfrastructureStateProbe,
    MonitoringSetupExecutor,
    PhaseExecutor,
)
from astraops.deploy.runner import Runner
from astraops.deploy.sts import CredentialProvider, StsCredentialProvider, from_request
from astraops.jobs.credentials import Credentials, CredentialVault
from astraops.jobs.models import (
    DEPLOY_FAILED,
    DEPLOY_SUCCEEDED,
    DESTROY_FAILED,
    DESTROY_SUCCEEDED,
    MONITORING_FAILED,
    MONITORING_SUCCEEDED,
    DeployRequest,
    Job,
    JobStatus,
    LogLevel,
    LogPhase,
    PhaseName,
    PhaseStatus,
    WorkflowKind,
)
from astraops.jobs.simulation import DeploySimulation
from astraops.jobs.store import JobStore

log = get_logger(__name__)

PhaseStep = Callable[[], Awaitable[PhaseStatus]]

# Entry logged when a phase raises instead of returning an outcome.
_PHASE_CRASHED: dict[PhaseName, tuple[LogPhase, str]] = {
    PhaseName.AUTH: (LogPhase.AUTH, "Failed to assume IAM role"),
    PhaseName.INFRASTRUCTURE: (LogPhase.INFRASTRUCTURE, "Infrastructure phase failed"),
    PhaseName.APPLICATION: (LogPhase.DEPLOYMENT, "Application deployment failed"),
}

_TERMINAL_MESSAGES: dict[WorkflowKind, tuple[str, str]] = {
    WorkflowKind.DEPLOY: (DEPLOY_SUCCEEDED, DEPLOY_FAILED),
    WorkflowKind.DESTROY: (DESTROY_SUCCEEDED, DESTROY_FAILED),
}


@dataclass(frozen=True)
class ExecutorSet:
    """Executor classes used for each phase; replaced wholesale in tests."""

    state_probe: type[InfrastructureStateProbe] = InfrastructureStateProbe
    infrastructure_apply: type[PhaseExecutor] = InfrastructureApplyExecutor
    infrastructure_destroy: type[PhaseExecutor] = InfrastructureDestroyExecutor
    application_apply: type[PhaseExecutor] = ApplicationApplyExecutor
    monitoring_setup: type[MonitoringSetupExecutor] = MonitoringSetupExecutor


@dataclass(frozen=True)
class MonitoringAccess:
    url: str
    username: str
    password: str


class JobOrchestrator:
    """Runs job workflows against a :class:`JobStore`.

    Parameters
    ----------
    store
        Job store shared with the HTTP layer.
    runner
        Process runner handed to every executor.
    settings
        Tool locations, simulation pacing and the Grafana identity.
    credential_provider
        Source of cloud credentials; defaults to :class:`StsCredentialProvider`.
    sleep
        Coroutine used for every delay, passed on to executors.
    executors
        Executor classes per phase.
    """

    def __init__(
        self,
        store: JobStore,
        runner: Runner,
        settings: AstraOpsBaseSettings,
        *,
        credential_provider: CredentialProvider | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        executors: ExecutorSet | None = None,
    ) -> None:
        self.store = store
        self.runner = runner
        self.settings = settings
        self.credential_provider = credential_provider or StsCredentialProvider(runner)
        self.sleep = sleep
        self.executors = executors or ExecutorSet()
        self.vault = CredentialVault()
        self._tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _spawn(self, run: Callable[[str], Awaitable[None]], job_id: str) -> asyncio.Task[None]:
        async def scoped() -> None:
            with job_context(job_id):
                await run(job_id)

        task = asyncio.ensure_future(scoped())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        log.debug("orchestrator.task_started", job_id=job_id, active=len(self._tasks))
        return task

    def start_deploy(self, job: Job) -> asyncio.Task[None]:
        return self._spawn(self.run_deploy, job.id)

    def start_destroy(self, job: Job) -> asyncio.Task[None]:
        return self._spawn(self.run_destroy, job.id)

    def start_simulation(self, job: Job) -> asyncio.Task[None]:
        return self._spawn(self.run_simulation, job.id)

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    async def shutdown(self) -> None:
        """Cancel runs still in flight when the process is stopping."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            log.info("orchestrator.shutdown", cancelled=len(tasks))

    # ------------------------------------------------------------------
    # Phase plumbing
    # ------------------------------------------------------------------

    def _executor(self, cls: type[PhaseExecutor], job_id: str, request: DeployRequest,
                  credentials: Credentials, **extra: Any) -> Any:
        return cls(
            job_id,
            request,
            credentials,
            store=self.store,
            runner=self.runner,
            settings=self.settings,
            sleep=self.sleep,
            **extra,
        )

    async def _phase(self, job_id: str, phase: PhaseName, step: PhaseStep) -> bool:
        """Run one phase; returns False if it FAILED."""
        self.store.update_phase(job_id, phase, PhaseStatus.RUNNING)
        try:
            outcome = await step()
        except Exception:
            log.error("orchestrator.phase_crashed", job_id=job_id, phase=phase.value, exc_info=True)
            log_phase, message = _PHASE_CRASHED[phase]
            self.store.log(job_id, log_phase, LogLevel.ERROR, message)
            outcome = PhaseStatus.FAILED
        except asyncio.CancelledError:
            self.store.update_phase(job_id, phase, PhaseStatus.FAILED)
            raise
        self.store.update_phase(job_id, phase, outcome)
        return outcome is not PhaseStatus.FAILED

    def _finish(self, job_id: str, kind: WorkflowKind, succeeded: bool) -> None:
        """The single terminal path of deploy, destroy and simulation runs."""
        success_message, failure_message = _TERMINAL_MESSAGES[kind]
        try:
            if succeeded:
                self.store.log(job_id, LogPhase.DEPLOYMENT, LogLevel.SUCCESS, success_message)
                self.store.update_status(job_id, JobStatus.COMPLETED)
            else:
                self.store.log(job_id, LogPhase.ERROR, LogLevel.ERROR, failure_message)
                self.store.update_status(job_id, JobStatus.FAILED)
            log.info(
                "job.finished",
                job_id=job_id,
                kind=kind.value,
                succeeded=succeeded,
                duration=self.store.duration(job_id),
            )
        finally:
            self.vault.erase(job_id)

    def _begin(self, job_id: str) -> DeployRequest | None:
        job = self.store.get_job(job_id)
        if job is None:
            log.warning("orchestrator.job_missing", job_id=job_id)
            return None
        self.store.update_status(job_id, JobStatus.RUNNING)
        return job.request

    # ------------------------------------------------------------------
    # Deploy
    # ------------------------------------------------------------------

    async def run_deploy(self, job_id: str) -> None:
        request = self._begin(job_id)
        if request is None:
            return
        succeeded = False
        try:
            succeeded = (
                await self._phase(job_id, PhaseName.AUTH, lambda: self._authenticate(job_id, request))
                and await self._phase(job_id, PhaseName.INFRASTRUCTURE, lambda: self._provision(job_id, request))
                and await self._phase(job_id, PhaseName.APPLICATION, lambda: self._deploy_application(job_id, request))
            )
        finally:
            self._finish(job_id, WorkflowKind.DEPLOY, succeeded)

    async def _authenticate(self, job_id: str, request: DeployRequest) -> PhaseStatus:
        supplied = request.aws_credentials is not None
        if supplied:
            self.store.log(job_id, LogPhase.AUTH, LogLevel.INFO, "Using temporary AWS credentials provided by CLI")
        else:
            self.store.log(job_id, LogPhase.AUTH, LogLevel.INFO, f"Attempting to assume IAM role: {request.role_arn}")
        try:
            credentials = await self.credential_provider.acquire(job_id, request)
        except CredentialsError as exc:
            log.warning("orchestrator.auth_failed", job_id=job_id, error=exc.message)
            self.store.log(job_id, LogPhase.AUTH, LogLevel.ERROR, "Failed to obtain credentials from assumed role")
            return PhaseStatus.FAILED
        self.vault.put(job_id, credentials)
        if not supplied:
            self.store.log(job_id, LogPhase.AUTH, LogLevel.SUCCESS, "Successfully assumed IAM role")
        return PhaseStatus.COMPLETED

    def _credentials(self, job_id: str, log_phase: LogPhase) -> Credentials | None:
        credentials = self.vault.get(job_id)
        if credentials is None:
            self.store.log(job_id, log_phase, LogLevel.ERROR, "No credentials available for this job")
        return credentials

    async def _provision(self, job_id: str, request: DeployRequest) -> PhaseStatus:
        credentials = self._credentials(job_id, LogPhase.INFRASTRUCTURE)
        if credentials is None:
            return PhaseStatus.FAILED

        self.store.log(job_id, LogPhase.INFRASTRUCTURE, LogLevel.INFO, "Checking existing infrastructure state...")
        probe = self._executor(self.executors.state_probe, job_id, request, credentials)
        state = await probe.check()
        if state.exists and not state.healthy:
            self.store.log(job_id, LogPhase.INFRASTRUCTURE, LogLevel.ERROR, "Infrastructure is unhealthy")
            return PhaseStatus.FAILED
        if state.exists:
            self.store.log(
                job_id, LogPhase.INFRASTRUCTURE, LogLevel.INFO,
                f"Infrastructure version: {state.version or 'unknown'}",
            )
            if state.last_update:
                self.store.log(job_id, LogPhase.INFRASTRUCTURE, LogLevel.INFO, f"Last updated: {state.last_update}")

        executor = self._executor(self.executors.infrastructure_apply, job_id, request, credentials)
        result: ExecutorResult = await executor.run_phase()
        if not result.success:
            return PhaseStatus.FAILED
        return PhaseStatus.SKIPPED if result.skipped else PhaseStatus.COMPLETED

    async def _deploy_application(self, job_id: str, request: DeployRequest) -> PhaseStatus:
        credentials = self._credentials(job_id, LogPhase.DEPLOYMENT)
        if credentials is None:
            return PhaseStatus.FAILED
        self.store.log(job_id, LogPhase.DEPLOYMENT, LogLevel.INFO, "Starting application deployment...")
        executor = self._executor(self.executors.application_apply, job_id, request, credentials)
        result: ExecutorResult = await executor.run_phase()
        return PhaseStatus.COMPLETED if result.success else PhaseStatus.FAILED

    # ------------------------------------------------------------------
    # Destroy
    # ------------------------------------------------------------------

    async def run_destroy(self, job_id: str) -> None:
        request = self._begin(job_id)
        if request is None:
            return
        succeeded = False
        try:
            await self._phase(job_id, PhaseName.AUTH, lambda: self._accept_credentials(job_id, request))
            succeeded = await self._phase(
                job_id, PhaseName.INFRASTRUCTURE, lambda: self._destroy_infrastructure(job_id, request)
            )
            if succeeded:
                self.store.update_phase(job_id, PhaseName.APPLICATION, PhaseStatus.SKIPPED)
        finally:
            self._finish(job_id, WorkflowKind.DESTROY, succeeded)

    async def _accept_credentials(self, job_id: str, request: DeployRequest) -> PhaseStatus:
        # Destroy never assumes a role: it only uses what the caller sent.
        credentials = from_request(request)
        if credentials is None:
            self.store.log(job_id, LogPhase.AUTH, LogLevel.WARN, "No temporary AWS credentials provided by CLI")
            return PhaseStatus.SKIPPED
        self.store.log(job_id, LogPhase.AUTH, LogLevel.INFO, "Using temporary AWS credentials provided by CLI")
        self.vault.put(job_id, credentials)
        return PhaseStatus.COMPLETED

    async def _destroy_infrastructure(self, job_id: str, request: DeployRequest) -> PhaseStatus:
        credentials = self.vault.get(job_id)
        if credentials is None:
            self.store.log(job_id, LogPhase.INFRASTRUCTURE, LogLevel.ERROR, "No AWS STS credentials provided")
            return PhaseStatus.FAILED
        executor = self._executor(self.executors.infrastructure_destroy, job_id, request, credentials)
        result: ExecutorResult = await executor.run_phase()
        return PhaseStatus.COMPLETED if result.success else PhaseStatus.FAILED

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    async def run_simulation(self, job_id: str) -> None:
        request = self._begin(job_id)
        if request is None:
            return
        simulation = DeploySimulation(
            self.store, job_id, request, step=self.settings.simulation_step_seconds, sleep=self.sleep
        )

        async def infrastructure() -> PhaseStatus:
            await simulation.infrastructure()
            return PhaseStatus.COMPLETED

        async def application() -> PhaseStatus:
            await simulation.application()
            return PhaseStatus.COMPLETED

        succeeded = False
        try:
            self.store.update_phase(job_id, PhaseName.AUTH, PhaseStatus.SKIPPED)
            succeeded = (
                await self._phase(job_id, PhaseName.INFRASTRUCTURE, infrastructure)
                and await self._phase(job_id, PhaseName.APPLICATION, application)
            )
        finally:
            self._finish(job_id, WorkflowKind.DEPLOY, succeeded)

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    async def setup_monitoring(self, job_id: str) -> MonitoringAccess:
        """Install the monitoring stack on a deployed job's cluster.

        Raises
        ------
        NotFoundError
            Unknown job.
        JobStateConflict
            The job is not COMPLETED, or a monitoring run is in flight.
        ExecutionError
            The setup failed; details are in the job log.
        """
        job = self.store.get_job(job_id)
        if job is None:
            raise NotFoundError("Job not found").with_context(job_id=job_id)
        if job.status is not JobStatus.COMPLETED:
            raise JobStateConflict("Job is not completed").with_context(job_id=job_id, status=job.status.value)
        if job.monitoring is JobStatus.RUNNING:
            raise JobStateConflict("Monitoring setup already in progress").with_context(job_id=job_id)

        self.store.update_monitoring(job_id, JobStatus.RUNNING)
        self.store.log(job_id, LogPhase.MONITORING, LogLevel.INFO, "Starting monitoring setup...")
        user = self.settings.grafana_admin_user
        password = self.settings.grafana_admin_password
        result = ExecutorResult.failed()
        try:
            # Fresh, operation-scoped credentials: the deploy's own were
            # erased when it finished.
            credentials = await self.credential_provider.acquire(job_id, job.request)
            executor = self._executor(
                self.executors.monitoring_setup,
                job_id,
                job.request,
                credentials,
                admin_user=user,
                admin_password=password,
            )
            result = await executor.run_phase()
        except CredentialsError as exc:
            log.warning("orchestrator.monitoring_auth_failed", job_id=job_id, error=exc.message)
            self.store.log(job_id, LogPhase.MONITORING, LogLevel.ERROR, "No credentials available to access user cluster")
        except Exception:
            log.error("orchestrator.monitoring_crashed", job_id=job_id, exc_info=True)

        if result.success:
            self.store.log(job_id, LogPhase.MONITORING, LogLevel.SUCCESS, MONITORING_SUCCEEDED)
            self.store.update_monitoring(job_id, JobStatus.COMPLETED)
            return MonitoringAccess(url=result.detail["url"], username=user, password=password)

        self.store.log(job_id, LogPhase.ERROR, LogLevel.ERROR, MONITORING_FAILED)
        self.store.update_monitoring(job_id, JobStatus.FAILED)
        raise ExecutionError(MONITORING_FAILED).with_context(job_id=job_id)
