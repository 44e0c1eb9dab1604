"""Shared machinery for phase executors.

A phase executor performs one workflow phase as a bounded sequence of
process invocations against one tool family.  Expected failures are
returned as ``ExecutorResult(success=False)`` together with an ``error``
log entry; they are never raised.

Key Concepts:
    ExecutorResult: ``success``, ``skipped`` (no work was needed) and a
        free-form ``detail`` dict (e.g. the dashboard URL).
    retry(): fixed-delay retry of a boolean step, logging every retry.
    poll(): bounded fixed-delay poll of a probe; returns None when the
        attempt cap is hit.  Nothing here loops unbounded.
    non_fatal(): runs a best-effort step; any failure becomes a ``warn``
        entry and a ``False`` return, never an exception.
    sleep: injectable so tests run the bounded waits instantly.

Related Modules:
    - :mod:`astraops.deploy.runner` - process invocation
    - :mod:`astraops.jobs.orchestrator` - the only caller of ``run_phase``
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import os
from collections.abc import Awaitable, Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

from astraops.core.errors import ToolNotFoundError
from astraops.core.logging import get_logger
from astraops.core.settings import AstraOpsBaseSettings
from astraops.deploy.runner import ProcessResult, Runner
from astraops.jobs.credentials import Credentials
from astraops.jobs.models import DeployRequest, LogEntry, LogLevel, LogPhase
from astraops.jobs.store import JobStore

log = get_logger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass
class ExecutorResult:
    """Outcome of one phase executor run."""

    success: bool
    skipped: bool = False
    detail: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failed(cls, **detail: Any) -> ExecutorResult:
        return cls(success=False, detail=detail)


class PhaseExecutor:
    """Base class for the terraform / kubectl / helm executors.

    Parameters
    ----------
    job_id
        Job whose log receives every entry and raw line.
    request
        The job's immutable request.
    credentials
        Operation-scoped cloud credentials; exported to every child.
    store, runner
        Job store and process runner.
    settings
        Tool locations and scratch directories.
    sleep
        Coroutine used for every delay (``asyncio.sleep`` by default).
    """

    log_phase: LogPhase = LogPhase.INFRASTRUCTURE
    tool_missing_message: str = "Execution error (tool not installed?)"

    def __init__(
        self,
        job_id: str,
        request: DeployRequest,
        credentials: Credentials,
        *,
        store: JobStore,
        runner: Runner,
        settings: AstraOpsBaseSettings,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.job_id = job_id
        self.request = request
        self.credentials = credentials
        self.store = store
        self.runner = runner
        self.settings = settings
        self.sleep = sleep
        self.region = request.region
        self.cluster_name = request.application_name
        self.env: dict[str, str] = {**os.environ, **credentials.as_env(self.region)}

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run_phase(self) -> ExecutorResult:
        """Run :meth:`execute`, converting a missing tool into a failed result."""
        try:
            return await self.execute()
        except ToolNotFoundError as exc:
            log.warning("executor.tool_missing", job_id=self.job_id, error=exc.message)
            self.error(self.tool_missing_message)
            return ExecutorResult.failed(reason="tool_missing")

    async def execute(self) -> ExecutorResult:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Structured log shorthands
    # ------------------------------------------------------------------

    def _entry(self, level: LogLevel, message: str) -> LogEntry | None:
        return self.store.log(self.job_id, self.log_phase, level, message)

    def info(self, message: str) -> None:
        self._entry(LogLevel.INFO, message)

    def success(self, message: str) -> None:
        self._entry(LogLevel.SUCCESS, message)

    def warn(self, message: str) -> None:
        self._entry(LogLevel.WARN, message)

    def error(self, message: str) -> None:
        self._entry(LogLevel.ERROR, message)

    # ------------------------------------------------------------------
    # Process helpers
    # ------------------------------------------------------------------

    async def run(
        self,
        argv: Sequence[str],
        *,
        prefix: str,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        capture: bool = False,
    ) -> ProcessResult:
        return await self.runner.run(
            self.job_id,
            argv,
            prefix=prefix,
            cwd=cwd,
            env=env if env is not None else self.env,
            capture=capture,
        )

    async def run_ok(self, argv: Sequence[str], *, prefix: str, **kwargs: Any) -> bool:
        return (await self.run(argv, prefix=prefix, **kwargs)).ok

    async def run_json(self, argv: Sequence[str], *, prefix: str, **kwargs: Any) -> Any | None:
        """Run a ``-o json`` style query; None on non-zero exit or bad JSON."""
        result = await self.run(argv, prefix=prefix, capture=True, **kwargs)
        if not result.ok:
            return None
        try:
            return json.loads(result.stdout or "null")
        except json.JSONDecodeError:
            log.debug("executor.bad_json", job_id=self.job_id, command=argv[0])
            return None

    # ------------------------------------------------------------------
    # Bounded control flow
    # ------------------------------------------------------------------

    async def retry(
        self,
        label: str,
        step: Callable[[], Awaitable[bool]],
        *,
        attempts: int,
        delay: float,
    ) -> bool:
        """Run *step* until it returns True, at most *attempts* times."""
        for attempt in range(1, attempts + 1):
            if await step():
                return True
            remaining = attempts - attempt
            if remaining > 0:
                self.info(f"{label} failed. Retrying in {round(delay)}s... ({remaining} attempts left)")
                await self.sleep(delay)
        return False

    async def poll(
        self,
        probe: Callable[[], Awaitable[T | None]],
        *,
        attempts: int,
        delay: float,
    ) -> T | None:
        """Call *probe* until it returns a truthy value, at most *attempts* times."""
        for attempt in range(attempts):
            value = await probe()
            if value:
                return value
            if attempt < attempts - 1:
                await self.sleep(delay)
        return None

    async def non_fatal(self, label: str, operation: Awaitable[Any]) -> bool:
        """Await a best-effort *operation*.

        Returns False (after a ``warn`` entry) if it raised or returned
        False; True otherwise.  Never propagates an exception.
        """
        try:
            outcome = await operation
        except Exception as exc:
            log.warning(
                "executor.non_fatal_failed",
                job_id=self.job_id,
                label=label,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            self.warn(f"{label} failed (non-fatal)")
            return False
        if outcome is False:
            self.warn(f"{label} failed (non-fatal)")
            return False
        return True

    # ------------------------------------------------------------------
    # Scratch files
    # ------------------------------------------------------------------

    @property
    def scratch_dir(self) -> Path:
        return Path(self.settings.k8s_scratch_dir)

    @contextlib.contextmanager
    def scratch_file(self, name: str) -> Iterator[Path]:
        """A path under the scratch directory, deleted on exit however it is left."""
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        path = self.scratch_dir / name
        try:
            yield path
        finally:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                log.warning("executor.scratch_cleanup_failed", job_id=self.job_id, path=path.name, error=str(exc))

    async def update_kubeconfig(self, kubeconfig: Path) -> bool:
        return await self.run_ok(
            [
                "aws", "eks", "update-kubeconfig",
                "--name", self.cluster_name,
                "--region", self.region,
                "--kubeconfig", str(kubeconfig),
            ],
            prefix="aws-eks:",
        )

    async def load_balancer_host(self, namespace: str, service: str, env: Mapping[str, str]) -> str | None:
        """Hostname or IP of a LoadBalancer service, None while pending."""
        svc = await self.run_json(
            ["kubectl", "get", "svc", service, "-n", namespace, "-o", "json"],
            prefix="kubectl:",
            env=env,
        )
        if not isinstance(svc, dict):
            return None
        ingress = (svc.get("status") or {}).get("loadBalancer", {}).get("ingress") or []
        if not ingress:
            return None
        return ingress[0].get("hostname") or ingress[0].get("ip") or None
