"""
Fixtures for API tests.

Apps are built with an orchestrator whose executors and credential
provider are in-memory fakes, so deploys run to completion without
spawning any tool.  Clients are opened as context managers so detached
workflow tasks keep running on the client's event loop between requests.
"""

from __future__ import annotations

import time
from collections.abc import Callable

import pytest
from fastapi.testclient import TestClient

from astraops.api.app import create_app
from astraops.api.settings import AstraOpsAPISettings
from astraops.deploy.executors import (
    ExecutorResult,
    InfrastructureState,
    InfrastructureStateProbe,
    MonitoringSetupExecutor,
    PhaseExecutor,
)
from astraops.deploy.runner import ProcessResult
from astraops.jobs.credentials import Credentials
from astraops.jobs.orchestrator import ExecutorSet, JobOrchestrator
from astraops.jobs.store import JobStore

API_KEY = "test-shared-secret"
GRAFANA_URL = "http://grafana.example.com/d/x"


class _Runner:
    async def run(self, job_id, argv, *, prefix, cwd=None, env=None, capture=False):
        return ProcessResult(0)


class _Provider:
    async def acquire(self, job_id, request):
        return Credentials(access_key_id="ASIAAPI", secret_access_key="s", session_token="t")


class _Succeeds(PhaseExecutor):
    async def execute(self):
        self.info("fake step")
        return ExecutorResult(success=True)


class _NoState(InfrastructureStateProbe):
    async def check(self):
        return InfrastructureState(exists=False, healthy=False)


class _Monitoring(MonitoringSetupExecutor):
    async def execute(self):
        return ExecutorResult(success=True, detail={"url": GRAFANA_URL})


FAKE_EXECUTORS = ExecutorSet(
    state_probe=_NoState,
    infrastructure_apply=_Succeeds,
    infrastructure_destroy=_Succeeds,
    application_apply=_Succeeds,
    monitoring_setup=_Monitoring,
)


def make_settings(**overrides) -> AstraOpsAPISettings:
    values = dict(
        api_key=API_KEY,
        simulation_step_seconds=0,
        heartbeat_seconds=30,
        grafana_admin_user="admin",
        grafana_admin_password="grafana-pw",
    )
    values.update(overrides)
    return AstraOpsAPISettings(_env_file=None, **values)


def make_app(settings: AstraOpsAPISettings):
    store = JobStore()
    orchestrator = JobOrchestrator(
        store,
        _Runner(),
        settings,
        credential_provider=_Provider(),
        executors=FAKE_EXECUTORS,
    )
    return create_app(settings=settings, store=store, orchestrator=orchestrator)


@pytest.fixture()
def app():
    return make_app(make_settings())


@pytest.fixture()
def client(app):
    with TestClient(app, raise_server_exceptions=False, headers={"Authorization": API_KEY}) as c:
        yield c


@pytest.fixture()
def anonymous_client(app):
    """Client for the same app that sends no credentials."""
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture()
def unconfigured_client():
    """Client for an app started without any API key."""
    app = make_app(make_settings(api_key=None))
    with TestClient(app, raise_server_exceptions=False, headers={"Authorization": API_KEY}) as c:
        yield c


@pytest.fixture()
def wait_until() -> Callable[..., bool]:
    """Poll *predicate* until true or *timeout* seconds pass."""

    def _wait(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return False

    return _wait


@pytest.fixture()
def finished(client, wait_until):
    """Wait for a job to reach a terminal status; returns the status body."""

    def _finished(job_id: str) -> dict:
        def done() -> bool:
            return client.get(f"/v1/deploy/{job_id}/status").json()["status"] in ("COMPLETED", "FAILED")

        assert wait_until(done), f"{job_id} did not finish"
        return client.get(f"/v1/deploy/{job_id}/status").json()

    return _finished


@pytest.fixture()
def build_app():
    """``build_app(**settings_overrides)`` - an app with fake executors."""

    def _build(**overrides):
        return make_app(make_settings(**overrides))

    return _build


@pytest.fixture()
def api_key() -> str:
    return API_KEY
