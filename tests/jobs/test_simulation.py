"""
Tests for the scripted deploy simulation.
"""

from __future__ import annotations

import pytest

from astraops.jobs.models import LogLevel, LogPhase
from astraops.jobs.simulation import INFRASTRUCTURE_STEPS, DeploySimulation, demo_url


class _Sleeps:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class TestDeploySimulation:
    def test_demo_url(self):
        assert demo_url("shop") == "https://shop.astraops-demo.com"

    @pytest.mark.asyncio
    async def test_infrastructure_steps(self, store, bus, deploy_request):
        job = store.create_job(deploy_request, simulated=True)
        raws = []
        bus.subscribe_raw(job.id, raws.append)
        sleeps = _Sleeps()

        await DeploySimulation(store, job.id, deploy_request, step=0.5, sleep=sleeps).infrastructure()

        entries = store.snapshot_logs(job.id)
        total = len(INFRASTRUCTURE_STEPS)
        assert entries[0].message == f"[1/{total}] {INFRASTRUCTURE_STEPS[0]}"
        assert entries[-1].level is LogLevel.SUCCESS
        assert all(e.phase is LogPhase.INFRASTRUCTURE for e in entries)
        assert sleeps.calls == [0.5] * total
        assert raws[0].startswith("terraform:")

    @pytest.mark.asyncio
    async def test_application_per_service(self, store, deploy_request):
        job = store.create_job(deploy_request, simulated=True)
        sleeps = _Sleeps()

        await DeploySimulation(store, job.id, deploy_request, step=1.0, sleep=sleeps).application()

        messages = [e.message for e in store.snapshot_logs(job.id)]
        assert messages[0] == "Building application: shop"
        assert "Building service: frontend" in messages
        assert "Service db built and pushed to ECR" in messages
        assert messages[-1] == "Application URL: https://shop.astraops-demo.com"
        # two services × (2 + 1) then 1.5 and 2
        assert sleeps.calls == [2.0, 1.0, 2.0, 1.0, 1.5, 2.0]
