"""Scripted deploy timeline used by ``POST /v1/deploy/simulate``.

No process is spawned and no cloud API is touched.  Every delay is a
multiple of ``step`` so tests can run the whole timeline with ``step=0``.
"""

from __future__ import annotations

import asyncio

from astraops.jobs.models import DeployRequest, LogLevel, LogPhase
from astraops.jobs.store import JobStore

INFRASTRUCTURE_STEPS = (
    "Creating VPC and subnets...",
    "Setting up EKS cluster...",
    "Configuring node groups...",
    "Installing AWS Load Balancer Controller...",
    "Setting up ECR repositories...",
    "Configuring IAM roles and policies...",
    "Installing cert-manager for SSL...",
    "Infrastructure setup completed!",
)

DEMO_DOMAIN = "astraops-demo.com"


def demo_url(application_name: str) -> str:
    return f"https://{application_name}.{DEMO_DOMAIN}"


class DeploySimulation:
    """Fake infrastructure and application phases for one job."""

    def __init__(self, store: JobStore, job_id: str, request: DeployRequest, *, step: float = 1.0, sleep=asyncio.sleep):
        self.store = store
        self.job_id = job_id
        self.request = request
        self.step = step
        self.sleep = sleep

    async def _pause(self, factor: float = 1.0) -> None:
        await self.sleep(self.step * factor)

    def _log(self, phase: LogPhase, level: LogLevel, message: str) -> None:
        self.store.log(self.job_id, phase, level, message)

    async def infrastructure(self) -> None:
        self.store.append_raw(self.job_id, "terraform: Initializing the backend...")
        self.store.append_raw(self.job_id, "terraform: Initializing provider plugins...")
        total = len(INFRASTRUCTURE_STEPS)
        for index, step in enumerate(INFRASTRUCTURE_STEPS, start=1):
            await self._pause()
            self._log(LogPhase.INFRASTRUCTURE, LogLevel.INFO, f"[{index}/{total}] {step}")
        self._log(LogPhase.INFRASTRUCTURE, LogLevel.SUCCESS, "Infrastructure setup completed successfully")
        self.store.append_raw(self.job_id, "terraform: Plan: 12 to add, 0 to change, 0 to destroy.")
        self.store.append_raw(self.job_id, "terraform: Apply complete! Resources: 12 added, 0 changed, 0 destroyed.")

    async def application(self) -> None:
        config = self.request.astraops_config
        self.store.append_raw(self.job_id, "kubectl: Using prebuilt images from astraops.yaml")
        self._log(LogPhase.DEPLOYMENT, LogLevel.INFO, f"Building application: {config.application_name}")
        for service in config.services:
            await self._pause(2)
            self._log(LogPhase.DEPLOYMENT, LogLevel.INFO, f"Building service: {service.name}")
            await self._pause()
            self._log(LogPhase.DEPLOYMENT, LogLevel.INFO, f"Service {service.name} built and pushed to ECR")

        await self._pause(1.5)
        self._log(LogPhase.DEPLOYMENT, LogLevel.INFO, "Deploying to Kubernetes cluster...")
        await self._pause(2)
        self._log(LogPhase.DEPLOYMENT, LogLevel.SUCCESS, "Application deployed successfully!")
        self._log(LogPhase.DEPLOYMENT, LogLevel.SUCCESS, f"Application URL: {demo_url(config.application_name)}")
        self.store.append_raw(self.job_id, "kubectl: Applying manifests...")
        first = config.services[0].name if config.services else "frontend"
        self.store.append_raw(self.job_id, f"kubectl: rollout status deployment/{first}: success")
