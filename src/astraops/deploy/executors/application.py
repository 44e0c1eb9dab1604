"""Application executor - renders manifests and rolls them out with kubectl.

Flow:
    wait cluster ACTIVE → best-effort wait node groups ACTIVE →
    update-kubeconfig (3 × 15s) → access-propagation delay →
    render manifests → best-effort wait nodes Ready →
    apply namespace then directory, server-side (3 × 20s) →
    wait all Deployments Available (300s) → on timeout collect
    diagnostics and fail → resolve the ``frontend`` LoadBalancer URL.

The per-job kubeconfig and the generated manifest directory are removed
on every exit path.
"""

from __future__ import annotations

import re
import shutil
from pathlib import Path
from typing import Any

from astraops.core.logging import get_logger
from astraops.deploy.executors.base import ExecutorResult, PhaseExecutor
from astraops.deploy.manifests import NAMESPACE_FILE, PUBLIC_SERVICE_NAME, write_manifests
from astraops.jobs.models import LogPhase

log = get_logger(__name__)

_BAD_POD_REASON = re.compile(r"ImagePull|ErrImagePull|ImagePullBackOff|CrashLoopBackOff", re.IGNORECASE)


def unhealthy_pod_names(pods: Any) -> list[str]:
    """Names of pods with a container stuck pulling its image or crash-looping."""
    names: list[str] = []
    for pod in (pods or {}).get("items") or []:
        statuses = (pod.get("status") or {}).get("containerStatuses") or []
        for cs in statuses:
            state = cs.get("state") or {}
            reason = (state.get("waiting") or {}).get("reason") or (state.get("terminated") or {}).get("reason") or ""
            if _BAD_POD_REASON.search(reason):
                names.append((pod.get("metadata") or {}).get("name") or "pod")
                break
    return names


class ApplicationApplyExecutor(PhaseExecutor):
    """Deploy the application's services onto the cluster."""

    log_phase = LogPhase.DEPLOYMENT
    tool_missing_message = "kubectl execution error (not installed?)"

    kubeconfig_attempts: int = 3
    kubeconfig_retry_delay: float = 15.0
    propagation_delay: float = 10.0
    apply_attempts: int = 3
    apply_retry_delay: float = 20.0
    available_timeout: str = "300s"
    endpoint_attempts: int = 15
    endpoint_delay: float = 5.0

    @property
    def kubeconfig(self) -> Path:
        return self.scratch_dir / f".kubeconfig-{self.job_id}"

    @property
    def manifest_dir(self) -> Path:
        return self.scratch_dir / f"generated-{self.job_id}"

    @property
    def namespace(self) -> str:
        return self.cluster_name

    async def execute(self) -> ExecutorResult:
        try:
            return await self._deploy()
        finally:
            self.cleanup_artifacts()

    async def _deploy(self) -> ExecutorResult:
        self.info(f"Waiting for EKS cluster ACTIVE: {self.cluster_name}")
        if not await self.run_ok(
            ["aws", "eks", "wait", "cluster-active", "--name", self.cluster_name, "--region", self.region],
            prefix="aws-eks:",
        ):
            self.error(f"Cluster did not reach ACTIVE: {self.cluster_name}")
            return ExecutorResult.failed(step="cluster_active")

        await self.non_fatal("Node group wait", self.wait_for_nodegroups())

        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        if not await self.retry(
            "update-kubeconfig",
            lambda: self.update_kubeconfig(self.kubeconfig),
            attempts=self.kubeconfig_attempts,
            delay=self.kubeconfig_retry_delay,
        ):
            self.error(f"aws eks update-kubeconfig failed (cluster: {self.cluster_name})")
            return ExecutorResult.failed(step="kubeconfig")

        kube_env = {**self.env, "KUBECONFIG": str(self.kubeconfig)}

        self.info("Waiting for EKS access permissions to propagate...")
        await self.sleep(self.propagation_delay)

        write_manifests(self.request.astraops_config, self.manifest_dir, revision=self.job_id)
        self.info(f"Applying manifests for {self.namespace}")

        await self.non_fatal(
            "Node readiness wait",
            self.run_ok(
                ["kubectl", "wait", "nodes", "--for=condition=Ready", "--all", "--timeout=180s"],
                prefix="kubectl:",
                env=kube_env,
            ),
        )

        async def apply_once() -> bool:
            await self.run(
                ["kubectl", "apply", "--validate=false", "-f", str(self.manifest_dir / NAMESPACE_FILE)],
                prefix="kubectl:",
                env=kube_env,
            )
            return await self.run_ok(
                [
                    "kubectl", "apply", "--server-side", "--force-conflicts",
                    "--validate=false", "-f", str(self.manifest_dir),
                ],
                prefix="kubectl:",
                env=kube_env,
            )

        if not await self.retry(
            "kubectl apply", apply_once, attempts=self.apply_attempts, delay=self.apply_retry_delay
        ):
            self.error("kubectl apply failed")
            return ExecutorResult.failed(step="apply")

        if not await self.run_ok(
            [
                "kubectl", "wait", "deploy", "--for=condition=Available", "--all",
                "-n", self.namespace, f"--timeout={self.available_timeout}",
            ],
            prefix="kubectl:",
            env=kube_env,
        ):
            self.error("Deployments not Available within timeout. Collecting diagnostics...")
            await self.non_fatal("Diagnostics collection", self.collect_diagnostics(kube_env))
            return ExecutorResult.failed(step="available")

        url = await self.resolve_frontend_url(kube_env)
        self.success("kubectl apply completed")
        return ExecutorResult(success=True, detail={"url": url} if url else {})

    async def wait_for_nodegroups(self) -> bool:
        listing = await self.run_json(
            [
                "aws", "eks", "list-nodegroups",
                "--cluster-name", self.cluster_name,
                "--region", self.region,
                "--output", "json",
            ],
            prefix="aws-eks:",
        )
        if not isinstance(listing, dict):
            return False
        ok = True
        for name in listing.get("nodegroups") or []:
            self.info(f"Waiting for nodegroup ACTIVE: {name}")
            ok = await self.run_ok(
                [
                    "aws", "eks", "wait", "nodegroup-active",
                    "--cluster-name", self.cluster_name,
                    "--nodegroup-name", name,
                    "--region", self.region,
                ],
                prefix="aws-eks:",
            ) and ok
        return ok

    async def collect_diagnostics(self, env: dict[str, str]) -> bool:
        ns = self.namespace
        await self.run(["kubectl", "-n", ns, "get", "deploy,rs,po", "-o", "wide"], prefix="kubectl:", env=env)
        await self.run(["kubectl", "-n", ns, "describe", "deploy", "--all"], prefix="kubectl:", env=env)
        await self.run(
            ["kubectl", "-n", ns, "get", "events", "--sort-by=.lastTimestamp"], prefix="kubectl:", env=env
        )
        pods = await self.run_json(["kubectl", "get", "pods", "-n", ns, "-o", "json"], prefix="kubectl:", env=env)
        for name in unhealthy_pod_names(pods):
            await self.run(
                ["kubectl", "-n", ns, "logs", name, "--all-containers", "--tail=200"],
                prefix="kubectl:",
                env=env,
            )
        return True

    async def resolve_frontend_url(self, env: dict[str, str]) -> str | None:
        if not any(s.name.lower() == PUBLIC_SERVICE_NAME for s in self.request.astraops_config.services):
            return None
        host = await self.poll(
            lambda: self.load_balancer_host(self.namespace, PUBLIC_SERVICE_NAME, env),
            attempts=self.endpoint_attempts,
            delay=self.endpoint_delay,
        )
        if host:
            url = f"http://{host}"
            self.success(f"Frontend public URL: {url}")
            return url
        self.warn("Frontend LoadBalancer pending (no hostname/ip yet)")
        return None

    def cleanup_artifacts(self) -> None:
        try:
            self.kubeconfig.unlink(missing_ok=True)
            shutil.rmtree(self.manifest_dir, ignore_errors=True)
        except OSError as exc:
            log.warning("executor.scratch_cleanup_failed", job_id=self.job_id, error=str(exc))
