"""Monitoring executor - installs kube-prometheus-stack and exposes Grafana.

The release is always named ``monitoring`` in the ``monitoring``
namespace.  Grafana is published through a LoadBalancer and logs in with
a fixed admin identity taken from settings; the password is reset after
install in case the release already existed with another one.
"""

from __future__ import annotations

import time
from urllib.parse import quote

from astraops.deploy.executors.base import ExecutorResult, PhaseExecutor
from astraops.jobs.models import LogPhase

HELM_REPO_NAME = "prometheus-community"
HELM_REPO_URL = "https://prometheus-community.github.io/helm-charts"
HELM_CHART = "prometheus-community/kube-prometheus-stack"
RELEASE = "monitoring"
NAMESPACE = "monitoring"
GRAFANA_SERVICE = "monitoring-grafana"
DASHBOARD_PATH = "/d/k8s-resources-namespace/kubernetes-compute-resources-namespace-pods"


def dashboard_url(host: str, namespace: str) -> str:
    """Per-namespace pod resource dashboard shipped with kube-prometheus-stack."""
    return f"http://{host}{DASHBOARD_PATH}?var-namespace={quote(namespace, safe='')}"


class MonitoringSetupExecutor(PhaseExecutor):
    """Install or upgrade the monitoring stack on the job's cluster.

    Parameters
    ----------
    admin_user, admin_password
        Grafana administrative identity.
    """

    log_phase = LogPhase.MONITORING
    tool_missing_message = "Monitoring setup error (helm or kubectl not installed?)"

    endpoint_attempts: int = 15
    endpoint_delay: float = 5.0

    def __init__(self, *args, admin_user: str, admin_password: str, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.admin_user = admin_user
        self.admin_password = admin_password

    async def execute(self) -> ExecutorResult:
        name = f".kubeconfig-monitoring-{self.job_id}-{int(time.time() * 1000)}"
        with self.scratch_file(name) as kubeconfig:
            if not await self.update_kubeconfig(kubeconfig):
                self.error("aws eks update-kubeconfig failed")
                return ExecutorResult.failed(step="kubeconfig")
            env = {**self.env, "KUBECONFIG": str(kubeconfig)}

            await self.non_fatal(
                "helm repo add",
                self.run_ok(["helm", "repo", "add", HELM_REPO_NAME, HELM_REPO_URL, "--force-update"], prefix="helm:", env=env),
            )
            await self.non_fatal(
                "helm repo update",
                self.run_ok(["helm", "repo", "update"], prefix="helm:", env=env),
            )

            self.info("Installing monitoring stack (kube-prometheus-stack)...")
            if not await self.run_ok(
                [
                    "helm", "upgrade", "--install", RELEASE, HELM_CHART,
                    "-n", NAMESPACE, "--create-namespace", "--wait",
                    "--set", "grafana.service.type=LoadBalancer",
                    "--set", f"grafana.adminUser={self.admin_user}",
                    "--set", f"grafana.adminPassword={self.admin_password}",
                ],
                prefix="helm:",
                env=env,
            ):
                self.error("helm upgrade --install failed")
                return ExecutorResult.failed(step="install")

            await self.non_fatal(
                "Grafana admin password reset",
                self.run_ok(
                    [
                        "kubectl", "-n", NAMESPACE, "exec", f"deploy/{GRAFANA_SERVICE}", "-c", "grafana", "--",
                        "grafana", "cli", "admin", "reset-admin-password", self.admin_password,
                    ],
                    prefix="kubectl:",
                    env=env,
                ),
            )

            host = await self.poll(
                lambda: self.load_balancer_host(NAMESPACE, GRAFANA_SERVICE, env),
                attempts=self.endpoint_attempts,
                delay=self.endpoint_delay,
            )
            if not host:
                self.error("Grafana LoadBalancer not ready")
                return ExecutorResult.failed(step="endpoint")

        url = dashboard_url(host, self.cluster_name)
        self.success(f"Grafana dashboard: {url}")
        return ExecutorResult(success=True, detail={"url": url})
