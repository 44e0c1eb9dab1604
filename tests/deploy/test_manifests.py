"""
Tests for Kubernetes manifest rendering.
"""

from __future__ import annotations

import yaml

from astraops.deploy.manifests import (
    NAMESPACE_FILE,
    REVISION_ANNOTATION,
    render_deployment,
    render_manifests,
    render_service,
    write_manifests,
)
from astraops.jobs.models import ServiceConfig


class TestRenderManifests:
    def test_file_set(self, deploy_request):
        files = render_manifests(deploy_request.astraops_config)
        assert list(files)[0] == NAMESPACE_FILE
        assert set(files) == {
            NAMESPACE_FILE,
            "frontend-deploy.yaml",
            "frontend-svc.yaml",
            "db-deploy.yaml",
            "db-svc.yaml",
            "db-pvc.yaml",
        }

    def test_namespace_is_application_name(self, deploy_request):
        ns = yaml.safe_load(render_manifests(deploy_request.astraops_config)[NAMESPACE_FILE])
        assert ns == {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": "shop"}}

    def test_pvc(self, deploy_request):
        pvc = yaml.safe_load(render_manifests(deploy_request.astraops_config)["db-pvc.yaml"])
        assert pvc["metadata"] == {"name": "db-pvc", "namespace": "shop"}
        assert pvc["spec"]["resources"]["requests"]["storage"] == "5Gi"

    def test_write(self, deploy_request, tmp_path):
        target = write_manifests(deploy_request.astraops_config, tmp_path / "out", revision="job-1")
        assert (target / NAMESPACE_FILE).exists()
        doc = yaml.safe_load((target / "frontend-deploy.yaml").read_text())
        assert doc["spec"]["template"]["metadata"]["annotations"] == {REVISION_ANNOTATION: "job-1"}


class TestDeployment:
    def test_container(self):
        svc = ServiceConfig(name="api", image="acme/api:2", port=5000)
        dep = render_deployment("shop", svc)
        container = dep["spec"]["template"]["spec"]["containers"][0]
        assert container == {
            "name": "api",
            "image": "acme/api:2",
            "imagePullPolicy": "Always",
            "ports": [{"containerPort": 5000}],
        }
        assert dep["spec"]["selector"] == {"matchLabels": {"app": "api"}}
        assert "annotations" not in dep["spec"]["template"]["metadata"]

    def test_environment_values_are_strings(self):
        svc = ServiceConfig(name="api", image="a", port=1, environment={"DEBUG": True, "WORKERS": 4, "NAME": "x"})
        container = render_deployment("shop", svc)["spec"]["template"]["spec"]["containers"][0]
        assert container["env"] == [
            {"name": "DEBUG", "value": "true"},
            {"name": "WORKERS", "value": "4"},
            {"name": "NAME", "value": "x"},
        ]

    def test_storage_mount(self):
        svc = ServiceConfig(name="db", image="mongo", port=27017, storage="1Gi")
        pod = render_deployment("shop", svc)["spec"]["template"]["spec"]
        assert pod["containers"][0]["volumeMounts"] == [{"name": "db-data", "mountPath": "/data/db"}]
        assert pod["volumes"][0]["persistentVolumeClaim"] == {"claimName": "db-pvc"}


class TestService:
    def test_frontend_is_public_on_80(self):
        svc = render_service("shop", ServiceConfig(name="frontend", image="a", port=8080))
        assert svc["spec"]["type"] == "LoadBalancer"
        assert svc["spec"]["ports"] == [{"port": 80, "targetPort": 8080}]

    def test_other_services_are_internal(self):
        svc = render_service("shop", ServiceConfig(name="api", image="a", port=5000))
        assert svc["spec"]["type"] == "ClusterIP"
        assert svc["spec"]["ports"] == [{"port": 5000, "targetPort": 5000}]
