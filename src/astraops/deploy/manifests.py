"""Kubernetes manifest generation for application deploys.

Renders one namespace plus a Deployment, a Service and (when the service
asks for storage) a PersistentVolumeClaim per service of an
``astraopsConfig``.  Files are written to a per-job scratch directory and
applied with ``kubectl apply -f <dir>``.

Key Concepts:
    Namespace: the application name doubles as the namespace.
    frontend: the service literally named ``frontend`` is published
        through a LoadBalancer on port 80; every other service is
        ClusterIP on its own port.
    revision: written as a pod-template annotation so every deploy
        rolls the pods, even when the image tag is unchanged.

Related Modules:
    - :mod:`astraops.deploy.executors.application` - the only caller
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from astraops.jobs.models import AstraopsConfig, ServiceConfig

NAMESPACE_FILE = "00-namespace.yaml"
REVISION_ANNOTATION = "astraops.io/revision"
DATA_MOUNT_PATH = "/data/db"
PUBLIC_SERVICE_NAME = "frontend"


def _yaml_dumps(data: dict[str, Any]) -> str:
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)


def _env_value(value: Any) -> str:
    # Kubernetes env values are strings; keep JSON spelling for booleans.
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def render_namespace(namespace: str) -> dict[str, Any]:
    return {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": namespace}}


def render_deployment(namespace: str, service: ServiceConfig, revision: str | None = None) -> dict[str, Any]:
    container: dict[str, Any] = {
        "name": service.name,
        "image": service.image or "nginx:alpine",
        "imagePullPolicy": "Always",
        "ports": [{"containerPort": service.port}],
    }
    if service.environment:
        container["env"] = [{"name": k, "value": _env_value(v)} for k, v in service.environment.items()]

    pod_spec: dict[str, Any] = {"containers": [container]}
    if service.storage:
        volume_name = f"{service.name}-data"
        container["volumeMounts"] = [{"name": volume_name, "mountPath": DATA_MOUNT_PATH}]
        pod_spec["volumes"] = [
            {"name": volume_name, "persistentVolumeClaim": {"claimName": f"{service.name}-pvc"}}
        ]

    template_meta: dict[str, Any] = {"labels": {"app": service.name}}
    if revision:
        template_meta["annotations"] = {REVISION_ANNOTATION: revision}

    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": service.name, "namespace": namespace},
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": {"app": service.name}},
            "template": {"metadata": template_meta, "spec": pod_spec},
        },
    }


def render_service(namespace: str, service: ServiceConfig) -> dict[str, Any]:
    public = service.name.lower() == PUBLIC_SERVICE_NAME
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": service.name, "namespace": namespace},
        "spec": {
            "type": "LoadBalancer" if public else "ClusterIP",
            "selector": {"app": service.name},
            "ports": [{"port": 80 if public else service.port, "targetPort": service.port}],
        },
    }


def render_pvc(namespace: str, service: ServiceConfig) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": {"name": f"{service.name}-pvc", "namespace": namespace},
        "spec": {
            "accessModes": ["ReadWriteOnce"],
            "resources": {"requests": {"storage": service.storage}},
        },
    }


def render_manifests(config: AstraopsConfig, revision: str | None = None) -> dict[str, str]:
    """Map of ``filename -> YAML text`` for *config*.

    The namespace file sorts first so ``kubectl apply -f <dir>`` creates
    it before anything that lives in it.
    """
    namespace = config.application_name
    files = {NAMESPACE_FILE: _yaml_dumps(render_namespace(namespace))}
    for svc in config.services:
        files[f"{svc.name}-deploy.yaml"] = _yaml_dumps(render_deployment(namespace, svc, revision))
        files[f"{svc.name}-svc.yaml"] = _yaml_dumps(render_service(namespace, svc))
        if svc.storage:
            files[f"{svc.name}-pvc.yaml"] = _yaml_dumps(render_pvc(namespace, svc))
    return files


def write_manifests(config: AstraopsConfig, target_dir: str | Path, revision: str | None = None) -> Path:
    """Render and write every manifest into *target_dir*; returns the directory."""
    target = Path(target_dir)
    target.mkdir(parents=True, exist_ok=True)
    for name, text in render_manifests(config, revision).items():
        (target / name).write_text(text, encoding="utf-8")
    return target
