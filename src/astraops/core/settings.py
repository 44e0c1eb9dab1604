"""Shared base settings for astraops.

``AstraOpsBaseSettings`` holds what every entry point needs (host, port,
log level, tool locations) so the API settings only add transport knobs.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup
    - **Environment-driven:** Reads from env vars and .env files
    - **Sensible defaults:** Works out of the box for development

Examples:
    >>> from astraops.core.settings import AstraOpsBaseSettings
    >>> class WorkerSettings(AstraOpsBaseSettings):
    ...     model_config = {"env_prefix": "ASTRAOPS_WORKER_"}

Tags:
    settings, configuration, pydantic, environment, astraops
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AstraOpsBaseSettings(BaseSettings):
    """Common settings shared across astraops entry points.

    Fields
    ──────
    host            : Bind address for the HTTP transport
    port            : Bind port
    debug           : Enable debug mode (exception detail in 500s)
    log_level       : Structlog log level
    log_json        : Force JSON (True) / console (False) / auto (None)
    terraform_dir   : Terraform root module
    k8s_scratch_dir : Where per-job kubeconfigs and manifests are written
    redact_marker   : Path segment kept when redacting absolute paths
    simulation_step_seconds : Base delay of the scripted simulation
    grafana_admin_* : Identity configured on the monitoring stack
    job_retention_hours     : Age after which the periodic sweep drops jobs
    """

    model_config = SettingsConfigDict(
        env_prefix="ASTRAOPS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Network ──────────────────────────────────────────────────
    host: str = "0.0.0.0"
    port: int = 3000

    # ── Observability ────────────────────────────────────────────
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool | None = None

    # ── Tooling ──────────────────────────────────────────────────
    terraform_dir: Path = Field(
        default=Path("iac/terraform"),
        description="Terraform root module directory",
    )
    k8s_scratch_dir: Path = Field(
        default=Path("iac/k8s"),
        description="Scratch directory for kubeconfigs and rendered manifests",
    )
    redact_marker: str = Field(
        default="iac",
        description="Path segment from which absolute paths are kept in streamed output",
    )

    # ── Orchestration ────────────────────────────────────────────
    simulation_step_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Base delay between scripted steps of a simulated deploy",
    )
    grafana_admin_user: str = "admin"
    grafana_admin_password: str = Field(
        default="astraops-admin",
        repr=False,
        description="Grafana admin password set on every monitoring install",
    )
    job_retention_hours: float = Field(default=24, ge=0)
