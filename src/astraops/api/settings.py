"""
API-specific settings.

Extends :class:`~astraops.core.settings.AstraOpsBaseSettings` with
parameters that govern the HTTP transport (auth, CORS, streaming) and
background maintenance.

All values can be overridden via environment variables prefixed with
``ASTRAOPS_``.  The shared secret is also read from a bare ``API_KEY``
for deployments that already export it under that name.
"""

from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import SettingsConfigDict

from astraops.core.settings import AstraOpsBaseSettings


class AstraOpsAPISettings(AstraOpsBaseSettings):
    """Settings for the astraops REST API.

    Order of precedence (highest → lowest):
        1. Environment variables (``ASTRAOPS_API_KEY``, etc.)
        2. ``.env`` file
        3. Defaults below
    """

    model_config = SettingsConfigDict(populate_by_name=True)

    # ── API ──────────────────────────────────────────────────────────────
    api_prefix: str = Field(default="/v1", description="URL prefix for versioned endpoints")
    api_title: str = Field(default="AstraOps API", description="OpenAPI title")
    api_version: str = Field(default="1", description="API version reported by GET /v1")

    # ── CORS ─────────────────────────────────────────────────────────────
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins",
    )

    # ── Auth ─────────────────────────────────────────────────────────────
    api_key: str | None = Field(
        default=None,
        repr=False,
        validation_alias=AliasChoices("ASTRAOPS_API_KEY", "API_KEY"),
        description="Shared secret expected in the auth header; required to serve the API",
    )
    auth_header: str = Field(default="Authorization", description="Header carrying the shared secret")

    # ── Streaming ────────────────────────────────────────────────────────
    heartbeat_seconds: float = Field(default=30.0, gt=0, description="Idle time before an SSE heartbeat")

    # ── Maintenance ──────────────────────────────────────────────────────
    cleanup_interval_minutes: float = Field(
        default=0,
        ge=0,
        description="Period of the background job sweep; 0 disables it",
    )
