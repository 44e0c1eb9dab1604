"""
FastAPI dependency injection - settings singleton and app-scoped services.

Usage in routers::

    from astraops.api.deps import Orchestrator, Settings, Store

    @router.get("/things")
    def list_things(store: Store, settings: Settings):
        ...

Manifesto:
    The job store, its bus and the orchestrator are built once by
    ``create_app`` and kept on ``app.state``; dependencies only read
    them from there.  Nothing is a module-level global, so every test
    app gets its own.

Tags:
    astraops, api, dependency-injection

Doc-Types:
    api-reference
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request

from astraops.api.settings import AstraOpsAPISettings
from astraops.jobs.orchestrator import JobOrchestrator
from astraops.jobs.store import JobStore

# ── Settings (singleton) ─────────────────────────────────────────────────


@lru_cache(maxsize=1)
def get_settings() -> AstraOpsAPISettings:
    """Cached settings - loaded once per process."""
    return AstraOpsAPISettings()


# ── App-scoped services ──────────────────────────────────────────────────


def get_store(request: Request) -> JobStore:
    return request.app.state.store


def get_orchestrator(request: Request) -> JobOrchestrator:
    return request.app.state.orchestrator


# ── Convenience type aliases ─────────────────────────────────────────────

Settings = Annotated[AstraOpsAPISettings, Depends(get_settings)]
Store = Annotated[JobStore, Depends(get_store)]
Orchestrator = Annotated[JobOrchestrator, Depends(get_orchestrator)]
