"""
FastAPI application factory.

``create_app()`` builds the job store, its log bus, the process runner
and the orchestrator, and wires middleware, routers, error handlers and
lifespan events into a single ``FastAPI`` instance.

Manifesto:
    The app factory is the single composition root.  Every collaborator
    is constructed here and kept on ``app.state``, so two apps never
    share jobs and tests can hand in their own orchestrator.

Tags:
    astraops, api, app-factory, composition-root, FastAPI

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from astraops import __version__
from astraops.api.deps import get_settings
from astraops.api.middleware.auth import AuthMiddleware
from astraops.api.middleware.errors import astraops_exception_handler, unhandled_exception_handler
from astraops.api.middleware.request_id import RequestIDMiddleware
from astraops.api.settings import AstraOpsAPISettings
from astraops.core.errors import AstraOpsError
from astraops.core.events.memory import InMemoryLogBus
from astraops.core.logging import configure_logging, get_logger
from astraops.deploy.runner import ProcessRunner
from astraops.jobs.orchestrator import JobOrchestrator
from astraops.jobs.store import JobStore

log = get_logger("astraops.api")


async def sweep_periodically(store: JobStore, *, interval_seconds: float, max_age: timedelta) -> None:
    """Drop old jobs every *interval_seconds* until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        removed = store.sweep_older_than(max_age)
        log.debug("jobs.sweep_tick", removed=removed)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan - startup / shutdown hooks."""
    settings: AstraOpsAPISettings = app.state.settings
    log.info("api.starting", version=__version__, port=settings.port)
    if settings.api_key is None:
        log.error("auth.not_configured", reason="no API key configured, every endpoint but / answers 500")

    sweeper: asyncio.Task[None] | None = None
    if settings.cleanup_interval_minutes > 0:
        sweeper = asyncio.create_task(
            sweep_periodically(
                app.state.store,
                interval_seconds=settings.cleanup_interval_minutes * 60,
                max_age=timedelta(hours=settings.job_retention_hours),
            )
        )

    yield

    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    await app.state.orchestrator.shutdown()
    log.info("api.stopped")


def create_app(
    *,
    settings: AstraOpsAPISettings | None = None,
    store: JobStore | None = None,
    orchestrator: JobOrchestrator | None = None,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Parameters
    ----------
    settings : AstraOpsAPISettings | None
        Override settings (useful for testing).  When ``None`` the cached
        singleton from :func:`get_settings` is used.
    store : JobStore | None
        Job store to serve; a fresh one with an in-memory bus by default.
    orchestrator : JobOrchestrator | None
        Orchestrator bound to *store*; built from settings by default.
    """

    settings = settings or get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json, service="astraops")

    if store is None:
        store = orchestrator.store if orchestrator is not None else JobStore(InMemoryLogBus())
    if orchestrator is None:
        runner = ProcessRunner(store, redact_marker=settings.redact_marker)
        orchestrator = JobOrchestrator(store, runner, settings)

    app = FastAPI(
        title=settings.api_title,
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.bus = store.bus
    app.state.orchestrator = orchestrator

    # Override DI so endpoints use the provided settings
    app.dependency_overrides[get_settings] = lambda: settings

    # ── Middleware (innermost → outermost; CORS answers preflights) ──
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(AuthMiddleware, api_key=settings.api_key, header=settings.auth_header)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(AstraOpsError, astraops_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    from astraops.api.routers import debug, deploy, logs, meta

    prefix = settings.api_prefix

    app.include_router(meta.root_router, tags=["meta"])
    app.include_router(meta.router, prefix=prefix, tags=["meta"])
    app.include_router(deploy.router, prefix=prefix, tags=["deploy"])
    app.include_router(logs.router, prefix=prefix, tags=["logs"])
    app.include_router(debug.router, prefix=prefix, tags=["debug"])

    return app
