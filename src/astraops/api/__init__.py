"""
REST API layer for astraops.

Provides a FastAPI application factory whose endpoints start deploy,
destroy and simulated jobs, report their status and stream their output
as Server-Sent Events.  All workflow logic lives in ``astraops.jobs``
and ``astraops.deploy``; this package handles only HTTP transport
concerns: request validation, authentication, error mapping and
streaming.

Quick start::

    from astraops.api import create_app

    app = create_app()  # ready for uvicorn

Tags:
    astraops, api, REST, FastAPI, SSE

Doc-Types:
    api-reference
"""

from astraops.api.app import create_app

__all__ = ["create_app"]
