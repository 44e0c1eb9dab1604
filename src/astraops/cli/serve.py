"""
CLI: ``astraops serve`` - start the API server.
"""

from __future__ import annotations

import typer
import uvicorn

from astraops.api.deps import get_settings
from astraops.cli.utils import console

app = typer.Typer(no_args_is_help=True)


@app.command("start")
def start(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address (default from settings)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port (default from settings)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on changes"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Start the astraops REST API server.

    A single worker only: jobs live in process memory.
    """
    settings = get_settings()
    bind_host = host or settings.host
    bind_port = port or settings.port
    if settings.api_key is None:
        console.print("[yellow]No API key configured - every endpoint but / will answer 500.[/yellow]")

    console.print(f"[bold green]Starting astraops API[/bold green] on {bind_host}:{bind_port}")
    uvicorn.run(
        "astraops.api:create_app",
        factory=True,
        host=bind_host,
        port=bind_port,
        reload=reload,
        workers=1,
        log_level=log_level,
        timeout_keep_alive=120,
    )
