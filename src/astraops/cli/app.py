"""
Root Typer application for the astraops CLI.

Sub-commands:
    serve   run the HTTP API with uvicorn
    jobs    inspect, follow and prune jobs on a running API
"""

from __future__ import annotations

import typer
from typer import Typer

from astraops import __version__

app = Typer(
    name="astraops",
    help="astraops - deployment orchestration backend.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"astraops {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """astraops CLI - run the API and manage its jobs."""


# ── Sub-command registration ─────────────────────────────────────────────

from astraops.cli.jobs import app as jobs_app  # noqa: E402
from astraops.cli.serve import app as serve_app  # noqa: E402

app.add_typer(serve_app, name="serve", help="Start the API server.")
app.add_typer(jobs_app, name="jobs", help="Inspect and prune jobs on a running API.")
