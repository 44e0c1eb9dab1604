"""
CLI: ``astraops jobs`` - talk to a running API about its jobs.
"""

from __future__ import annotations

import json

import httpx
import typer
from rich.markup import escape

from astraops.cli.utils import (
    DEFAULT_API_URL,
    api_client,
    check_response,
    console,
    err_console,
    print_dict,
    print_table,
    request_or_exit,
)

app = typer.Typer(no_args_is_help=True)

_URL = typer.Option(DEFAULT_API_URL, "--url", "-u", envvar="ASTRAOPS_URL", help="API base URL")
_KEY = typer.Option(None, "--api-key", "-k", envvar="ASTRAOPS_API_KEY", help="Shared secret")
_JSON = typer.Option(False, "--json")

_LEVEL_STYLE = {"info": "blue", "warn": "yellow", "error": "red", "success": "green"}


@app.command("list")
def list_jobs(url: str = _URL, api_key: str | None = _KEY, json_out: bool = _JSON) -> None:
    """List every job the API knows about, newest first."""
    with api_client(url, api_key) as client:
        body = request_or_exit(client, "GET", "/v1/debug/jobs")
    jobs = body.get("jobs", [])
    if json_out:
        console.print_json(json.dumps(jobs))
        return
    print_table(
        jobs,
        ["jobId", "kind", "status", "applicationName", "region", "startTime", "duration"],
        title="Jobs",
    )


@app.command("status")
def job_status(
    job_id: str = typer.Argument(..., help="Job ID"),
    url: str = _URL,
    api_key: str | None = _KEY,
    json_out: bool = _JSON,
) -> None:
    """Show one job's status and phases."""
    with api_client(url, api_key) as client:
        body = request_or_exit(client, "GET", f"/v1/deploy/{job_id}/status")
    if json_out:
        console.print_json(json.dumps(body))
        return
    print_dict(body, title=f"Job: {job_id}")


@app.command("cleanup")
def cleanup(
    hours: int = typer.Option(24, "--hours", help="Drop jobs started at least this many hours ago"),
    url: str = _URL,
    api_key: str | None = _KEY,
) -> None:
    """Drop old jobs from the API's memory."""
    with api_client(url, api_key) as client:
        body = request_or_exit(client, "POST", "/v1/debug/jobs/cleanup", params={"hours": hours})
    console.print(
        f"Removed [bold]{body.get('cleanedJobs', 0)}[/bold] job(s) older than {body.get('cleanedJobsOlderThanHours')}h"
    )


@app.command("logs")
def follow_logs(
    job_id: str = typer.Argument(..., help="Job ID"),
    destroy: bool = typer.Option(False, "--destroy", help="Follow a destroy job"),
    monitoring: bool = typer.Option(False, "--monitoring", help="Follow the monitoring setup"),
    raw: bool = typer.Option(True, "--raw/--no-raw", help="Show raw tool output"),
    url: str = _URL,
    api_key: str | None = _KEY,
) -> None:
    """Follow a job's log stream until it ends."""
    if monitoring:
        path = f"/v1/deploy/{job_id}/monitoring/logs"
    elif destroy:
        path = f"/v1/destroy/{job_id}/logs"
    else:
        path = f"/v1/deploy/{job_id}/logs"

    with api_client(url, api_key, timeout=None) as client:
        try:
            with client.stream("GET", path) as response:
                if not response.is_success:
                    response.read()
                    check_response(response)
                event = "message"
                for line in response.iter_lines():
                    if line.startswith("event:"):
                        event = line[len("event:"):].strip()
                    elif line.startswith("data:"):
                        _render(event, line[len("data:"):].strip(), raw)
        except httpx.HTTPError as exc:
            err_console.print(f"[bold red]Error[/bold red]: stream interrupted ({exc})")
            raise typer.Exit(code=1) from exc


def _render(event: str, data: str, show_raw: bool) -> None:
    if event == "log":
        entry = json.loads(data)
        style = _LEVEL_STYLE.get(entry.get("level", ""), "white")
        phase = escape(f"[{entry.get('phase')}]")
        console.print(f"[{style}]{phase}[/{style}] {escape(str(entry.get('message')))}", highlight=False)
    elif event == "raw":
        if show_raw:
            console.print(data, style="dim", highlight=False, markup=False)
    else:
        err_console.print(data, markup=False)
