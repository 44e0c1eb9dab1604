"""
CLI utility helpers - API client and output formatting.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import typer
from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

DEFAULT_API_URL = "http://localhost:3000"


# ── API client ───────────────────────────────────────────────────────────


def api_client(url: str, api_key: str | None, *, timeout: float | None = 30.0) -> httpx.Client:
    """HTTP client bound to a running API, sending the shared secret if given."""
    headers = {"Authorization": api_key} if api_key else {}
    return httpx.Client(base_url=url.rstrip("/"), headers=headers, timeout=timeout)


def check_response(response: httpx.Response) -> dict[str, Any]:
    """Return the JSON body, or print the API's errors and exit 1."""
    try:
        body = response.json()
    except json.JSONDecodeError:
        body = {}
    if response.is_success:
        return body
    errors = body.get("errors") if isinstance(body, dict) else None
    message = "; ".join(errors) if errors else response.reason_phrase
    err_console.print(f"[bold red]Error[/bold red] ({response.status_code}): {message}")
    raise typer.Exit(code=1)


def request_or_exit(client: httpx.Client, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
    try:
        response = client.request(method, path, **kwargs)
    except httpx.HTTPError as exc:
        err_console.print(f"[bold red]Error[/bold red]: cannot reach {client.base_url} ({exc})")
        raise typer.Exit(code=1) from exc
    return check_response(response)


# ── Output helpers ───────────────────────────────────────────────────────


def print_table(items: list[dict[str, Any]], columns: list[str], *, title: str = "") -> None:
    """Render dicts as a Rich table with the given columns."""
    if not items:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in columns:
        table.add_column(col, overflow="fold")
    for item in items:
        table.add_row(*(_cell(item.get(col)) for col in columns))
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {_cell(v)}")


def _cell(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, dict):
        return ", ".join(f"{k}={v}" for k, v in value.items())
    return str(value)
