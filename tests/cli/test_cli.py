"""
Tests for the astraops CLI.

HTTP calls go to an ``httpx.MockTransport``; ``uvicorn.run`` is patched.
"""

from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest
from typer.testing import CliRunner

from astraops import __version__
from astraops.cli.app import app
from astraops.cli.utils import _cell, api_client

runner = CliRunner()

_JOB = {
    "jobId": "job-1a2b3c4d",
    "kind": "deploy",
    "status": "COMPLETED",
    "applicationName": "shop",
    "region": "us-west-2",
    "startTime": "2024-05-01T00:00:00.000Z",
    "duration": "3m 12s",
}

_SSE = (
    'event: log\ndata: {"phase": "auth", "level": "info", "message": "Attempting to assume IAM role"}\n\n'
    "event: raw\ndata: terraform: Apply complete!\n\n"
    'event: log\ndata: {"phase": "deployment", "level": "success", "message": "Deployment completed successfully"}\n\n'
)


def _handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/v1/debug/jobs":
        return httpx.Response(200, json={"status": 200, "jobs": [_JOB]})
    if path == "/v1/deploy/job-1a2b3c4d/status":
        return httpx.Response(200, json={"jobId": "job-1a2b3c4d", "status": "RUNNING", "message": "Deployment in progress"})
    if path == "/v1/debug/jobs/cleanup":
        hours = int(request.url.params["hours"])
        return httpx.Response(200, json={"status": 200, "cleanedJobsOlderThanHours": hours, "cleanedJobs": 2})
    if path == "/v1/deploy/job-1a2b3c4d/logs":
        return httpx.Response(200, text=_SSE, headers={"content-type": "text/event-stream"})
    return httpx.Response(404, json={"status": 404, "errors": ["Job not found"]})


@pytest.fixture()
def mock_api():
    seen: list[httpx.Request] = []

    def handler(request):
        seen.append(request)
        return _handler(request)

    def client(url, api_key, *, timeout=30.0):
        headers = {"Authorization": api_key} if api_key else {}
        return httpx.Client(base_url=url, headers=headers, transport=httpx.MockTransport(handler))

    with patch("astraops.cli.jobs.api_client", side_effect=client):
        yield seen


class TestRoot:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"astraops {__version__}" in result.output

    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "serve" in result.output
        assert "jobs" in result.output


class TestServe:
    def test_start_runs_app_factory(self):
        with patch("astraops.cli.serve.uvicorn.run") as run:
            result = runner.invoke(app, ["serve", "start", "--host", "127.0.0.1", "--port", "9000"])

        assert result.exit_code == 0, result.output
        args, kwargs = run.call_args
        assert args == ("astraops.api:create_app",)
        assert kwargs["factory"] is True
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 9000
        assert kwargs["workers"] == 1


class TestJobs:
    def test_list(self, mock_api):
        result = runner.invoke(app, ["jobs", "list"])
        assert result.exit_code == 0, result.output
        assert "shop" in result.output

    def test_list_json(self, mock_api):
        result = runner.invoke(app, ["jobs", "list", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)[0]["jobId"] == "job-1a2b3c4d"

    def test_api_key_sent(self, mock_api):
        runner.invoke(app, ["jobs", "list", "--api-key", "s3cret"])
        assert mock_api[0].headers["Authorization"] == "s3cret"

    def test_status(self, mock_api):
        result = runner.invoke(app, ["jobs", "status", "job-1a2b3c4d"])
        assert result.exit_code == 0
        assert "Deployment in progress" in result.output

    def test_status_not_found(self, mock_api):
        result = runner.invoke(app, ["jobs", "status", "job-00000000"])
        assert result.exit_code == 1

    def test_cleanup(self, mock_api):
        result = runner.invoke(app, ["jobs", "cleanup", "--hours", "6"])
        assert result.exit_code == 0
        assert mock_api[0].url.params["hours"] == "6"
        assert "older than 6h" in result.output

    def test_logs(self, mock_api):
        result = runner.invoke(app, ["jobs", "logs", "job-1a2b3c4d"])
        assert result.exit_code == 0, result.output
        assert "Attempting to assume IAM role" in result.output
        assert "terraform: Apply complete!" in result.output
        assert "Deployment completed successfully" in result.output

    def test_logs_without_raw(self, mock_api):
        result = runner.invoke(app, ["jobs", "logs", "job-1a2b3c4d", "--no-raw"])
        assert "terraform: Apply complete!" not in result.output

    def test_unreachable_api(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        def client(url, api_key, *, timeout=30.0):
            return httpx.Client(base_url=url, transport=httpx.MockTransport(refuse))

        with patch("astraops.cli.jobs.api_client", side_effect=client):
            result = runner.invoke(app, ["jobs", "list"])
        assert result.exit_code == 1


class TestUtils:
    def test_api_client_headers(self):
        with api_client("http://localhost:3000/", "k") as client:
            assert client.headers["Authorization"] == "k"
            assert client.base_url.host == "localhost"

    def test_cell(self):
        assert _cell(None) == "-"
        assert _cell({"auth": "COMPLETED"}) == "auth=COMPLETED"
        assert _cell(3) == "3"
