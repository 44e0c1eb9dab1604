"""
Tests for the deploy, destroy, status, monitoring and meta endpoints.
"""

from __future__ import annotations

from astraops.jobs.models import DEPLOY_SUCCEEDED, DESTROY_SUCCEEDED


class TestMeta:
    def test_banner(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.json()["service"] == "AstraOps API"

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"

    def test_api_info(self, client, request_body):
        client.post("/v1/deploy", json=request_body)
        body = client.get("/v1").json()
        assert body["message"] == "AstraOps API v1"
        assert body["status"] == "healthy"
        assert body["timestamp"].endswith("Z")
        assert body["metrics"]["totalJobs"] == 1

    def test_request_id_header(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "abc"})
        assert resp.headers["X-Request-ID"] == "abc"
        assert "X-Process-Time-Ms" in resp.headers


class TestDeploy:
    def test_accepted(self, client, request_body, finished):
        resp = client.post("/v1/deploy", json=request_body)

        assert resp.status_code == 202
        body = resp.json()
        assert body["jobId"].startswith("job-")
        assert body["message"] == "Deployment initiated using provided IAM role for account 123456789012"
        assert set(body["phases"]) == {"auth", "infrastructureSetup", "applicationDeploy"}

        status = finished(body["jobId"])
        assert status["status"] == "COMPLETED"
        assert status["phases"] == {
            "auth": "COMPLETED",
            "infrastructureSetup": "COMPLETED",
            "applicationDeploy": "COMPLETED",
        }
        assert status["message"].startswith("Deployment completed successfully in ")
        assert "duration" in status

    def test_in_progress_status_has_no_duration(self, client, app, request_body, deploy_request):
        job = app.state.store.create_job(deploy_request)
        body = client.get(f"/v1/deploy/{job.id}/status").json()
        assert body["message"] == "Deployment in progress"
        assert "duration" not in body

    def test_validation_errors(self, client):
        resp = client.post("/v1/deploy", json={})
        assert resp.status_code == 400
        body = resp.json()
        assert body["status"] == 400
        assert "Missing required fields: accountId, region, roleArn, astraopsConfig" in body["errors"]

    def test_invalid_json(self, client):
        resp = client.post("/v1/deploy", content=b"{not json", headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert resp.json()["errors"] == ["Request body is required and must be a valid JSON object"]

    def test_bad_fields_reported_together(self, client, request_body):
        request_body["accountId"] = "12"
        request_body["astraopsConfig"]["services"][0]["port"] = 70000
        resp = client.post("/v1/deploy", json=request_body)
        errors = resp.json()["errors"]
        assert any(e.startswith("accountId must be a 12-digit AWS account ID") for e in errors)
        assert "astraopsConfig.services[0].port must be between 1 and 65535" in errors

    def test_status_unknown_job(self, client):
        resp = client.get("/v1/deploy/job-00000000/status")
        assert resp.status_code == 404
        assert resp.json() == {"status": 404, "errors": ["Job not found"]}


class TestDestroy:
    def test_destroy_with_credentials(self, client, app, request_body_with_credentials, finished):
        resp = client.post("/v1/destroy", json=request_body_with_credentials)
        assert resp.status_code == 202
        assert resp.json()["message"] == "Destroy initiated"

        job_id = resp.json()["jobId"]
        status = finished(job_id)
        assert status["status"] == "COMPLETED"
        assert status["phases"]["applicationDeploy"] == "SKIPPED"
        assert status["message"].startswith("Destroy completed successfully in ")
        messages = [e.message for e in app.state.store.snapshot_logs(job_id)]
        assert messages[-1] == DESTROY_SUCCEEDED

    def test_destroy_without_credentials_fails(self, client, request_body, finished):
        job_id = client.post("/v1/destroy", json=request_body).json()["jobId"]
        status = finished(job_id)
        assert status["status"] == "FAILED"
        assert status["phases"]["auth"] == "SKIPPED"
        assert status["message"] == "Destroy failed"


class TestSimulate:
    def test_simulation_completes(self, client, app, request_body, finished):
        resp = client.post("/v1/deploy/simulate", json=request_body)
        assert resp.status_code == 202
        assert resp.json()["message"] == "Simulation initiated for account 123456789012"

        job_id = resp.json()["jobId"]
        assert finished(job_id)["phases"]["auth"] == "SKIPPED"
        messages = [e.message for e in app.state.store.snapshot_logs(job_id)]
        assert "Application URL: https://shop.astraops-demo.com" in messages
        assert messages[-1] == DEPLOY_SUCCEEDED

    def test_simulation_validates(self, client):
        assert client.post("/v1/deploy/simulate", json={"accountId": "x"}).status_code == 400


class TestMonitoring:
    def test_unknown_job(self, client):
        resp = client.post("/v1/deploy/job-00000000/monitoring")
        assert resp.status_code == 404

    def test_job_not_completed(self, client, app, deploy_request):
        job = app.state.store.create_job(deploy_request)
        resp = client.post(f"/v1/deploy/{job.id}/monitoring")
        assert resp.status_code == 409
        assert resp.json()["errors"] == ["Job is not completed"]

    def test_setup_returns_access(self, client, request_body, finished):
        job_id = client.post("/v1/deploy", json=request_body).json()["jobId"]
        finished(job_id)

        resp = client.post(f"/v1/deploy/{job_id}/monitoring")

        assert resp.status_code == 200
        assert resp.json() == {
            "status": 200,
            "url": "http://grafana.example.com/d/x",
            "username": "admin",
            "password": "grafana-pw",
        }


class TestErrors:
    def test_unhandled_exception_is_500(self, client, app, monkeypatch):
        def broken():
            raise RuntimeError("internal detail")

        monkeypatch.setattr(app.state.store, "counts", broken)
        resp = client.get("/v1")
        assert resp.status_code == 500
        assert resp.json() == {"status": 500, "errors": ["Internal server error"]}
