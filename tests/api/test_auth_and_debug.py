"""
Tests for shared-secret authentication and the debug endpoints.
"""

from __future__ import annotations

from datetime import timedelta


class TestAuthMiddleware:
    def test_missing_header_is_401(self, anonymous_client):
        resp = anonymous_client.get("/v1")
        assert resp.status_code == 401
        assert resp.json() == {"status": 401, "errors": ["Unauthorized: Missing Authorization header"]}

    def test_wrong_key_is_403(self, anonymous_client):
        resp = anonymous_client.get("/v1", headers={"Authorization": "nope"})
        assert resp.status_code == 403
        assert resp.json()["errors"] == ["Forbidden: Invalid API Key"]

    def test_correct_key(self, anonymous_client, api_key):
        assert anonymous_client.get("/v1", headers={"Authorization": api_key}).status_code == 200

    def test_only_root_is_public(self, anonymous_client):
        assert anonymous_client.get("/").status_code == 200
        assert anonymous_client.get("/health").status_code == 401
        assert anonymous_client.get("/openapi.json").status_code == 401

    def test_deploy_requires_key(self, anonymous_client, request_body):
        assert anonymous_client.post("/v1/deploy", json=request_body).status_code == 401

    def test_destroy_requires_key(self, anonymous_client, request_body):
        assert anonymous_client.post("/v1/destroy", json=request_body).status_code == 401


class TestAuthWithoutKey:
    def test_endpoints_refused(self, unconfigured_client):
        resp = unconfigured_client.get("/v1/debug/jobs")
        assert resp.status_code == 500
        assert resp.json() == {"status": 500, "errors": ["Server Configuration Error"]}

    def test_destroy_refused(self, unconfigured_client, request_body):
        assert unconfigured_client.post("/v1/destroy", json=request_body).status_code == 500

    def test_root_still_served(self, unconfigured_client):
        assert unconfigured_client.get("/").status_code == 200


class TestDebugEndpoints:
    def test_list_jobs(self, client, app, request_body, finished):
        job_id = client.post("/v1/deploy", json=request_body).json()["jobId"]
        finished(job_id)

        body = client.get("/v1/debug/jobs").json()

        assert body["status"] == 200
        [job] = body["jobs"]
        assert job["jobId"] == job_id
        assert job["status"] == "COMPLETED"
        assert "duration" in job
        assert "awsCredentials" not in job

    def test_cleanup(self, client, app, deploy_request):
        store = app.state.store
        old = store.create_job(deploy_request)
        old.start_time = old.start_time - timedelta(hours=48)
        store.create_job(deploy_request)

        body = client.post("/v1/debug/jobs/cleanup", params={"hours": 24}).json()

        assert body == {"status": 200, "cleanedJobsOlderThanHours": 24, "cleanedJobs": 1}
        assert store.get_job(old.id) is None

    def test_cleanup_negative_hours_clamped(self, client, app, deploy_request):
        app.state.store.create_job(deploy_request)
        body = client.post("/v1/debug/jobs/cleanup", params={"hours": -5}).json()
        assert body["cleanedJobsOlderThanHours"] == 0
        assert body["cleanedJobs"] == 1

    def test_cleanup_huge_age_removes_nothing(self, client, app, deploy_request):
        app.state.store.create_job(deploy_request)
        resp = client.post("/v1/debug/jobs/cleanup", params={"hours": 100_000_000})
        assert resp.status_code == 200
        assert resp.json()["cleanedJobs"] == 0

    def test_cleanup_beyond_timedelta_range(self, client, app, deploy_request):
        app.state.store.create_job(deploy_request)
        resp = client.post("/v1/debug/jobs/cleanup", params={"hours": 10**15})
        assert resp.status_code == 200
        assert resp.json()["cleanedJobs"] == 0
