"""
Tests for base and API settings.
"""

from __future__ import annotations

from pathlib import Path

from astraops.api.settings import AstraOpsAPISettings
from astraops.core.settings import AstraOpsBaseSettings


class TestBaseSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ASTRAOPS_PORT", raising=False)
        s = AstraOpsBaseSettings(_env_file=None)
        assert s.port == 3000
        assert s.terraform_dir == Path("iac/terraform")
        assert s.redact_marker == "iac"
        assert s.simulation_step_seconds == 1.0

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("ASTRAOPS_PORT", "8080")
        monkeypatch.setenv("ASTRAOPS_SIMULATION_STEP_SECONDS", "0")
        s = AstraOpsBaseSettings(_env_file=None)
        assert s.port == 8080
        assert s.simulation_step_seconds == 0

    def test_password_not_in_repr(self):
        s = AstraOpsBaseSettings(_env_file=None, grafana_admin_password="hunter2")
        assert "hunter2" not in repr(s)


class TestApiSettings:
    def test_no_api_key_by_default(self, monkeypatch):
        monkeypatch.delenv("API_KEY", raising=False)
        monkeypatch.delenv("ASTRAOPS_API_KEY", raising=False)
        s = AstraOpsAPISettings(_env_file=None)
        assert s.api_key is None
        assert s.api_prefix == "/v1"
        assert s.auth_header == "Authorization"

    def test_bare_api_key_env(self, monkeypatch):
        monkeypatch.delenv("ASTRAOPS_API_KEY", raising=False)
        monkeypatch.setenv("API_KEY", "s3cret")
        assert AstraOpsAPISettings(_env_file=None).api_key == "s3cret"

    def test_prefixed_api_key_wins(self, monkeypatch):
        monkeypatch.setenv("ASTRAOPS_API_KEY", "prefixed")
        monkeypatch.setenv("API_KEY", "bare")
        assert AstraOpsAPISettings(_env_file=None).api_key == "prefixed"

    def test_init_kwarg(self):
        s = AstraOpsAPISettings(_env_file=None, api_key="k", heartbeat_seconds=0.5)
        assert s.api_key == "k"
        assert s.heartbeat_seconds == 0.5
        assert "'k'" not in repr(s)
