"""
Tests for the astraops error hierarchy.
"""

from __future__ import annotations

from astraops.core.errors import (
    AstraOpsError,
    ErrorCategory,
    ExecutionError,
    JobStateConflict,
    NotFoundError,
    ToolNotFoundError,
    ValidationError,
)


class TestAstraOpsError:
    def test_defaults(self):
        err = AstraOpsError("boom")
        assert err.message == "boom"
        assert err.category is ErrorCategory.INTERNAL
        assert err.errors == ["boom"]

    def test_with_context_known_and_metadata(self):
        err = ExecutionError("terraform failed").with_context(job_id="job-1", exit_code=1, step="plan")
        assert err.context.job_id == "job-1"
        assert err.context.exit_code == 1
        assert err.context.metadata == {"step": "plan"}

    def test_to_dict(self):
        cause = OSError("disk")
        d = NotFoundError("Job not found", cause=cause).with_context(job_id="job-1").to_dict()
        assert d["error_type"] == "NotFoundError"
        assert d["code"] == "NOT_FOUND"
        assert d["category"] == "STATE"
        assert d["context"] == {"job_id": "job-1"}
        assert d["cause"] == "disk"

    def test_cause_is_chained(self):
        cause = FileNotFoundError("terraform")
        err = ToolNotFoundError("Command not found: terraform", cause=cause)
        assert err.__cause__ is cause
        assert isinstance(err, ExecutionError)

    def test_repr(self):
        assert repr(JobStateConflict("nope")) == "JobStateConflict('nope', category=STATE)"


class TestValidationError:
    def test_carries_every_violation(self):
        err = ValidationError(["a is required", "b must be a string"])
        assert err.errors == ["a is required", "b must be a string"]
        assert err.message == "a is required; b must be a string"
        assert err.code == "VALIDATION_FAILED"

    def test_empty_violations(self):
        assert ValidationError([]).message == "Invalid request"
