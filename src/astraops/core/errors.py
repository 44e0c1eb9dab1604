"""
Structured error types for astraops.

Every failure that crosses a layer boundary is an :class:`AstraOpsError`
carrying a category, a stable ``code`` the HTTP layer maps to a status
and job-scoped context.

Architecture:
    ::

        AstraOpsError  (category, code, context, cause)
        ├── ValidationError         VALIDATION   400
        ├── NotFoundError           STATE        404
        ├── JobStateConflict        STATE        409
        ├── CredentialsError        AUTH         (phase failure)
        ├── ExecutionError          EXECUTION    (phase failure)
        │   └── ToolNotFoundError

    Expected phase failures never propagate as exceptions; executors
    return a failed result.  ``ExecutionError`` is for the unexpected
    ones the orchestrator catches at its boundary.

Tags:
    errors, exceptions, error-category, astraops

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    VALIDATION = "VALIDATION"
    AUTH = "AUTH"
    STATE = "STATE"
    EXECUTION = "EXECUTION"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """Structured metadata attached to an error."""

    job_id: str | None = None
    phase: str | None = None
    command: str | None = None
    exit_code: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ("job_id", "phase", "command", "exit_code"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        result.update(self.metadata)
        return result


class AstraOpsError(Exception):
    """Base class for every astraops error.

    Subclasses override ``default_category`` and ``code``.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    code: str = "INTERNAL"

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> AstraOpsError:
        """Add context to this error (fluent API).

        Usage:
            raise ExecutionError("terraform failed").with_context(
                job_id=job_id, command="terraform apply"
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    @property
    def errors(self) -> list[str]:
        """Messages rendered in the ``errors`` array of an HTTP response."""
        return [self.message]

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "code": self.code,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# REQUEST ERRORS
# =============================================================================


class ValidationError(AstraOpsError):
    """Malformed request.  Carries every violation, not just the first."""

    default_category = ErrorCategory.VALIDATION
    code = "VALIDATION_FAILED"

    def __init__(self, violations: list[str], **kwargs: Any):
        super().__init__("; ".join(violations) or "Invalid request", **kwargs)
        self.violations = list(violations)

    @property
    def errors(self) -> list[str]:
        return list(self.violations)


class NotFoundError(AstraOpsError):
    """Referenced job does not exist."""

    default_category = ErrorCategory.STATE
    code = "NOT_FOUND"


class JobStateConflict(AstraOpsError):
    """Operation not allowed in the job's current state."""

    default_category = ErrorCategory.STATE
    code = "CONFLICT"


# =============================================================================
# EXECUTION ERRORS
# =============================================================================


class CredentialsError(AstraOpsError):
    """Cloud credentials could not be obtained."""

    default_category = ErrorCategory.AUTH
    code = "CREDENTIALS"


class ExecutionError(AstraOpsError):
    """An external tool invocation failed in an unexpected way."""

    default_category = ErrorCategory.EXECUTION
    code = "EXECUTION_FAILED"


class ToolNotFoundError(ExecutionError):
    """The executable is not installed or not runnable."""

    code = "TOOL_NOT_FOUND"


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "AstraOpsError",
    "ValidationError",
    "NotFoundError",
    "JobStateConflict",
    "CredentialsError",
    "ExecutionError",
    "ToolNotFoundError",
]
