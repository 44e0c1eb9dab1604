"""
Operator-facing structured logs for the astraops service.

These are the service's own logs (stdout, for whoever runs the server).
They are unrelated to the per-job log entries that clients stream: a job
entry is data, a structlog event is diagnostics.

Manifesto:
    Many jobs run at once in one process, so every operator question is
    "what happened to job X".  Job and request identifiers are bound once
    into contextvars and ride along on every event emitted on their
    behalf.  Credentials never reach the log sink, whichever call site
    forgot to leave them out.

Architecture:
    ::

        configure_logging(level, json_format, service)
            ↓
        merge_contextvars → add_log_level → add_logger_name
            → TimeStamper(iso) → scrub_secrets → service metadata
            → (JSON: format_exc_info, ECS field names) → renderer

Examples:
    >>> from astraops.core.logging import configure_logging, get_logger, job_context
    >>> configure_logging(level="INFO", json_format=True)
    >>> log = get_logger(__name__)
    >>> with job_context("job-1a2b3c4d"):
    ...     log.info("phase.started", phase="auth")

Tags:
    logging, structlog, observability, astraops
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

REDACTED = "***"

# Event keys whose values are replaced before rendering.
SECRET_KEYS = frozenset(
    {
        "secret_access_key",
        "secretAccessKey",
        "session_token",
        "sessionToken",
        "password",
        "api_key",
        "authorization",
    }
)

_service_name = "astraops"


def scrub_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credential values, including one level down in dict values."""
    for key, value in list(event_dict.items()):
        if key in SECRET_KEYS and value:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {k: REDACTED if k in SECRET_KEYS and v else v for k, v in value.items()}
    return event_dict


def _service_metadata(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service.name", _service_name)
    return event_dict


def _ecs_field_names(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    if "timestamp" in event_dict:
        event_dict["@timestamp"] = event_dict.pop("timestamp")
    if "level" in event_dict:
        event_dict["log.level"] = event_dict.pop("level")
    return event_dict


def configure_logging(level: str = "INFO", json_format: bool | None = None, service: str = "astraops") -> None:
    """Install the processor chain.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON lines, False for the console renderer,
            None to pick JSON whenever stdout is not a terminal
        service: Value of ``service.name`` on every event
    """
    global _service_name
    _service_name = service
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    if json_format is None:
        json_format = not sys.stdout.isatty()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.dev.set_exc_info,
        scrub_secrets,
        _service_metadata,
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, _ecs_field_names, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    # uvicorn and httpx log through the stdlib root logger.
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind fields onto every event of the current task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


@contextmanager
def job_context(job_id: str, **extra: Any) -> Iterator[None]:
    """Scope ``job_id`` (and *extra*) onto every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(job_id=job_id, **extra):
        yield


__all__ = [
    "REDACTED",
    "SECRET_KEYS",
    "bind_context",
    "configure_logging",
    "get_logger",
    "job_context",
    "scrub_secrets",
    "unbind_context",
]
