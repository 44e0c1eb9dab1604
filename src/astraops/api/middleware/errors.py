"""
Error-handling - maps :class:`AstraOpsError` codes to HTTP responses.

Every non-2xx body has the same shape: ``{"status": <code>, "errors":
[<message>, ...]}``.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from astraops.core.errors import AstraOpsError
from astraops.core.logging import get_logger

log = get_logger(__name__)

# ── Error code → HTTP status mapping ─────────────────────────────────────

ERROR_CODE_TO_STATUS: dict[str, int] = {
    "VALIDATION_FAILED": 400,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "CREDENTIALS": 500,
    "EXECUTION_FAILED": 500,
    "TOOL_NOT_FOUND": 500,
    "INTERNAL": 500,
}


def status_for_error_code(code: str) -> int:
    """Resolve an error code to HTTP status, defaulting to 500."""
    return ERROR_CODE_TO_STATUS.get(code, 500)


def error_response(status: int, errors: list[str]) -> JSONResponse:
    """Build the ``{status, errors}`` JSON error body."""
    return JSONResponse(status_code=status, content={"status": status, "errors": errors})


async def astraops_exception_handler(request: Request, exc: AstraOpsError) -> JSONResponse:
    """Render a raised :class:`AstraOpsError` with the status its code maps to."""
    status = status_for_error_code(exc.code)
    log.info("api.error", path=request.url.path, status=status, **exc.to_dict())
    return error_response(status, exc.errors)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions - 500 without any internals."""
    log.error("api.unhandled_exception", path=request.url.path, error_type=type(exc).__name__, exc_info=exc)
    message = str(exc) if request.app.state.settings.debug else "Internal server error"
    return error_response(500, [message])
