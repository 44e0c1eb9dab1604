"""
Shared-secret authentication middleware.

Every request except ``GET /`` must carry the configured API key
verbatim in the auth header (``Authorization`` by default).  A missing
header is a 401, a wrong value a 403.  A server started without a key
refuses everything but the root banner with a 500, so a misconfigured
deployment never serves the API unprotected.

Tags:
    astraops, api, middleware, authentication

Doc-Types:
    api-reference
"""

from __future__ import annotations

import hmac

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from astraops.api.middleware.errors import error_response
from astraops.core.logging import get_logger

log = get_logger(__name__)

# Only the service banner is public.
PUBLIC_PATHS = frozenset({"/"})

MISSING_HEADER = "Unauthorized: Missing Authorization header"
INVALID_KEY = "Forbidden: Invalid API Key"
NOT_CONFIGURED = "Server Configuration Error"


class AuthMiddleware(BaseHTTPMiddleware):
    """Reject requests that lack the shared secret.

    Parameters
    ----------
    app:
        The ASGI application to wrap.
    api_key:
        The expected secret.  ``None`` rejects every non-public request.
    header:
        Request header that carries the secret.
    """

    def __init__(self, app: object, api_key: str | None = None, header: str = "Authorization") -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._api_key = api_key
        self._header = header

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in PUBLIC_PATHS:
            return await call_next(request)

        if not self._api_key:
            log.error("auth.not_configured", path=request.url.path)
            return _reject(500, NOT_CONFIGURED)

        provided = request.headers.get(self._header)
        if not provided:
            return _reject(401, MISSING_HEADER)
        if not hmac.compare_digest(provided.encode(), self._api_key.encode()):
            return _reject(403, INVALID_KEY)

        return await call_next(request)


def _reject(status: int, message: str) -> JSONResponse:
    return error_response(status, [message])
