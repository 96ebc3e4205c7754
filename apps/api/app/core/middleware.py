"""ASGI middleware for the prototype API.

Middlewares registered in order (outermost → innermost):
  1. PreflightMiddleware       — answers every CORS preflight with 204
  2. CORSMiddleware            — handled by Starlette directly (not here)
  3. RequestIdMiddleware       — injects / forwards X-Request-ID; stores in ContextVar
  4. SecurityHeadersMiddleware — adds security response headers

The ContextVar `_request_id_var` is the single source of truth for the
current request ID; the logging layer reads it for every log line.
"""

import uuid
from contextvars import ContextVar
from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# Headers browsers may send on cross-origin calls from the web client.
CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]

# ---------------------------------------------------------------------------
# ContextVar shared across middleware and route handlers within one request
# ---------------------------------------------------------------------------

_request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def get_request_id() -> str:
    """Return the current request's ID, or an empty string outside a request."""
    return _request_id_var.get()


# ---------------------------------------------------------------------------
# PreflightMiddleware
# ---------------------------------------------------------------------------


class PreflightMiddleware(BaseHTTPMiddleware):
    """Answer OPTIONS requests with 204 and permissive CORS headers.

    Starlette's CORSMiddleware replies 200 and only for requests carrying
    Access-Control-Request-Method; the web client expects a bare 204 for
    any OPTIONS request, from any origin.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.method != "OPTIONS":
            return await call_next(request)
        return Response(
            status_code=204,
            headers={
                "Access-Control-Allow-Origin": "*",
                "Access-Control-Allow-Headers": ", ".join(CORS_ALLOW_HEADERS),
                "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
            },
        )


# ---------------------------------------------------------------------------
# RequestIdMiddleware
# ---------------------------------------------------------------------------


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Read or generate X-Request-ID and make it available for the request lifetime.

    - If the client sends X-Request-ID, that value is reused.
    - If absent, a fresh UUID4 is generated.
    - The ID is always echoed back in the response header.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        token = _request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            _request_id_var.reset(token)

        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# SecurityHeadersMiddleware
# ---------------------------------------------------------------------------


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach security-related headers to every outgoing response.

    X-Frame-Options is not set: deployed prototypes are shown in an
    embedded frame by the web client, and API responses are JSON only.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["X-XSS-Protection"] = "0"
        return response
