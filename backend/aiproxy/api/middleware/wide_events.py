"""
Request middleware emitting one canonical log line per request.

The event is opened before routing; the caller dependency and the gateway
enrich it (caller id, resolved provider and model). For streamed answers the
line is written when the response starts, so its duration covers resolution
and the upstream opening the stream, not the stream itself.
"""

from collections.abc import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from aiproxy.core.logging import emit_wide_event, finalize_request_event, init_request_event

REQUEST_ID_HEADER = "x-request-id"

# Probes would drown out real traffic
SKIP_PATHS = frozenset({"/api/health", "/api/ready", "/favicon.ico"})


def client_ip(request: Request) -> str:
    """First hop of X-Forwarded-For, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


class WideEventMiddleware(BaseHTTPMiddleware):
    """Open, finalize and emit the request's wide event."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.url.path in SKIP_PATHS:
            return await call_next(request)

        event = init_request_event(
            request_id=request.headers.get(REQUEST_ID_HEADER),
            method=request.method,
            path=request.url.path,
            client_ip=client_ip(request),
            user_agent=request.headers.get("user-agent", ""),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            emit_wide_event(finalize_request_event(getattr(e, "status_code", 500), e))
            raise

        response.headers[REQUEST_ID_HEADER] = event["request_id"]
        emit_wide_event(finalize_request_event(response.status_code))
        return response
