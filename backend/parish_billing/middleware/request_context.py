"""
Request context middleware for log correlation.

WHAT: Middleware that assigns every request an ID and captures the client
address, making both available for the whole request lifecycle.

WHY: Billing incidents are investigated from logs. A request ID ties the
webhook log row, the handler's log lines, and the HTTP access line
together. Razorpay retries reuse no request IDs, so each delivery gets
its own correlation ID.

HOW: Stores context in request.state for handlers and in a ContextVar for
services that have no request object (the webhook engine).
"""

import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


@dataclass
class RequestContext:
    """
    Container for request-scoped context data.

    Fields:
    - request_id: Unique identifier for the request (for log correlation)
    - ip_address: Client's real IP (considering proxies)
    - path: Request path
    - method: HTTP method
    """

    request_id: str
    ip_address: str
    path: str
    method: str


# WHY: ContextVar ensures each async request gets its own isolated context
_request_context: ContextVar[Optional[RequestContext]] = ContextVar(
    "request_context", default=None
)


def get_request_context() -> Optional[RequestContext]:
    """
    Get the current request context.

    Returns:
        RequestContext if within a request, None otherwise
    """
    return _request_context.get()


def get_request_id() -> Optional[str]:
    context = _request_context.get()
    return context.request_id if context else None


def get_client_ip(request: Request) -> str:
    """
    Extract the real client IP address from a request.

    HOW: Checks headers in order of trust:
    1. X-Real-IP (set by some proxies like nginx)
    2. X-Forwarded-For (comma-separated list, first is original client)
    3. request.client.host (direct connection IP)

    Security Note:
        These headers can be spoofed by clients if not behind a trusted proxy.
    """
    x_real_ip = request.headers.get("X-Real-IP")
    if x_real_ip:
        return x_real_ip.strip()

    x_forwarded_for = request.headers.get("X-Forwarded-For")
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that captures and stores request context.

    WHAT: Generates a request ID (or keeps a caller-supplied X-Request-ID),
    records the client IP, and echoes the ID on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        context = RequestContext(
            request_id=request_id,
            ip_address=get_client_ip(request),
            path=request.url.path,
            method=request.method,
        )
        request.state.context = context
        token = _request_context.set(context)

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            _request_context.reset(token)
