"""
Middleware package.

WHY: Request context applies to every request; subscription gating is
expressed as FastAPI dependencies that routes opt into.
"""

from parish_billing.middleware.request_context import (
    RequestContextMiddleware,
    RequestContext,
    get_request_context,
    get_request_id,
    get_client_ip,
)

__all__ = [
    "RequestContextMiddleware",
    "RequestContext",
    "get_request_context",
    "get_request_id",
    "get_client_ip",
]
