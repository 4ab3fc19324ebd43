"""
FastAPI exception handlers for the billing API.

WHY: Every failure leaves the API in the same JSON shape
({error, message, status_code, details}) so the checkout frontend can
branch on the error class name, e.g. PaymentRequiredError at login or
FeatureLimitExceededError when adding a family.

Log levels follow who has to act:
- Gateway and server faults (5xx) are ERROR, an operator must look.
- Billing denials (402 and 403) are INFO, the parish admin must pay or upgrade.
- Everything else is the client's own mistake and is not logged here.
"""

import logging

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from parish_billing.core.exceptions import AppException
from parish_billing.middleware.request_context import get_request_id

logger = logging.getLogger(__name__)

BILLING_DENIAL_STATUSES = (402, 403)


def _request_id(request: Request):
    # The catch-all runs outside RequestContextMiddleware, after the ContextVar is reset
    context = getattr(request.state, "context", None)
    return get_request_id() or (context.request_id if context else None)


def _error_body(error: str, message: str, status_code: int, details=None) -> dict:
    return {
        "error": error,
        "message": message,
        "status_code": status_code,
        "details": details,
    }


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Render an AppException (and subclasses) as its to_dict() body.

    Context is filtered by to_dict(), so gateway ids and subscription status
    reach the client while secrets never do.
    """
    log_extra = {
        "status_code": exc.status_code,
        "error": exc.__class__.__name__,
        "path": request.url.path,
        "request_id": _request_id(request),
    }

    if exc.status_code >= 500:
        logger.error(
            f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}",
            extra={**log_extra, "gateway_error": exc.context.get("gateway_error")},
        )
    elif exc.status_code in BILLING_DENIAL_STATUSES:
        logger.info(
            f"Billing access denied: {exc.message}",
            extra={**log_extra, "subscription_status": exc.context.get("subscription_status")},
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(exc.to_dict()),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Turn pydantic request errors into a 400 with one entry per field.

    WHY: The plan picker and cancellation form show messages beside the
    offending input (e.g. "cancellation_reason" shorter than 10 chars).
    """
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]

    return JSONResponse(
        status_code=400,
        content=_error_body("ValidationError", "Request validation failed", 400, {"errors": errors}),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes and wrong methods (404/405) raised by the router."""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body("HTTPException", exc.detail, exc.status_code),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all for anything not raised as an AppException.

    The traceback goes to the log; the client only sees a generic message
    and the request id to quote when reporting the failure.
    """
    request_id = _request_id(request)
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
        extra={"request_id": request_id},
    )

    return JSONResponse(
        status_code=500,
        content=_error_body(
            "InternalServerError",
            "An unexpected error occurred",
            500,
            {"request_id": request_id} if request_id else None,
        ),
    )
