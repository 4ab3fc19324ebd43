"""
Tests for the API error handlers.

WHY: The checkout frontend branches on the error body, so every failure
path must render the same {error, message, status_code, details} shape.
"""

import pytest
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from parish_billing.core.exception_handlers import (
    app_exception_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from parish_billing.core.exceptions import AppException, RazorpayError, SubscriptionRequiredError
from parish_billing.middleware import RequestContextMiddleware


class CancelBody(BaseModel):
    cancellation_reason: str = Field(..., min_length=10)


def _build_app() -> FastAPI:
    app = FastAPI()
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
    app.add_middleware(RequestContextMiddleware)

    @app.get("/blocked")
    async def blocked():
        raise SubscriptionRequiredError(subscription_status="SUSPENDED", secret="whsec")

    @app.get("/gateway")
    async def gateway():
        raise RazorpayError(gateway_error="Bad request")

    @app.post("/cancel")
    async def cancel(body: CancelBody):
        return {"ok": True}

    @app.get("/boom")
    async def boom():
        raise RuntimeError("database went away")

    return app


@pytest.fixture
def app() -> FastAPI:
    return _build_app()


async def _get(app: FastAPI, method: str, url: str, **kwargs):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.request(method, url, **kwargs)


class TestAppExceptionHandler:
    @pytest.mark.asyncio
    async def test_billing_denial_body(self, app):
        response = await _get(app, "GET", "/blocked")

        assert response.status_code == 403
        data = response.json()
        assert data["error"] == "SubscriptionRequiredError"
        assert data["details"] == {"subscription_status": "SUSPENDED"}

    @pytest.mark.asyncio
    async def test_gateway_error_keeps_description(self, app):
        response = await _get(app, "GET", "/gateway")

        assert response.status_code == 502
        assert response.json()["details"]["gateway_error"] == "Bad request"


class TestValidationHandler:
    @pytest.mark.asyncio
    async def test_field_errors(self, app):
        response = await _get(app, "POST", "/cancel", json={"cancellation_reason": "short"})

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "ValidationError"
        assert data["details"]["errors"][0]["field"] == "body.cancellation_reason"


class TestFallbackHandlers:
    @pytest.mark.asyncio
    async def test_unknown_route(self, app):
        response = await _get(app, "GET", "/missing")

        assert response.status_code == 404
        assert response.json()["error"] == "HTTPException"

    @pytest.mark.asyncio
    async def test_unhandled_exception_hides_details(self, app):
        """The client gets a generic message plus the request id to report."""
        response = await _get(app, "GET", "/boom", headers={"X-Request-ID": "req-500"})

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "InternalServerError"
        assert "database" not in data["message"]
        assert data["details"] == {"request_id": "req-500"}
