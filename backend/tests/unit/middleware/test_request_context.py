"""
Request Context Middleware Tests.

WHAT: Unit tests for the RequestContextMiddleware.

WHY: The request ID ties a webhook log row to the log lines written while
handling it. These tests ensure correct behavior for:
- Client IP extraction (direct and through proxies)
- Request ID generation and caller-supplied IDs
- Context availability throughout request lifecycle

HOW: Tests use hand-built ASGI scopes to verify context extraction and
propagation.
"""

import pytest
from unittest.mock import MagicMock
from starlette.requests import Request
from starlette.responses import Response

from parish_billing.middleware.request_context import (
    get_client_ip,
    get_request_context,
    get_request_id,
    RequestContextMiddleware,
    RequestContext,
    _request_context,
)


def _make_request(headers: dict = None, client_host: str = None, method: str = "GET", path: str = "/test") -> Request:
    """
    Create a request with specified headers and client.

    Args:
        headers: Dictionary of headers
        client_host: Client IP address
        method: HTTP method
        path: Request path

    Returns:
        Request object
    """
    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "query_string": b"",
        "client": (client_host, 12345) if client_host else None,
    }
    request = Request(scope)
    request._url = type("URL", (), {"path": path})()
    return request


class TestGetClientIp:
    """Tests for the get_client_ip function."""

    def test_get_client_ip_from_x_real_ip(self):
        """
        Test IP extraction from X-Real-IP header.

        WHY: Nginx and similar proxies often set X-Real-IP to the original
        client IP. This should take priority.
        """
        request = _make_request(headers={"X-Real-IP": "192.168.1.100"}, client_host="10.0.0.1")
        assert get_client_ip(request) == "192.168.1.100"

    def test_get_client_ip_from_x_forwarded_for(self):
        """The first X-Forwarded-For entry is the original client."""
        request = _make_request(
            headers={"X-Forwarded-For": "203.0.113.50, 70.41.3.18, 150.172.238.178"},
            client_host="10.0.0.1",
        )
        assert get_client_ip(request) == "203.0.113.50"

    def test_get_client_ip_prefers_x_real_ip_over_x_forwarded_for(self):
        request = _make_request(
            headers={
                "X-Real-IP": "192.168.1.100",
                "X-Forwarded-For": "203.0.113.50, 70.41.3.18",
            },
            client_host="10.0.0.1",
        )
        assert get_client_ip(request) == "192.168.1.100"

    def test_get_client_ip_from_direct_connection(self):
        request = _make_request(client_host="192.168.1.50")
        assert get_client_ip(request) == "192.168.1.50"

    def test_get_client_ip_unknown_fallback(self):
        """
        Test IP extraction returns 'unknown' when no IP available.

        WHY: Edge case where no client info is available should
        return a safe default rather than crashing.
        """
        request = _make_request()
        assert get_client_ip(request) == "unknown"

    def test_get_client_ip_strips_whitespace(self):
        request = _make_request(headers={"X-Real-IP": "  192.168.1.100  "})
        assert get_client_ip(request) == "192.168.1.100"


class TestGetRequestContext:
    """Tests for the context accessors."""

    def test_get_request_context_returns_none_by_default(self):
        """
        Test that context returns None outside of request.

        WHY: The webhook engine also runs outside HTTP requests in tests
        and must not fail when there is no context.
        """
        token = _request_context.set(None)
        try:
            assert get_request_context() is None
            assert get_request_id() is None
        finally:
            _request_context.reset(token)

    def test_get_request_id_returns_set_context(self):
        ctx = RequestContext(request_id="test-id", ip_address="1.2.3.4", path="/test", method="GET")

        token = _request_context.set(ctx)
        try:
            assert get_request_context() == ctx
            assert get_request_id() == "test-id"
        finally:
            _request_context.reset(token)


@pytest.mark.asyncio
class TestRequestContextMiddleware:
    """Tests for the RequestContextMiddleware class."""

    async def test_middleware_adds_request_id_header(self):
        """
        Test that middleware adds X-Request-ID to response.

        WHY: Request ID in response helps clients correlate
        requests with server-side logs.
        """
        async def mock_call_next(req):
            return Response(content="OK", status_code=200)

        middleware = RequestContextMiddleware(app=MagicMock())
        response = await middleware.dispatch(_make_request(), mock_call_next)

        # UUID4 format check (36 chars with hyphens)
        assert len(response.headers["X-Request-ID"]) == 36

    async def test_middleware_keeps_caller_request_id(self):
        async def mock_call_next(req):
            return Response(content="OK", status_code=200)

        middleware = RequestContextMiddleware(app=MagicMock())
        response = await middleware.dispatch(
            _make_request(headers={"X-Request-ID": "razorpay-delivery-7"}), mock_call_next
        )

        assert response.headers["X-Request-ID"] == "razorpay-delivery-7"

    async def test_middleware_sets_context(self):
        """
        Test that middleware sets request.state and the context variable.

        WHY: Services without a request object read the ContextVar.
        """
        captured = {}

        async def mock_call_next(req):
            captured["state"] = getattr(req.state, "context", None)
            captured["var"] = get_request_context()
            return Response(content="OK", status_code=200)

        request = _make_request(
            headers={"X-Real-IP": "192.168.1.100"},
            method="POST",
            path="/api/webhooks/razorpay",
        )
        middleware = RequestContextMiddleware(app=MagicMock())
        await middleware.dispatch(request, mock_call_next)

        assert captured["state"] is captured["var"]
        assert captured["state"].ip_address == "192.168.1.100"
        assert captured["state"].path == "/api/webhooks/razorpay"
        assert captured["state"].method == "POST"

    async def test_middleware_clears_context_after_request(self):
        async def mock_call_next(req):
            return Response(content="OK", status_code=200)

        middleware = RequestContextMiddleware(app=MagicMock())
        await middleware.dispatch(_make_request(), mock_call_next)

        assert get_request_context() is None

    async def test_middleware_clears_context_on_error(self):
        """
        Test that context is cleared even when handler raises.

        WHY: Errors in handlers should not prevent context cleanup.
        """
        async def mock_call_next(req):
            raise RuntimeError("handler failed")

        middleware = RequestContextMiddleware(app=MagicMock())
        with pytest.raises(RuntimeError):
            await middleware.dispatch(_make_request(), mock_call_next)

        assert get_request_context() is None
