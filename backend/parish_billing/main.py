"""
Main FastAPI application.

WHY: This is the entry point for the application. It configures middleware,
routes, exception handlers, and builds the Razorpay gateway once so every
request shares one client.
"""

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from parish_billing.core.config import settings
from parish_billing.core.exceptions import AppException
from parish_billing.core.exception_handlers import (
    app_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    generic_exception_handler,
)
from parish_billing.middleware import RequestContextMiddleware
from parish_billing.api import auth, subscriptions, webhooks, parish
from parish_billing.services.razorpay_gateway import RazorpayGateway, build_gateway


def create_app(gateway: Optional[RazorpayGateway] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    WHY: Factory pattern allows testing with a substitute gateway.

    Args:
        gateway: Gateway client to use; built from settings when omitted

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Parish subscription and billing API",
        version=settings.VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # WHY: Constructed once at startup and injected through get_gateway
    app.state.gateway = gateway or build_gateway(settings)

    # Register exception handlers
    # WHY: Consistent error bodies, no sensitive data in messages (OWASP A04)
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Configure Request Context Middleware
    # WHY: Request IDs correlate webhook log rows with application logs
    app.add_middleware(RequestContextMiddleware)

    # Configure CORS
    # WHY: The checkout frontend runs on a different origin.
    # expose_headers lets it read the subscription state headers.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-Subscription-Status",
            "X-Subscription-Plan-Id",
            "X-Next-Billing-Date",
            "X-Subscription-Expiry",
            "X-Trial-Days-Remaining",
            "X-Trial-End-Date",
        ],
    )

    @app.get("/health", tags=["health"])
    async def health_check() -> dict:
        """
        Health check endpoint.

        WHY: Allows load balancers to verify the service is running
        without checking authentication or database connectivity.
        """
        return {"status": "healthy", "version": settings.VERSION}

    # Register API routers
    app.include_router(auth.router, prefix=settings.API_V1_PREFIX)
    app.include_router(subscriptions.router, prefix=settings.API_V1_PREFIX)
    app.include_router(webhooks.webhooks_router, prefix=settings.API_V1_PREFIX)
    app.include_router(parish.router, prefix=settings.API_V1_PREFIX)

    return app


# Create app instance
# WHY: Importable by uvicorn as parish_billing.main:app
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "parish_billing.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info" if settings.DEBUG else "warning",
    )
