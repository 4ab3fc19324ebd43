"""
FastAPI dependencies for authentication, authorization and services.

WHY: Dependencies provide reusable authentication and tenant-scoping logic
that can be injected into route handlers, ensuring consistent security
across the API. The gateway and services are built here from objects
constructed once at startup, never from module-level singletons.
"""

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from parish_billing.core.auth import verify_token, is_token_blacklisted
from parish_billing.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ParishNotFoundError,
    TokenExpiredError,
    TokenInvalidError,
)
from parish_billing.db.session import get_db
from parish_billing.dao.user import UserDAO
from parish_billing.models.user import User
from parish_billing.services.razorpay_gateway import RazorpayGateway
from parish_billing.services.subscription_service import SubscriptionService
from parish_billing.services.webhook_engine import WebhookEngine


# HTTP Bearer token security scheme
# Format: "Authorization: Bearer <token>"
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Get current authenticated user from JWT token.

    WHY: This dependency:
    1. Extracts token from Authorization header
    2. Verifies token signature and expiration
    3. Checks if token is blacklisted (logged out)
    4. Fetches user from database
    5. Ensures user still exists and is active

    Raises:
        AuthenticationError: If token is invalid, expired, or user not found
    """
    token = credentials.credentials

    try:
        payload = verify_token(token)
    except (TokenExpiredError, TokenInvalidError) as e:
        raise AuthenticationError(message=e.message)

    if await is_token_blacklisted(token):
        raise AuthenticationError(
            message="Token has been revoked",
            reason="logged_out",
        )

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError(message="Invalid token: missing user_id")

    # WHY: Claims in the token might be stale; always fetch current data
    user = await UserDAO(db).get_by_id(user_id)

    if not user:
        raise AuthenticationError(message="User not found", user_id=user_id)

    if not user.is_active:
        raise AuthenticationError(message="User account is inactive", user_id=user_id)

    return user


async def require_super_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    """
    Require the platform super admin.

    WHY: Manual activation bypasses the gateway entirely, so only the
    platform operator may call it (OWASP A01: Broken Access Control).
    """
    if not current_user.is_super_admin:
        raise AuthorizationError(
            message="Super admin access required",
            user_id=current_user.id,
            user_type=current_user.user_type.value,
        )
    return current_user


def ensure_parish_access(user: User, parish_id: int) -> None:
    """
    Check that a user may act on a parish.

    WHY: Cross-tenant requests get 404 rather than 403 so parish IDs
    cannot be enumerated.

    Raises:
        ParishNotFoundError: The user belongs to another parish
    """
    if user.is_super_admin:
        return
    if user.parish_id != parish_id:
        raise ParishNotFoundError(parish_id=parish_id)


# ============================================================================
# Service Dependencies
# ============================================================================


def get_gateway(request: Request) -> RazorpayGateway:
    """Gateway client built once in create_app()."""
    return request.app.state.gateway


def get_subscription_service(
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
) -> SubscriptionService:
    return SubscriptionService(db, gateway)


def get_webhook_engine(
    db: AsyncSession = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
) -> WebhookEngine:
    return WebhookEngine(db, gateway)
