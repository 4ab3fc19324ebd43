"""
Authentication API endpoints.

WHY: These endpoints provide the authentication flow:
1. Login - Authenticate user, apply the parish subscription gate, return JWT
2. Logout - Blacklist token to prevent further use
3. Me - Get current user information

Subscription gate at login:
- Super admins always get a token
- ACTIVE parishes get a token
- PENDING parishes get 402 with what the client needs to finish paying
- SUSPENDED and CANCELLED parishes get 403
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from parish_billing.core.auth import verify_password, create_user_token, blacklist_token
from parish_billing.core.config import settings
from parish_billing.core.deps import get_current_user, get_subscription_service, security
from parish_billing.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    PaymentRequiredError,
)
from parish_billing.dao.parish import ParishDAO
from parish_billing.dao.user import UserDAO
from parish_billing.db.session import get_db
from parish_billing.models.parish import ParishStatus
from parish_billing.models.user import User
from parish_billing.schemas.auth import LoginRequest, TokenResponse, UserResponse, LogoutResponse
from parish_billing.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


LOGIN_BLOCKED_MESSAGES = {
    ParishStatus.SUSPENDED: (
        "Access denied: Your parish subscription has been suspended. "
        "Please contact support or renew your subscription."
    ),
    ParishStatus.CANCELLED: (
        "Access denied: Your parish subscription has been cancelled. "
        "Please renew your subscription to access the system."
    ),
}


@router.post(
    "/login",
    response_model=TokenResponse,
    status_code=status.HTTP_200_OK,
    summary="Login user",
    description="Authenticate with email and password; parishes must be ACTIVE",
)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
    service: SubscriptionService = Depends(get_subscription_service),
) -> TokenResponse:
    """
    Authenticate user and return JWT access token.

    Raises:
        AuthenticationError (401): Invalid credentials or inactive account
        PaymentRequiredError (402): Parish subscription awaiting payment
        AuthorizationError (403): Parish suspended or cancelled
    """
    user = await UserDAO(db).get_by_email(credentials.email)

    # WHY: Generic message prevents user enumeration
    if not user or not verify_password(credentials.password, user.hashed_password):
        raise AuthenticationError(message="Invalid email or password")

    if not user.is_active:
        raise AuthenticationError(message="Account is inactive", user_id=user.id)

    parish_status = None
    if not user.is_super_admin and user.parish_id:
        parish = await ParishDAO(db).get_by_id(user.parish_id)
        if not parish:
            logger.error(
                "Parish not found for user during login",
                extra={"user_id": user.id, "parish_id": user.parish_id},
            )
            raise AuthenticationError(message="Parish not found. Please contact support.")

        parish_status = parish.subscription_status
        log_extra = {
            "user_id": user.id,
            "parish_id": parish.id,
            "subscription_status": parish_status.value,
        }

        if parish_status == ParishStatus.PENDING:
            logger.warning(
                "Login attempt with pending subscription - returning payment details",
                extra=log_extra,
            )
            details = await service.build_payment_required_details(parish)
            if details is None:
                raise AuthorizationError(
                    message=(
                        "Access denied: Your parish subscription payment is pending. "
                        "Please contact support."
                    ),
                    parish_id=parish.id,
                )
            message = details.pop("message")
            raise PaymentRequiredError(message=message, **details)

        if parish_status != ParishStatus.ACTIVE:
            logger.warning("Login blocked: parish subscription not active", extra=log_extra)
            raise AuthorizationError(
                message=LOGIN_BLOCKED_MESSAGES.get(
                    parish_status,
                    "Access denied: Your parish subscription is not active. Please contact support.",
                ),
                subscription_status=parish_status.value,
                parish_id=parish.id,
            )

        logger.info("Subscription status verified for login", extra=log_extra)

    access_token = create_user_token(user)

    return TokenResponse(
        access_token=access_token,
        expires_in=settings.JWT_EXPIRATION_MINUTES * 60,
        parish_status=parish_status,
    )


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    current_user: User = Depends(get_current_user),
) -> LogoutResponse:
    """Blacklist the presented token until it would have expired."""
    await blacklist_token(credentials.credentials, user_id=current_user.id)
    return LogoutResponse()


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(current_user)
