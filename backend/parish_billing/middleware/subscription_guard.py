"""
Subscription gating dependencies.

WHAT: FastAPI dependencies that run before tenant-scoped handlers:
- require_active_parish_subscription: parish aggregate must be ACTIVE
- require_feature_limit(feature): plan limit for a resource not reached
- require_plan_tier(min_tier): plan tier at or above a minimum
- subscription_headers: expose subscription state in response headers

WHY: Payment is enforced before access. The aggregate check reads one
column on the parish row so it is cheap enough to run on every request;
the limit and tier checks load the subscription with its plan only on
the routes that need them.

HOW: Each gate raises an AppException subclass, which the registered
exception handler renders as a structured 403 before the handler runs.
"""

import logging
from dataclasses import dataclass
from typing import Union

from fastapi import Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from parish_billing.core.deps import get_current_user
from parish_billing.core.exceptions import (
    AuthorizationError,
    FeatureLimitExceededError,
    ParishNotFoundError,
    PlanTierRequiredError,
    SubscriptionRequiredError,
    ValidationError,
)
from parish_billing.dao.parish import ParishDAO
from parish_billing.dao.subscription import ParishSubscriptionDAO
from parish_billing.dao.usage import UsageDAO
from parish_billing.db.session import get_db
from parish_billing.models.parish import Parish, ParishStatus
from parish_billing.models.subscription import (
    FEATURE_LIMIT_FIELDS,
    PLAN_TIER_ORDER,
    ParishSubscription,
    PlanTier,
    SubscriptionPlan,
    SubscriptionStatus,
    is_unlimited,
)
from parish_billing.models.user import User

logger = logging.getLogger(__name__)


# (message, action) shown to a parish whose aggregate status blocks access
BLOCKED_STATUS_GUIDANCE = {
    ParishStatus.PENDING: (
        "Your parish subscription is pending. Please complete payment to activate your account.",
        "Visit /subscriptions/plans to view plans and /subscriptions to create a subscription.",
    ),
    ParishStatus.SUSPENDED: (
        "Your parish subscription has been suspended due to payment issues. "
        "Please renew your subscription.",
        "Contact support or renew your subscription to regain access.",
    ),
    ParishStatus.CANCELLED: (
        "Your parish subscription has been cancelled. Please resubscribe to access this feature.",
        "Visit /subscriptions to create a new subscription.",
    ),
}

UNKNOWN_STATUS_GUIDANCE = (
    "Subscription status unknown. Please contact support.",
    "Contact support for assistance.",
)


@dataclass
class FeatureUsage:
    """Usage of one limited resource, handed to the route handler."""

    feature: str
    current_usage: int
    max_limit: int
    remaining: Union[int, str]


def _require_parish_id(user: User) -> int:
    if not user.parish_id:
        logger.warning(
            "User has no associated parish",
            extra={"user_id": user.id, "user_type": user.user_type.value},
        )
        raise AuthorizationError(message="No parish associated with this account", user_id=user.id)
    return user.parish_id


async def _active_subscription_with_plan(
    db: AsyncSession, parish_id: int, message: str
) -> tuple[ParishSubscription, SubscriptionPlan]:
    result = await ParishSubscriptionDAO(db).get_with_plan(parish_id)
    if not result or result[0].status != SubscriptionStatus.ACTIVE:
        raise SubscriptionRequiredError(message=message, parish_id=parish_id)
    return result


# ============================================================================
# Aggregate Status Gate
# ============================================================================


async def require_active_parish_subscription(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Require the caller's parish to have an ACTIVE aggregate status.

    Super admins bypass the check.

    Raises:
        AuthorizationError: User has no parish (403)
        ParishNotFoundError: Parish row missing (404)
        SubscriptionRequiredError: Status is PENDING, SUSPENDED or CANCELLED (403)
    """
    if current_user.is_super_admin:
        return current_user

    parish_id = _require_parish_id(current_user)
    parish = await ParishDAO(db).get_by_id(parish_id)
    if not parish:
        logger.error(
            "Parish not found for subscription check",
            extra={"user_id": current_user.id, "parish_id": parish_id},
        )
        raise ParishNotFoundError(parish_id=parish_id)

    if parish.subscription_status != ParishStatus.ACTIVE:
        raise _blocked(parish, current_user)

    return current_user


def _blocked(parish: Parish, user: User) -> SubscriptionRequiredError:
    status = parish.subscription_status
    message, action = BLOCKED_STATUS_GUIDANCE.get(status, UNKNOWN_STATUS_GUIDANCE)

    logger.warning(
        "Access blocked - Subscription not active",
        extra={"user_id": user.id, "parish_id": parish.id, "current_status": status.value},
    )
    return SubscriptionRequiredError(
        message=message,
        subscription_status=status.value,
        parish_id=parish.id,
        parish_name=parish.name,
        action=action,
        endpoints={
            "view_plans": "/api/subscriptions/plans",
            "create_subscription": "/api/subscriptions",
            "manage_subscription": f"/api/subscriptions/{parish.id}",
        },
    )


# ============================================================================
# Plan Limit & Tier Gates
# ============================================================================


def require_feature_limit(feature: str):
    """
    Factory for a dependency enforcing a plan resource limit.

    Usage:
        @router.post("/families")
        async def add_family(usage: FeatureUsage = Depends(require_feature_limit("max_families"))):
            ...

    Args:
        feature: One of max_parishioners, max_families, max_wards, max_admins

    Raises:
        ValueError: Unknown feature, at route definition time
    """
    if feature not in FEATURE_LIMIT_FIELDS:
        raise ValueError(f"Unknown feature: {feature}")

    async def feature_limit_checker(
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> FeatureUsage:
        parish_id = _require_parish_id(current_user)
        return await check_feature_usage(db, parish_id, feature)

    return feature_limit_checker


async def check_feature_usage(db: AsyncSession, parish_id: int, feature: str) -> FeatureUsage:
    """
    Enforce a plan limit for one parish.

    WHY: A limit of 0 or null is unlimited; otherwise the request is
    denied once current usage reaches the limit.

    Raises:
        ValidationError: Unknown feature (400)
        SubscriptionRequiredError: No ACTIVE subscription (403)
        FeatureLimitExceededError: Limit reached (403)
    """
    if feature not in FEATURE_LIMIT_FIELDS:
        raise ValidationError(message=f"Unknown feature: {feature}", feature=feature)

    _, plan = await _active_subscription_with_plan(
        db, parish_id, "Active subscription required to use this feature"
    )
    current_usage = await UsageDAO(db).count_usage(parish_id, feature)
    limit = plan.limit_for(feature)

    if is_unlimited(limit):
        return FeatureUsage(feature, current_usage, 0, "unlimited")

    if current_usage >= limit:
        resource = feature.replace("max_", "").replace("_", " ")
        logger.info(
            f"Plan limit reached for {feature}",
            extra={"parish_id": parish_id, "current_usage": current_usage, "max_limit": limit},
        )
        raise FeatureLimitExceededError(
            message=(
                f"You have reached the maximum limit of {limit} {resource} for your "
                f"{plan.plan_name} plan. Please upgrade to add more."
            ),
            feature=feature,
            current_usage=current_usage,
            max_limit=limit,
        )

    return FeatureUsage(feature, current_usage, limit, limit - current_usage)


def require_plan_tier(min_tier: PlanTier):
    """
    Factory for a dependency requiring a minimum plan tier.

    Tiers are ordered basic < standard < premium < enterprise.
    """
    required_level = PLAN_TIER_ORDER[min_tier]

    async def plan_tier_checker(
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ) -> SubscriptionPlan:
        parish_id = _require_parish_id(current_user)
        _, plan = await _active_subscription_with_plan(db, parish_id, "Active subscription required")

        if plan.tier_level < required_level:
            raise PlanTierRequiredError(
                message=(
                    f"This feature requires {min_tier.value} plan or higher. Your current plan "
                    f"is {plan.tier.value}. Please upgrade your subscription."
                ),
                required_tier=min_tier.value,
                current_tier=plan.tier.value,
            )
        return plan

    return plan_tier_checker


# ============================================================================
# Response Headers
# ============================================================================


async def subscription_headers(
    response: Response,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> None:
    """
    Add subscription state headers to the response.

    WHY: Lets the frontend show billing banners without an extra request.
    Never blocks the request: failures are logged and swallowed.
    """
    if not current_user.parish_id:
        return

    try:
        subscription = await ParishSubscriptionDAO(db).get_by_parish_id(current_user.parish_id)
        if not subscription:
            return

        response.headers["X-Subscription-Status"] = subscription.status.value
        response.headers["X-Subscription-Plan-Id"] = str(subscription.plan_id)
        if subscription.next_billing_date:
            response.headers["X-Next-Billing-Date"] = subscription.next_billing_date.isoformat()
        if subscription.expiry_date:
            response.headers["X-Subscription-Expiry"] = subscription.expiry_date.isoformat()

        days_remaining = subscription.days_until_trial_end()
        if days_remaining is not None:
            response.headers["X-Trial-Days-Remaining"] = str(days_remaining)
            response.headers["X-Trial-End-Date"] = subscription.trial_end_date.isoformat()
    except Exception as e:
        logger.error(
            f"Subscription header addition error: {e}",
            extra={"parish_id": current_user.parish_id},
            exc_info=True,
        )
