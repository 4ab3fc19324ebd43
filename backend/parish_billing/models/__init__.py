"""
Database models package.

WHY: Centralizing model imports ensures Alembic can discover all models
for migration generation and makes it easier to import models elsewhere.
"""

from parish_billing.models.base import Base, TimestampMixin, PrimaryKeyMixin
from parish_billing.models.parish import Parish, ParishStatus
from parish_billing.models.user import User, UserType
from parish_billing.models.parish_resources import Parishioner, Family, Ward
from parish_billing.models.subscription import (
    SubscriptionPlan,
    ParishSubscription,
    SubscriptionPayment,
    SubscriptionHistory,
    SubscriptionStatus,
    PaymentStatus,
    BillingCycle,
    PlanTier,
    PaymentMethod,
    SubscriptionAction,
    PLAN_TIER_ORDER,
    FEATURE_LIMIT_FIELDS,
)
from parish_billing.models.webhook_log import WebhookLog

__all__ = [
    "Base",
    "TimestampMixin",
    "PrimaryKeyMixin",
    "Parish",
    "ParishStatus",
    "User",
    "UserType",
    "Parishioner",
    "Family",
    "Ward",
    "SubscriptionPlan",
    "ParishSubscription",
    "SubscriptionPayment",
    "SubscriptionHistory",
    "SubscriptionStatus",
    "PaymentStatus",
    "BillingCycle",
    "PlanTier",
    "PaymentMethod",
    "SubscriptionAction",
    "PLAN_TIER_ORDER",
    "FEATURE_LIMIT_FIELDS",
    "WebhookLog",
]
