"""
Data Access Object (DAO) package.

WHY: DAOs provide a clean separation between database operations and business logic,
making the codebase more testable and maintainable.
"""

from parish_billing.dao.base import BaseDAO
from parish_billing.dao.parish import ParishDAO
from parish_billing.dao.user import UserDAO
from parish_billing.dao.subscription import (
    SubscriptionPlanDAO,
    ParishSubscriptionDAO,
    SubscriptionPaymentDAO,
    SubscriptionHistoryDAO,
)
from parish_billing.dao.webhook_log import WebhookLogDAO
from parish_billing.dao.usage import UsageDAO

__all__ = [
    "BaseDAO",
    "ParishDAO",
    "UserDAO",
    "SubscriptionPlanDAO",
    "ParishSubscriptionDAO",
    "SubscriptionPaymentDAO",
    "SubscriptionHistoryDAO",
    "WebhookLogDAO",
    "UsageDAO",
]
