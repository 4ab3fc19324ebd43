"""
Business logic services.

WHY: Services hold the subscription state machine and webhook
reconciliation; routes stay thin and DAOs stay free of business rules.
"""

from parish_billing.services.razorpay_gateway import RazorpayGateway, build_gateway
from parish_billing.services.subscription_service import SubscriptionService
from parish_billing.services.webhook_engine import WebhookEngine, WebhookEventKind

__all__ = [
    "RazorpayGateway",
    "build_gateway",
    "SubscriptionService",
    "WebhookEngine",
    "WebhookEventKind",
]
