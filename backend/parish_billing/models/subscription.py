"""
Subscription models for parish billing through Razorpay.

WHY: Subscriptions gate access to the platform:
1. Parishes subscribe to catalog plans (basic, standard, premium, enterprise)
2. Plans define resource limits (parishioners, families, wards, admins)
3. Razorpay bills the parish; we mirror subscription state locally
4. Webhook events reconcile the local record with the gateway

ARCHITECTURE:
- One subscription per parish (unique parish_id)
- Payments are append-only; the Razorpay payment id is unique so a
  redelivered webhook cannot record the same settlement twice
- History rows are an append-only audit trail of every transition
"""

import enum
import math
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Numeric,
    JSON,
    Enum as SQLEnum,
    ForeignKey,
    DateTime,
    Boolean,
)

from parish_billing.models.base import Base, TimestampMixin, PrimaryKeyMixin


def _values(enum_cls):
    # Persist enum values (lowercase) rather than member names
    return [e.value for e in enum_cls]


class SubscriptionStatus(str, enum.Enum):
    """
    Subscription status values (mirrors Razorpay subscription states).

    Statuses:
    - CREATED: Online subscription created at the gateway, not yet paid
    - AUTHENTICATED: Customer authorised the mandate, first charge pending
    - ACTIVE: Paid up, full access
    - PAUSED: Billing paused by the parish or gateway
    - HALTED: Gateway gave up after repeated charge failures
    - CANCELLED: Terminal, parish must resubscribe
    - EXPIRED: All billing cycles completed
    - PENDING: Cash subscription awaiting manual payment
    """

    CREATED = "created"
    AUTHENTICATED = "authenticated"
    ACTIVE = "active"
    PAUSED = "paused"
    HALTED = "halted"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    PENDING = "pending"


# Statuses in which the first settlement has not yet been received
AWAITING_FIRST_PAYMENT = (
    SubscriptionStatus.CREATED,
    SubscriptionStatus.PENDING,
    SubscriptionStatus.AUTHENTICATED,
)

# No gateway event brings these back; a new subscription is needed
TERMINAL_STATUSES = (SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED)


class PaymentStatus(str, enum.Enum):
    """Settlement status of a single payment."""

    CREATED = "created"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    FAILED = "failed"
    REFUNDED = "refunded"
    PENDING = "pending"


class BillingCycle(str, enum.Enum):
    """Plan billing interval."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class PlanTier(str, enum.Enum):
    """
    Plan tiers, ordered basic < standard < premium < enterprise.

    WHY: Tier checks compare ordinals (see PLAN_TIER_ORDER) rather than
    names so new routes can require "premium or higher".
    """

    BASIC = "basic"
    STANDARD = "standard"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


PLAN_TIER_ORDER = {
    PlanTier.BASIC: 1,
    PlanTier.STANDARD: 2,
    PlanTier.PREMIUM: 3,
    PlanTier.ENTERPRISE: 4,
}


class PaymentMethod(str, enum.Enum):
    """How the parish pays: through Razorpay or in cash at the office."""

    ONLINE = "online"
    CASH = "cash"


class SubscriptionAction(str, enum.Enum):
    """Audit trail action recorded in subscription history."""

    CREATED = "created"
    ACTIVATED = "activated"
    PAUSED = "paused"
    RESUMED = "resumed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    PLAN_CHANGED = "plan_changed"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_SUCCEEDED = "payment_succeeded"


# Plan limit columns that can be enforced per request
FEATURE_LIMIT_FIELDS = ("max_parishioners", "max_families", "max_wards", "max_admins")


def is_unlimited(limit: Optional[int]) -> bool:
    """A null or zero plan limit means unlimited."""
    return limit is None or limit <= 0


class SubscriptionPlan(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Catalog plan.

    WHY: Plans are created by platform administrators and rarely change.
    razorpay_plan_id links the plan to the gateway; without it online
    subscriptions are created locally only (customer but no gateway
    subscription).
    """

    __tablename__ = "subscription_plans"

    plan_name = Column(String(100), nullable=False)
    plan_code = Column(String(50), nullable=False, unique=True, index=True)
    tier = Column(
        SQLEnum(PlanTier, name="plantier", create_type=False, values_callable=_values),
        nullable=False,
        default=PlanTier.BASIC,
    )
    razorpay_plan_id = Column(String(255), nullable=True, unique=True)
    description = Column(Text, nullable=True)

    # Pricing
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    billing_cycle = Column(
        SQLEnum(BillingCycle, name="billingcycle", create_type=False, values_callable=_values),
        nullable=False,
        default=BillingCycle.MONTHLY,
    )

    # WHY: Free-form marketing feature list; never read by business logic
    features = Column(JSON, nullable=False, default=dict)

    # Limits (null or 0 = unlimited)
    max_parishioners = Column(Integer, nullable=True)
    max_families = Column(Integer, nullable=True)
    max_wards = Column(Integer, nullable=True)
    max_admins = Column(Integer, nullable=True)
    max_users = Column(Integer, nullable=True)
    max_storage_gb = Column(Integer, nullable=True)

    trial_period_days = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    is_featured = Column(Boolean, nullable=False, default=False)
    display_order = Column(Integer, nullable=False, default=0)

    def limit_for(self, feature: str) -> Optional[int]:
        """
        Get the plan limit for a feature limit field (e.g. 'max_families').

        Raises:
            KeyError: If the feature is not a known limit field
        """
        if feature not in FEATURE_LIMIT_FIELDS:
            raise KeyError(feature)
        return getattr(self, feature)

    @property
    def tier_level(self) -> int:
        return PLAN_TIER_ORDER.get(self.tier, 0)

    def __repr__(self) -> str:
        return f"<SubscriptionPlan(id={self.id}, code={self.plan_code}, tier={self.tier})>"


class ParishSubscription(Base, PrimaryKeyMixin, TimestampMixin):
    """
    The subscription of one parish.

    WHY: Mirrors the Razorpay subscription (online) or tracks a cash
    arrangement. Mutated only by the lifecycle service and the webhook
    engine. Never deleted: cancellation is a terminal status.

    LIFECYCLE:
    1. create -> PENDING (cash) or CREATED (online)
    2. first payment / checkout verification -> ACTIVE
    3. gateway events -> PAUSED / HALTED / CANCELLED / EXPIRED
    """

    __tablename__ = "parish_subscriptions"

    # WHY: unique parish_id enforces one subscription per parish
    parish_id = Column(
        Integer,
        ForeignKey("parishes.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=False)
    payment_method = Column(
        SQLEnum(PaymentMethod, name="paymentmethod", create_type=False, values_callable=_values),
        nullable=False,
        default=PaymentMethod.ONLINE,
    )

    # Razorpay identifiers (null for cash)
    razorpay_subscription_id = Column(String(255), nullable=True, unique=True, index=True)
    razorpay_customer_id = Column(String(255), nullable=True)

    # Billing contact
    billing_contact_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    billing_email = Column(String(255), nullable=False)
    billing_phone = Column(String(20), nullable=True)
    billing_address_line1 = Column(String(255), nullable=True)
    billing_address_line2 = Column(String(255), nullable=True)
    billing_city = Column(String(100), nullable=True)
    billing_state = Column(String(100), nullable=True)
    billing_country = Column(String(100), nullable=True, default="India")
    billing_postal_code = Column(String(20), nullable=True)
    tax_identification_number = Column(String(50), nullable=True)
    company_name = Column(String(255), nullable=True)

    status = Column(
        SQLEnum(
            SubscriptionStatus,
            name="subscriptionstatus",
            create_type=False,
            values_callable=_values,
        ),
        nullable=False,
        default=SubscriptionStatus.CREATED,
        index=True,
    )

    # Dates
    start_date = Column(DateTime, nullable=True)
    trial_start_date = Column(DateTime, nullable=True)
    trial_end_date = Column(DateTime, nullable=True)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    next_billing_date = Column(DateTime, nullable=True)
    last_payment_date = Column(DateTime, nullable=True)
    cancellation_date = Column(DateTime, nullable=True)
    expiry_date = Column(DateTime, nullable=True)

    # Cancellation
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    auto_renewal = Column(Boolean, nullable=False, default=True)

    # Running totals
    # WHY: Updated with SQL-side increments so concurrent webhook
    # deliveries never lose an update
    payment_failed_count = Column(Integer, nullable=False, default=0)
    total_paid = Column(Numeric(12, 2), nullable=False, default=0)
    total_invoices = Column(Integer, nullable=False, default=0)

    notes = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ParishSubscription(id={self.id}, parish_id={self.parish_id}, "
            f"status={self.status})>"
        )

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    @property
    def awaiting_first_payment(self) -> bool:
        return self.status in AWAITING_FIRST_PAYMENT

    def days_until_trial_end(self, now: Optional[datetime] = None) -> Optional[int]:
        """
        Calculate whole days remaining in the trial (rounded up).

        Returns:
            Days remaining, or None if there is no trial or it has ended
        """
        if not self.trial_end_date:
            return None
        now = now or datetime.utcnow()
        if self.trial_end_date <= now:
            return None
        return math.ceil((self.trial_end_date - now).total_seconds() / 86400)


class SubscriptionPayment(Base, PrimaryKeyMixin, TimestampMixin):
    """
    One settlement event from the gateway. Append-only.

    WHY: razorpay_payment_id is unique so a duplicate payment.captured
    delivery hits the constraint instead of creating a second row.
    """

    __tablename__ = "subscription_payments"

    subscription_id = Column(
        Integer,
        ForeignKey("parish_subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    parish_id = Column(Integer, ForeignKey("parishes.id", ondelete="CASCADE"), nullable=False, index=True)

    razorpay_payment_id = Column(String(255), nullable=True, unique=True, index=True)
    razorpay_order_id = Column(String(255), nullable=True)
    razorpay_invoice_id = Column(String(255), nullable=True)

    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    amount_paid = Column(Numeric(10, 2), nullable=True)
    payment_method = Column(String(50), nullable=True)
    status = Column(
        SQLEnum(PaymentStatus, name="paymentstatus", create_type=False, values_callable=_values),
        nullable=False,
        default=PaymentStatus.CREATED,
    )
    paid_on = Column(DateTime, nullable=True)
    description = Column(Text, nullable=True)
    failure_reason = Column(Text, nullable=True)
    refund_amount = Column(Numeric(10, 2), nullable=True)
    refund_date = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<SubscriptionPayment(id={self.id}, razorpay_payment_id={self.razorpay_payment_id}, "
            f"status={self.status})>"
        )


class SubscriptionHistory(Base, PrimaryKeyMixin):
    """
    Append-only audit trail of subscription transitions.

    WHY: Every status change and administrative action (including manual,
    non-gateway activations) leaves a row describing who did what.
    """

    __tablename__ = "subscription_history"

    subscription_id = Column(
        Integer,
        ForeignKey("parish_subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    parish_id = Column(Integer, ForeignKey("parishes.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(
        SQLEnum(
            SubscriptionAction,
            name="subscriptionaction",
            create_type=False,
            values_callable=_values,
        ),
        nullable=False,
    )
    old_status = Column(String(50), nullable=True)
    new_status = Column(String(50), nullable=True)
    old_plan_id = Column(Integer, nullable=True)
    new_plan_id = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    # WHY: "metadata" is reserved on declarative classes
    details = Column("metadata", JSON, nullable=True)
    # Null when the gateway (webhook) performed the action
    performed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    performed_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self) -> str:
        return (
            f"<SubscriptionHistory(id={self.id}, subscription_id={self.subscription_id}, "
            f"action={self.action})>"
        )
