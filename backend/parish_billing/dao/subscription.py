"""
Subscription Data Access Objects.

WHAT: DAOs for plans, parish subscriptions, payments, and the
subscription history audit trail.

WHY: Subscriptions are critical for:
1. Enforcing plan limits (parishioners, families, wards, admins)
2. Mirroring billing status from Razorpay
3. Recording settlements exactly once per gateway payment
4. Determining whether a parish may sign in at all

HOW: Extends BaseDAO with lookups by parish and Razorpay identifiers.
Counters are updated with SQL-side increments and payments are inserted
with an insert-or-skip pattern, so concurrent webhook deliveries in
separate processes cannot double count.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Tuple, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parish_billing.dao.base import BaseDAO
from parish_billing.models.subscription import (
    SubscriptionPlan,
    ParishSubscription,
    SubscriptionPayment,
    SubscriptionHistory,
    SubscriptionStatus,
    SubscriptionAction,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Plans
# ============================================================================


class SubscriptionPlanDAO(BaseDAO[SubscriptionPlan]):
    """Data Access Object for the plan catalog."""

    def __init__(self, session: AsyncSession):
        super().__init__(SubscriptionPlan, session)

    async def get_active_plans(self) -> List[SubscriptionPlan]:
        """
        List plans offered to parishes.

        WHY: The plan picker shows plans in the administrator-defined
        display order, cheapest first within the same position.
        """
        result = await self.session.execute(
            select(SubscriptionPlan)
            .where(SubscriptionPlan.is_active.is_(True))
            .order_by(SubscriptionPlan.display_order, SubscriptionPlan.amount)
        )
        return list(result.scalars().all())

    async def get_by_code(self, plan_code: str) -> Optional[SubscriptionPlan]:
        return await self.get_by_field("plan_code", plan_code)


# ============================================================================
# Parish subscriptions
# ============================================================================


class ParishSubscriptionDAO(BaseDAO[ParishSubscription]):
    """
    Data Access Object for ParishSubscription model.

    WHAT: Handles all database operations for parish subscriptions.

    WHY: Centralizes subscription queries for:
    - Plan limit enforcement
    - Razorpay webhook reconciliation
    - Subscription lifecycle management
    """

    def __init__(self, session: AsyncSession):
        super().__init__(ParishSubscription, session)

    async def get_by_parish_id(self, parish_id: int) -> Optional[ParishSubscription]:
        """
        Get the subscription of a parish.

        WHY: Unique parish_id guarantees at most one result.
        """
        result = await self.session.execute(
            select(ParishSubscription).where(ParishSubscription.parish_id == parish_id)
        )
        return result.scalar_one_or_none()

    async def get_by_razorpay_subscription_id(
        self, razorpay_subscription_id: str
    ) -> Optional[ParishSubscription]:
        """
        Get subscription by Razorpay subscription ID.

        WHY: Essential for webhook processing. When Razorpay sends events,
        we need to find the corresponding subscription in our database.
        """
        result = await self.session.execute(
            select(ParishSubscription).where(
                ParishSubscription.razorpay_subscription_id == razorpay_subscription_id
            )
        )
        return result.scalar_one_or_none()

    async def get_with_plan(
        self, parish_id: int
    ) -> Optional[Tuple[ParishSubscription, SubscriptionPlan]]:
        """
        Get a parish's subscription together with its plan in one query.

        WHY: Gating needs both the status and the plan limits on every
        protected request.

        Returns:
            (subscription, plan) or None if the parish has no subscription
        """
        result = await self.session.execute(
            select(ParishSubscription, SubscriptionPlan)
            .join(SubscriptionPlan, SubscriptionPlan.id == ParishSubscription.plan_id)
            .where(ParishSubscription.parish_id == parish_id)
        )
        row = result.first()
        if row is None:
            return None
        return row[0], row[1]

    async def update_status(
        self,
        subscription_id: int,
        status: SubscriptionStatus,
        **fields: Any,
    ) -> Optional[ParishSubscription]:
        """
        Move a subscription to a new status, with any accompanying columns.

        Args:
            subscription_id: Subscription ID
            status: New status
            **fields: Other columns to set in the same statement
                (period dates, cancellation metadata, ...)

        Returns:
            Updated subscription, or None if not found
        """
        return await self.update(subscription_id, status=status, **fields)

    async def record_payment_totals(
        self,
        subscription_id: int,
        amount: Decimal,
        paid_on: Optional[datetime] = None,
    ) -> Optional[ParishSubscription]:
        """
        Accumulate a captured payment into the running totals.

        WHAT: total_paid += amount, total_invoices += 1, failure counter
        reset, last payment date set.

        WHY: The increments are expressed in SQL so two processes applying
        different payments to the same row never lose an update.
        """
        return await self.update(
            subscription_id,
            total_paid=ParishSubscription.total_paid + amount,
            total_invoices=ParishSubscription.total_invoices + 1,
            payment_failed_count=0,
            last_payment_date=paid_on or datetime.utcnow(),
        )

    async def increment_payment_failed_count(
        self, subscription_id: int
    ) -> Optional[ParishSubscription]:
        return await self.update(
            subscription_id,
            payment_failed_count=ParishSubscription.payment_failed_count + 1,
        )

    async def update_billing_details(
        self, subscription_id: int, **fields: Any
    ) -> Optional[ParishSubscription]:
        """
        Update billing contact columns, ignoring fields that were not supplied.
        """
        values = {key: value for key, value in fields.items() if value is not None}
        if not values:
            return await self.get_by_id(subscription_id)
        return await self.update(subscription_id, **values)


# ============================================================================
# Payments
# ============================================================================


class SubscriptionPaymentDAO(BaseDAO[SubscriptionPayment]):
    """
    Data Access Object for SubscriptionPayment model.

    WHY: Payments are append-only. The unique razorpay_payment_id is the
    idempotency key for settlement webhooks.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(SubscriptionPayment, session)

    async def get_by_razorpay_payment_id(
        self, razorpay_payment_id: str
    ) -> Optional[SubscriptionPayment]:
        return await self.get_by_field("razorpay_payment_id", razorpay_payment_id)

    async def create_if_absent(self, **fields: Any) -> Optional[SubscriptionPayment]:
        """
        Insert a payment unless its Razorpay payment ID is already recorded.

        WHAT: Returns the new row, or None when the payment already exists.

        WHY: Two deliveries of the same payment.captured event can race past
        the webhook dedup check. The lookup handles sequential replays; the
        savepoint-wrapped insert handles the race, where the loser hits the
        unique constraint and only its savepoint is rolled back.

        Args:
            **fields: SubscriptionPayment column values

        Returns:
            The inserted payment, or None if it was a duplicate
        """
        razorpay_payment_id = fields.get("razorpay_payment_id")
        if razorpay_payment_id and await self.get_by_razorpay_payment_id(razorpay_payment_id):
            return None

        instance = SubscriptionPayment(**fields)
        try:
            async with self.session.begin_nested():
                self.session.add(instance)
        except IntegrityError:
            logger.info(
                f"Payment {razorpay_payment_id} already recorded by a concurrent delivery",
                extra={"razorpay_payment_id": razorpay_payment_id},
            )
            return None

        await self.session.refresh(instance)
        return instance

    async def list_for_parish(self, parish_id: int, limit: int = 50) -> List[SubscriptionPayment]:
        """List a parish's payments, newest first."""
        result = await self.session.execute(
            select(SubscriptionPayment)
            .where(SubscriptionPayment.parish_id == parish_id)
            .order_by(SubscriptionPayment.created_at.desc(), SubscriptionPayment.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


# ============================================================================
# History
# ============================================================================


class SubscriptionHistoryDAO(BaseDAO[SubscriptionHistory]):
    """Data Access Object for the append-only subscription audit trail."""

    def __init__(self, session: AsyncSession):
        super().__init__(SubscriptionHistory, session)

    async def record(
        self,
        subscription: ParishSubscription,
        action: SubscriptionAction,
        description: str,
        old_status: Optional[Any] = None,
        new_status: Optional[Any] = None,
        old_plan_id: Optional[int] = None,
        new_plan_id: Optional[int] = None,
        performed_by: Optional[int] = None,
        details: Optional[dict] = None,
    ) -> SubscriptionHistory:
        """
        Append a history row for a subscription.

        Args:
            subscription: Subscription the action applies to
            action: What happened
            description: Human readable summary
            old_status: Status before the action (enum or string)
            new_status: Status after the action (enum or string)
            old_plan_id: Plan before a plan change
            new_plan_id: Plan after a plan change
            performed_by: Acting user ID; None when the gateway acted
            details: Structured context (gateway ids, manual flags)
        """
        return await self.create(
            subscription_id=subscription.id,
            parish_id=subscription.parish_id,
            action=action,
            old_status=_status_value(old_status),
            new_status=_status_value(new_status),
            old_plan_id=old_plan_id,
            new_plan_id=new_plan_id,
            description=description,
            details=details,
            performed_by=performed_by,
        )

    async def list_for_subscription(self, subscription_id: int) -> List[SubscriptionHistory]:
        """List history rows for a subscription, newest first."""
        result = await self.session.execute(
            select(SubscriptionHistory)
            .where(SubscriptionHistory.subscription_id == subscription_id)
            .order_by(SubscriptionHistory.performed_at.desc(), SubscriptionHistory.id.desc())
        )
        return list(result.scalars().all())


def _status_value(status: Optional[Any]) -> Optional[str]:
    if status is None:
        return None
    return getattr(status, "value", status)
