"""
Subscription lifecycle service.

WHAT: Business logic for parish subscriptions: creation, cancellation,
pause/resume, checkout verification, manual activation, billing details,
and feature usage/limit reporting.

WHY: Subscriptions gate access to the platform:
1. Razorpay bills online subscriptions; cash subscriptions are settled
   at the parish office and activated by an administrator
2. Plan limits cap parishioners, families, wards, and admins
3. The parish row carries a four-value status that login and request
   gating read without joining the billing tables

HOW: Integrates with:
- DAOs for all reads and writes (one request = one transaction)
- RazorpayGateway for customer/subscription operations
- The webhook engine, which applies gateway-driven transitions using the
  same projection and billing-window helpers defined here

Design decisions:
- Gateway first, local write second: a crash in between is repaired by the
  next webhook delivery, never by a distributed transaction
- Every status change that affects access also updates the parish
  projection in the same transaction
- Every transition writes a history row
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parish_billing.core.config import settings
from parish_billing.core.exceptions import (
    ValidationError,
    ParishNotFoundError,
    PlanNotFoundError,
    SubscriptionNotFoundError,
    SubscriptionAlreadyExistsError,
    InvalidStateTransitionError,
    PaymentSignatureError,
)
from parish_billing.dao.parish import ParishDAO
from parish_billing.dao.subscription import (
    SubscriptionPlanDAO,
    ParishSubscriptionDAO,
    SubscriptionPaymentDAO,
    SubscriptionHistoryDAO,
)
from parish_billing.dao.usage import UsageDAO
from parish_billing.models.parish import Parish, ParishStatus
from parish_billing.models.subscription import (
    ParishSubscription,
    SubscriptionPlan,
    SubscriptionPayment,
    SubscriptionHistory,
    SubscriptionStatus,
    SubscriptionAction,
    PaymentMethod,
    FEATURE_LIMIT_FIELDS,
    is_unlimited,
)
from parish_billing.models.user import User
from parish_billing.schemas.subscription import (
    SubscriptionCreate,
    BillingAddress,
    BillingDetailsUpdate,
)
from parish_billing.services.razorpay_gateway import RazorpayGateway, total_count_for_cycle

logger = logging.getLogger(__name__)


# ============================================================================
# Tenant Aggregate Projection
# ============================================================================


# Subscription statuses that change what a parish may access.
# Statuses absent from the map (paused, expired) leave the parish unchanged.
PARISH_STATUS_PROJECTION = {
    SubscriptionStatus.ACTIVE: ParishStatus.ACTIVE,
    SubscriptionStatus.CREATED: ParishStatus.PENDING,
    SubscriptionStatus.PENDING: ParishStatus.PENDING,
    SubscriptionStatus.AUTHENTICATED: ParishStatus.PENDING,
    SubscriptionStatus.HALTED: ParishStatus.SUSPENDED,
    SubscriptionStatus.CANCELLED: ParishStatus.CANCELLED,
}


def parish_status_for(status: SubscriptionStatus) -> Optional[ParishStatus]:
    """
    Project a subscription status onto the parish aggregate status.

    Returns:
        The parish status to write, or None to leave it unchanged
    """
    return PARISH_STATUS_PROJECTION.get(SubscriptionStatus(status))


def billing_window(
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
    next_billing: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Dict[str, datetime]:
    """
    Billing period columns for an activation or renewal.

    WHAT: Uses gateway-supplied dates when present and falls back to a
    BILLING_FALLBACK_PERIOD_DAYS window starting now.

    WHY: Razorpay's period fields are authoritative when an event carries
    them; checkout verification and manual activation have none.

    Returns:
        current_period_start, current_period_end, next_billing_date
    """
    now = now or datetime.utcnow()
    start = period_start or now
    end = period_end or start + timedelta(days=settings.BILLING_FALLBACK_PERIOD_DAYS)
    return {
        "current_period_start": start,
        "current_period_end": end,
        "next_billing_date": next_billing or end,
    }


# ============================================================================
# Response Text
# ============================================================================


CASH_NEXT_STEPS = [
    "1. Make cash payment to the parish office",
    "2. Provide payment receipt to admin",
    "3. Admin will verify and activate your subscription",
    "4. You will be notified once subscription is active",
]

CASH_PENDING_INSTRUCTIONS = [
    "Your cash payment is pending verification by the admin.",
    "Please contact the parish office if you have already made the payment.",
    "Once verified, you will be able to login.",
]

ONLINE_CHECKOUT_STEPS = [
    "1. Use razorpay_subscription_id and razorpay_key_id to open Razorpay checkout",
    "2. Complete payment using your preferred method",
    "3. After payment, verify by calling POST /subscriptions/verify-payment",
    "4. Login to access your account",
]

MANUAL_ACTIVATION_WARNING = (
    "This is a manual activation for testing purposes only. "
    "In production, use the Razorpay payment flow."
)


# ============================================================================
# Subscription Service
# ============================================================================


class SubscriptionService:
    """
    Service for parish subscription lifecycle operations.

    WHAT: The only writer of subscription status outside the webhook path.

    WHY: Keeping gateway calls, local writes, parish projection, and
    history in one place keeps the state machine consistent.
    """

    def __init__(self, db: AsyncSession, gateway: RazorpayGateway):
        """
        Initialize subscription service.

        Args:
            db: Async database session
            gateway: Razorpay gateway built at startup
        """
        self.db = db
        self.gateway = gateway
        self.dao = ParishSubscriptionDAO(db)
        self.plan_dao = SubscriptionPlanDAO(db)
        self.payment_dao = SubscriptionPaymentDAO(db)
        self.history_dao = SubscriptionHistoryDAO(db)
        self.parish_dao = ParishDAO(db)
        self.usage_dao = UsageDAO(db)

    # ========================================================================
    # Lookups
    # ========================================================================

    async def list_plans(self) -> List[SubscriptionPlan]:
        return await self.plan_dao.get_active_plans()

    async def get_plan(self, plan_id: int) -> SubscriptionPlan:
        plan = await self.plan_dao.get_by_id(plan_id)
        if not plan:
            raise PlanNotFoundError(plan_id=plan_id)
        return plan

    async def get_parish(self, parish_id: int) -> Parish:
        parish = await self.parish_dao.get_by_id(parish_id)
        if not parish:
            raise ParishNotFoundError(parish_id=parish_id)
        return parish

    async def _require_subscription(self, parish_id: int) -> ParishSubscription:
        subscription = await self.dao.get_by_parish_id(parish_id)
        if not subscription:
            raise SubscriptionNotFoundError(parish_id=parish_id)
        return subscription

    async def get_subscription(
        self, parish_id: int
    ) -> Tuple[ParishSubscription, SubscriptionPlan]:
        """
        Get a parish's subscription with its plan.

        Raises:
            SubscriptionNotFoundError: If the parish has no subscription
        """
        result = await self.dao.get_with_plan(parish_id)
        if not result:
            raise SubscriptionNotFoundError(parish_id=parish_id)
        return result

    async def get_payment_history(self, parish_id: int) -> List[SubscriptionPayment]:
        """Newest payments first, capped at PAYMENT_HISTORY_LIMIT."""
        return await self.payment_dao.list_for_parish(
            parish_id, limit=settings.PAYMENT_HISTORY_LIMIT
        )

    async def get_history(self, parish_id: int) -> List[SubscriptionHistory]:
        subscription = await self._require_subscription(parish_id)
        return await self.history_dao.list_for_subscription(subscription.id)

    # ========================================================================
    # Creation
    # ========================================================================

    async def create(self, data: SubscriptionCreate, actor: User) -> Dict[str, Any]:
        """
        Subscribe a parish to a plan.

        WHAT: Online: creates a Razorpay customer and (when the plan is
        linked to a Razorpay plan) a Razorpay subscription, then stores the
        local row as CREATED. Cash: no gateway calls, stored as PENDING.

        WHY: The parish moves to PENDING until the first payment arrives,
        through checkout verification, a webhook, or manual activation.

        Args:
            data: Validated create request
            actor: User performing the action

        Returns:
            Dict with subscription, plan, payment_method, checkout_info
            and, for online, the Razorpay ids checkout needs

        Raises:
            ParishNotFoundError: Parish missing
            SubscriptionAlreadyExistsError: Parish already has a subscription
            PlanNotFoundError: Plan missing
            ValidationError: Plan inactive
            RazorpayError: Gateway call failed
        """
        parish = await self.get_parish(data.parish_id)

        if await self.dao.get_by_parish_id(data.parish_id):
            raise SubscriptionAlreadyExistsError(parish_id=data.parish_id)

        plan = await self.get_plan(data.plan_id)
        if not plan.is_active:
            raise ValidationError(
                message="Invalid or inactive subscription plan",
                plan_id=plan.id,
            )

        payment_method = PaymentMethod(data.payment_method)
        now = datetime.utcnow()

        customer_id = None
        razorpay_subscription_id = None
        if payment_method == PaymentMethod.ONLINE:
            customer = await self.gateway.create_customer(
                name=parish.name,
                email=data.billing_email,
                contact=data.billing_phone or parish.phone,
                notes={"parish_id": str(parish.id), "parish_name": parish.name},
            )
            customer_id = customer.get("id")

            if plan.razorpay_plan_id:
                gateway_subscription = await self.gateway.create_subscription(
                    plan_id=plan.razorpay_plan_id,
                    total_count=total_count_for_cycle(plan.billing_cycle),
                    customer_id=customer_id,
                    notes={"parish_id": str(parish.id), "plan_id": str(plan.id)},
                )
                razorpay_subscription_id = gateway_subscription.get("id")

        status = (
            SubscriptionStatus.PENDING
            if payment_method == PaymentMethod.CASH
            else SubscriptionStatus.CREATED
        )

        address = data.billing_address
        if isinstance(address, str):
            address = BillingAddress(line1=address)
        address = address or BillingAddress()

        trial = {}
        if plan.trial_period_days and plan.trial_period_days > 0:
            trial = {
                "trial_start_date": now,
                "trial_end_date": now + timedelta(days=plan.trial_period_days),
            }

        try:
            subscription = await self.dao.create(
                parish_id=parish.id,
                plan_id=plan.id,
                payment_method=payment_method,
                razorpay_subscription_id=razorpay_subscription_id,
                razorpay_customer_id=customer_id,
                billing_contact_user_id=actor.id,
                billing_email=data.billing_email,
                billing_phone=data.billing_phone,
                billing_address_line1=address.line1,
                billing_address_line2=address.line2,
                billing_city=data.billing_city or address.city,
                billing_state=data.billing_state or address.state,
                billing_country=(
                    data.billing_country or address.country or settings.DEFAULT_BILLING_COUNTRY
                ),
                billing_postal_code=data.billing_pincode or address.postal_code,
                tax_identification_number=data.tax_identification_number,
                company_name=data.billing_name or data.company_name,
                status=status,
                start_date=now,
                **trial,
            )
        except IntegrityError:
            # Lost a race with a concurrent create for the same parish
            raise SubscriptionAlreadyExistsError(parish_id=parish.id)

        await self.parish_dao.set_subscription_state(
            parish.id,
            status=parish_status_for(status),
            current_plan_id=plan.id,
            is_subscription_managed=True,
        )

        await self.history_dao.record(
            subscription,
            SubscriptionAction.CREATED,
            f"Subscription created for {plan.plan_name} (Payment Method: {payment_method.value})",
            new_status=status,
            new_plan_id=plan.id,
            performed_by=actor.id,
        )

        logger.info(
            f"Subscription created for parish {parish.id} with payment method: {payment_method.value}",
            extra={
                "parish_id": parish.id,
                "subscription_id": subscription.id,
                "plan_id": plan.id,
                "razorpay_subscription_id": razorpay_subscription_id,
            },
        )

        if payment_method == PaymentMethod.CASH:
            return {
                "subscription": subscription,
                "plan": plan,
                "payment_method": payment_method,
                "checkout_info": {
                    "message": (
                        "Cash payment selected. Please contact admin to complete "
                        "payment and activate your subscription."
                    ),
                    "integration_type": "cash",
                    "next_steps": CASH_NEXT_STEPS,
                },
            }

        return {
            "subscription": subscription,
            "plan": plan,
            "payment_method": payment_method,
            "razorpay_subscription_id": razorpay_subscription_id,
            "razorpay_key_id": self.gateway.key_id,
            "checkout_info": {
                "message": "Use razorpay_subscription_id with Razorpay Standard Checkout for payment",
                "integration_type": "standard_checkout",
                "test_mode": not settings.is_production,
            },
        }

    # ========================================================================
    # Cancel / Pause / Resume
    # ========================================================================

    async def cancel(
        self,
        parish_id: int,
        reason: str,
        actor: User,
        cancel_at_cycle_end: bool = False,
    ) -> ParishSubscription:
        """
        Cancel a parish subscription.

        WHAT: Cancels at Razorpay (when linked), marks the row CANCELLED,
        clears the parish plan pointer, and projects the parish to CANCELLED.

        Raises:
            SubscriptionNotFoundError: No subscription
            InvalidStateTransitionError: Already cancelled or expired
            RazorpayError: Gateway call failed
        """
        subscription = await self._require_subscription(parish_id)
        if subscription.status in (SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED):
            raise InvalidStateTransitionError(
                message=f"Subscription is already {subscription.status.value}",
                parish_id=parish_id,
                current_status=subscription.status.value,
            )

        if subscription.razorpay_subscription_id:
            await self.gateway.cancel_subscription(
                subscription.razorpay_subscription_id,
                cancel_at_cycle_end=cancel_at_cycle_end,
            )

        old_status = subscription.status
        now = datetime.utcnow()
        expiry = (
            subscription.current_period_end
            if cancel_at_cycle_end and subscription.current_period_end
            else now
        )
        subscription = await self.dao.update_status(
            subscription.id,
            SubscriptionStatus.CANCELLED,
            cancellation_date=now,
            cancellation_reason=reason,
            cancelled_by=actor.id,
            expiry_date=expiry,
            auto_renewal=False,
        )

        await self.parish_dao.set_subscription_state(
            parish_id,
            status=ParishStatus.CANCELLED,
            clear_plan=True,
        )

        await self.history_dao.record(
            subscription,
            SubscriptionAction.CANCELLED,
            f"Subscription cancelled: {reason}",
            old_status=old_status,
            new_status=SubscriptionStatus.CANCELLED,
            old_plan_id=subscription.plan_id,
            performed_by=actor.id,
            details={"cancel_at_cycle_end": cancel_at_cycle_end},
        )

        logger.info(
            f"Cancelled subscription for parish {parish_id}",
            extra={
                "parish_id": parish_id,
                "subscription_id": subscription.id,
                "cancel_at_cycle_end": cancel_at_cycle_end,
            },
        )
        return subscription

    async def pause(self, parish_id: int, actor: User) -> ParishSubscription:
        """
        Pause an active subscription.

        Raises:
            SubscriptionNotFoundError: No subscription
            InvalidStateTransitionError: Subscription is not active
            RazorpayError: Gateway call failed
        """
        subscription = await self._require_subscription(parish_id)
        if subscription.status != SubscriptionStatus.ACTIVE:
            raise InvalidStateTransitionError(
                message="Only active subscriptions can be paused",
                parish_id=parish_id,
                current_status=subscription.status.value,
            )

        if subscription.razorpay_subscription_id:
            await self.gateway.pause_subscription(subscription.razorpay_subscription_id)

        return await self._transition(
            subscription,
            SubscriptionStatus.PAUSED,
            SubscriptionAction.PAUSED,
            "Subscription paused",
            actor,
        )

    async def resume(self, parish_id: int, actor: User) -> ParishSubscription:
        """
        Resume a paused subscription.

        Raises:
            SubscriptionNotFoundError: No subscription
            InvalidStateTransitionError: Subscription is not paused
            RazorpayError: Gateway call failed
        """
        subscription = await self._require_subscription(parish_id)
        if subscription.status != SubscriptionStatus.PAUSED:
            raise InvalidStateTransitionError(
                message="Only paused subscriptions can be resumed",
                parish_id=parish_id,
                current_status=subscription.status.value,
            )

        if subscription.razorpay_subscription_id:
            await self.gateway.resume_subscription(subscription.razorpay_subscription_id)

        return await self._transition(
            subscription,
            SubscriptionStatus.ACTIVE,
            SubscriptionAction.RESUMED,
            "Subscription resumed",
            actor,
        )

    async def _transition(
        self,
        subscription: ParishSubscription,
        new_status: SubscriptionStatus,
        action: SubscriptionAction,
        description: str,
        actor: User,
    ) -> ParishSubscription:
        old_status = subscription.status
        updated = await self.dao.update_status(subscription.id, new_status)
        await self.history_dao.record(
            updated,
            action,
            description,
            old_status=old_status,
            new_status=new_status,
            performed_by=actor.id,
        )
        logger.info(
            f"Subscription {subscription.id} {old_status.value} -> {new_status.value}",
            extra={"parish_id": subscription.parish_id, "subscription_id": subscription.id},
        )
        return updated

    # ========================================================================
    # Activation
    # ========================================================================

    async def verify_payment_signature(
        self,
        razorpay_payment_id: str,
        razorpay_subscription_id: str,
        razorpay_signature: str,
    ) -> Dict[str, Any]:
        """
        Verify a Standard Checkout payment and activate the subscription.

        WHY: The checkout success callback can reach us before the
        subscription.activated webhook. Only a valid signature may activate;
        on mismatch nothing is written.

        Raises:
            PaymentSignatureError: Signature does not match
            SubscriptionNotFoundError: No local subscription for the Razorpay id
        """
        if not self.gateway.verify_payment_signature(
            razorpay_payment_id, razorpay_subscription_id, razorpay_signature
        ):
            logger.warning(
                "Invalid payment signature",
                extra={
                    "razorpay_payment_id": razorpay_payment_id,
                    "razorpay_subscription_id": razorpay_subscription_id,
                },
            )
            raise PaymentSignatureError(razorpay_subscription_id=razorpay_subscription_id)

        subscription = await self.dao.get_by_razorpay_subscription_id(razorpay_subscription_id)
        if not subscription:
            raise SubscriptionNotFoundError(
                message="Subscription not found",
                razorpay_subscription_id=razorpay_subscription_id,
            )

        old_status = subscription.status
        now = datetime.utcnow()
        subscription = await self.dao.update_status(
            subscription.id,
            SubscriptionStatus.ACTIVE,
            last_payment_date=now,
            **billing_window(now=now),
        )
        await self.parish_dao.set_subscription_state(
            subscription.parish_id,
            status=ParishStatus.ACTIVE,
            current_plan_id=subscription.plan_id,
        )
        await self.history_dao.record(
            subscription,
            SubscriptionAction.ACTIVATED,
            f"Payment verified and subscription activated. Payment ID: {razorpay_payment_id}",
            old_status=old_status,
            new_status=SubscriptionStatus.ACTIVE,
            details={"razorpay_payment_id": razorpay_payment_id},
        )

        logger.info(
            "Payment verified and subscription activated",
            extra={
                "parish_id": subscription.parish_id,
                "subscription_id": subscription.id,
                "razorpay_payment_id": razorpay_payment_id,
            },
        )
        return {
            "verified": True,
            "subscription_id": subscription.id,
            "parish_id": subscription.parish_id,
            "subscription_status": SubscriptionStatus.ACTIVE,
            "message": "Payment verified successfully. Your subscription is now active!",
        }

    async def manually_activate(self, parish_id: int, actor: User, reason: str) -> Dict[str, Any]:
        """
        Force a parish (and its subscription, if any) to ACTIVE.

        WHAT: Privileged escape hatch that bypasses Razorpay entirely.

        WHY: Used where the gateway's test surface is unusable or a cash
        payment was received. Always leaves a history row flagged as a
        manual, non-gateway activation.

        Raises:
            ParishNotFoundError: Parish missing
        """
        logger.info(
            "Manual parish activation initiated",
            extra={"parish_id": parish_id, "user_id": actor.id},
        )
        await self.get_parish(parish_id)

        subscription = await self.dao.get_by_parish_id(parish_id)
        if subscription:
            old_status = subscription.status
            subscription = await self.dao.update_status(
                subscription.id,
                SubscriptionStatus.ACTIVE,
                **billing_window(),
            )
            await self.history_dao.record(
                subscription,
                SubscriptionAction.ACTIVATED,
                reason,
                old_status=old_status,
                new_status=SubscriptionStatus.ACTIVE,
                performed_by=actor.id,
                details={"manual": True, "gateway": False},
            )

        parish = await self.parish_dao.set_subscription_state(
            parish_id,
            status=ParishStatus.ACTIVE,
            current_plan_id=subscription.plan_id if subscription else None,
            is_subscription_managed=True,
        )

        logger.warning(
            f"Parish {parish_id} manually activated without gateway payment",
            extra={"parish_id": parish_id, "user_id": actor.id},
        )
        return {
            "parish": parish,
            "subscription": subscription,
            "message": "Parish manually activated successfully",
            "warning": MANUAL_ACTIVATION_WARNING,
        }

    # ========================================================================
    # Billing Details
    # ========================================================================

    async def update_billing_details(
        self, parish_id: int, data: BillingDetailsUpdate
    ) -> ParishSubscription:
        subscription = await self._require_subscription(parish_id)
        fields = data.model_dump(exclude_unset=True)
        if "billing_pincode" in fields:
            fields["billing_postal_code"] = fields.pop("billing_pincode")
        return await self.dao.update_billing_details(subscription.id, **fields)

    # ========================================================================
    # Feature Usage & Limits
    # ========================================================================

    async def get_feature_usage(self, parish_id: int) -> Dict[str, int]:
        counts = await self.usage_dao.count_all(parish_id)
        return {
            "current_parishioners": counts["max_parishioners"],
            "current_families": counts["max_families"],
            "current_wards": counts["max_wards"],
            "current_admins": counts["max_admins"],
        }

    async def get_feature_access(self, parish_id: int) -> Dict[str, Any]:
        """
        Report which limited resources can still be added.

        WHAT: can_add_* and remaining_* per resource. remaining_* is None
        when the plan does not limit the resource.

        WHY: Lets the frontend disable "add" buttons before the user hits
        a 403 from the limit gate.
        """
        singular = {
            "max_parishioners": ("parishioner", "parishioners"),
            "max_families": ("family", "families"),
            "max_wards": ("ward", "wards"),
            "max_admins": ("admin", "admins"),
        }
        result = await self.dao.get_with_plan(parish_id)
        access: Dict[str, Any] = {}

        if not result or result[0].status != SubscriptionStatus.ACTIVE:
            for one, many in singular.values():
                access[f"can_add_{one}"] = False
                access[f"remaining_{many}"] = None
            return access

        plan = result[1]
        counts = await self.usage_dao.count_all(parish_id)
        for feature, (one, many) in singular.items():
            limit = plan.limit_for(feature)
            if is_unlimited(limit):
                access[f"can_add_{one}"] = True
                access[f"remaining_{many}"] = None
            else:
                access[f"can_add_{one}"] = counts[feature] < limit
                access[f"remaining_{many}"] = max(0, limit - counts[feature])
        return access

    async def check_feature_limit(self, parish_id: int, feature: str) -> bool:
        """
        Whether one more of a limited resource may be added.

        Returns False without an ACTIVE subscription; True when unlimited.

        Raises:
            ValidationError: Unknown feature
        """
        if feature not in FEATURE_LIMIT_FIELDS:
            raise ValidationError(message=f"Unknown feature: {feature}", feature=feature)

        result = await self.dao.get_with_plan(parish_id)
        if not result or result[0].status != SubscriptionStatus.ACTIVE:
            return False

        limit = result[1].limit_for(feature)
        if is_unlimited(limit):
            return True
        return await self.usage_dao.count_usage(parish_id, feature) < limit

    # ========================================================================
    # Payment Details (resume checkout)
    # ========================================================================

    async def get_payment_details(self, parish_id: int) -> Dict[str, Any]:
        """
        What a parish awaiting payment needs to finish paying.

        Raises:
            SubscriptionNotFoundError: No subscription
        """
        subscription, plan = await self.get_subscription(parish_id)
        details = {
            "subscription_id": subscription.id,
            "parish_id": parish_id,
            "subscription_status": subscription.status,
            "payment_method": subscription.payment_method,
            "plan": plan,
        }

        if subscription.status not in (SubscriptionStatus.PENDING, SubscriptionStatus.CREATED):
            details.update(
                payment_required=False,
                message="Your subscription is already active. No payment required.",
            )
            return details

        if subscription.payment_method == PaymentMethod.CASH:
            details.update(
                payment_required=True,
                message="Your parish subscription is pending cash payment verification.",
                instructions=CASH_PENDING_INSTRUCTIONS,
            )
            return details

        details.update(
            payment_required=True,
            message=(
                "Your parish subscription payment is pending. "
                "Please complete the payment to activate your subscription."
            ),
            razorpay_subscription_id=subscription.razorpay_subscription_id,
            razorpay_key_id=self.gateway.key_id,
            instructions=ONLINE_CHECKOUT_STEPS,
        )
        return details

    async def build_payment_required_details(self, parish: Parish) -> Optional[Dict[str, Any]]:
        """
        Payment-method-aware body for a login blocked on a pending payment.

        Returns:
            Dict with "message" plus the error details, or None when the
            parish has no subscription to pay for
        """
        result = await self.dao.get_with_plan(parish.id)
        if not result:
            return None
        subscription, plan = result

        summary = {
            "subscription_id": subscription.id,
            "plan_name": plan.plan_name,
            "amount": plan.amount,
            "billing_cycle": plan.billing_cycle.value,
            "payment_method": subscription.payment_method.value,
        }
        details: Dict[str, Any] = {
            "payment_required": True,
            "payment_method": subscription.payment_method.value,
            "parish": {
                "parish_id": parish.id,
                "parish_name": parish.name,
                "subscription_status": parish.subscription_status.value,
            },
            "subscription": summary,
        }

        if subscription.payment_method == PaymentMethod.CASH:
            details["message"] = "Your parish subscription is pending cash payment verification."
            details["instructions"] = CASH_PENDING_INSTRUCTIONS
            return details

        summary["razorpay_subscription_id"] = subscription.razorpay_subscription_id
        details["message"] = (
            "Your parish subscription payment is pending. "
            "Please complete the payment to access the system."
        )
        details["razorpay_subscription_id"] = subscription.razorpay_subscription_id
        details["razorpay_key_id"] = self.gateway.key_id
        details["checkout_info"] = {
            "message": "Complete your payment to activate your subscription",
            "integration_type": "standard_checkout",
            "steps": ONLINE_CHECKOUT_STEPS[:3] + ["4. Login again to access your account"],
        }
        return details
