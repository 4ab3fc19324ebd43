"""
Razorpay webhook ingestion and reconciliation engine.

WHAT: Authenticates, deduplicates, logs, and dispatches inbound Razorpay
events to per-event handlers that advance the subscription state machine.

WHY: Razorpay delivers events at least once, possibly duplicated, possibly
out of order, and retries anything that is not acknowledged with 200.
The engine must therefore:
1. Never let a forged event touch billing state
2. Make every handler's writes idempotent on their own, because two
   concurrent deliveries of an unprocessed event both pass the dedup check
3. Leave an audit row for every authenticated delivery, even one whose
   handler crashes

HOW: A fixed pipeline:
1. Verify X-Razorpay-Signature over the raw body (SDK helper, local HMAC)
2. Skip events whose id is already marked processed
3. Commit a WebhookLog row before dispatch
4. Dispatch through a handler map keyed by WebhookEventKind
5. Commit handler writes together with processed=True, or roll them back
   and commit the error text onto the log row
6. If a concurrent delivery of the same event was marked processed first,
   roll the handler writes back and record this row as a duplicate

Design decisions:
- Handler exceptions are caught at the dispatch boundary and never reach
  the HTTP layer; failure visibility lives in the webhook log
- Missing local subscriptions are a logged no-op, not an error
- Payment rows use insert-or-skip on the Razorpay payment id
"""

import json
import logging
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, Callable, Awaitable, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from parish_billing.core.exceptions import WebhookError, WebhookSignatureError
from parish_billing.dao.parish import ParishDAO
from parish_billing.dao.subscription import (
    ParishSubscriptionDAO,
    SubscriptionPaymentDAO,
    SubscriptionHistoryDAO,
)
from parish_billing.dao.webhook_log import WebhookLogDAO
from parish_billing.middleware.request_context import get_request_id
from parish_billing.models.parish import ParishStatus
from parish_billing.models.subscription import (
    ParishSubscription,
    SubscriptionStatus,
    SubscriptionAction,
    PaymentStatus,
    TERMINAL_STATUSES,
)
from parish_billing.services.razorpay_gateway import RazorpayGateway
from parish_billing.services.subscription_service import billing_window, parish_status_for
from parish_billing.services.webhook_payload import WebhookEnvelope, PaymentEntity

logger = logging.getLogger(__name__)


class WebhookEventKind(str, Enum):
    """Razorpay events the engine reconciles."""

    SUBSCRIPTION_ACTIVATED = "subscription.activated"
    SUBSCRIPTION_CHARGED = "subscription.charged"
    SUBSCRIPTION_COMPLETED = "subscription.completed"
    SUBSCRIPTION_CANCELLED = "subscription.cancelled"
    SUBSCRIPTION_PAUSED = "subscription.paused"
    SUBSCRIPTION_RESUMED = "subscription.resumed"
    SUBSCRIPTION_HALTED = "subscription.halted"
    PAYMENT_CAPTURED = "payment.captured"
    PAYMENT_FAILED = "payment.failed"


# (parish_id, subscription_id) the event resolved to, for linking the log row
Resolved = Optional[Tuple[int, int]]
Handler = Callable[[WebhookEnvelope], Awaitable[Resolved]]


class WebhookEngine:
    """
    Stateless, at-least-once consumer of Razorpay webhook events.

    Constructed per request with the request's session and the gateway
    built at startup.
    """

    def __init__(self, db: AsyncSession, gateway: RazorpayGateway):
        self.db = db
        self.gateway = gateway
        self.log_dao = WebhookLogDAO(db)
        self.subscription_dao = ParishSubscriptionDAO(db)
        self.payment_dao = SubscriptionPaymentDAO(db)
        self.history_dao = SubscriptionHistoryDAO(db)
        self.parish_dao = ParishDAO(db)

        self._handlers: Dict[WebhookEventKind, Handler] = {
            WebhookEventKind.SUBSCRIPTION_ACTIVATED: self._on_subscription_activated,
            WebhookEventKind.SUBSCRIPTION_CHARGED: self._on_subscription_charged,
            WebhookEventKind.SUBSCRIPTION_COMPLETED: self._on_subscription_completed,
            WebhookEventKind.SUBSCRIPTION_CANCELLED: self._on_subscription_cancelled,
            WebhookEventKind.SUBSCRIPTION_PAUSED: self._on_subscription_paused,
            WebhookEventKind.SUBSCRIPTION_RESUMED: self._on_subscription_resumed,
            WebhookEventKind.SUBSCRIPTION_HALTED: self._on_subscription_halted,
            WebhookEventKind.PAYMENT_CAPTURED: self._on_payment_captured,
            WebhookEventKind.PAYMENT_FAILED: self._on_payment_failed,
        }

    # ========================================================================
    # Pipeline
    # ========================================================================

    async def process(
        self,
        raw_body: bytes,
        signature: Optional[str],
        event_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Run one delivery through the pipeline.

        Args:
            raw_body: Request body exactly as received
            signature: X-Razorpay-Signature header
            event_id: X-Razorpay-Event-Id header

        Returns:
            Acknowledgement body ({"success": True, ...})

        Raises:
            WebhookSignatureError: Signature missing or invalid (nothing logged)
            WebhookError: Body is not a JSON object
        """
        if not self.gateway.verify_webhook_signature(raw_body, signature):
            logger.warning(
                "Rejected webhook with missing or invalid signature",
                extra={"request_id": get_request_id(), "has_signature": bool(signature)},
            )
            raise WebhookSignatureError()

        try:
            document = json.loads(raw_body)
        except ValueError:
            raise WebhookError(message="Malformed webhook payload", status_code=400)
        if not isinstance(document, dict):
            raise WebhookError(message="Malformed webhook payload", status_code=400)

        envelope = WebhookEnvelope(document, event_id=event_id)
        log_context = {
            "event_id": envelope.event_id,
            "event_type": envelope.event,
            "event_created_at": envelope.created_at,
            "request_id": get_request_id(),
        }

        if await self.log_dao.is_event_processed(envelope.event_id):
            logger.info(f"Event {envelope.event_id} already processed, skipping", extra=log_context)
            return {"success": True, "message": "Event already processed"}

        log = await self.log_dao.create(
            event_id=envelope.event_id,
            event_type=envelope.event,
            entity_type=envelope.entity,
            entity_id=envelope.entity_id,
            payload=document,
        )
        log_id = log.id
        await self.db.commit()

        try:
            resolved = await self._dispatch(envelope)
            parish_id, subscription_id = resolved or (None, None)
            log = await self.log_dao.mark_processed(
                log_id, parish_id=parish_id, subscription_id=subscription_id
            )
            if log is not None and not log.processed:
                await self.db.rollback()
                await self.log_dao.mark_duplicate(log_id)
                await self.db.commit()
                logger.info(
                    f"Event {envelope.event_id} was processed by a concurrent delivery, discarding",
                    extra=log_context,
                )
                return {"success": True, "message": "Event already processed"}
            await self.db.commit()
            logger.info(f"Webhook event processed successfully: {envelope.event}", extra=log_context)
        except Exception as e:
            # Handler boundary: record the failure, always acknowledge
            await self.db.rollback()
            logger.error(
                f"Error processing webhook {envelope.event}: {e}",
                extra=log_context,
                exc_info=True,
            )
            await self.log_dao.mark_processed(log_id, error=str(e) or e.__class__.__name__)
            await self.db.commit()

        return {"success": True}

    async def _dispatch(self, envelope: WebhookEnvelope) -> Resolved:
        try:
            kind = WebhookEventKind(envelope.event)
        except ValueError:
            logger.info(
                f"Unhandled webhook event: {envelope.event}",
                extra={"event_type": envelope.event},
            )
            return None
        return await self._handlers[kind](envelope)

    # ========================================================================
    # Shared Helpers
    # ========================================================================

    async def _subscription_for_event(self, envelope: WebhookEnvelope) -> Optional[ParishSubscription]:
        entity = envelope.subscription
        if not entity.id:
            logger.warning(
                f"{envelope.event} carried no subscription entity",
                extra={"event_type": envelope.event},
            )
            return None

        subscription = await self.subscription_dao.get_by_razorpay_subscription_id(entity.id)
        if not subscription:
            logger.warning(
                f"Subscription not found for Razorpay ID: {entity.id}",
                extra={
                    "event_type": envelope.event,
                    "razorpay_subscription_id": entity.id,
                    "gateway_status": entity.status,
                },
            )
        return subscription

    def _ended(self, subscription: ParishSubscription, envelope: WebhookEnvelope) -> bool:
        """
        True when a late activation or charge arrives for an ended subscription.

        WHY: Razorpay can deliver subscription.charged after
        subscription.cancelled. Reviving the subscription would re-grant
        access the parish admin gave up, so the event is logged and dropped.
        """
        if subscription.status not in TERMINAL_STATUSES:
            return False
        logger.info(
            f"Ignoring {envelope.event} for {subscription.status.value} subscription {subscription.id}",
            extra={
                "event_type": envelope.event,
                "parish_id": subscription.parish_id,
                "subscription_id": subscription.id,
            },
        )
        return True

    async def _move(
        self,
        subscription: ParishSubscription,
        new_status: SubscriptionStatus,
        action: SubscriptionAction,
        description: str,
        clear_plan: bool = False,
        details: Optional[Dict[str, Any]] = None,
        **fields: Any,
    ) -> Tuple[int, int]:
        """
        Apply a gateway-driven transition with its projection and history.

        WHY: One place guarantees the parish aggregate is updated whenever
        the subscription reaches a status that changes access.
        """
        old_status = subscription.status
        updated = await self.subscription_dao.update_status(subscription.id, new_status, **fields)

        parish_status = parish_status_for(new_status)
        if parish_status is not None or clear_plan:
            await self.parish_dao.set_subscription_state(
                updated.parish_id,
                status=parish_status,
                current_plan_id=updated.plan_id if parish_status == ParishStatus.ACTIVE else None,
                clear_plan=clear_plan,
            )

        await self.history_dao.record(
            updated,
            action,
            description,
            old_status=old_status,
            new_status=new_status,
            details=details,
        )

        logger.info(
            f"Subscription {updated.id} {old_status.value} -> {new_status.value} via webhook",
            extra={
                "parish_id": updated.parish_id,
                "subscription_id": updated.id,
                "parish_status": parish_status.value if parish_status else None,
            },
        )
        return updated.parish_id, updated.id

    # ========================================================================
    # Subscription Events
    # ========================================================================

    async def _on_subscription_activated(self, envelope: WebhookEnvelope) -> Resolved:
        subscription = await self._subscription_for_event(envelope)
        if not subscription:
            return None
        if self._ended(subscription, envelope):
            return subscription.parish_id, subscription.id
        entity = envelope.subscription
        return await self._move(
            subscription,
            SubscriptionStatus.ACTIVE,
            SubscriptionAction.ACTIVATED,
            "Subscription activated via webhook - Parish status changed to ACTIVE",
            **billing_window(entity.current_start, entity.current_end, entity.charge_at),
        )

    async def _on_subscription_charged(self, envelope: WebhookEnvelope) -> Resolved:
        subscription = await self._subscription_for_event(envelope)
        if not subscription:
            return None
        if self._ended(subscription, envelope):
            return subscription.parish_id, subscription.id
        entity = envelope.subscription
        return await self._move(
            subscription,
            SubscriptionStatus.ACTIVE,
            SubscriptionAction.PAYMENT_SUCCEEDED,
            "Subscription charged via webhook",
            last_payment_date=datetime.utcnow(),
            **billing_window(entity.current_start, entity.current_end, entity.charge_at),
        )

    async def _on_subscription_completed(self, envelope: WebhookEnvelope) -> Resolved:
        subscription = await self._subscription_for_event(envelope)
        if not subscription:
            return None
        return await self._move(
            subscription,
            SubscriptionStatus.EXPIRED,
            SubscriptionAction.EXPIRED,
            "Subscription completed/expired",
            expiry_date=envelope.subscription.ended_at or datetime.utcnow(),
        )

    async def _on_subscription_cancelled(self, envelope: WebhookEnvelope) -> Resolved:
        subscription = await self._subscription_for_event(envelope)
        if not subscription:
            return None
        return await self._move(
            subscription,
            SubscriptionStatus.CANCELLED,
            SubscriptionAction.CANCELLED,
            "Subscription cancelled via webhook - Parish status changed to CANCELLED",
            clear_plan=True,
            expiry_date=envelope.subscription.ended_at or datetime.utcnow(),
            auto_renewal=False,
        )

    async def _on_subscription_paused(self, envelope: WebhookEnvelope) -> Resolved:
        subscription = await self._subscription_for_event(envelope)
        if not subscription:
            return None
        return await self._move(
            subscription,
            SubscriptionStatus.PAUSED,
            SubscriptionAction.PAUSED,
            "Subscription paused via webhook",
        )

    async def _on_subscription_resumed(self, envelope: WebhookEnvelope) -> Resolved:
        subscription = await self._subscription_for_event(envelope)
        if not subscription:
            return None
        return await self._move(
            subscription,
            SubscriptionStatus.ACTIVE,
            SubscriptionAction.RESUMED,
            "Subscription resumed via webhook",
        )

    async def _on_subscription_halted(self, envelope: WebhookEnvelope) -> Resolved:
        subscription = await self._subscription_for_event(envelope)
        if not subscription:
            return None
        resolved = await self._move(
            subscription,
            SubscriptionStatus.HALTED,
            SubscriptionAction.PAYMENT_FAILED,
            "Subscription halted due to payment failures - Parish status changed to SUSPENDED",
        )
        logger.warning(
            f"Subscription halted: {subscription.id}, Parish {subscription.parish_id} suspended",
            extra={"parish_id": subscription.parish_id, "subscription_id": subscription.id},
        )
        return resolved

    # ========================================================================
    # Payment Events
    # ========================================================================

    async def _subscription_for_payment(self, payment: PaymentEntity) -> Optional[ParishSubscription]:
        """
        Resolve the subscription a payment belongs to.

        HOW: In order: notes.subscription_id (Razorpay id), the payment's
        own subscription_id, then notes.parish_id (payment-link flow).
        """
        for razorpay_subscription_id in (payment.note("subscription_id"), payment.subscription_id):
            if razorpay_subscription_id:
                subscription = await self.subscription_dao.get_by_razorpay_subscription_id(
                    razorpay_subscription_id
                )
                if subscription:
                    return subscription

        parish_id = payment.note("parish_id")
        if parish_id and parish_id.isdigit():
            subscription = await self.subscription_dao.get_by_parish_id(int(parish_id))
            if subscription:
                logger.info(
                    f"Found subscription for parish {parish_id} via payment link",
                    extra={"parish_id": int(parish_id), "razorpay_payment_id": payment.id},
                )
            return subscription
        return None

    async def _on_payment_captured(self, envelope: WebhookEnvelope) -> Resolved:
        payment = envelope.payment
        if not payment.id:
            return None

        if await self.payment_dao.get_by_razorpay_payment_id(payment.id):
            logger.info(f"Payment already recorded: {payment.id}", extra={"razorpay_payment_id": payment.id})
            return None

        subscription = await self._subscription_for_payment(payment)
        if not subscription:
            logger.warning(
                f"No subscription found for payment {payment.id}",
                extra={"razorpay_payment_id": payment.id},
            )
            return None

        amount = payment.amount
        paid_on = payment.created_at or datetime.utcnow()
        recorded = await self.payment_dao.create_if_absent(
            subscription_id=subscription.id,
            parish_id=subscription.parish_id,
            razorpay_payment_id=payment.id,
            razorpay_order_id=payment.order_id,
            razorpay_invoice_id=payment.invoice_id,
            amount=amount,
            currency=payment.currency,
            amount_paid=amount,
            payment_method=payment.method,
            status=PaymentStatus.CAPTURED,
            paid_on=paid_on,
            description=f"Subscription payment - plan {subscription.plan_id}",
        )
        if recorded is None:
            return subscription.parish_id, subscription.id

        first_payment = subscription.awaiting_first_payment
        await self.subscription_dao.record_payment_totals(subscription.id, amount, paid_on=paid_on)

        if first_payment:
            await self._move(
                subscription,
                SubscriptionStatus.ACTIVE,
                SubscriptionAction.ACTIVATED,
                "First payment captured - Parish status changed to ACTIVE",
                details={"razorpay_payment_id": payment.id},
                **billing_window(),
            )
            await self.parish_dao.set_subscription_state(
                subscription.parish_id, is_subscription_managed=True
            )

        await self.history_dao.record(
            subscription,
            SubscriptionAction.PAYMENT_SUCCEEDED,
            f"Payment captured: ₹{amount}",
            details={"razorpay_payment_id": payment.id},
        )

        logger.info(
            f"Payment captured: {payment.id}",
            extra={
                "parish_id": subscription.parish_id,
                "subscription_id": subscription.id,
                "razorpay_payment_id": payment.id,
            },
        )
        return subscription.parish_id, subscription.id

    async def _on_payment_failed(self, envelope: WebhookEnvelope) -> Resolved:
        payment = envelope.payment
        if not payment.id:
            return None

        subscription = await self._subscription_for_payment(payment)
        if not subscription:
            logger.warning(
                f"No subscription found for failed payment {payment.id}",
                extra={"razorpay_payment_id": payment.id},
            )
            return None

        recorded = await self.payment_dao.create_if_absent(
            subscription_id=subscription.id,
            parish_id=subscription.parish_id,
            razorpay_payment_id=payment.id,
            razorpay_order_id=payment.order_id,
            amount=payment.amount,
            currency=payment.currency,
            payment_method=payment.method,
            status=PaymentStatus.FAILED,
            failure_reason=payment.error_description or "Payment failed",
        )
        if recorded is None:
            logger.info(f"Failed payment already recorded: {payment.id}", extra={"razorpay_payment_id": payment.id})
            return subscription.parish_id, subscription.id

        await self.subscription_dao.increment_payment_failed_count(subscription.id)
        await self.history_dao.record(
            subscription,
            SubscriptionAction.PAYMENT_FAILED,
            f"Payment failed: {payment.error_description or 'Unknown error'}",
            details={"razorpay_payment_id": payment.id},
        )

        logger.warning(
            f"Payment failed for subscription: {subscription.id}",
            extra={
                "parish_id": subscription.parish_id,
                "subscription_id": subscription.id,
                "razorpay_payment_id": payment.id,
            },
        )
        return subscription.parish_id, subscription.id
