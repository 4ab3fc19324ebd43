"""
Razorpay payment gateway client.

WHAT: A narrow interface over the Razorpay Python SDK covering customers,
subscriptions, payments, and the two HMAC signature checks.

WHY: Razorpay is the billing source of truth for online subscriptions:
1. Customers and subscriptions are created there on parish signup
2. Cancel/pause/resume are forwarded there before local state changes
3. Checkout completion and webhooks are authenticated with its secrets

HOW: Wraps ``razorpay.Client`` with:
- SDK errors translated into RazorpayError (502) carrying the gateway's
  own description
- Signature checks delegated to the SDK utility helpers (local HMAC-SHA256,
  never a network call)
- One instance built at startup and injected, never a module global

Design decisions:
- Subscriptions span roughly 30 years of cycles (gateway-imposed horizon)
- Key ID is exposed so checkout responses can hand it to the client
"""

import logging
from typing import Optional, Dict, Any

import razorpay
from razorpay.errors import BadRequestError, GatewayError, ServerError, SignatureVerificationError
from requests.exceptions import RequestException

from parish_billing.core.exceptions import RazorpayError
from parish_billing.models.subscription import BillingCycle

logger = logging.getLogger(__name__)

# SDK failures that mean "the gateway call did not succeed".
# The SDK talks HTTP through requests, so timeouts and refused connections
# arrive as RequestException rather than a razorpay error.
GATEWAY_ERRORS = (BadRequestError, GatewayError, ServerError, RequestException)


# ============================================================================
# Helpers
# ============================================================================


# Cycles covering ~30 years for each billing interval
_TOTAL_COUNT_BY_CYCLE = {
    BillingCycle.MONTHLY: 360,
    BillingCycle.QUARTERLY: 120,
    BillingCycle.YEARLY: 30,
}


def total_count_for_cycle(billing_cycle: BillingCycle) -> int:
    """
    Number of billing cycles to request for a gateway subscription.

    WHY: Razorpay subscriptions need a finite total_count. Sizing it to
    about 30 years makes the subscription effectively open-ended.
    """
    return _TOTAL_COUNT_BY_CYCLE.get(BillingCycle(billing_cycle), 360)


# ============================================================================
# Gateway
# ============================================================================


class RazorpayGateway:
    """
    Razorpay API client.

    WHAT: High-level interface for the gateway operations billing needs.

    WHY: Services depend on this class, not on the SDK, so tests can pass
    a fake and every SDK failure surfaces as the same exception type.
    """

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        webhook_secret: str,
        client: Optional[razorpay.Client] = None,
    ):
        """
        Initialize the gateway.

        Args:
            key_id: Razorpay key ID (public, sent to checkout)
            key_secret: Razorpay key secret (API auth and payment signatures)
            webhook_secret: Secret configured for the webhook endpoint
            client: Pre-built SDK client (defaults to one using key_id/key_secret)
        """
        self.key_id = key_id
        self._key_secret = key_secret
        self._webhook_secret = webhook_secret
        self.client = client or razorpay.Client(auth=(key_id, key_secret))

    def _gateway_failure(self, operation: str, error: Exception, **context: Any) -> RazorpayError:
        logger.error(
            f"Razorpay {operation} failed: {error}",
            extra={"operation": operation, **context},
        )
        return RazorpayError(
            message=f"Payment gateway {operation} failed",
            gateway_error=str(error),
            **context,
        )

    # ========================================================================
    # Customers
    # ========================================================================

    async def create_customer(
        self,
        name: str,
        email: str,
        contact: Optional[str] = None,
        notes: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Create (or reuse) a Razorpay customer.

        WHY: fail_existing=0 makes Razorpay return the existing customer
        for the same email/contact instead of failing, so a retried signup
        does not error out.

        Returns:
            Customer entity dict (id = cust_xxx)

        Raises:
            RazorpayError: If the API call fails
        """
        data = {"name": name, "email": email, "fail_existing": "0", "notes": notes or {}}
        if contact:
            data["contact"] = contact
        try:
            customer = self.client.customer.create(data=data)
        except GATEWAY_ERRORS as e:
            raise self._gateway_failure("customer creation", e, email=email)

        logger.info(
            f"Created Razorpay customer {customer.get('id')}",
            extra={"razorpay_customer_id": customer.get("id")},
        )
        return customer

    # ========================================================================
    # Subscriptions
    # ========================================================================

    async def create_subscription(
        self,
        plan_id: str,
        total_count: int,
        customer_id: Optional[str] = None,
        notes: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Create a Razorpay subscription for a plan.

        Args:
            plan_id: Razorpay plan ID (plan_xxx)
            total_count: Number of billing cycles
            customer_id: Razorpay customer ID
            notes: Notes echoed back on webhooks (parish_id, plan_id)

        Returns:
            Subscription entity dict (id = sub_xxx)

        Raises:
            RazorpayError: If the API call fails
        """
        data = {
            "plan_id": plan_id,
            "total_count": total_count,
            "quantity": 1,
            "customer_notify": 1,
            "notes": notes or {},
        }
        if customer_id:
            data["customer_id"] = customer_id
        try:
            subscription = self.client.subscription.create(data=data)
        except GATEWAY_ERRORS as e:
            raise self._gateway_failure("subscription creation", e, plan_id=plan_id)

        logger.info(
            f"Created Razorpay subscription {subscription.get('id')}",
            extra={"razorpay_subscription_id": subscription.get("id")},
        )
        return subscription

    async def cancel_subscription(
        self, subscription_id: str, cancel_at_cycle_end: bool = False
    ) -> Dict[str, Any]:
        """
        Cancel a Razorpay subscription, now or at the end of the cycle.

        Raises:
            RazorpayError: If the API call fails
        """
        try:
            return self.client.subscription.cancel(
                subscription_id,
                data={"cancel_at_cycle_end": 1 if cancel_at_cycle_end else 0},
            )
        except GATEWAY_ERRORS as e:
            raise self._gateway_failure(
                "subscription cancellation", e, razorpay_subscription_id=subscription_id
            )

    async def pause_subscription(self, subscription_id: str) -> Dict[str, Any]:
        try:
            return self.client.subscription.pause(subscription_id, data={"pause_at": "now"})
        except GATEWAY_ERRORS as e:
            raise self._gateway_failure(
                "subscription pause", e, razorpay_subscription_id=subscription_id
            )

    async def resume_subscription(self, subscription_id: str) -> Dict[str, Any]:
        try:
            return self.client.subscription.resume(subscription_id, data={"resume_at": "now"})
        except GATEWAY_ERRORS as e:
            raise self._gateway_failure(
                "subscription resume", e, razorpay_subscription_id=subscription_id
            )

    # ========================================================================
    # Payments
    # ========================================================================

    async def fetch_payment(self, payment_id: str) -> Dict[str, Any]:
        try:
            return self.client.payment.fetch(payment_id)
        except GATEWAY_ERRORS as e:
            raise self._gateway_failure("payment fetch", e, razorpay_payment_id=payment_id)

    # ========================================================================
    # Signatures
    # ========================================================================

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        """
        Verify the X-Razorpay-Signature header over the raw request body.

        WHY: Security critical (OWASP A02). Only events signed with the
        webhook secret may mutate billing state. The exact bytes received
        are signed, so the body must not be re-serialized before checking.

        Args:
            payload: Raw request body bytes
            signature: Header value (hex HMAC-SHA256)

        Returns:
            True if the signature matches
        """
        # An empty secret would make the SDK fall back to the API key secret
        if not signature or not self._webhook_secret or not signature.isascii():
            return False
        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError:
            return False

        try:
            return self.client.utility.verify_webhook_signature(body, signature, self._webhook_secret)
        except SignatureVerificationError:
            return False

    def verify_payment_signature(
        self, payment_id: str, subscription_id: str, signature: Optional[str]
    ) -> bool:
        """
        Verify a Standard Checkout subscription payment signature.

        HOW: Razorpay signs "payment_id|subscription_id" with the key secret.

        Returns:
            True if the signature matches
        """
        if not signature or not payment_id or not subscription_id or not signature.isascii():
            return False
        try:
            return self.client.utility.verify_subscription_payment_signature(
                {
                    "razorpay_payment_id": payment_id,
                    "razorpay_subscription_id": subscription_id,
                    "razorpay_signature": signature,
                    "secret": self._key_secret,
                }
            )
        except SignatureVerificationError:
            return False


def build_gateway(settings) -> RazorpayGateway:
    """
    Build the process-wide gateway from settings.

    WHY: Called once by create_app(); routes get the instance through the
    get_gateway dependency so tests can substitute a fake.
    """
    return RazorpayGateway(
        key_id=settings.RAZORPAY_KEY_ID,
        key_secret=settings.RAZORPAY_KEY_SECRET,
        webhook_secret=settings.RAZORPAY_WEBHOOK_SECRET,
    )
