"""
Unit tests for the Razorpay gateway client.

WHAT: Tests signature verification, cycle sizing, and SDK error mapping.

WHY: Signature checks are the only thing standing between a forged
request and a billing state change; SDK failures must surface as one
exception type the API renders as 502.

HOW: Gateway calls run against a MagicMock SDK client. Signature checks run
against a real razorpay.Client, whose utility helpers are local HMAC;
expected signatures are computed independently with hmac_sha256.
"""

import pytest
from unittest.mock import MagicMock

import razorpay
from razorpay.errors import BadRequestError, ServerError, SignatureVerificationError
from requests.exceptions import ConnectionError, ReadTimeout

from parish_billing.core.exceptions import RazorpayError
from parish_billing.models.subscription import BillingCycle
from parish_billing.services.razorpay_gateway import (
    RazorpayGateway,
    total_count_for_cycle,
)
from tests.conftest import hmac_sha256


@pytest.fixture
def sdk_client():
    return MagicMock()


@pytest.fixture
def gateway(sdk_client):
    return RazorpayGateway("rzp_test_key", "key_secret", "webhook_secret", client=sdk_client)


@pytest.fixture
def signer():
    """Gateway over a real SDK client, for the local signature helpers."""
    return RazorpayGateway(
        "rzp_test_key",
        "key_secret",
        "webhook_secret",
        client=razorpay.Client(auth=("rzp_test_key", "key_secret")),
    )


# ============================================================================
# Signatures
# ============================================================================


class TestWebhookSignature:
    """Tests for X-Razorpay-Signature verification."""

    def test_valid_signature(self, signer):
        body = b'{"event":"subscription.activated"}'

        assert signer.verify_webhook_signature(body, hmac_sha256("webhook_secret", body)) is True

    def test_tampered_body_rejected(self, signer):
        """Any change to the signed bytes invalidates the signature."""
        signature = hmac_sha256("webhook_secret", b'{"amount":100}')

        assert signer.verify_webhook_signature(b'{"amount":900}', signature) is False

    def test_signature_with_wrong_secret_rejected(self, signer):
        body = b"{}"

        assert signer.verify_webhook_signature(body, hmac_sha256("key_secret", body)) is False

    def test_missing_signature_rejected(self, signer):
        assert signer.verify_webhook_signature(b"{}", None) is False
        assert signer.verify_webhook_signature(b"{}", "") is False

    def test_unconfigured_secret_rejects_everything(self):
        """
        Without a webhook secret no delivery can be authenticated.

        WHY: Given no secret, the SDK would check against the API key
        secret instead.
        """
        gateway = RazorpayGateway(
            "rzp_test_key",
            "key_secret",
            "",
            client=razorpay.Client(auth=("rzp_test_key", "key_secret")),
        )

        assert gateway.verify_webhook_signature(b"{}", hmac_sha256("key_secret", b"{}")) is False

    def test_non_utf8_body_rejected(self, signer):
        body = b"\xff\xfe"

        assert signer.verify_webhook_signature(body, hmac_sha256("webhook_secret", body)) is False

    def test_delegates_to_sdk_utility(self, gateway, sdk_client):
        """The SDK does the HMAC check; its verification error means "no"."""
        sdk_client.utility.verify_webhook_signature.side_effect = SignatureVerificationError(
            "Razorpay Signature Verification Failed"
        )

        assert gateway.verify_webhook_signature(b"{}", "abc123") is False
        sdk_client.utility.verify_webhook_signature.assert_called_once_with(
            "{}", "abc123", "webhook_secret"
        )


class TestPaymentSignature:
    """Tests for Standard Checkout signature verification."""

    def test_valid_payment_signature(self, signer):
        signature = hmac_sha256("key_secret", b"pay_123|sub_456")

        assert signer.verify_payment_signature("pay_123", "sub_456", signature) is True

    def test_swapped_ids_rejected(self, signer):
        """The message is payment_id|subscription_id, in that order."""
        signature = hmac_sha256("key_secret", b"sub_456|pay_123")

        assert signer.verify_payment_signature("pay_123", "sub_456", signature) is False

    def test_webhook_secret_does_not_sign_payments(self, signer):
        signature = hmac_sha256("webhook_secret", b"pay_123|sub_456")

        assert signer.verify_payment_signature("pay_123", "sub_456", signature) is False

    def test_missing_fields_rejected(self, signer):
        assert signer.verify_payment_signature("", "sub_456", "abc") is False
        assert signer.verify_payment_signature("pay_123", "sub_456", None) is False

    def test_delegates_to_sdk_utility(self, gateway, sdk_client):
        sdk_client.utility.verify_subscription_payment_signature.return_value = True

        assert gateway.verify_payment_signature("pay_123", "sub_456", "abc123") is True
        parameters = sdk_client.utility.verify_subscription_payment_signature.call_args.args[0]
        assert parameters["razorpay_payment_id"] == "pay_123"
        assert parameters["razorpay_subscription_id"] == "sub_456"
        assert parameters["secret"] == "key_secret"


# ============================================================================
# Gateway Calls
# ============================================================================


class TestGatewayCalls:
    """Tests for SDK delegation and error mapping."""

    @pytest.mark.asyncio
    async def test_create_customer_reuses_existing(self, gateway, sdk_client):
        """fail_existing=0 asks Razorpay to return an existing customer."""
        sdk_client.customer.create.return_value = {"id": "cust_1"}

        customer = await gateway.create_customer(
            name="St. Mary's Parish", email="billing@stmarys.org", contact="9876543210"
        )

        assert customer["id"] == "cust_1"
        data = sdk_client.customer.create.call_args.kwargs["data"]
        assert data["fail_existing"] == "0"
        assert data["contact"] == "9876543210"

    @pytest.mark.asyncio
    async def test_create_subscription_payload(self, gateway, sdk_client):
        sdk_client.subscription.create.return_value = {"id": "sub_1"}

        await gateway.create_subscription(
            plan_id="plan_basic", total_count=360, customer_id="cust_1", notes={"parish_id": "4"}
        )

        data = sdk_client.subscription.create.call_args.kwargs["data"]
        assert data["plan_id"] == "plan_basic"
        assert data["total_count"] == 360
        assert data["customer_id"] == "cust_1"
        assert data["notes"] == {"parish_id": "4"}

    @pytest.mark.asyncio
    async def test_cancel_at_cycle_end_flag(self, gateway, sdk_client):
        await gateway.cancel_subscription("sub_1", cancel_at_cycle_end=True)

        sdk_client.subscription.cancel.assert_called_once_with(
            "sub_1", data={"cancel_at_cycle_end": 1}
        )

    @pytest.mark.asyncio
    async def test_sdk_error_becomes_razorpay_error(self, gateway, sdk_client):
        """
        SDK failures surface as RazorpayError carrying the gateway message.

        WHY: The API maps RazorpayError to 502 and operators need to see
        what Razorpay said.
        """
        sdk_client.subscription.create.side_effect = BadRequestError("The id provided does not exist")

        with pytest.raises(RazorpayError) as exc_info:
            await gateway.create_subscription(plan_id="plan_missing", total_count=12)

        assert exc_info.value.status_code == 502
        assert "does not exist" in exc_info.value.context["gateway_error"]

    @pytest.mark.asyncio
    async def test_server_error_on_pause(self, gateway, sdk_client):
        sdk_client.subscription.pause.side_effect = ServerError("upstream unavailable")

        with pytest.raises(RazorpayError):
            await gateway.pause_subscription("sub_1")

    @pytest.mark.asyncio
    async def test_connection_failure_becomes_razorpay_error(self, gateway, sdk_client):
        """Network failures reach us from requests, not from the razorpay SDK."""
        sdk_client.subscription.cancel.side_effect = ConnectionError("Connection refused")

        with pytest.raises(RazorpayError) as exc_info:
            await gateway.cancel_subscription("sub_1")

        assert exc_info.value.status_code == 502
        assert exc_info.value.context["gateway_error"] == "Connection refused"
        assert exc_info.value.context["razorpay_subscription_id"] == "sub_1"

    @pytest.mark.asyncio
    async def test_fetch_payment(self, gateway, sdk_client):
        sdk_client.payment.fetch.return_value = {"id": "pay_1", "status": "captured"}

        payment = await gateway.fetch_payment("pay_1")

        assert payment["status"] == "captured"
        sdk_client.payment.fetch.assert_called_once_with("pay_1")

    @pytest.mark.asyncio
    async def test_fetch_payment_timeout(self, gateway, sdk_client):
        sdk_client.payment.fetch.side_effect = ReadTimeout("Read timed out")

        with pytest.raises(RazorpayError) as exc_info:
            await gateway.fetch_payment("pay_1")

        assert exc_info.value.context["razorpay_payment_id"] == "pay_1"
        assert "timed out" in exc_info.value.context["gateway_error"]


class TestTotalCount:
    """Tests for subscription horizon sizing."""

    @pytest.mark.parametrize(
        "cycle, expected",
        [
            (BillingCycle.MONTHLY, 360),
            (BillingCycle.QUARTERLY, 120),
            (BillingCycle.YEARLY, 30),
        ],
    )
    def test_roughly_thirty_years(self, cycle, expected):
        assert total_count_for_cycle(cycle) == expected
