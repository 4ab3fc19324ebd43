"""
Typed accessors over Razorpay webhook documents.

WHAT: Read-only views of the raw webhook JSON exposing just the fields the
reconciliation handlers use.

WHY: The payload is stored verbatim in the webhook log as an opaque JSON
document. Handlers read named, typed properties instead of threading a
nested dict through business logic, and every conversion (epoch seconds
to datetime, paise to rupees) happens in one place.

Razorpay envelope shape:
    {
        "entity": "event",
        "event": "subscription.activated",
        "payload": {
            "subscription": {"entity": {...}},
            "payment": {"entity": {...}}
        },
        "created_at": 1700000000
    }
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

# Widths of the razorpay_webhook_logs columns the envelope fields land in
EVENT_ID_LENGTH = 255
EVENT_TYPE_LENGTH = 100
ENTITY_TYPE_LENGTH = 50
ENTITY_ID_LENGTH = 255


def as_text(value: Any, max_length: Optional[int] = None) -> Optional[str]:
    """
    Read a scalar JSON field as a string.

    WHY: The body is only known to be signed, not well formed. Objects,
    arrays and booleans where a string belongs read as missing instead of
    breaking the handler, and numbers (ids sent unquoted) read as text.
    """
    if value is None or isinstance(value, (bool, dict, list)):
        return None
    text = str(value)
    if not text:
        return None
    return text[:max_length] if max_length else text


def epoch_to_datetime(value: Any) -> Optional[datetime]:
    """Convert a Razorpay epoch-seconds field to a naive UTC datetime."""
    if value in (None, "", 0):
        return None
    try:
        return datetime.utcfromtimestamp(int(value))
    except (TypeError, ValueError, OverflowError):
        return None


class _Entity:
    """Base accessor over one ``payload.<name>.entity`` object."""

    def __init__(self, data: Optional[Dict[str, Any]]):
        self._data = data if isinstance(data, dict) else {}

    def _text(self, key: str) -> Optional[str]:
        return as_text(self._data.get(key))

    @property
    def id(self) -> Optional[str]:
        return self._text("id")

    @property
    def notes(self) -> Dict[str, Any]:
        # Razorpay sends an empty list rather than an object when there are no notes
        notes = self._data.get("notes")
        return notes if isinstance(notes, dict) else {}

    def note(self, key: str) -> Optional[str]:
        value = self.notes.get(key)
        return str(value) if value not in (None, "") else None


class SubscriptionEntity(_Entity):
    """Razorpay subscription entity (sub_xxx)."""

    @property
    def status(self) -> Optional[str]:
        return self._text("status")

    @property
    def current_start(self) -> Optional[datetime]:
        return epoch_to_datetime(self._data.get("current_start"))

    @property
    def current_end(self) -> Optional[datetime]:
        return epoch_to_datetime(self._data.get("current_end"))

    @property
    def charge_at(self) -> Optional[datetime]:
        return epoch_to_datetime(self._data.get("charge_at"))

    @property
    def ended_at(self) -> Optional[datetime]:
        return epoch_to_datetime(self._data.get("ended_at"))


class PaymentEntity(_Entity):
    """Razorpay payment entity (pay_xxx)."""

    @property
    def amount(self) -> Decimal:
        """Amount in rupees (Razorpay reports paise)."""
        try:
            paise = Decimal(as_text(self._data.get("amount")) or 0)
            rupees = (paise / Decimal(100)).quantize(Decimal("0.01"))
        except InvalidOperation:
            return Decimal("0.00")
        return rupees if rupees.is_finite() else Decimal("0.00")

    @property
    def currency(self) -> str:
        return self._text("currency") or "INR"

    @property
    def order_id(self) -> Optional[str]:
        return self._text("order_id")

    @property
    def invoice_id(self) -> Optional[str]:
        return self._text("invoice_id")

    @property
    def subscription_id(self) -> Optional[str]:
        return self._text("subscription_id")

    @property
    def method(self) -> Optional[str]:
        return self._text("method")

    @property
    def created_at(self) -> Optional[datetime]:
        return epoch_to_datetime(self._data.get("created_at"))

    @property
    def error_description(self) -> Optional[str]:
        return self._text("error_description")


class WebhookEnvelope:
    """
    Accessor for a whole webhook delivery.

    WHY: A delivery is logged before it is dispatched, so every field the
    log row needs must read cleanly even when the signed body has the wrong
    shape (a list where ``payload`` belongs, a number for ``event``).
    Such fields read as missing and values are clipped to the log column
    widths.

    Args:
        document: Parsed JSON body
        event_id: Event id from the X-Razorpay-Event-Id header, if any
    """

    def __init__(self, document: Dict[str, Any], event_id: Optional[str] = None):
        self.document = document if isinstance(document, dict) else {}
        self._event_id = event_id

    @property
    def event(self) -> str:
        return as_text(self.document.get("event"), EVENT_TYPE_LENGTH) or ""

    @property
    def event_id(self) -> Optional[str]:
        """Dedup key: the header value, else a top-level ``id`` in the body."""
        return as_text(self._event_id or self.document.get("id"), EVENT_ID_LENGTH)

    @property
    def created_at(self) -> Optional[datetime]:
        return epoch_to_datetime(self.document.get("created_at"))

    @property
    def payload(self) -> Dict[str, Any]:
        payload = self.document.get("payload")
        return payload if isinstance(payload, dict) else {}

    def _payload_entity(self, name: str) -> Optional[Dict[str, Any]]:
        wrapper = self.payload.get(name)
        entity = wrapper.get("entity") if isinstance(wrapper, dict) else None
        return entity if isinstance(entity, dict) else None

    @property
    def subscription(self) -> SubscriptionEntity:
        return SubscriptionEntity(self._payload_entity("subscription"))

    @property
    def payment(self) -> PaymentEntity:
        return PaymentEntity(self._payload_entity("payment"))

    @property
    def entity(self) -> Optional[str]:
        """
        Name of the primary entity the event is about.

        Subscription events name the subscription; payment events the payment.
        """
        if self.event.startswith("subscription."):
            return "subscription"
        if self.event.startswith("payment."):
            return "payment"
        return as_text(next(iter(self.payload), None), ENTITY_TYPE_LENGTH)

    @property
    def entity_id(self) -> str:
        """ID of the subscription or payment entity, or "unknown"."""
        entity_id = self.subscription.id or self.payment.id or "unknown"
        return entity_id[:ENTITY_ID_LENGTH]
