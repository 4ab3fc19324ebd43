"""
Razorpay webhook endpoint.

WHY: Razorpay is the source of truth for online subscription state. The
endpoint always acknowledges with 200 so business-logic failures never
trigger a retry storm; failures are visible in the webhook log instead.
Only infrastructure failures (database down) surface as 5xx, which lets
Razorpay retry once the service recovers.

SECURITY (OWASP A02):
- X-Razorpay-Signature is verified over the raw body before anything
  is parsed or written
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from parish_billing.core.deps import get_webhook_engine
from parish_billing.core.exceptions import AppException
from parish_billing.schemas.webhook import WebhookAck
from parish_billing.services.webhook_engine import WebhookEngine

logger = logging.getLogger(__name__)

# Separate router for webhooks (no auth required)
webhooks_router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@webhooks_router.post(
    "/razorpay",
    response_model=WebhookAck,
    response_model_exclude_none=True,
    summary="Razorpay webhook",
    description="Receives Razorpay subscription and payment events.",
)
async def razorpay_webhook(
    request: Request,
    engine: WebhookEngine = Depends(get_webhook_engine),
    razorpay_signature: Optional[str] = Header(None, alias="X-Razorpay-Signature"),
    razorpay_event_id: Optional[str] = Header(None, alias="X-Razorpay-Event-Id"),
):
    """
    Handle a Razorpay webhook delivery.

    Returns:
        {"success": true} when processed (or already processed),
        {"success": false, "error": ...} when rejected
    """
    # WHY: The signature covers the exact bytes Razorpay sent
    payload = await request.body()

    try:
        result = await engine.process(payload, razorpay_signature, razorpay_event_id)
    except AppException as e:
        logger.warning(
            f"Webhook rejected: {e.message}",
            extra={"event_id": razorpay_event_id, "status_code": e.status_code},
        )
        return WebhookAck(success=False, error=e.message)

    return WebhookAck(**result)
