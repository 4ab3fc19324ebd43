"""
Webhook acknowledgement schema.

WHY: The webhook endpoint always answers 200 so Razorpay does not retry
business-logic failures; the body says whether the event was applied.
"""

from typing import Optional

from pydantic import BaseModel


class WebhookAck(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
