"""
Webhook log Data Access Object.

WHY: The webhook log is both the audit trail of inbound gateway events
and the deduplication store. Only rows marked processed count as
"seen", so an event whose handler crashed is retried on redelivery.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parish_billing.dao.base import BaseDAO
from parish_billing.models.webhook_log import WebhookLog

logger = logging.getLogger(__name__)

DUPLICATE_DELIVERY_ERROR = "Duplicate delivery: event already processed by another delivery"


class WebhookLogDAO(BaseDAO[WebhookLog]):
    """Data Access Object for WebhookLog model."""

    def __init__(self, session: AsyncSession):
        super().__init__(WebhookLog, session)

    async def is_event_processed(self, event_id: Optional[str]) -> bool:
        """
        Check whether an event ID has already been processed.

        Args:
            event_id: Gateway event ID (None never matches)

        Returns:
            True if a processed row exists for the event
        """
        if not event_id:
            return False
        result = await self.session.execute(
            select(WebhookLog.id)
            .where(WebhookLog.event_id == event_id, WebhookLog.processed.is_(True))
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def mark_processed(
        self,
        log_id: int,
        error: Optional[str] = None,
        parish_id: Optional[int] = None,
        subscription_id: Optional[int] = None,
    ) -> Optional[WebhookLog]:
        """
        Record the outcome of processing a logged event.

        WHAT: On success sets processed=True. On failure stores the error,
        leaves processed=False so the event stays eligible for redelivery,
        and bumps retry_count.

        WHY: Two deliveries of one event can both pass is_event_processed
        before either commits. The partial unique index on processed event
        ids lets only one of them be marked processed; the other's update
        runs in a savepoint, so losing the race rolls back just that update
        and the row is recorded as a duplicate instead.

        Args:
            log_id: WebhookLog row ID
            error: Handler error text, if the handler failed
            parish_id: Parish the event resolved to, if known
            subscription_id: Subscription the event resolved to, if known

        Returns:
            The updated row; processed is False when it was a duplicate
        """
        values = {"processed_at": datetime.utcnow()}
        if parish_id is not None:
            values["parish_id"] = parish_id
        if subscription_id is not None:
            values["subscription_id"] = subscription_id

        if error is not None:
            return await self.update(
                log_id,
                processed=False,
                processing_error=error,
                retry_count=WebhookLog.retry_count + 1,
                **values,
            )

        try:
            async with self.session.begin_nested():
                return await self.update(log_id, processed=True, processing_error=None, **values)
        except IntegrityError:
            logger.info(
                f"Webhook log {log_id} lost the race to another delivery of the same event",
                extra={"webhook_log_id": log_id},
            )
            return await self.mark_duplicate(log_id)

    async def mark_duplicate(self, log_id: int) -> Optional[WebhookLog]:
        """
        Record a delivery whose event another delivery already processed.

        The row stays unprocessed and retry_count is left alone; it is not
        a failure and must not be retried.
        """
        return await self.update(
            log_id,
            processed=False,
            processing_error=DUPLICATE_DELIVERY_ERROR,
            processed_at=datetime.utcnow(),
        )
