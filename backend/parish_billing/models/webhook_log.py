"""
Webhook receipt log.

WHY: Every inbound gateway webhook is recorded before it is processed,
so an event that crashes its handler still leaves an auditable row that
distinguishes "received" from "processed". The processed flag on rows
with an event id is the deduplication key for redeliveries, and a partial
unique index keeps two concurrent deliveries from both being marked
processed.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, JSON, Boolean, DateTime, ForeignKey, Index, text

from parish_billing.models.base import Base, PrimaryKeyMixin


class WebhookLog(Base, PrimaryKeyMixin):
    """
    One inbound webhook delivery. Append-only apart from processing state.
    """

    __tablename__ = "razorpay_webhook_logs"

    # Nullable: not every delivery carries an event id
    event_id = Column(String(255), nullable=True, index=True)
    event_type = Column(String(100), nullable=False, index=True)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(String(255), nullable=True)

    # Raw JSON document as delivered
    payload = Column(JSON, nullable=False)

    processed = Column(Boolean, nullable=False, default=False)
    processing_error = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)

    parish_id = Column(Integer, ForeignKey("parishes.id", ondelete="SET NULL"), nullable=True)
    subscription_id = Column(
        Integer,
        ForeignKey("parish_subscriptions.id", ondelete="SET NULL"),
        nullable=True,
    )

    received_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    processed_at = Column(DateTime, nullable=True)

    # At most one processed row per event id, however many deliveries race
    __table_args__ = (
        Index(
            "uq_razorpay_webhook_logs_processed_event_id",
            "event_id",
            unique=True,
            postgresql_where=text("processed"),
            sqlite_where=text("processed"),
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<WebhookLog(id={self.id}, event_id={self.event_id}, "
            f"event_type={self.event_type}, processed={self.processed})>"
        )
