"""
Parish model.

WHY: Parishes are the tenants of the system. Each parish has its own
subscription, resource limits, and isolated data. The parish row also
carries a coarse subscription status projection so that login and
request gating can read a single column instead of joining the billing
tables.
"""

import enum

from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, Enum as SQLEnum

from parish_billing.models.base import Base, TimestampMixin, PrimaryKeyMixin


class ParishStatus(str, enum.Enum):
    """
    Tenant aggregate subscription status.

    WHY: A four-value projection of the richer subscription state machine.
    Only the transitions that change what a parish may access touch it:

    - ACTIVE: Paid up, full access
    - PENDING: Subscription created, awaiting first payment
    - SUSPENDED: Gateway halted the subscription after repeated failures
    - CANCELLED: Subscription cancelled, must resubscribe
    """

    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    SUSPENDED = "SUSPENDED"
    CANCELLED = "CANCELLED"


class Parish(Base, PrimaryKeyMixin, TimestampMixin):
    """
    Parish model representing a tenant.

    WHY: parish_id scopes every tenant query (OWASP A01: Broken Access
    Control). The subscription columns here are written only by the
    lifecycle service and the webhook engine.
    """

    __tablename__ = "parishes"

    name = Column(String(255), nullable=False, index=True)
    phone = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Subscription projection
    # WHY: create_type=False because enum types are created in migrations
    subscription_status = Column(
        SQLEnum(
            ParishStatus,
            name="parishstatus",
            create_type=False,
            values_callable=lambda enum: [e.value for e in enum],
        ),
        nullable=False,
        default=ParishStatus.PENDING,
        index=True,
    )
    current_plan_id = Column(
        Integer,
        ForeignKey("subscription_plans.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_subscription_managed = Column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<Parish(id={self.id}, name={self.name}, status={self.subscription_status})>"
