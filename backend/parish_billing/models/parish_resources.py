"""
Countable parish resources.

WHY: Plans cap how many parishioners, families, and wards a parish may
register. Only the columns needed for usage counting live here; full
parish record management is handled by a separate system.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, Boolean

from parish_billing.models.base import Base, TimestampMixin, PrimaryKeyMixin


class Parishioner(Base, PrimaryKeyMixin, TimestampMixin):
    """A registered member of a parish."""

    __tablename__ = "parishioners"

    parish_id = Column(Integer, ForeignKey("parishes.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_deleted = Column(Boolean, nullable=False, default=False)


class Family(Base, PrimaryKeyMixin, TimestampMixin):
    """A family unit within a parish."""

    __tablename__ = "families"

    parish_id = Column(Integer, ForeignKey("parishes.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_deleted = Column(Boolean, nullable=False, default=False)


class Ward(Base, PrimaryKeyMixin, TimestampMixin):
    """A geographic ward (unit) of a parish."""

    __tablename__ = "wards"

    parish_id = Column(Integer, ForeignKey("parishes.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
