"""
User model.

WHY: Users belong to a parish (except super admins, who operate the
platform) and their type decides whether subscription gating applies.
"""

import enum
from sqlalchemy import Column, Integer, String, Enum as SQLEnum, ForeignKey, Boolean

from parish_billing.models.base import Base, TimestampMixin, PrimaryKeyMixin


class UserType(str, enum.Enum):
    """
    User type enumeration.

    WHY: Super admins bypass subscription gating and may act on any parish;
    church admins count against the plan's admin limit.
    """

    SUPER_ADMIN = "super_admin"
    CHURCH_ADMIN = "church_admin"
    PARISHIONER = "parishioner"


class User(Base, PrimaryKeyMixin, TimestampMixin):
    """
    User model representing individuals who use the platform.
    """

    __tablename__ = "users"

    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=True)

    user_type = Column(
        SQLEnum(
            UserType,
            name="usertype",
            create_type=False,
            values_callable=lambda enum: [e.value for e in enum],
        ),
        nullable=False,
        default=UserType.PARISHIONER,
    )

    # Multi-tenancy
    # WHY: Nullable because super admins are not tied to a parish
    parish_id = Column(Integer, ForeignKey("parishes.id"), nullable=True, index=True)

    is_active = Column(Boolean, default=True, nullable=False)

    @property
    def is_super_admin(self) -> bool:
        return self.user_type == UserType.SUPER_ADMIN

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, type={self.user_type})>"
