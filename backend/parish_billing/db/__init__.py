"""Database package"""

from parish_billing.db.session import AsyncSessionLocal, engine, get_db
from parish_billing.models.base import Base

__all__ = ["Base", "AsyncSessionLocal", "engine", "get_db"]
