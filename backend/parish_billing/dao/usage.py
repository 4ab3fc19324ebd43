"""
Usage counting for plan feature limits.

WHAT: Counts a parish's current use of each limited resource.

WHY: Feature limits compare these counts against the plan; keeping the
counting queries in one place means gating, feature-access reports and
limit checks agree on what "usage" means (deleted rows never count,
admins are active church admins).
"""

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from parish_billing.models.parish_resources import Parishioner, Family, Ward
from parish_billing.models.subscription import FEATURE_LIMIT_FIELDS
from parish_billing.models.user import User, UserType


class UsageDAO:
    """
    Tenant-scoped row counts for limited resources.

    Not a BaseDAO: it spans several models and only reads.
    """

    _RESOURCE_MODELS = {
        "max_parishioners": Parishioner,
        "max_families": Family,
        "max_wards": Ward,
    }

    def __init__(self, session: AsyncSession):
        self.session = session

    async def count_usage(self, parish_id: int, feature: str) -> int:
        """
        Count current usage of a limited feature.

        Args:
            parish_id: Parish to count for
            feature: One of FEATURE_LIMIT_FIELDS

        Returns:
            Number of rows counting against the limit

        Raises:
            ValueError: If the feature is not a limit field
        """
        if feature not in FEATURE_LIMIT_FIELDS:
            raise ValueError(f"Unknown feature limit: {feature}")

        if feature == "max_admins":
            query = select(func.count(User.id)).where(
                User.parish_id == parish_id,
                User.user_type == UserType.CHURCH_ADMIN,
                User.is_active.is_(True),
            )
        else:
            model = self._RESOURCE_MODELS[feature]
            query = select(func.count(model.id)).where(
                model.parish_id == parish_id,
                model.is_deleted.is_(False),
            )

        result = await self.session.execute(query)
        return result.scalar_one()

    async def count_all(self, parish_id: int) -> dict:
        """Count every limited feature for a parish, keyed by limit field."""
        return {feature: await self.count_usage(parish_id, feature) for feature in FEATURE_LIMIT_FIELDS}
