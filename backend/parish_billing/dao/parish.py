"""
Parish Data Access Object.

WHY: The parish row carries the tenant aggregate subscription status.
Every write to it goes through set_subscription_state so the projection
is updated in one statement alongside the plan pointer.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from parish_billing.dao.base import BaseDAO
from parish_billing.models.parish import Parish, ParishStatus


class ParishDAO(BaseDAO[Parish]):
    """Data Access Object for Parish model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Parish, session)

    async def set_subscription_state(
        self,
        parish_id: int,
        status: Optional[ParishStatus] = None,
        current_plan_id: Optional[int] = None,
        clear_plan: bool = False,
        is_subscription_managed: Optional[bool] = None,
    ) -> Optional[Parish]:
        """
        Update the tenant aggregate status and/or the current-plan pointer.

        WHAT: Writes only the arguments that were supplied.

        WHY: Lifecycle and webhook paths touch different subsets of these
        columns; passing None leaves a column unchanged, and clear_plan is
        the explicit way to null the plan pointer.

        Args:
            parish_id: Parish to update
            status: New aggregate status
            current_plan_id: New plan pointer
            clear_plan: Set the plan pointer to NULL (wins over current_plan_id)
            is_subscription_managed: Whether a subscription now governs access

        Returns:
            Updated parish, or None if it does not exist
        """
        values = {}
        if status is not None:
            values["subscription_status"] = status
        if clear_plan:
            values["current_plan_id"] = None
        elif current_plan_id is not None:
            values["current_plan_id"] = current_plan_id
        if is_subscription_managed is not None:
            values["is_subscription_managed"] = is_subscription_managed

        if not values:
            return await self.get_by_id(parish_id)
        return await self.update(parish_id, **values)
