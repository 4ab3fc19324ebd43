"""
Schemas for the parish resources that plans limit.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from parish_billing.models.parish import ParishStatus
from parish_billing.models.subscription import PlanTier


class ResourceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class ResourceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    parish_id: int
    name: str


class ResourceCreateResponse(BaseModel):
    """Created resource plus the limit it was checked against."""

    resource: ResourceResponse
    feature: str
    max_limit: int
    remaining: Union[int, str] = Field(..., description="Remaining before this create, or 'unlimited'")


class ParishOverviewResponse(BaseModel):
    parish_id: Optional[int] = None
    parish_name: Optional[str] = None
    subscription_status: Optional[ParishStatus] = None
    current_plan_id: Optional[int] = None


class InsightsResponse(BaseModel):
    plan_tier: PlanTier
    parishioners: int
    families: int
    wards: int
    admins: int
