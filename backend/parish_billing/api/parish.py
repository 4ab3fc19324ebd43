"""
Parish resource endpoints protected by subscription gating.

WHAT: The tenant-scoped routes whose access depends on billing:
1. GET /parish/overview - requires an ACTIVE parish, adds subscription headers
2. POST /parish/parishioners|families|wards - enforce plan resource limits
3. GET /parish/insights - requires the premium tier or higher

WHY: These are the consumers the gating dependencies exist for. Every
route runs require_active_parish_subscription first.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from parish_billing.dao.base import BaseDAO
from parish_billing.dao.parish import ParishDAO
from parish_billing.dao.usage import UsageDAO
from parish_billing.db.session import get_db
from parish_billing.middleware.subscription_guard import (
    FeatureUsage,
    require_active_parish_subscription,
    require_feature_limit,
    require_plan_tier,
    subscription_headers,
)
from parish_billing.models.parish_resources import Parishioner, Family, Ward
from parish_billing.models.subscription import PlanTier, SubscriptionPlan
from parish_billing.models.user import User
from parish_billing.schemas.parish import (
    InsightsResponse,
    ParishOverviewResponse,
    ResourceCreate,
    ResourceCreateResponse,
    ResourceResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/parish",
    tags=["Parish"],
    dependencies=[Depends(require_active_parish_subscription)],
)


@router.get(
    "/overview",
    response_model=ParishOverviewResponse,
    dependencies=[Depends(subscription_headers)],
)
async def get_overview(
    current_user: User = Depends(require_active_parish_subscription),
    db: AsyncSession = Depends(get_db),
):
    """Parish billing overview; super admins without a parish get an empty body."""
    if not current_user.parish_id:
        return ParishOverviewResponse()

    parish = await ParishDAO(db).get_by_id(current_user.parish_id)
    return ParishOverviewResponse(
        parish_id=parish.id,
        parish_name=parish.name,
        subscription_status=parish.subscription_status,
        current_plan_id=parish.current_plan_id,
    )


async def _create_resource(
    model, data: ResourceCreate, usage: FeatureUsage, user: User, db: AsyncSession
) -> ResourceCreateResponse:
    resource = await BaseDAO(model, db).create(parish_id=user.parish_id, name=data.name)
    await db.commit()

    logger.info(
        f"Created {model.__tablename__} row for parish {user.parish_id}",
        extra={"parish_id": user.parish_id, "feature": usage.feature, "current_usage": usage.current_usage},
    )
    return ResourceCreateResponse(
        resource=ResourceResponse.model_validate(resource),
        feature=usage.feature,
        max_limit=usage.max_limit,
        remaining=usage.remaining,
    )


@router.post("/parishioners", response_model=ResourceCreateResponse, status_code=status.HTTP_201_CREATED)
async def add_parishioner(
    data: ResourceCreate,
    usage: FeatureUsage = Depends(require_feature_limit("max_parishioners")),
    current_user: User = Depends(require_active_parish_subscription),
    db: AsyncSession = Depends(get_db),
):
    return await _create_resource(Parishioner, data, usage, current_user, db)


@router.post("/families", response_model=ResourceCreateResponse, status_code=status.HTTP_201_CREATED)
async def add_family(
    data: ResourceCreate,
    usage: FeatureUsage = Depends(require_feature_limit("max_families")),
    current_user: User = Depends(require_active_parish_subscription),
    db: AsyncSession = Depends(get_db),
):
    return await _create_resource(Family, data, usage, current_user, db)


@router.post("/wards", response_model=ResourceCreateResponse, status_code=status.HTTP_201_CREATED)
async def add_ward(
    data: ResourceCreate,
    usage: FeatureUsage = Depends(require_feature_limit("max_wards")),
    current_user: User = Depends(require_active_parish_subscription),
    db: AsyncSession = Depends(get_db),
):
    return await _create_resource(Ward, data, usage, current_user, db)


@router.get("/insights", response_model=InsightsResponse)
async def get_insights(
    plan: SubscriptionPlan = Depends(require_plan_tier(PlanTier.PREMIUM)),
    current_user: User = Depends(require_active_parish_subscription),
    db: AsyncSession = Depends(get_db),
):
    """Resource totals; a premium-tier feature."""
    counts = await UsageDAO(db).count_all(current_user.parish_id)
    return InsightsResponse(
        plan_tier=plan.tier,
        parishioners=counts["max_parishioners"],
        families=counts["max_families"],
        wards=counts["max_wards"],
        admins=counts["max_admins"],
    )
