"""
Subscription API endpoints for parish billing.

WHAT: REST API endpoints for the parish subscription lifecycle:
1. GET /subscriptions/plans - List available plans (public)
2. POST /subscriptions - Subscribe a parish to a plan
3. POST /subscriptions/verify-payment - Checkout completion callback (public)
4. GET /subscriptions/{parish_id} - Subscription with plan
5. POST /subscriptions/{parish_id}/cancel|pause|resume - State changes
6. GET /subscriptions/{parish_id}/payments|history|usage|feature-access
7. POST /subscriptions/{parish_id}/manual-activate - Super admin override

SECURITY (OWASP):
- A01: Parish-scoped access; cross-tenant requests get 404
- A02: Payment signatures verified before activation
- A07: Authenticated endpoints except plans, verify-payment, payment-details
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, status

from parish_billing.core.deps import (
    ensure_parish_access,
    get_current_user,
    get_subscription_service,
    require_super_admin,
)
from parish_billing.models.user import User
from parish_billing.schemas.subscription import (
    PlanResponse,
    SubscriptionCreate,
    SubscriptionCreateResponse,
    SubscriptionResponse,
    SubscriptionWithPlanResponse,
    SubscriptionCancelRequest,
    BillingDetailsUpdate,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    ManualActivateRequest,
    ManualActivateResponse,
    PaymentResponse,
    HistoryResponse,
    FeatureUsageResponse,
    FeatureAccessResponse,
    CheckLimitRequest,
    CheckLimitResponse,
    PaymentDetailsResponse,
)
from parish_billing.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


# ============================================================================
# Plans (public)
# ============================================================================


@router.get(
    "/plans",
    response_model=List[PlanResponse],
    summary="List available subscription plans",
)
async def list_plans(service: SubscriptionService = Depends(get_subscription_service)):
    """Active plans ordered for display."""
    plans = await service.list_plans()
    return [PlanResponse.model_validate(plan) for plan in plans]


@router.get("/plans/{plan_id}", response_model=PlanResponse, summary="Get a plan")
async def get_plan(
    plan_id: int,
    service: SubscriptionService = Depends(get_subscription_service),
):
    return PlanResponse.model_validate(await service.get_plan(plan_id))


# ============================================================================
# Creation & Checkout
# ============================================================================


@router.post(
    "",
    response_model=SubscriptionCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Subscribe a parish to a plan",
)
async def create_subscription(
    data: SubscriptionCreate,
    current_user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Create a subscription.

    WHY: Online payment returns the Razorpay ids for Standard Checkout;
    cash payment returns the offline next steps. Either way the parish is
    PENDING until the first payment is confirmed.

    Raises:
        ParishNotFoundError (404): Parish missing or belongs to another tenant
        SubscriptionAlreadyExistsError (409): Parish already subscribed
        RazorpayError (502): Gateway call failed
    """
    ensure_parish_access(current_user, data.parish_id)
    result = await service.create(data, current_user)
    await service.db.commit()
    return SubscriptionCreateResponse.model_validate(result, from_attributes=True)


@router.post(
    "/verify-payment",
    response_model=VerifyPaymentResponse,
    summary="Verify a Standard Checkout payment",
)
async def verify_payment(
    data: VerifyPaymentRequest,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Checkout completion callback.

    WHY: Public because the user completing checkout is not yet allowed
    to log in. The payment signature is the credential.

    Raises:
        PaymentSignatureError (400): Signature does not match
        SubscriptionNotFoundError (404): Unknown Razorpay subscription
    """
    result = await service.verify_payment_signature(
        data.razorpay_payment_id,
        data.razorpay_subscription_id,
        data.razorpay_signature,
    )
    await service.db.commit()
    return VerifyPaymentResponse(**result)


# ============================================================================
# Parish Subscription
# ============================================================================


@router.get(
    "/{parish_id}",
    response_model=SubscriptionWithPlanResponse,
    summary="Get a parish subscription",
)
async def get_subscription(
    parish_id: int,
    current_user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    ensure_parish_access(current_user, parish_id)
    subscription, plan = await service.get_subscription(parish_id)
    return SubscriptionWithPlanResponse(
        subscription=SubscriptionResponse.model_validate(subscription),
        plan=PlanResponse.model_validate(plan),
    )


@router.post(
    "/{parish_id}/cancel",
    response_model=SubscriptionResponse,
    summary="Cancel a parish subscription",
)
async def cancel_subscription(
    parish_id: int,
    data: SubscriptionCancelRequest,
    current_user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Cancel immediately, or at the end of the current billing cycle.

    Raises:
        InvalidStateTransitionError (400): Already cancelled or expired
        RazorpayError (502): Gateway call failed
    """
    ensure_parish_access(current_user, parish_id)
    subscription = await service.cancel(
        parish_id,
        data.cancellation_reason,
        current_user,
        cancel_at_cycle_end=data.cancel_at_cycle_end,
    )
    await service.db.commit()
    return SubscriptionResponse.model_validate(subscription)


@router.post("/{parish_id}/pause", response_model=SubscriptionResponse, summary="Pause a subscription")
async def pause_subscription(
    parish_id: int,
    current_user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    ensure_parish_access(current_user, parish_id)
    subscription = await service.pause(parish_id, current_user)
    await service.db.commit()
    return SubscriptionResponse.model_validate(subscription)


@router.post("/{parish_id}/resume", response_model=SubscriptionResponse, summary="Resume a subscription")
async def resume_subscription(
    parish_id: int,
    current_user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    ensure_parish_access(current_user, parish_id)
    subscription = await service.resume(parish_id, current_user)
    await service.db.commit()
    return SubscriptionResponse.model_validate(subscription)


@router.put(
    "/{parish_id}/billing-details",
    response_model=SubscriptionResponse,
    summary="Update billing contact details",
)
async def update_billing_details(
    parish_id: int,
    data: BillingDetailsUpdate,
    current_user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    ensure_parish_access(current_user, parish_id)
    subscription = await service.update_billing_details(parish_id, data)
    await service.db.commit()
    return SubscriptionResponse.model_validate(subscription)


# ============================================================================
# Payments, History & Usage
# ============================================================================


@router.get("/{parish_id}/payments", response_model=List[PaymentResponse], summary="Payment history")
async def get_payment_history(
    parish_id: int,
    current_user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    ensure_parish_access(current_user, parish_id)
    payments = await service.get_payment_history(parish_id)
    return [PaymentResponse.model_validate(payment) for payment in payments]


@router.get("/{parish_id}/history", response_model=List[HistoryResponse], summary="Subscription audit trail")
async def get_history(
    parish_id: int,
    current_user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    ensure_parish_access(current_user, parish_id)
    history = await service.get_history(parish_id)
    return [HistoryResponse.model_validate(entry) for entry in history]


@router.get("/{parish_id}/usage", response_model=FeatureUsageResponse, summary="Current resource usage")
async def get_usage(
    parish_id: int,
    current_user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    ensure_parish_access(current_user, parish_id)
    return FeatureUsageResponse(**await service.get_feature_usage(parish_id))


@router.get(
    "/{parish_id}/feature-access",
    response_model=FeatureAccessResponse,
    summary="Which limited resources can still be added",
)
async def get_feature_access(
    parish_id: int,
    current_user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    ensure_parish_access(current_user, parish_id)
    return FeatureAccessResponse(**await service.get_feature_access(parish_id))


@router.post("/{parish_id}/check-limit", response_model=CheckLimitResponse, summary="Check one plan limit")
async def check_limit(
    parish_id: int,
    data: CheckLimitRequest,
    current_user: User = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
):
    ensure_parish_access(current_user, parish_id)
    allowed = await service.check_feature_limit(parish_id, data.feature)
    return CheckLimitResponse(feature=data.feature, allowed=allowed)


@router.get(
    "/{parish_id}/payment-details",
    response_model=PaymentDetailsResponse,
    summary="Resume checkout for a pending subscription",
)
async def get_payment_details(
    parish_id: int,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Payment details for a parish awaiting payment.

    WHY: Public so a user whose login returned 402 can resume checkout.
    """
    details = await service.get_payment_details(parish_id)
    return PaymentDetailsResponse.model_validate(details, from_attributes=True)


# ============================================================================
# Super Admin
# ============================================================================


@router.post(
    "/{parish_id}/manual-activate",
    response_model=ManualActivateResponse,
    summary="Manually activate a parish (super admin)",
)
async def manual_activate(
    parish_id: int,
    data: Optional[ManualActivateRequest] = None,
    admin: User = Depends(require_super_admin),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Activate a parish without a gateway payment.

    WHY: Used for received cash payments and when the gateway's test
    surface is unavailable. Always leaves a history row marked manual.
    """
    data = data or ManualActivateRequest()
    result = await service.manually_activate(parish_id, admin, data.reason)
    await service.db.commit()
    return ManualActivateResponse.model_validate(result, from_attributes=True)
