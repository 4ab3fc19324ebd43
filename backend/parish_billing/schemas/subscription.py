"""
Subscription schemas for API request/response validation.

WHAT: Pydantic schemas for plans, parish subscriptions, payments, history,
checkout verification, and feature usage.

WHY: Schemas provide:
1. Type-safe request/response handling
2. Automatic validation with clear error messages
3. OpenAPI documentation generation
4. Data serialization/deserialization

HOW: Uses Pydantic v2 with Field constraints and model_config. Response
schemas read straight from ORM rows (from_attributes=True).
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any, List, Union, Literal

from pydantic import BaseModel, Field, ConfigDict, EmailStr

from parish_billing.models.parish import ParishStatus
from parish_billing.models.subscription import (
    SubscriptionStatus,
    PaymentStatus,
    BillingCycle,
    PlanTier,
    PaymentMethod,
    SubscriptionAction,
)

# Indian mobile numbers and postal codes
PHONE_PATTERN = r"^[6-9]\d{9}$"
PINCODE_PATTERN = r"^\d{6}$"

FeatureName = Literal["max_parishioners", "max_families", "max_wards", "max_admins"]


# ============================================================================
# Plan Schemas
# ============================================================================


class PlanResponse(BaseModel):
    """
    Catalog plan as shown in the plan picker.

    WHY: Exposes limits so the frontend can show upgrade prompts.
    Null or zero limits mean unlimited.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    plan_name: str
    plan_code: str
    tier: PlanTier
    description: Optional[str] = None
    amount: Decimal
    currency: str
    billing_cycle: BillingCycle
    features: Dict[str, Any] = Field(default_factory=dict)
    max_parishioners: Optional[int] = None
    max_families: Optional[int] = None
    max_wards: Optional[int] = None
    max_admins: Optional[int] = None
    max_users: Optional[int] = None
    max_storage_gb: Optional[int] = None
    trial_period_days: int = 0
    is_featured: bool = False
    display_order: int = 0


# ============================================================================
# Subscription Schemas
# ============================================================================


class BillingAddress(BaseModel):
    """Structured billing address."""

    line1: Optional[str] = Field(None, max_length=255)
    line2: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, pattern=PINCODE_PATTERN)


class SubscriptionCreate(BaseModel):
    """
    Request to subscribe a parish to a plan.

    WHY: billing_address accepts either a single line or a structured
    address; flat billing_city/state/country/pincode fields win over the
    structured ones when both are given.
    """

    parish_id: int = Field(..., gt=0)
    plan_id: int = Field(..., gt=0)
    payment_method: PaymentMethod = PaymentMethod.ONLINE
    billing_email: EmailStr
    billing_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    billing_name: Optional[str] = Field(None, max_length=255)
    company_name: Optional[str] = Field(None, max_length=255)
    billing_address: Optional[Union[str, BillingAddress]] = None
    billing_city: Optional[str] = Field(None, max_length=100)
    billing_state: Optional[str] = Field(None, max_length=100)
    billing_country: Optional[str] = Field(None, max_length=100)
    billing_pincode: Optional[str] = Field(None, pattern=PINCODE_PATTERN)
    tax_identification_number: Optional[str] = Field(None, max_length=50)


class SubscriptionCancelRequest(BaseModel):
    """Cancel request; the reason is kept on the subscription and in history."""

    cancellation_reason: str = Field(..., min_length=10, max_length=500)
    cancel_at_cycle_end: bool = False


class BillingDetailsUpdate(BaseModel):
    """
    Partial update of billing contact details.

    Only fields that are supplied are written.
    """

    billing_email: Optional[EmailStr] = None
    billing_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    billing_address_line1: Optional[str] = Field(None, max_length=255)
    billing_address_line2: Optional[str] = Field(None, max_length=255)
    billing_city: Optional[str] = Field(None, max_length=100)
    billing_state: Optional[str] = Field(None, max_length=100)
    billing_country: Optional[str] = Field(None, max_length=100)
    billing_pincode: Optional[str] = Field(None, pattern=PINCODE_PATTERN)
    tax_identification_number: Optional[str] = Field(None, max_length=50)
    company_name: Optional[str] = Field(None, max_length=255)


class SubscriptionResponse(BaseModel):
    """Parish subscription record."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    parish_id: int
    plan_id: int
    payment_method: PaymentMethod
    status: SubscriptionStatus
    razorpay_subscription_id: Optional[str] = None
    razorpay_customer_id: Optional[str] = None
    billing_email: str
    billing_phone: Optional[str] = None
    billing_address_line1: Optional[str] = None
    billing_address_line2: Optional[str] = None
    billing_city: Optional[str] = None
    billing_state: Optional[str] = None
    billing_country: Optional[str] = None
    billing_postal_code: Optional[str] = None
    tax_identification_number: Optional[str] = None
    company_name: Optional[str] = None
    start_date: Optional[datetime] = None
    trial_start_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    last_payment_date: Optional[datetime] = None
    cancellation_date: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    expiry_date: Optional[datetime] = None
    auto_renewal: bool = True
    payment_failed_count: int = 0
    total_paid: Decimal = Decimal("0")
    total_invoices: int = 0
    created_at: datetime
    updated_at: datetime


class SubscriptionWithPlanResponse(BaseModel):
    """Subscription together with its plan."""

    subscription: SubscriptionResponse
    plan: PlanResponse


class CheckoutInfo(BaseModel):
    """
    What the client should do next after creating a subscription.

    Online subscriptions use Razorpay Standard Checkout; cash
    subscriptions list offline steps.
    """

    message: str
    integration_type: Literal["standard_checkout", "cash"]
    test_mode: Optional[bool] = None
    next_steps: Optional[List[str]] = None


class SubscriptionCreateResponse(BaseModel):
    """Result of creating a subscription."""

    subscription: SubscriptionResponse
    plan: PlanResponse
    payment_method: PaymentMethod
    razorpay_subscription_id: Optional[str] = None
    razorpay_key_id: Optional[str] = None
    checkout_info: CheckoutInfo


# ============================================================================
# Payment & History Schemas
# ============================================================================


class PaymentResponse(BaseModel):
    """One recorded settlement."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    subscription_id: int
    parish_id: int
    razorpay_payment_id: Optional[str] = None
    razorpay_order_id: Optional[str] = None
    razorpay_invoice_id: Optional[str] = None
    amount: Decimal
    currency: str
    payment_method: Optional[str] = None
    status: PaymentStatus
    paid_on: Optional[datetime] = None
    failure_reason: Optional[str] = None
    created_at: datetime


class HistoryResponse(BaseModel):
    """One audit trail entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    subscription_id: int
    action: SubscriptionAction
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    old_plan_id: Optional[int] = None
    new_plan_id: Optional[int] = None
    description: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    performed_by: Optional[int] = None
    performed_at: datetime


# ============================================================================
# Checkout Verification & Manual Activation
# ============================================================================


class VerifyPaymentRequest(BaseModel):
    """Razorpay Standard Checkout success callback fields."""

    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_subscription_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)


class VerifyPaymentResponse(BaseModel):
    verified: bool
    subscription_id: int
    parish_id: int
    subscription_status: SubscriptionStatus
    message: str


class ManualActivateRequest(BaseModel):
    reason: str = Field(
        "Manual activation by super admin (bypassing Razorpay)",
        min_length=3,
        max_length=500,
    )


class ParishSummary(BaseModel):
    """Parish fields relevant to billing."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    subscription_status: ParishStatus
    current_plan_id: Optional[int] = None
    is_subscription_managed: bool


class ManualActivateResponse(BaseModel):
    parish: ParishSummary
    subscription: Optional[SubscriptionResponse] = None
    message: str
    warning: str


# ============================================================================
# Feature Usage Schemas
# ============================================================================


class FeatureUsageResponse(BaseModel):
    """Current counts of limited resources."""

    current_parishioners: int
    current_families: int
    current_wards: int
    current_admins: int


class FeatureAccessResponse(BaseModel):
    """
    Whether each limited resource can still be added.

    WHY: A null remaining_* value means the plan does not limit it.
    Everything is False when the parish has no ACTIVE subscription.
    """

    can_add_parishioner: bool
    can_add_family: bool
    can_add_ward: bool
    can_add_admin: bool
    remaining_parishioners: Optional[int] = None
    remaining_families: Optional[int] = None
    remaining_wards: Optional[int] = None
    remaining_admins: Optional[int] = None


class CheckLimitRequest(BaseModel):
    feature: FeatureName


class CheckLimitResponse(BaseModel):
    feature: FeatureName
    allowed: bool


class PaymentDetailsResponse(BaseModel):
    """
    Resume-checkout view for a subscription awaiting payment.

    Fields beyond the common ones depend on the payment method.
    """

    subscription_id: int
    parish_id: int
    subscription_status: SubscriptionStatus
    payment_method: PaymentMethod
    payment_required: bool
    message: str
    plan: Optional[PlanResponse] = None
    razorpay_subscription_id: Optional[str] = None
    razorpay_key_id: Optional[str] = None
    instructions: Optional[List[str]] = None
