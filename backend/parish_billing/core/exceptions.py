"""
Custom exception hierarchy for structured error handling.

WHY: Custom exceptions provide:
1. Consistent error handling across the API
2. HTTP status code mapping for FastAPI
3. Structured error responses with contextual data
4. No sensitive data leaks in error messages (OWASP A04)

IMPORTANT: NEVER use base Exception class. Always use custom exceptions.
"""

from typing import Any, Dict, Optional


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    WHY: Centralizing exception handling in a base class ensures consistent
    error responses, HTTP status code mapping, and prevents sensitive data
    leaks in error messages.

    All custom exceptions should inherit from this class.
    """

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        WHY: Context parameters allow including debugging information
        (parish_id, subscription_id, etc.) without leaking sensitive data
        like secrets or signatures.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (overrides class default)
            **context: Additional context for debugging (filtered in to_dict)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary for JSON response.

        WHY: Structured error responses allow frontends to handle errors
        consistently and display appropriate messages to users.

        Returns:
            Dictionary with error details (sensitive fields filtered out)
        """
        # WHY: Filter out sensitive fields to prevent data leaks
        sensitive_fields = {"password", "token", "secret", "key", "api_key", "signature"}
        filtered_context = {
            k: v for k, v in self.context.items() if k.lower() not in sensitive_fields
        }

        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": filtered_context if filtered_context else None,
        }


# ============================================================================
# Authentication & Authorization Exceptions (OWASP A07)
# ============================================================================


class AuthenticationError(AppException):
    """
    Raised when authentication fails.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    default_message = "Authentication failed"


class AuthorizationError(AppException):
    """
    Raised when user lacks permissions for an action.

    WHY: Distinguishing authorization (403) from authentication (401) helps
    frontends show appropriate messages ("You don't have permission" vs
    "Please log in").

    HTTP Status: 403 Forbidden
    """

    status_code = 403
    default_message = "You do not have permission to perform this action"


class TokenExpiredError(AuthenticationError):
    """
    Raised when JWT token has expired.

    HTTP Status: 401 Unauthorized
    """

    default_message = "Token has expired"


class TokenInvalidError(AuthenticationError):
    """
    Raised when JWT token is malformed or has invalid signature.

    HTTP Status: 401 Unauthorized
    """

    default_message = "Token is invalid"


# ============================================================================
# Validation & Input Exceptions
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input validation fails.

    WHY: Validation errors should return 400 Bad Request with details
    about which fields failed validation, helping users correct their input.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Validation failed"


class PaymentSignatureError(ValidationError):
    """
    Raised when a checkout payment signature does not match.

    WHY: A forged or tampered checkout callback must never activate a
    subscription. The subscription is left untouched when this is raised.

    HTTP Status: 400 Bad Request
    """

    default_message = "Invalid payment signature. Payment verification failed."


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    default_message = "Resource not found"


class ParishNotFoundError(ResourceNotFoundError):
    """Raised when a parish doesn't exist."""

    default_message = "Parish not found"


class PlanNotFoundError(ResourceNotFoundError):
    """Raised when a subscription plan doesn't exist."""

    default_message = "Subscription plan not found"


class SubscriptionNotFoundError(ResourceNotFoundError):
    """Raised when a parish has no subscription."""

    default_message = "No subscription found for this parish"


class ResourceAlreadyExistsError(AppException):
    """
    Raised when attempting to create a resource that already exists.

    WHY: 409 Conflict indicates the request can't be completed due to
    conflicting state.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "Resource already exists"


class SubscriptionAlreadyExistsError(ResourceAlreadyExistsError):
    """
    Raised when a parish already has a subscription row.

    WHY: Each parish holds at most one subscription; a second create is
    always a conflict, never an upsert.
    """

    default_message = "Parish already has a subscription"


# ============================================================================
# Business Logic Exceptions
# ============================================================================


class BusinessRuleViolation(AppException):
    """
    Raised when a business rule is violated.

    HTTP Status: 422 Unprocessable Entity
    """

    status_code = 422
    default_message = "Business rule violation"


class InvalidStateTransitionError(BusinessRuleViolation):
    """
    Raised when an invalid state transition is attempted.

    WHY: The subscription state machine rejects transitions that make no
    sense (e.g., cancelling an already-cancelled subscription).

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Invalid state transition"


# ============================================================================
# Subscription Gating Exceptions (OWASP A01: Broken Access Control)
# ============================================================================


class SubscriptionRequiredError(AuthorizationError):
    """
    Raised when a parish without an ACTIVE subscription hits a protected route.

    WHY: The details carry the current status and the endpoints the client
    should call next, so the frontend can route the user to checkout.

    HTTP Status: 403 Forbidden
    """

    default_message = "Subscription Required"


class FeatureLimitExceededError(AuthorizationError):
    """
    Raised when a plan's resource limit has been reached.

    HTTP Status: 403 Forbidden
    """

    default_message = "Plan limit reached"


class PlanTierRequiredError(AuthorizationError):
    """
    Raised when the parish's plan tier is below the required minimum.

    HTTP Status: 403 Forbidden
    """

    default_message = "Your current plan does not include this feature"


class PaymentRequiredError(AppException):
    """
    Raised at login when the parish subscription is awaiting payment.

    WHY: 402 lets the client distinguish "pay first" from "not allowed",
    and the details carry what it needs to resume checkout.

    HTTP Status: 402 Payment Required
    """

    status_code = 402
    default_message = "Subscription payment pending"


# ============================================================================
# External Service Exceptions (OWASP A08: Software Integrity)
# ============================================================================


class ExternalServiceError(AppException):
    """
    Base exception for external service failures.

    WHY: External API failures should return 502 Bad Gateway, indicating
    the problem is with an upstream service, not our application.

    HTTP Status: 502 Bad Gateway
    """

    status_code = 502
    default_message = "External service error"


class RazorpayError(ExternalServiceError):
    """
    Raised when Razorpay API calls fail.

    WHY: The gateway's own error description travels in the
    ``gateway_error`` context field so operators can see what Razorpay said.

    HTTP Status: 502 Bad Gateway
    """

    default_message = "Payment gateway error"


# ============================================================================
# Webhook Exceptions
# ============================================================================


class WebhookError(AppException):
    """
    Base exception for inbound webhook processing.

    HTTP Status: 500 Internal Server Error
    """

    status_code = 500
    default_message = "Webhook error"


class WebhookSignatureError(WebhookError):
    """
    Raised when webhook signature is missing or invalid.

    WHY: Signature validation prevents forged gateway events from
    mutating subscription state.

    HTTP Status: 401 Unauthorized
    """

    status_code = 401
    default_message = "Invalid webhook signature"
