"""
Pydantic schemas for authentication endpoints.

WHY: Login is where the parish subscription gate first applies; these
schemas define the token and current-user contracts around it.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from parish_billing.models.parish import ParishStatus
from parish_billing.models.user import UserType


class LoginRequest(BaseModel):
    """Login credentials."""

    email: EmailStr = Field(..., description="User's email address")
    password: str = Field(..., min_length=8, max_length=100, description="User's password")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "admin@stmarys.example",
                "password": "SecurePassword123!",
            }
        }
    )


class TokenResponse(BaseModel):
    """
    JWT token response schema.

    WHY: Returns access token with metadata for client-side token
    management, plus the parish status the token was issued under.
    """

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token expiration time in seconds")
    parish_status: Optional[ParishStatus] = None


class UserResponse(BaseModel):
    """
    Current user.

    WHY: Returns user data without sensitive information (no password hash).
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    user_type: UserType
    parish_id: Optional[int] = None
    is_active: bool


class LogoutResponse(BaseModel):
    message: str = "Successfully logged out"
