"""
JWT authentication and password hashing utilities.

WHY: Login is where the parish subscription gate first applies, and every
protected route re-verifies the token this module issues:
1. Password hashing with bcrypt (OWASP A07: Authentication Failures)
2. JWT token generation and verification
3. Token blacklist for logout
"""

import time
from datetime import datetime, timedelta
from typing import Dict, Any, Optional
from jose import jwt, JWTError
from passlib.context import CryptContext
import redis.asyncio as aioredis

from parish_billing.core.config import settings
from parish_billing.core.exceptions import (
    TokenExpiredError,
    TokenInvalidError,
)


# Password hashing context
# WHY: bcrypt with default cost factor (12 rounds)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


# Redis connection for token blacklist
_redis_client: Optional[aioredis.Redis] = None


async def get_redis() -> aioredis.Redis:
    """
    Get Redis client for token blacklist.

    WHY: Lazy initialization ensures Redis is only connected when needed,
    and the connection is reused across requests.
    """
    global _redis_client
    if _redis_client is None:
        _redis_client = aioredis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_client


# ============================================================================
# Password Hashing
# ============================================================================


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password

    Returns:
        Hashed password (60 characters, includes salt and cost factor)
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    Verify a password against its hash.

    WHY: Constant-time comparison (built into passlib) prevents timing
    attacks. Users without a password (seeded accounts) never match.
    """
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


# ============================================================================
# JWT Token Management
# ============================================================================


def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Token includes:
    - User data (user_id, parish_id, user_type)
    - exp: Expiration time (default: 24 hours)
    - iat: Issued at time
    - nbf: Not before time

    Args:
        data: Claims to encode
        expires_delta: Optional custom expiration time

    Returns:
        JWT token string
    """
    to_encode = data.copy()
    now = datetime.utcnow()
    expire = now + (expires_delta or timedelta(minutes=settings.JWT_EXPIRATION_MINUTES))

    to_encode.update({"exp": expire, "iat": now, "nbf": now})

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


def create_user_token(user) -> str:
    """
    Issue the login token for a user.

    WHY: parish_id travels in the token so tenant-scoped routes can log it
    before the user row is loaded. Super admins carry parish_id None.
    """
    return create_access_token(
        {
            "user_id": user.id,
            "email": user.email,
            "user_type": user.user_type.value,
            "parish_id": user.parish_id,
        }
    )


def verify_token(token: str) -> Dict[str, Any]:
    """
    Verify and decode a JWT token.

    Raises:
        TokenExpiredError: If token has expired
        TokenInvalidError: If token is malformed or signature invalid
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )

    except jwt.ExpiredSignatureError:
        # WHY: Separate exception lets the frontend send the user back to login
        raise TokenExpiredError(message="Token has expired")

    except JWTError as e:
        raise TokenInvalidError(
            message="Invalid token",
            error=str(e),
        )


# ============================================================================
# Token Blacklist (Logout)
# ============================================================================


async def blacklist_token(
    token: str,
    user_id: int,
    ttl_seconds: Optional[int] = None,
) -> None:
    """
    Add a token to the blacklist (for logout).

    WHY: JWT tokens are stateless and can't be "deleted". Blacklisting
    prevents a token from being used even if it hasn't expired yet.

    Args:
        token: JWT token to blacklist
        user_id: User ID stored as the value for audit
        ttl_seconds: Optional TTL (defaults to the token's remaining lifetime)
    """
    redis = await get_redis()

    # WHY: No need to keep blacklist entries longer than token lifetime
    if ttl_seconds is None:
        try:
            payload = jwt.decode(
                token,
                settings.JWT_SECRET,
                algorithms=[settings.JWT_ALGORITHM],
                options={"verify_signature": False, "verify_exp": False},
            )
            exp_timestamp = payload.get("exp")
            if exp_timestamp:
                ttl_seconds = max(int(exp_timestamp - time.time()), 0)
            else:
                ttl_seconds = settings.JWT_EXPIRATION_MINUTES * 60
        except JWTError:
            ttl_seconds = settings.JWT_EXPIRATION_MINUTES * 60

    # setex rejects a zero TTL; an already expired token needs no entry
    if ttl_seconds <= 0:
        return

    await redis.setex(f"blacklist:token:{token}", ttl_seconds, str(user_id))


async def is_token_blacklisted(token: str) -> bool:
    """
    Check if a token is blacklisted.

    Returns:
        True if token is blacklisted, False otherwise
    """
    redis = await get_redis()
    exists = await redis.exists(f"blacklist:token:{token}")
    return exists > 0
