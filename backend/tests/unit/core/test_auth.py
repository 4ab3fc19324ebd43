"""
Tests for JWT authentication system.

WHY: Comprehensive auth testing ensures:
1. Tokens are generated with correct claims
2. Token validation works properly
3. Expired tokens are rejected
4. Invalid signatures are rejected
5. Password hashing is secure
6. Token blacklist prevents reuse after logout
"""

import pytest
from datetime import datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock
from jose import jwt

from parish_billing.core import auth as auth_module
from parish_billing.core.auth import (
    create_access_token,
    create_user_token,
    verify_token,
    hash_password,
    verify_password,
    blacklist_token,
    is_token_blacklisted,
)
from parish_billing.core.config import settings
from parish_billing.core.exceptions import (
    TokenExpiredError,
    TokenInvalidError,
)


class TestPasswordHashing:
    """Test password hashing and verification."""

    def test_hash_password_returns_different_from_plain(self):
        """Verify hashed password is different from plain password."""
        password = "SecurePassword123!"
        hashed = hash_password(password)

        assert hashed != password
        assert len(hashed) > 0

    def test_hash_password_generates_different_hashes(self):
        """Verify same password generates different hashes (salt)."""
        password = "SecurePassword123!"

        assert hash_password(password) != hash_password(password)

    def test_verify_password_correct(self):
        """Verify correct password verification."""
        hashed = hash_password("SecurePassword123!")

        assert verify_password("SecurePassword123!", hashed) is True

    def test_verify_password_incorrect(self):
        """Verify incorrect password is rejected."""
        hashed = hash_password("SecurePassword123!")

        assert verify_password("WrongPassword456!", hashed) is False

    def test_verify_password_without_hash(self):
        """
        Verify accounts without a stored hash never authenticate.

        WHY: Seeded accounts may have no password; they must not log in
        with any input, including an empty string.
        """
        assert verify_password("anything", None) is False
        assert verify_password("", "") is False


class TestTokenCreation:
    """Test JWT token creation."""

    def test_create_access_token_with_user_data(self):
        """Test JWT token creation with the claims login issues."""
        data = {
            "user_id": 7,
            "email": "admin@stmarys.org",
            "user_type": "church_admin",
            "parish_id": 3,
        }

        token = create_access_token(data)
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])

        assert payload["user_id"] == 7
        assert payload["parish_id"] == 3
        assert payload["user_type"] == "church_admin"

    def test_create_access_token_includes_standard_claims(self):
        """Verify exp, iat and nbf are present."""
        token = create_access_token({"user_id": 1})
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])

        assert "exp" in payload
        assert "iat" in payload
        assert "nbf" in payload

    def test_create_access_token_custom_expiration(self):
        """Test that a custom expiry is honoured."""
        token = create_access_token({"user_id": 1}, expires_delta=timedelta(minutes=5))
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])

        assert payload["exp"] - payload["iat"] == 300

    def test_create_access_token_does_not_mutate_input(self):
        """The claims dict passed in is copied, not updated in place."""
        data = {"user_id": 1}
        create_access_token(data)

        assert data == {"user_id": 1}

    def test_create_user_token_for_super_admin(self):
        """Super admins belong to no parish, so parish_id is null in the token."""
        user = SimpleNamespace(
            id=7, email="admin@diocese.org", user_type=SimpleNamespace(value="super_admin"), parish_id=None
        )

        payload = verify_token(create_user_token(user))

        assert payload["user_id"] == 7
        assert payload["user_type"] == "super_admin"
        assert payload["parish_id"] is None


class TestTokenVerification:
    """Test JWT token verification."""

    def test_verify_token_valid(self):
        token = create_access_token({"user_id": 42, "parish_id": 9})

        payload = verify_token(token)

        assert payload["user_id"] == 42
        assert payload["parish_id"] == 9

    def test_verify_token_expired(self):
        """Expired tokens raise TokenExpiredError, not a generic failure."""
        token = create_access_token({"user_id": 1}, expires_delta=timedelta(seconds=-10))

        with pytest.raises(TokenExpiredError):
            verify_token(token)

    def test_verify_token_invalid_signature(self):
        """Tokens signed with another secret are rejected."""
        token = jwt.encode(
            {"user_id": 1, "exp": datetime.utcnow() + timedelta(hours=1)},
            "a-different-secret",
            algorithm=settings.JWT_ALGORITHM,
        )

        with pytest.raises(TokenInvalidError):
            verify_token(token)

    def test_verify_token_malformed(self):
        with pytest.raises(TokenInvalidError):
            verify_token("not.a.jwt")


class TestTokenBlacklist:
    """
    Test token blacklist functionality.

    WHY: Redis is replaced with an AsyncMock so the key format and TTL
    handling can be checked without a server.
    """

    @pytest.fixture
    def redis_mock(self):
        redis = AsyncMock()
        auth_module._redis_client = redis
        return redis

    @pytest.mark.asyncio
    async def test_blacklist_token_uses_remaining_lifetime(self, redis_mock):
        """The entry expires when the token would have expired."""
        token = create_access_token({"user_id": 5}, expires_delta=timedelta(minutes=10))

        await blacklist_token(token, user_id=5)

        redis_mock.setex.assert_awaited_once()
        key, ttl, value = redis_mock.setex.await_args.args
        assert key == f"blacklist:token:{token}"
        assert 590 <= ttl <= 600
        assert value == "5"

    @pytest.mark.asyncio
    async def test_blacklist_token_with_explicit_ttl(self, redis_mock):
        await blacklist_token("opaque-token", user_id=1, ttl_seconds=30)

        redis_mock.setex.assert_awaited_once_with("blacklist:token:opaque-token", 30, "1")

    @pytest.mark.asyncio
    async def test_blacklist_expired_token_is_skipped(self, redis_mock):
        """
        Already-expired tokens are not stored.

        WHY: setex rejects a zero TTL, and an expired token is unusable anyway.
        """
        token = create_access_token({"user_id": 5}, expires_delta=timedelta(seconds=-60))

        await blacklist_token(token, user_id=5)

        redis_mock.setex.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_is_token_blacklisted(self, redis_mock):
        redis_mock.exists.return_value = 1
        assert await is_token_blacklisted("revoked") is True
        redis_mock.exists.assert_awaited_with("blacklist:token:revoked")

        redis_mock.exists.return_value = 0
        assert await is_token_blacklisted("fresh") is False
