"""
Integration tests for authentication API.

WHY: Login is where the parish subscription gate first applies, so these
tests cover the full request-response cycle for every aggregate status.
"""

import pytest
from unittest.mock import AsyncMock

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from parish_billing.models.parish import ParishStatus
from parish_billing.models.subscription import PaymentMethod, SubscriptionStatus
from tests.conftest import auth_headers
from tests.factories import (
    DEFAULT_PASSWORD,
    ParishFactory,
    PlanFactory,
    SubscriptionFactory,
    UserFactory,
)


async def _login(client: AsyncClient, email: str, password: str = DEFAULT_PASSWORD):
    return await client.post("/api/auth/login", json={"email": email, "password": password})


class TestLogin:
    """Integration tests for POST /api/auth/login."""

    @pytest.mark.asyncio
    async def test_login_active_parish(self, client: AsyncClient, db_session: AsyncSession):
        """
        Test complete login flow for an ACTIVE parish.

        WHY: Verifies that login works end-to-end with database,
        password hashing, JWT generation, and the subscription gate.
        """
        parish = await ParishFactory.create(db_session, subscription_status=ParishStatus.ACTIVE)
        await UserFactory.create(db_session, email="admin@stmarys.org", parish=parish)

        response = await _login(client, "admin@stmarys.org")

        assert response.status_code == 200
        data = response.json()
        assert "access_token" in data
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 86400  # 24 hours in seconds
        assert data["parish_status"] == "ACTIVE"

    @pytest.mark.asyncio
    async def test_login_with_invalid_password(self, client: AsyncClient, db_session: AsyncSession):
        """The same message is returned for a wrong password and an unknown user."""
        parish = await ParishFactory.create(db_session)
        await UserFactory.create(db_session, email="admin@stmarys.org", parish=parish)

        wrong_password = await _login(client, "admin@stmarys.org", "WrongPassword123!")
        unknown_user = await _login(client, "nobody@stmarys.org")

        assert wrong_password.status_code == 401
        assert unknown_user.status_code == 401
        assert wrong_password.json()["message"] == "Invalid email or password"
        assert unknown_user.json()["message"] == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_login_inactive_account(self, client: AsyncClient, db_session: AsyncSession):
        parish = await ParishFactory.create(db_session)
        await UserFactory.create(db_session, email="admin@stmarys.org", parish=parish, is_active=False)

        response = await _login(client, "admin@stmarys.org")

        assert response.status_code == 401
        assert response.json()["message"] == "Account is inactive"

    @pytest.mark.asyncio
    async def test_login_pending_online_returns_checkout_details(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        """
        A parish awaiting its first online payment gets 402 with checkout ids.

        WHY: The client resumes Razorpay checkout straight from the error.
        """
        plan = await PlanFactory.create(db_session)
        parish = await ParishFactory.create(db_session, subscription_status=ParishStatus.PENDING)
        await SubscriptionFactory.create(db_session, parish, plan, status=SubscriptionStatus.CREATED)
        await UserFactory.create(db_session, email="admin@stmarys.org", parish=parish)

        response = await _login(client, "admin@stmarys.org")

        assert response.status_code == 402
        data = response.json()
        assert data["error"] == "PaymentRequiredError"
        assert data["message"].startswith("Your parish subscription payment is pending.")
        details = data["details"]
        assert details["payment_method"] == "online"
        assert details["razorpay_subscription_id"] == "sub_test123"
        assert details["razorpay_key_id"] == "rzp_test_key"
        assert details["parish"]["subscription_status"] == "PENDING"
        assert details["subscription"]["plan_name"] == "Basic"
        assert "message" not in details

    @pytest.mark.asyncio
    async def test_login_pending_cash_returns_instructions(
        self, client: AsyncClient, db_session: AsyncSession
    ):
        plan = await PlanFactory.create(db_session)
        parish = await ParishFactory.create(db_session, subscription_status=ParishStatus.PENDING)
        await SubscriptionFactory.create(
            db_session, parish, plan, payment_method=PaymentMethod.CASH, status=SubscriptionStatus.PENDING
        )
        await UserFactory.create(db_session, email="admin@stmarys.org", parish=parish)

        response = await _login(client, "admin@stmarys.org")

        assert response.status_code == 402
        data = response.json()
        assert data["message"] == "Your parish subscription is pending cash payment verification."
        assert data["details"]["payment_method"] == "cash"
        assert "razorpay_subscription_id" not in data["details"]
        assert len(data["details"]["instructions"]) == 3

    @pytest.mark.asyncio
    async def test_login_pending_without_subscription(self, client: AsyncClient, db_session: AsyncSession):
        parish = await ParishFactory.create(db_session, subscription_status=ParishStatus.PENDING)
        await UserFactory.create(db_session, email="admin@stmarys.org", parish=parish)

        response = await _login(client, "admin@stmarys.org")

        assert response.status_code == 403

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, fragment",
        [(ParishStatus.SUSPENDED, "suspended"), (ParishStatus.CANCELLED, "cancelled")],
    )
    async def test_login_blocked_parish(
        self, client: AsyncClient, db_session: AsyncSession, status, fragment
    ):
        parish = await ParishFactory.create(db_session, subscription_status=status)
        await UserFactory.create(db_session, email="admin@stmarys.org", parish=parish)

        response = await _login(client, "admin@stmarys.org")

        assert response.status_code == 403
        data = response.json()
        assert data["message"].startswith(f"Access denied: Your parish subscription has been {fragment}.")
        assert data["details"]["subscription_status"] == status.value

    @pytest.mark.asyncio
    async def test_super_admin_bypasses_gate(self, client: AsyncClient, db_session: AsyncSession):
        await UserFactory.create_super_admin(db_session, email="ops@parishplatform.org")

        response = await _login(client, "ops@parishplatform.org")

        assert response.status_code == 200
        assert response.json()["parish_status"] is None

    @pytest.mark.asyncio
    async def test_login_validation_error(self, client: AsyncClient):
        response = await client.post("/api/auth/login", json={"email": "not-an-email", "password": "x"})

        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"


class TestSession:
    """Integration tests for /me and /logout."""

    @pytest.mark.asyncio
    async def test_me(self, client: AsyncClient, db_session: AsyncSession):
        parish = await ParishFactory.create(db_session)
        user = await UserFactory.create(db_session, email="admin@stmarys.org", parish=parish)

        response = await client.get("/api/auth/me", headers=auth_headers(user))

        assert response.status_code == 200
        data = response.json()
        assert data["email"] == "admin@stmarys.org"
        assert data["parish_id"] == parish.id
        assert "hashed_password" not in data

    @pytest.mark.asyncio
    async def test_me_requires_token(self, client: AsyncClient):
        response = await client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_revoked_token_rejected(
        self, client: AsyncClient, db_session: AsyncSession, no_token_blacklist
    ):
        parish = await ParishFactory.create(db_session)
        user = await UserFactory.create(db_session, parish=parish)
        no_token_blacklist.return_value = True

        response = await client.get("/api/auth/me", headers=auth_headers(user))

        assert response.status_code == 401
        assert response.json()["message"] == "Token has been revoked"

    @pytest.mark.asyncio
    async def test_logout_blacklists_token(
        self, client: AsyncClient, db_session: AsyncSession, monkeypatch
    ):
        parish = await ParishFactory.create(db_session)
        user = await UserFactory.create(db_session, parish=parish)
        headers = auth_headers(user)
        blacklist = AsyncMock()
        monkeypatch.setattr("parish_billing.api.auth.blacklist_token", blacklist)

        response = await client.post("/api/auth/logout", headers=headers)

        assert response.status_code == 200
        assert response.json()["message"] == "Successfully logged out"
        token = headers["Authorization"].split(" ", 1)[1]
        blacklist.assert_awaited_once_with(token, user_id=user.id)
