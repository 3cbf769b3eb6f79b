"""
Tests for signal-read and admin access decisions.
"""

from datetime import timedelta

import pytest
from sqlalchemy import update

from signal_gate.exceptions import AuthorizationError, RoleRequiredError, SubscriptionRequiredError
from signal_gate.models.account import UserRole
from signal_gate.models.subscription import SubscriptionStatus
from signal_gate.repositories.database import SubscriptionRecord
from signal_gate.services.access_control import can_manage, require_manage


class TestRoleChecks:
    """Test admin gating."""

    def test_only_admin_can_manage(self):
        assert can_manage(UserRole.ADMIN)
        assert can_manage("admin")
        assert not can_manage(UserRole.USER)
        assert not can_manage(None)
        assert not can_manage("root")

    def test_require_manage_message(self):
        with pytest.raises(RoleRequiredError) as exc_info:
            require_manage(UserRole.USER)

        error = exc_info.value
        assert error.status_code == 403
        assert error.message == "Access Denied: admin role required."
        assert error.to_dict()["error"]["reason"] == "role_required"

    def test_missing_role_denied(self):
        with pytest.raises(AuthorizationError):
            require_manage(None)


class TestCanReadSignals:
    """Test subscription-gated reads."""

    @pytest.mark.asyncio
    async def test_admin_sees_all_without_subscription_lookup(self, services):
        services.access_control.subscriptions.get = _fail_if_called
        decision = await services.access_control.can_read_signals(999, UserRole.ADMIN)

        assert decision.allowed
        assert decision.visible_set == "all"

    @pytest.mark.asyncio
    async def test_admin_with_expired_subscription(self, services, make_account):
        admin = await make_account("boss", UserRole.ADMIN)
        decision = await services.access_control.can_read_signals(admin.id, UserRole.ADMIN)
        assert decision.allowed and decision.visible_set == "all"

    @pytest.mark.asyncio
    async def test_no_subscription_row(self, services):
        decision = await services.access_control.can_read_signals(12345, UserRole.USER)

        assert not decision.allowed
        assert decision.reason["status"] == "none"
        assert "administrator" in decision.reason["instruction"]

    @pytest.mark.asyncio
    async def test_new_account_is_expired(self, services, make_account):
        account = await make_account("newbie")
        decision = await services.access_control.can_read_signals(account.id, UserRole.USER)

        assert not decision.allowed
        assert decision.reason["status"] == "expired"

    @pytest.mark.asyncio
    async def test_active_with_past_end_date(self, services, make_account, clock):
        account = await make_account("lapsed")
        await services.access_control.subscriptions.upsert(
            account.id, SubscriptionStatus.ACTIVE, clock() - timedelta(days=1), clock()
        )
        decision = await services.access_control.can_read_signals(account.id, UserRole.USER)
        assert not decision.allowed

    @pytest.mark.asyncio
    async def test_active_with_future_end_date(self, services, make_account, clock):
        account = await make_account("paying")
        await services.access_control.subscriptions.upsert(
            account.id, SubscriptionStatus.ACTIVE, clock() + timedelta(days=1), clock()
        )
        decision = await services.access_control.can_read_signals(account.id, UserRole.USER)

        assert decision.allowed
        assert decision.visible_set == "approvedOnly"

    @pytest.mark.asyncio
    async def test_expiry_observed_without_new_token(self, services, make_account, clock):
        account = await make_account("ticking")
        await services.accounts.grant_subscription(account.id, 1)
        assert (await services.access_control.can_read_signals(account.id, UserRole.USER)).allowed

        clock.advance(days=1, seconds=1)
        assert not (await services.access_control.can_read_signals(account.id, UserRole.USER)).allowed

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stored", ["inactive", "Disabled", "cancelled"])
    async def test_historical_status_values_deny(self, services, make_account, clock, stored):
        account = await make_account("veteran")
        async with services.database.session() as session:
            await session.execute(
                update(SubscriptionRecord)
                .where(SubscriptionRecord.account_id == account.id)
                .values(status=stored, end_date=clock() + timedelta(days=30))
            )
            await session.commit()

        decision = await services.access_control.can_read_signals(account.id, UserRole.USER)

        assert not decision.allowed
        assert decision.reason["status"] == "expired"
        profile = await services.accounts.get_profile(account.id)
        assert profile.subscription_status == "expired"

    @pytest.mark.asyncio
    async def test_require_signal_access_raises_structured_error(self, services, make_account):
        account = await make_account("denied")

        with pytest.raises(SubscriptionRequiredError) as exc_info:
            await services.access_control.require_signal_access(account.id, UserRole.USER)

        payload = exc_info.value.to_dict()["error"]
        assert payload["code"] == "SUBSCRIPTION_REQUIRED"
        assert payload["reason"] == "subscription_required"
        assert payload["details"]["status"] == "expired"
        assert exc_info.value.status_code == 403


async def _fail_if_called(*args, **kwargs):
    raise AssertionError("subscription store must not be consulted for admins")
