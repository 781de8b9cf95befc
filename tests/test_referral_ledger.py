"""
Unit tests for referral lifecycle transitions.
"""
import pytest
from datetime import datetime, timezone

from app.models import Referral, ReferralStatus
from app.services.referral_ledger import ReferralLedger
from app.services.referral_state_machine import ReferralStateMachine
from app.utils.helpers import ensure_utc, add_months


class TestReferralStateMachine:
    """Tests for allowed status transitions"""

    def test_allowed_transitions(self):
        sm = ReferralStateMachine()

        assert sm.sources_for(ReferralStatus.ACTIVE) == ["pending"]
        assert sm.sources_for(ReferralStatus.PENDING) == []

    def test_terminal_states_are_never_sources(self):
        sm = ReferralStateMachine()

        for target in ReferralStatus:
            assert "churned" not in sm.sources_for(target)
            assert "expired" not in sm.sources_for(target)

    def test_pending_cannot_expire(self):
        """Expiry needs a commission window, which starts on activation"""
        assert "pending" not in ReferralStateMachine().sources_for(ReferralStatus.EXPIRED)

    def test_sources_for(self):
        sm = ReferralStateMachine()

        assert sm.sources_for(ReferralStatus.CHURNED) == ["active", "pending"]
        assert sm.sources_for(ReferralStatus.EXPIRED) == ["active"]


class TestActivateReferral:
    """Tests for ReferralLedger.activate_referral"""

    @pytest.mark.asyncio
    async def test_sets_window_from_snapshot(self, db, make_code, make_referral, fixed_now):
        code = await make_code("referrer", "save10")
        await make_referral(code, "referred", commission_duration_months=24)

        referral = await ReferralLedger(db).activate_referral("referred", now=fixed_now)

        assert referral.status == ReferralStatus.ACTIVE.value
        assert ensure_utc(referral.subscribed_at) == fixed_now
        assert ensure_utc(referral.expires_at) == datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_month_end_is_clamped(self, db, make_code, make_referral):
        code = await make_code("referrer", "save10")
        await make_referral(code, "referred", commission_duration_months=1)
        jan_31 = datetime(2024, 1, 31, 9, 0, 0, tzinfo=timezone.utc)

        referral = await ReferralLedger(db).activate_referral("referred", now=jan_31)

        assert ensure_utc(referral.expires_at) == datetime(2024, 2, 29, 9, 0, 0, tzinfo=timezone.utc)
        assert add_months(jan_31, 1).day == 29

    @pytest.mark.asyncio
    async def test_no_pending_referral_is_noop(self, db, make_code, make_referral, reload, fixed_now):
        """Never-referred and already-active users are left untouched"""
        code = await make_code("referrer", "save10")
        active = await make_referral(
            code, "referred", status=ReferralStatus.ACTIVE,
            subscribed_at=fixed_now, expires_at=add_months(fixed_now, 24)
        )
        ledger = ReferralLedger(db)

        assert await ledger.activate_referral("stranger") is None
        assert await ledger.activate_referral("referred") is None

        unchanged = await reload(Referral, active.id)
        assert ensure_utc(unchanged.subscribed_at) == fixed_now


class TestExpireReferralOnChurn:
    """Tests for ReferralLedger.expire_referral_on_churn"""

    @pytest.mark.asyncio
    async def test_churns_active_referral_once(self, db, make_code, make_referral, reload, fixed_now, caplog):
        code = await make_code("referrer", "save10")
        referral = await make_referral(
            code, "referred", status=ReferralStatus.ACTIVE,
            subscribed_at=fixed_now, expires_at=add_months(fixed_now, 24)
        )
        ledger = ReferralLedger(db)

        with caplog.at_level("INFO", logger="app.services.referral_ledger"):
            churned = await ledger.expire_referral_on_churn("referred", now=fixed_now)

        assert churned == [referral.id]
        assert "marked as churned on cancellation" in caplog.text
        stored = await reload(Referral, referral.id)
        assert stored.status == ReferralStatus.CHURNED.value
        assert ensure_utc(stored.churned_at) == fixed_now

        caplog.clear()
        with caplog.at_level("INFO", logger="app.services.referral_ledger"):
            again = await ledger.expire_referral_on_churn("referred")

        assert again == []
        assert "marked as churned" not in caplog.text

    @pytest.mark.asyncio
    async def test_churns_pending_referral(self, db, make_code, make_referral, reload):
        code = await make_code("referrer", "save10")
        referral = await make_referral(code, "referred")

        await ReferralLedger(db).expire_referral_on_churn("referred")

        stored = await reload(Referral, referral.id)
        assert stored.status == ReferralStatus.CHURNED.value

    @pytest.mark.asyncio
    async def test_expired_referral_is_not_churned(self, db, make_code, make_referral, reload):
        code = await make_code("referrer", "save10")
        referral = await make_referral(code, "referred", status=ReferralStatus.EXPIRED)

        assert await ReferralLedger(db).expire_referral_on_churn("referred") == []

        stored = await reload(Referral, referral.id)
        assert stored.status == ReferralStatus.EXPIRED.value
        assert stored.churned_at is None


class TestExpireLapsedReferrals:
    """Tests for the optional eager expiry sweep"""

    @pytest.mark.asyncio
    async def test_only_lapsed_active_referrals_expire(self, db, make_code, make_referral, reload, fixed_now):
        code = await make_code("referrer", "save10")
        past = datetime(2020, 1, 1, tzinfo=timezone.utc)
        future = datetime(2030, 1, 1, tzinfo=timezone.utc)

        lapsed = await make_referral(
            code, "lapsed", status=ReferralStatus.ACTIVE, subscribed_at=past, expires_at=past
        )
        current = await make_referral(
            code, "current", status=ReferralStatus.ACTIVE, subscribed_at=past, expires_at=future
        )
        pending = await make_referral(code, "pending")
        churned = await make_referral(
            code, "churned", status=ReferralStatus.CHURNED, subscribed_at=past, expires_at=past
        )

        expired = await ReferralLedger(db).expire_lapsed_referrals(now=fixed_now)

        assert expired == [lapsed.id]
        assert (await reload(Referral, lapsed.id)).status == ReferralStatus.EXPIRED.value
        assert (await reload(Referral, current.id)).status == ReferralStatus.ACTIVE.value
        assert (await reload(Referral, pending.id)).status == ReferralStatus.PENDING.value
        assert (await reload(Referral, churned.id)).status == ReferralStatus.CHURNED.value
