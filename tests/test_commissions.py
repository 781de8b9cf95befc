"""
Unit tests for commission recording.

Tests focus on business logic:
- Basis-point calculation
- Idempotency per invoice
- Lazy expiry of lapsed referrals
- Edge cases
"""
import pytest
from datetime import datetime, timezone
from sqlalchemy import select, func

from app.models import Referral, ReferralCommission, ReferralStatus, CommissionStatus
from app.services.attribution import AttributionService
from app.services.commissions import CommissionService, calculate_commission
from app.services.referral_codes import ReferralCodeService
from app.services.referral_ledger import ReferralLedger
from app.utils.helpers import add_months, ensure_utc


async def count_commissions(db):
    return await db.scalar(select(func.count()).select_from(ReferralCommission))


@pytest.fixture
def active_referral(make_code, make_referral, fixed_now):
    """Active referral for user 'referred' with a 24 month window starting at fixed_now"""
    async def _active_referral(rate_bps=5000, expires_at=None):
        code = await make_code("referrer", "save10")
        return await make_referral(
            code,
            "referred",
            status=ReferralStatus.ACTIVE,
            commission_rate_bps=rate_bps,
            subscribed_at=fixed_now,
            expires_at=expires_at or add_months(fixed_now, 24),
        )
    return _active_referral


class TestCalculateCommission:
    """Tests for calculate_commission function"""

    def test_half_rate(self):
        assert calculate_commission(2000, 5000) == 1000

    def test_rounds_down(self):
        """Fractional cents are floored"""
        assert calculate_commission(999, 5000) == 499
        assert calculate_commission(1, 5000) == 0

    def test_full_and_zero_rate(self):
        assert calculate_commission(1234, 10000) == 1234
        assert calculate_commission(1234, 0) == 0


class TestRecordCommission:
    """Tests for CommissionService.record_commission"""

    @pytest.mark.asyncio
    async def test_records_pending_commission(self, db, active_referral, fixed_now):
        referral = await active_referral()

        result = await CommissionService(db).record_commission(
            referred_user_id="referred",
            stripe_invoice_id="in_1",
            payment_amount_cents=2000,
            currency="USD",
            now=fixed_now,
        )

        assert result.commission_cents == 1000
        stored = (await db.execute(select(ReferralCommission))).scalar_one()
        assert stored.referral_id == referral.id
        assert stored.referrer_user_id == "referrer"
        assert stored.amount_cents == 1000
        assert stored.currency == "usd"
        assert stored.status == CommissionStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_same_invoice_twice_is_idempotent(self, db, active_referral, fixed_now):
        """A redelivered invoice returns the stored amount, even if the amount differs"""
        await active_referral()
        service = CommissionService(db)

        first = await service.record_commission("referred", "in_1", 2000, "usd", now=fixed_now)
        second = await service.record_commission("referred", "in_1", 9999, "usd", now=fixed_now)

        assert first.commission_cents == 1000
        assert second.commission_cents == 1000
        assert await count_commissions(db) == 1

    @pytest.mark.asyncio
    async def test_concurrent_insert_of_same_invoice(self, db, active_referral, fixed_now, monkeypatch):
        """A writer that wins the insert after the upfront check leaves one row"""
        await active_referral()
        service = CommissionService(db)
        await service.record_commission("referred", "in_race", 2000, "usd", now=fixed_now)

        async def not_found(stripe_invoice_id):
            return None

        monkeypatch.setattr(service, "get_commission_for_invoice", not_found)
        result = await service.record_commission("referred", "in_race", 2000, "usd", now=fixed_now)

        assert result.commission_cents == 1000
        assert await count_commissions(db) == 1

    @pytest.mark.asyncio
    async def test_no_active_referral(self, db, make_code, make_referral, fixed_now):
        """Pending and unreferred users earn nothing"""
        code = await make_code("referrer", "save10")
        await make_referral(code, "pending-user")
        service = CommissionService(db)

        assert await service.record_commission("pending-user", "in_1", 2000, "usd", now=fixed_now) is None
        assert await service.record_commission("stranger", "in_2", 2000, "usd", now=fixed_now) is None
        assert await count_commissions(db) == 0

    @pytest.mark.asyncio
    async def test_expired_window_marks_referral_expired(self, db, active_referral, reload):
        """A payment after the window closes credits nothing and closes the referral"""
        referral = await active_referral(expires_at=datetime(2020, 1, 1, tzinfo=timezone.utc))

        result = await CommissionService(db).record_commission(
            "referred", "in_1", 2000, "usd",
            now=datetime(2024, 1, 15, tzinfo=timezone.utc)
        )

        assert result is None
        assert await count_commissions(db) == 0
        stored = await reload(Referral, referral.id)
        assert stored.status == ReferralStatus.EXPIRED.value

    @pytest.mark.asyncio
    async def test_zero_commission_writes_nothing(self, db, active_referral, fixed_now):
        await active_referral(rate_bps=1)

        result = await CommissionService(db).record_commission("referred", "in_1", 50, "usd", now=fixed_now)

        assert result is None
        assert await count_commissions(db) == 0

    @pytest.mark.asyncio
    async def test_rate_is_read_from_referral_snapshot(self, db, active_referral, fixed_now):
        """Later program changes do not alter an existing referral's rate"""
        await active_referral(rate_bps=2500)

        result = await CommissionService(db).record_commission("referred", "in_1", 2000, "usd", now=fixed_now)

        assert result.commission_cents == 500


class TestReferralScenario:
    """End-to-end flow through the services"""

    @pytest.mark.asyncio
    async def test_code_to_commission(self, db, fixed_now):
        code = await ReferralCodeService(db).get_or_create_referral_code("R", custom_code="SAVE10")
        assert code.code == "save10"

        referral = await AttributionService(db).create_referral("A", "SAVE10")
        assert referral.status == ReferralStatus.PENDING.value

        activated = await ReferralLedger(db).activate_referral("A", now=fixed_now)
        assert ensure_utc(activated.expires_at) == add_months(fixed_now, 24)

        result = await CommissionService(db).record_commission(
            referred_user_id="A",
            stripe_invoice_id="in_1",
            payment_amount_cents=2000,
            currency="usd",
            now=fixed_now,
        )
        assert result.commission_cents == 1000

    @pytest.mark.asyncio
    async def test_code_to_lapsed_window(self, db, reload):
        await ReferralCodeService(db).get_or_create_referral_code("R", custom_code="SAVE10")
        await AttributionService(db).create_referral("A", "SAVE10")
        activated = await ReferralLedger(db).activate_referral(
            "A", now=datetime(2017, 1, 1, tzinfo=timezone.utc)
        )
        assert ensure_utc(activated.expires_at) == datetime(2019, 1, 1, tzinfo=timezone.utc)

        result = await CommissionService(db).record_commission("A", "in_1", 2000, "usd")

        assert result is None
        stored = await reload(Referral, activated.id)
        assert stored.status == ReferralStatus.EXPIRED.value
