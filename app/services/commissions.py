"""
Referral commission calculation
Credits referrers for invoices paid by the users they referred
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import logging

from app.models import ReferralCommission, CommissionStatus
from app.core.database import insert_or_ignore
from app.services.referral_ledger import ReferralLedger
from app.utils.helpers import utcnow, ensure_utc

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10000

@dataclass(frozen=True)
class CommissionResult:
    commission_cents: int

def calculate_commission(payment_amount_cents: int, commission_rate_bps: int) -> int:
    """Revenue share in cents, rounded down"""
    return (payment_amount_cents * commission_rate_bps) // BPS_DENOMINATOR

class CommissionService:
    """Records one commission per paid invoice"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = ReferralLedger(db)

    async def get_commission_for_invoice(self, stripe_invoice_id: str) -> Optional[ReferralCommission]:
        result = await self.db.execute(
            select(ReferralCommission)
            .where(ReferralCommission.stripe_invoice_id == stripe_invoice_id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def record_commission(
        self,
        referred_user_id: str,
        stripe_invoice_id: str,
        payment_amount_cents: int,
        currency: str,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
        now: Optional[datetime] = None
    ) -> Optional[CommissionResult]:
        """
        Record the referrer's share of a paid invoice

        Safe under at-least-once webhook delivery: a repeated invoice id
        returns the amount already stored, and the insert itself ignores
        a concurrent duplicate.

        Args:
            referred_user_id: User who paid the invoice
            stripe_invoice_id: Processor invoice id, the idempotency key
            payment_amount_cents: Amount actually paid
            currency: ISO currency code of the payment
            period_start: Start of the billed period
            period_end: End of the billed period
            now: Evaluation time for the expiry check

        Returns:
            The commission, or None when there is nothing to credit
        """
        existing = await self.get_commission_for_invoice(stripe_invoice_id)
        if existing:
            logger.info(f"Commission already recorded for invoice [stripe_invoice_id={stripe_invoice_id}]")
            return CommissionResult(commission_cents=existing.amount_cents)

        referral = await self.ledger.get_active_referral(referred_user_id)
        if not referral:
            return None

        now = now or utcnow()
        expires_at = ensure_utc(referral.expires_at)
        if expires_at and now > expires_at:
            await self.ledger.mark_expired(referral.id)
            return None

        commission_cents = calculate_commission(payment_amount_cents, referral.commission_rate_bps)
        if commission_cents <= 0:
            return None

        commission_id = await insert_or_ignore(
            self.db,
            ReferralCommission,
            {
                "referral_id": referral.id,
                "referrer_user_id": referral.referrer_user_id,
                "stripe_invoice_id": stripe_invoice_id,
                "amount_cents": commission_cents,
                "currency": currency.lower(),
                "status": CommissionStatus.PENDING.value,
                "period_start": period_start,
                "period_end": period_end,
            }
        )
        await self.db.commit()

        if commission_id is None:
            logger.info(
                f"Commission inserted concurrently for invoice [stripe_invoice_id={stripe_invoice_id}]"
            )
        else:
            logger.info(
                f"Referral commission recorded [referral_id={referral.id}, "
                f"referrer_user_id={referral.referrer_user_id}, "
                f"commission_cents={commission_cents}, stripe_invoice_id={stripe_invoice_id}]"
            )

        return CommissionResult(commission_cents=commission_cents)
