"""Referral statistics for a referrer"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from app.models import (
    ReferralCode,
    Referral,
    ReferralCommission,
    ReferralStatus,
    CommissionStatus,
)

@dataclass(frozen=True)
class ReferralStats:
    referral_code: Optional[str]
    total_referrals: int
    active_referrals: int
    pending_referrals: int
    churned_referrals: int
    total_earnings_cents: int
    pending_earnings_cents: int
    paid_earnings_cents: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

class ReferralStatsService:
    """Read-only rollups over referrals and commissions"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_referral_stats(self, user_id: str) -> ReferralStats:
        code = await self.db.scalar(
            select(ReferralCode.code)
            .where(
                ReferralCode.user_id == user_id,
                ReferralCode.is_active.is_(True)
            )
            .limit(1)
        )

        count_rows = await self.db.execute(
            select(Referral.status, func.count())
            .where(Referral.referrer_user_id == user_id)
            .group_by(Referral.status)
        )
        counts = {status: count for status, count in count_rows.all()}

        earning_rows = await self.db.execute(
            select(
                ReferralCommission.status,
                func.coalesce(func.sum(ReferralCommission.amount_cents), 0)
            )
            .where(ReferralCommission.referrer_user_id == user_id)
            .group_by(ReferralCommission.status)
        )
        earnings = {status: int(total) for status, total in earning_rows.all()}

        def count_of(status: ReferralStatus) -> int:
            return counts.get(status.value, 0)

        def earned(status: CommissionStatus) -> int:
            return earnings.get(status.value, 0)

        return ReferralStats(
            referral_code=code,
            total_referrals=sum(count_of(status) for status in ReferralStatus),
            active_referrals=count_of(ReferralStatus.ACTIVE),
            pending_referrals=count_of(ReferralStatus.PENDING),
            churned_referrals=count_of(ReferralStatus.CHURNED),
            total_earnings_cents=sum(earned(status) for status in CommissionStatus),
            pending_earnings_cents=earned(CommissionStatus.PENDING),
            paid_earnings_cents=earned(CommissionStatus.PAID),
        )
