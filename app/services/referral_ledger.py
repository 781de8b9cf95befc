"""
Referral ledger
Owns every status change of a Referral row
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
import logging
import uuid

from app.models import Referral, ReferralStatus
from app.services.referral_state_machine import referral_state_machine
from app.utils.helpers import utcnow, add_months

logger = logging.getLogger(__name__)

class ReferralLedger:
    """Lifecycle transitions for referrals"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.state_machine = referral_state_machine

    async def _get_by_status(
        self,
        referred_user_id: str,
        status: ReferralStatus
    ) -> Optional[Referral]:
        result = await self.db.execute(
            select(Referral)
            .where(
                Referral.referred_user_id == referred_user_id,
                Referral.status == status.value
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_pending_referral(self, referred_user_id: str) -> Optional[Referral]:
        return await self._get_by_status(referred_user_id, ReferralStatus.PENDING)

    async def get_active_referral(self, referred_user_id: str) -> Optional[Referral]:
        return await self._get_by_status(referred_user_id, ReferralStatus.ACTIVE)

    async def activate_referral(
        self,
        referred_user_id: str,
        now: Optional[datetime] = None
    ) -> Optional[Referral]:
        """
        Start the commission window when the referred user subscribes

        A user without a pending referral (never referred, or already
        activated) is a no-op.

        Args:
            referred_user_id: The subscribing user
            now: Activation time, defaults to current UTC time

        Returns:
            The activated referral, or None if nothing changed
        """
        referral = await self.get_pending_referral(referred_user_id)
        if not referral:
            return None

        now = now or utcnow()
        expires_at = add_months(now, referral.commission_duration_months)

        result = await self.db.execute(
            update(Referral)
            .where(
                Referral.id == referral.id,
                Referral.status.in_(self.state_machine.sources_for(ReferralStatus.ACTIVE))
            )
            .values(
                status=ReferralStatus.ACTIVE.value,
                subscribed_at=now,
                expires_at=expires_at
            )
            .returning(Referral.id)
            .execution_options(synchronize_session=False)
        )
        if result.scalar_one_or_none() is None:
            # Churned between the read and the write
            return None

        await self.db.commit()
        await self.db.refresh(referral)

        logger.info(
            f"Referral activated [referral_id={referral.id}, "
            f"referrer_user_id={referral.referrer_user_id}, "
            f"referred_user_id={referred_user_id}, expires_at={expires_at.isoformat()}]"
        )
        return referral

    async def expire_referral_on_churn(
        self,
        referred_user_id: str,
        now: Optional[datetime] = None
    ) -> List[uuid.UUID]:
        """
        Mark the user's pending/active referrals as churned

        Cancellation is terminal; a later re-subscription through a new
        link creates a fresh referral.

        Returns:
            IDs of the referrals that changed (empty when already terminal)
        """
        now = now or utcnow()

        result = await self.db.execute(
            update(Referral)
            .where(
                Referral.referred_user_id == referred_user_id,
                Referral.status.in_(self.state_machine.sources_for(ReferralStatus.CHURNED))
            )
            .values(status=ReferralStatus.CHURNED.value, churned_at=now)
            .returning(Referral.id)
            .execution_options(synchronize_session=False)
        )
        referral_ids = list(result.scalars().all())
        await self.db.commit()

        if referral_ids:
            logger.info(
                f"Referral(s) marked as churned on cancellation "
                f"[referred_user_id={referred_user_id}, referral_ids={[str(i) for i in referral_ids]}]"
            )
        return referral_ids

    async def mark_expired(self, referral_id: uuid.UUID) -> bool:
        """
        Close an active referral whose commission window has passed

        Returns:
            True if this call performed the transition
        """
        result = await self.db.execute(
            update(Referral)
            .where(
                Referral.id == referral_id,
                Referral.status.in_(self.state_machine.sources_for(ReferralStatus.EXPIRED))
            )
            .values(status=ReferralStatus.EXPIRED.value)
            .returning(Referral.id)
            .execution_options(synchronize_session=False)
        )
        expired = result.scalar_one_or_none() is not None
        await self.db.commit()

        if expired:
            logger.info(f"Referral commission period expired [referral_id={referral_id}]")
        return expired

    async def expire_lapsed_referrals(self, now: Optional[datetime] = None) -> List[uuid.UUID]:
        """
        Eagerly expire every active referral past its window

        Optional companion to the lazy expiry done on commission attempts.
        """
        now = now or utcnow()

        result = await self.db.execute(
            update(Referral)
            .where(
                Referral.status.in_(self.state_machine.sources_for(ReferralStatus.EXPIRED)),
                Referral.expires_at.is_not(None),
                Referral.expires_at < now
            )
            .values(status=ReferralStatus.EXPIRED.value)
            .returning(Referral.id)
            .execution_options(synchronize_session=False)
        )
        referral_ids = list(result.scalars().all())
        await self.db.commit()

        if referral_ids:
            logger.info(f"Expired lapsed referrals [count={len(referral_ids)}]")
        return referral_ids
