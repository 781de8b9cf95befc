"""
Referral attribution
Resolves codes to referrers and records who referred a new sign-up
"""

from dataclasses import dataclass
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import logging
import uuid

from app.models import ReferralCode, Referral, ReferralStatus, OPEN_REFERRAL_STATUSES
from app.core.config import settings
from app.core.database import insert_or_ignore
from app.core.exceptions import (
    InvalidReferralCodeException,
    SelfReferralException,
    AlreadyReferredException,
)
from app.services.referral_codes import normalize_code
from app.services.user_service import UserService

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class CodeOwner:
    referrer_user_id: str
    referral_code_id: uuid.UUID

class AttributionService:
    """Attributes referred users to referrers exactly once"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.user_service = UserService(db)

    async def lookup_referral_code(self, code: str) -> Optional[CodeOwner]:
        """
        Find the owner of an active code

        Unknown, blank and deactivated codes all resolve to None.
        """
        normalized = normalize_code(code or "")
        if not normalized:
            return None

        result = await self.db.execute(
            select(ReferralCode.user_id, ReferralCode.id)
            .where(
                ReferralCode.code == normalized,
                ReferralCode.is_active.is_(True)
            )
            .limit(1)
        )
        row = result.first()
        if row is None:
            return None

        return CodeOwner(referrer_user_id=row.user_id, referral_code_id=row.id)

    async def has_open_referral(self, referred_user_id: str) -> bool:
        """Whether the user already holds a pending or active referral"""
        result = await self.db.execute(
            select(Referral.id)
            .where(
                Referral.referred_user_id == referred_user_id,
                Referral.status.in_(OPEN_REFERRAL_STATUSES)
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def create_referral(self, referred_user_id: str, code: str) -> Referral:
        """
        Create a pending referral for a user who signed up with a code

        Args:
            referred_user_id: The new user
            code: Code entered or carried by the sign-up link

        Returns:
            The pending referral

        Raises:
            InvalidReferralCodeException: Code unknown or inactive
            SelfReferralException: Code belongs to the referred user
            AlreadyReferredException: User already has an open referral
        """
        owner = await self.lookup_referral_code(code)
        if not owner:
            raise InvalidReferralCodeException()

        if owner.referrer_user_id == referred_user_id:
            logger.warning(f"Self-referral attempt blocked [user_id={referred_user_id}]")
            raise SelfReferralException()

        if await self.has_open_referral(referred_user_id):
            raise AlreadyReferredException()

        referral_id = await insert_or_ignore(
            self.db,
            Referral,
            {
                "referrer_user_id": owner.referrer_user_id,
                "referred_user_id": referred_user_id,
                "referral_code_id": owner.referral_code_id,
                "status": ReferralStatus.PENDING.value,
                "commission_rate_bps": settings.REFERRAL_COMMISSION_RATE_BPS,
                "commission_duration_months": settings.REFERRAL_COMMISSION_DURATION_MONTHS,
            }
        )
        if referral_id is None:
            # A concurrent request created the open referral first
            raise AlreadyReferredException()

        normalized = normalize_code(code)
        await self.user_service.record_referred_by_code(referred_user_id, normalized)
        await self.db.commit()

        logger.info(
            f"Referral created [referral_id={referral_id}, "
            f"referrer_user_id={owner.referrer_user_id}, "
            f"referred_user_id={referred_user_id}, code={normalized}]"
        )
        return await self.db.get(Referral, referral_id)
