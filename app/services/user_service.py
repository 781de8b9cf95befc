"""User service for the account fields the referral flow touches"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
import logging

from app.models.user import User

logger = logging.getLogger(__name__)

class UserService:
    """Reads and writes on the identity service's user rows"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_internal_user_id(self, external_id: str) -> Optional[str]:
        """Map an auth-provider user id to the internal user id"""
        result = await self.db.execute(
            select(User.id).where(User.external_id == external_id).limit(1)
        )
        return result.scalar_one_or_none()

    async def record_referred_by_code(self, user_id: str, code: str) -> None:
        """Record which code the user was attributed through (display only)"""
        await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(referred_by_code=code)
        )

    async def downgrade_billing(self, user_id: str) -> bool:
        """
        Revoke paid entitlement after a subscription ends

        Returns:
            True if a user row was updated
        """
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(is_pro=False)
            .returning(User.id)
        )
        updated = result.scalars().all()
        if updated:
            logger.info(f"Billing downgraded [user_id={user_id}]")
        return bool(updated)
