"""
Referral code generation
Issues one unique, human-friendly code per user under concurrent first requests
"""

from dataclasses import dataclass
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import logging
import re
import secrets

from app.models import ReferralCode
from app.core.config import settings
from app.core.database import insert_or_ignore
from app.core.exceptions import (
    ConflictException,
    InvalidCustomCodeException,
    CodeAlreadyTakenException,
    CodeGenerationExhaustedException,
)

logger = logging.getLogger(__name__)

# No ambiguous characters (0/o, 1/l/i)
CODE_ALPHABET = "abcdefghjkmnpqrstuvwxyz23456789"
CODE_PATTERN = re.compile(r"^[A-Za-z0-9-]+$")
MAX_UNIQUE_RETRIES = settings.REFERRAL_CODE_MAX_RETRIES

@dataclass(frozen=True)
class ReferralCodeResult:
    code: str
    is_new: bool

def normalize_code(code: str) -> str:
    """Canonical storage form of a code"""
    return code.strip().lower()

def validate_referral_code(code: str) -> Optional[str]:
    """
    Check a custom code against the format rules

    Returns:
        Error message, or None if the code is acceptable
    """
    trimmed = code.strip()
    if len(trimmed) < settings.REFERRAL_CODE_MIN_LENGTH:
        return f"Code must be at least {settings.REFERRAL_CODE_MIN_LENGTH} characters"
    if len(trimmed) > settings.REFERRAL_CODE_MAX_LENGTH:
        return f"Code must be at most {settings.REFERRAL_CODE_MAX_LENGTH} characters"
    if not CODE_PATTERN.match(trimmed):
        return "Code must contain only letters, numbers, and hyphens"
    return None

def generate_random_code(length: Optional[int] = None) -> str:
    """Random lowercase code from the unambiguous alphabet"""
    length = length or settings.REFERRAL_CODE_LENGTH
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))

class ReferralCodeService:
    """Creates and reads referral codes"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_code(self, user_id: str) -> Optional[ReferralCode]:
        """The user's code, active or not"""
        result = await self.db.execute(
            select(ReferralCode).where(ReferralCode.user_id == user_id).limit(1)
        )
        return result.scalar_one_or_none()

    async def get_or_create_referral_code(
        self,
        user_id: str,
        custom_code: Optional[str] = None
    ) -> ReferralCodeResult:
        """
        Return the user's code, creating it on first request

        Args:
            user_id: Owner of the code
            custom_code: Code chosen by the user instead of a random one

        Returns:
            The code and whether this call created it

        Raises:
            InvalidCustomCodeException: Custom code fails format rules
            CodeAlreadyTakenException: Custom code belongs to another user
            CodeGenerationExhaustedException: Every random attempt collided
        """
        existing = await self.get_user_code(user_id)
        if existing:
            return self._existing_result(existing)

        if custom_code is not None:
            return await self._create_custom_code(user_id, custom_code)

        for attempt in range(1, MAX_UNIQUE_RETRIES + 1):
            code = generate_random_code()
            if await self._insert_code(user_id, code):
                return ReferralCodeResult(code=code, is_new=True)

            # A concurrent request for the same user may have won
            winner = await self.get_user_code(user_id)
            if winner:
                return self._existing_result(winner)

            logger.warning(
                f"Referral code collision, retrying [user_id={user_id}, attempt={attempt}]"
            )

        logger.error(
            f"Referral code generation exhausted [user_id={user_id}, attempts={MAX_UNIQUE_RETRIES}]"
        )
        raise CodeGenerationExhaustedException(MAX_UNIQUE_RETRIES)

    async def _create_custom_code(self, user_id: str, custom_code: str) -> ReferralCodeResult:
        """Single insert attempt; a chosen code is never silently replaced"""
        error = validate_referral_code(custom_code)
        if error:
            raise InvalidCustomCodeException(error)

        code = normalize_code(custom_code)
        if await self._insert_code(user_id, code):
            return ReferralCodeResult(code=code, is_new=True)

        winner = await self.get_user_code(user_id)
        if winner:
            return self._existing_result(winner)

        raise CodeAlreadyTakenException(code)

    async def _insert_code(self, user_id: str, code: str) -> bool:
        """Insert the code; False on a uniqueness conflict"""
        code_id = await insert_or_ignore(
            self.db,
            ReferralCode,
            {"user_id": user_id, "code": code, "is_active": True}
        )
        if code_id is None:
            return False

        await self.db.commit()
        logger.info(f"Referral code created [user_id={user_id}, code={code}]")
        return True

    @staticmethod
    def _existing_result(referral_code: ReferralCode) -> ReferralCodeResult:
        if not referral_code.is_active:
            raise ConflictException(
                "Referral code has been deactivated",
                error_code="REFERRAL_CODE_INACTIVE"
            )
        return ReferralCodeResult(code=referral_code.code, is_new=False)
