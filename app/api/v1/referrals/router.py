"""
Referral API endpoints
"""

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.api.v1.auth.dependencies import get_current_user_id
from app.middleware.rate_limit import code_lookup_limiter
from app.services.referral_codes import ReferralCodeService, normalize_code
from app.services.attribution import AttributionService
from app.services.referral_stats import ReferralStatsService
from .schemas import (
    ReferralCodeCreate,
    ReferralCodeResponse,
    ReferralCodeLookupResponse,
    AttributionRequest,
    ReferralResponse,
    ReferralStatsResponse,
)

router = APIRouter()

@router.get("/code", response_model=ReferralCodeResponse)
async def get_referral_code(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Get the caller's referral code, creating one on first request"""
    service = ReferralCodeService(db)
    return await service.get_or_create_referral_code(user_id)

@router.post("/code", response_model=ReferralCodeResponse)
async def create_custom_referral_code(
    data: ReferralCodeCreate,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """
    Claim a custom referral code

    A caller who already has a code gets that code back unchanged.
    """
    service = ReferralCodeService(db)
    result = await service.get_or_create_referral_code(user_id, custom_code=data.custom_code)
    if result.is_new:
        response.status_code = status.HTTP_201_CREATED
    return result

@router.get("/lookup/{code}", response_model=ReferralCodeLookupResponse)
@code_lookup_limiter
async def lookup_referral_code(
    request: Request,
    response: Response,
    code: str,
    db: AsyncSession = Depends(get_db)
):
    """Check whether a code can be used at sign-up"""
    service = AttributionService(db)
    owner = await service.lookup_referral_code(code)
    return ReferralCodeLookupResponse(code=normalize_code(code), valid=owner is not None)

@router.post("/attribute", response_model=ReferralResponse, status_code=status.HTTP_201_CREATED)
async def attribute_referral(
    data: AttributionRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Attribute the caller to the owner of a referral code"""
    service = AttributionService(db)
    return await service.create_referral(referred_user_id=user_id, code=data.code)

@router.get("/stats", response_model=ReferralStatsResponse)
async def get_referral_stats(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Get referral statistics for the caller"""
    service = ReferralStatsService(db)
    stats = await service.get_referral_stats(user_id)
    return stats.to_dict()
