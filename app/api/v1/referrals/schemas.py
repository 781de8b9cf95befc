"""
Referral schemas for request/response validation
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
import uuid

class ReferralCodeCreate(BaseModel):
    """Schema for claiming a custom referral code"""
    custom_code: str = Field(..., min_length=1, max_length=50)

class ReferralCodeResponse(BaseModel):
    """Schema for the caller's referral code"""
    code: str
    is_new: bool

    class Config:
        from_attributes = True

class ReferralCodeLookupResponse(BaseModel):
    """Schema for a code lookup; unknown and inactive codes are not valid"""
    code: str
    valid: bool

class AttributionRequest(BaseModel):
    """Schema for attributing the caller to a referral code"""
    code: str = Field(..., min_length=1, max_length=50)

class ReferralResponse(BaseModel):
    """Schema for referral response"""
    id: uuid.UUID
    referrer_user_id: str
    referred_user_id: str
    status: str
    commission_rate_bps: int
    commission_duration_months: int
    subscribed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ReferralStatsResponse(BaseModel):
    """Schema for referrer statistics"""
    referral_code: Optional[str] = None
    total_referrals: int = 0
    active_referrals: int = 0
    pending_referrals: int = 0
    churned_referrals: int = 0
    total_earnings_cents: int = 0
    pending_earnings_cents: int = 0
    paid_earnings_cents: int = 0

    class Config:
        from_attributes = True
