"""Models package initialization"""

from .base import Base
from .user import User
from .referral import (
    ReferralCode,
    Referral,
    ReferralCommission,
    ReferralStatus,
    CommissionStatus,
    OPEN_REFERRAL_STATUSES,
)
from .webhook_event import StripeWebhookEvent

# Export all models
__all__ = [
    "Base",
    "User",
    "ReferralCode",
    "Referral",
    "ReferralCommission",
    "ReferralStatus",
    "CommissionStatus",
    "OPEN_REFERRAL_STATUSES",
    "StripeWebhookEvent",
]
