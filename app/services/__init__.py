"""Services package"""

from .referral_codes import ReferralCodeService
from .attribution import AttributionService
from .referral_ledger import ReferralLedger
from .commissions import CommissionService
from .referral_stats import ReferralStatsService
from .billing_webhooks import BillingWebhookService
from .user_service import UserService

__all__ = [
    "ReferralCodeService",
    "AttributionService",
    "ReferralLedger",
    "CommissionService",
    "ReferralStatsService",
    "BillingWebhookService",
    "UserService"
]
