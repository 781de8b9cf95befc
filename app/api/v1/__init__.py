"""API v1 routes aggregation"""

from fastapi import APIRouter

from .referrals.router import router as referrals_router
from .webhooks.router import router as webhooks_router

# Create v1 router
api_router = APIRouter()

# Include all routers
api_router.include_router(referrals_router, prefix="/referrals", tags=["Referrals"])
api_router.include_router(webhooks_router, prefix="/webhooks", tags=["Webhooks"])

# Export router
router = api_router
