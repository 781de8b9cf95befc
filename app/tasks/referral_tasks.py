"""Referral-related background tasks"""

import asyncio
import logging

from app.core.celery_app import celery_app
from app.core.database import get_db_context, engine
from app.services.referral_ledger import ReferralLedger

logger = logging.getLogger(__name__)

async def _expire_lapsed_referrals() -> int:
    try:
        async with get_db_context() as db:
            ledger = ReferralLedger(db)
            expired = await ledger.expire_lapsed_referrals()
            return len(expired)
    finally:
        # Pooled connections are bound to this task's event loop
        await engine.dispose()

@celery_app.task(name="expire_lapsed_referrals")
def expire_lapsed_referrals() -> int:
    """Expire active referrals whose commission window has passed"""
    try:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            count = loop.run_until_complete(_expire_lapsed_referrals())
        finally:
            loop.close()

        logger.info(f"Referral expiry sweep finished [expired={count}]")
        return count

    except Exception as e:
        logger.error(f"Error expiring lapsed referrals: {str(e)}")
        raise
