"""
Billing webhook endpoints
"""

from fastapi import APIRouter, Depends, Header, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import json
import logging

from app.core.database import get_db
from app.core.exceptions import BadRequestException
from app.services.billing_webhooks import BillingWebhookService, verify_stripe_signature

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post(
    "/stripe",
    status_code=status.HTTP_200_OK,
    summary="Stripe webhook",
    description="Apply subscription and invoice events to the referral ledger"
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db)
):
    """Handle Stripe webhook; any non-2xx response makes Stripe redeliver"""
    payload = await request.body()
    verify_stripe_signature(payload, stripe_signature)

    try:
        event = json.loads(payload)
    except ValueError:
        raise BadRequestException("Invalid webhook payload", error_code="INVALID_WEBHOOK_PAYLOAD")

    if not isinstance(event, dict):
        raise BadRequestException("Invalid webhook payload", error_code="INVALID_WEBHOOK_PAYLOAD")

    service = BillingWebhookService(db)
    result = await service.process(event)

    return {
        "received": True,
        "skipped": result.skipped,
        "reason": result.reason,
        "detail": result.detail,
    }
