"""
Billing webhook handling
Turns Stripe events into referral lifecycle and commission operations
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import enum
import logging
import stripe

from app.models import StripeWebhookEvent
from app.core.config import settings
from app.core.database import insert_or_ignore
from app.core.exceptions import InvalidWebhookSignatureException, WebhookProcessingException
from app.services.commissions import CommissionService
from app.services.referral_ledger import ReferralLedger
from app.services.user_service import UserService
from app.utils.helpers import from_unix_timestamp

logger = logging.getLogger(__name__)

ACTIVE_SUBSCRIPTION_STATUSES = ("active", "trialing")

class BillingEventKind(str, enum.Enum):
    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    INVOICE_PAID = "invoice_paid"
    OTHER = "other"

class _BillingEventBase(BaseModel):
    event_id: str
    event_type: str
    object_id: Optional[str] = None

class SubscriptionActivated(_BillingEventBase):
    kind: Literal[BillingEventKind.SUBSCRIPTION_ACTIVATED] = BillingEventKind.SUBSCRIPTION_ACTIVATED
    user_ref: Optional[str] = None
    qualifies: bool = True  # False for incomplete subscriptions and one-off checkouts

class SubscriptionCanceled(_BillingEventBase):
    kind: Literal[BillingEventKind.SUBSCRIPTION_CANCELED] = BillingEventKind.SUBSCRIPTION_CANCELED
    user_ref: Optional[str] = None

class InvoicePaid(_BillingEventBase):
    kind: Literal[BillingEventKind.INVOICE_PAID] = BillingEventKind.INVOICE_PAID
    user_ref: Optional[str] = None
    amount_paid_cents: int = 0
    currency: str = "usd"
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

class OtherEvent(_BillingEventBase):
    kind: Literal[BillingEventKind.OTHER] = BillingEventKind.OTHER

BillingEvent = Annotated[
    Union[SubscriptionActivated, SubscriptionCanceled, InvoicePaid, OtherEvent],
    Field(discriminator="kind")
]

EVENT_KINDS: Dict[str, BillingEventKind] = {
    "checkout.session.completed": BillingEventKind.SUBSCRIPTION_ACTIVATED,
    "customer.subscription.created": BillingEventKind.SUBSCRIPTION_ACTIVATED,
    "customer.subscription.updated": BillingEventKind.SUBSCRIPTION_ACTIVATED,
    "customer.subscription.deleted": BillingEventKind.SUBSCRIPTION_CANCELED,
    "invoice.paid": BillingEventKind.INVOICE_PAID,
    "invoice.payment_succeeded": BillingEventKind.INVOICE_PAID,
}

@dataclass
class HandlerResult:
    """Outcome reported back to the webhook endpoint"""
    success: bool = True
    skipped: bool = False
    reason: Optional[str] = None
    detail: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def skip(cls, reason: str, **detail: Any) -> "HandlerResult":
        return cls(success=True, skipped=True, reason=reason, detail=detail)

def _metadata_user_ref(metadata: Optional[Dict[str, Any]]) -> Optional[str]:
    if not metadata:
        return None
    value = metadata.get(settings.STRIPE_USER_ID_METADATA_KEY)
    return str(value) if value else None

def _invoice_user_ref(invoice: Dict[str, Any]) -> Optional[str]:
    """Invoices carry the subscription's metadata in one of several places"""
    parent = invoice.get("parent") or {}
    candidates = [
        (parent.get("subscription_details") or {}).get("metadata"),
        (invoice.get("subscription_details") or {}).get("metadata"),
        invoice.get("metadata"),
    ]
    for metadata in candidates:
        user_ref = _metadata_user_ref(metadata)
        if user_ref:
            return user_ref
    return None

def parse_billing_event(event: Dict[str, Any]) -> BillingEvent:
    """
    Map a raw Stripe event onto the closed set of billing events

    Event types this service does not act on become ``OtherEvent``.
    """
    event_type = event.get("type", "")
    obj = (event.get("data") or {}).get("object") or {}
    base = {
        "event_id": event.get("id", ""),
        "event_type": event_type,
        "object_id": obj.get("id"),
    }
    kind = EVENT_KINDS.get(event_type, BillingEventKind.OTHER)

    if kind == BillingEventKind.SUBSCRIPTION_ACTIVATED:
        if event_type == "checkout.session.completed":
            user_ref = _metadata_user_ref(obj.get("metadata")) or obj.get("client_reference_id")
            qualifies = obj.get("mode") == "subscription"
        else:
            user_ref = _metadata_user_ref(obj.get("metadata"))
            qualifies = obj.get("status") in ACTIVE_SUBSCRIPTION_STATUSES
        return SubscriptionActivated(**base, user_ref=user_ref, qualifies=qualifies)

    if kind == BillingEventKind.SUBSCRIPTION_CANCELED:
        return SubscriptionCanceled(**base, user_ref=_metadata_user_ref(obj.get("metadata")))

    if kind == BillingEventKind.INVOICE_PAID:
        return InvoicePaid(
            **base,
            user_ref=_invoice_user_ref(obj),
            amount_paid_cents=int(obj.get("amount_paid") or 0),
            currency=obj.get("currency") or "usd",
            period_start=from_unix_timestamp(obj.get("period_start")),
            period_end=from_unix_timestamp(obj.get("period_end")),
        )

    return OtherEvent(**base)

def verify_stripe_signature(payload: bytes, signature: Optional[str]) -> None:
    """
    Verify the Stripe-Signature header when a webhook secret is configured

    Raises:
        InvalidWebhookSignatureException: Missing or invalid signature
    """
    secret = settings.STRIPE_WEBHOOK_SECRET
    if not secret:
        return

    if not signature:
        raise InvalidWebhookSignatureException("Missing webhook signature")

    try:
        stripe.Webhook.construct_event(payload, signature, secret)
    except ValueError:
        raise InvalidWebhookSignatureException("Invalid webhook payload")
    except stripe.SignatureVerificationError:
        raise InvalidWebhookSignatureException()

class BillingWebhookService:
    """Dispatches billing events to the referral services"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = ReferralLedger(db)
        self.commissions = CommissionService(db)
        self.users = UserService(db)

    def get_event_handler(self, kind: BillingEventKind):
        """
        Get handler for specific event kind

        Args:
            kind: Billing event kind

        Returns:
            Handler coroutine function
        """
        handlers = {
            BillingEventKind.SUBSCRIPTION_ACTIVATED: self.handle_subscription_activated,
            BillingEventKind.SUBSCRIPTION_CANCELED: self.handle_subscription_canceled,
            BillingEventKind.INVOICE_PAID: self.handle_invoice_paid,
            BillingEventKind.OTHER: self.handle_other,
        }
        return handlers[kind]

    async def process(self, event: Dict[str, Any]) -> HandlerResult:
        """
        Apply one webhook delivery

        Every handler is idempotent, so the processed-event record only
        short-circuits redeliveries; it is written after the handler
        succeeds so that a failed delivery is retried in full.
        """
        billing_event = parse_billing_event(event)

        if await self.is_processed(billing_event.event_id):
            return HandlerResult.skip("duplicate_event")

        handler = self.get_event_handler(billing_event.kind)
        result = await handler(billing_event)

        await self.mark_processed(billing_event, event)

        if result.skipped:
            logger.info(
                f"Webhook event skipped [event_id={billing_event.event_id}, "
                f"type={billing_event.event_type}, reason={result.reason}]"
            )
        return result

    async def is_processed(self, event_id: str) -> bool:
        if not event_id:
            return False
        result = await self.db.execute(
            select(StripeWebhookEvent.id)
            .where(StripeWebhookEvent.stripe_event_id == event_id)
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def mark_processed(self, billing_event: BillingEvent, payload: Dict[str, Any]) -> None:
        if not billing_event.event_id:
            return
        await insert_or_ignore(
            self.db,
            StripeWebhookEvent,
            {
                "stripe_event_id": billing_event.event_id,
                "type": billing_event.event_type,
                "stripe_object_id": billing_event.object_id,
                "payload": payload,
            }
        )
        await self.db.commit()

    async def resolve_user_id(self, user_ref: Optional[str]) -> Optional[str]:
        """Map the metadata user reference to an internal user id"""
        if not user_ref:
            return None
        internal_id = await self.users.get_internal_user_id(user_ref)
        return internal_id or user_ref

    async def handle_subscription_activated(self, event: SubscriptionActivated) -> HandlerResult:
        if not event.qualifies:
            return HandlerResult.skip("subscription_not_active")

        user_id = await self.resolve_user_id(event.user_ref)
        if not user_id:
            return HandlerResult.skip("no_user_id_in_metadata")

        referral = await self.ledger.activate_referral(user_id)
        if not referral:
            return HandlerResult.skip("no_pending_referral")

        return HandlerResult(detail={"referral_id": str(referral.id)})

    async def handle_subscription_canceled(self, event: SubscriptionCanceled) -> HandlerResult:
        user_id = await self.resolve_user_id(event.user_ref)
        if not user_id:
            logger.error(f"Missing user ID in canceled subscription [event_id={event.event_id}]")
            raise WebhookProcessingException(
                "Missing user ID in subscription",
                error_code="MISSING_USER_ID"
            )

        # A user left entitled after cancellation must never be acknowledged
        if not await self.users.downgrade_billing(user_id):
            logger.error(f"Failed to downgrade user on subscription deletion [user_id={user_id}]")
            raise WebhookProcessingException(
                "Failed to downgrade user",
                error_code="BILLING_DOWNGRADE_FAILED"
            )
        await self.db.commit()

        churned = await self.ledger.expire_referral_on_churn(user_id)
        return HandlerResult(detail={"churned_referral_ids": [str(i) for i in churned]})

    async def handle_invoice_paid(self, event: InvoicePaid) -> HandlerResult:
        if not event.object_id:
            return HandlerResult.skip("missing_invoice_id")

        user_id = await self.resolve_user_id(event.user_ref)
        if not user_id:
            return HandlerResult.skip("no_user_id_in_metadata")

        if event.amount_paid_cents <= 0:
            return HandlerResult.skip("zero_amount_invoice")

        commission = await self.commissions.record_commission(
            referred_user_id=user_id,
            stripe_invoice_id=event.object_id,
            payment_amount_cents=event.amount_paid_cents,
            currency=event.currency,
            period_start=event.period_start,
            period_end=event.period_end,
        )
        if commission is None:
            return HandlerResult.skip("no_active_referral")

        return HandlerResult(detail={"commission_cents": commission.commission_cents})

    async def handle_other(self, event: OtherEvent) -> HandlerResult:
        return HandlerResult.skip("unhandled_event_type")
