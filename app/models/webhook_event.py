"""Processed payment-processor webhook events"""

from sqlalchemy import Column, String, JSON

from .base import Base, TimestampedModel, UUIDModel

class StripeWebhookEvent(Base, TimestampedModel, UUIDModel):
    """One row per Stripe event id; a duplicate delivery finds its row already present"""

    __tablename__ = "stripe_webhook_events"

    stripe_event_id = Column(String(255), nullable=False, unique=True)
    type = Column(String(100), nullable=False, index=True)
    stripe_object_id = Column(String(255), nullable=True)
    payload = Column(JSON, default=dict)
