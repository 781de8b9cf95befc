"""Referral system models"""

from sqlalchemy import (
    Column, String, Integer, Boolean, ForeignKey, DateTime, Uuid,
    Index, CheckConstraint, text
)
from sqlalchemy.orm import relationship
import enum

from .base import Base, TimestampedModel, UUIDModel

class ReferralStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    CHURNED = "churned"
    EXPIRED = "expired"

class CommissionStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"

# Statuses that still hold the referred user's single open referral slot
OPEN_REFERRAL_STATUSES = (ReferralStatus.PENDING.value, ReferralStatus.ACTIVE.value)

_open_referral_clause = text("status IN ('pending', 'active')")

class ReferralCode(Base, TimestampedModel, UUIDModel):
    """A user's shareable referral code"""

    __tablename__ = "referral_codes"

    user_id = Column(String(255), nullable=False, unique=True, index=True)
    code = Column(String(50), nullable=False, unique=True, index=True)  # lowercase, trimmed
    is_active = Column(Boolean, default=True, nullable=False)

    referrals = relationship("Referral", back_populates="referral_code")

class Referral(Base, TimestampedModel, UUIDModel):
    """Referrer to referred-user pairing with its own lifecycle"""

    __tablename__ = "referrals"
    __table_args__ = (
        Index(
            "uq_referrals_open_referred_user",
            "referred_user_id",
            unique=True,
            postgresql_where=_open_referral_clause,
            sqlite_where=_open_referral_clause,
        ),
        CheckConstraint(
            "referrer_user_id <> referred_user_id",
            name="ck_referrals_no_self_referral"
        ),
    )

    referrer_user_id = Column(String(255), nullable=False, index=True)
    referred_user_id = Column(String(255), nullable=False, index=True)
    referral_code_id = Column(Uuid(as_uuid=True), ForeignKey("referral_codes.id"), nullable=False)
    status = Column(String(20), nullable=False, default=ReferralStatus.PENDING.value, index=True)

    # Snapshotted at creation so later program changes don't apply retroactively
    commission_rate_bps = Column(Integer, nullable=False)
    commission_duration_months = Column(Integer, nullable=False)

    subscribed_at = Column(DateTime(timezone=True))
    expires_at = Column(DateTime(timezone=True))
    churned_at = Column(DateTime(timezone=True))

    # Relationships
    referral_code = relationship("ReferralCode", back_populates="referrals")
    commissions = relationship("ReferralCommission", back_populates="referral")

class ReferralCommission(Base, TimestampedModel, UUIDModel):
    """Commission owed to a referrer for one paid invoice"""

    __tablename__ = "referral_commissions"

    referral_id = Column(Uuid(as_uuid=True), ForeignKey("referrals.id"), nullable=False, index=True)
    referrer_user_id = Column(String(255), nullable=False, index=True)
    stripe_invoice_id = Column(String(255), nullable=False, unique=True)  # idempotency key
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String(10), nullable=False)
    status = Column(String(20), nullable=False, default=CommissionStatus.PENDING.value, index=True)
    period_start = Column(DateTime(timezone=True))
    period_end = Column(DateTime(timezone=True))

    # Relationships
    referral = relationship("Referral", back_populates="commissions")
