"""
User model
Slim view of the account record owned by the identity service
"""

from sqlalchemy import Column, String, Boolean

from .base import Base, TimestampedModel

class User(Base, TimestampedModel):
    """Account row as seen by the referral service"""

    __tablename__ = "users"

    id = Column(String(255), primary_key=True)
    external_id = Column(String(255), unique=True, index=True)  # auth provider id

    # Referral attribution (audit/display only)
    referred_by_code = Column(String(50), nullable=True)

    # Billing entitlement
    is_pro = Column(Boolean, default=False, nullable=False)
