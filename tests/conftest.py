"""
Pytest configuration and shared fixtures for the referral service tests.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
import pytest_asyncio
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.models import Base, User, ReferralCode, Referral, ReferralStatus
from app.core.config import settings


@pytest.fixture
def fixed_now():
    """Fixed UTC datetime for deterministic tests"""
    return datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test"""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def make_user(db):
    """Insert a user row the way the identity service would"""
    async def _make_user(user_id: str, external_id: str = None, is_pro: bool = True) -> User:
        user = User(id=user_id, external_id=external_id, is_pro=is_pro)
        db.add(user)
        await db.commit()
        return user
    return _make_user


@pytest_asyncio.fixture
async def make_code(db):
    """Insert a referral code directly"""
    async def _make_code(user_id: str, code: str, is_active: bool = True) -> ReferralCode:
        referral_code = ReferralCode(user_id=user_id, code=code, is_active=is_active)
        db.add(referral_code)
        await db.commit()
        return referral_code
    return _make_code


@pytest_asyncio.fixture
async def make_referral(db):
    """Insert a referral in any status with explicit terms"""
    async def _make_referral(
        referral_code: ReferralCode,
        referred_user_id: str,
        status: ReferralStatus = ReferralStatus.PENDING,
        commission_rate_bps: int = None,
        commission_duration_months: int = None,
        subscribed_at: datetime = None,
        expires_at: datetime = None,
    ) -> Referral:
        referral = Referral(
            referrer_user_id=referral_code.user_id,
            referred_user_id=referred_user_id,
            referral_code_id=referral_code.id,
            status=status.value,
            commission_rate_bps=commission_rate_bps or settings.REFERRAL_COMMISSION_RATE_BPS,
            commission_duration_months=(
                commission_duration_months or settings.REFERRAL_COMMISSION_DURATION_MONTHS
            ),
            subscribed_at=subscribed_at,
            expires_at=expires_at,
        )
        db.add(referral)
        await db.commit()
        return referral
    return _make_referral


@pytest.fixture
def reload(db):
    """Read a row fresh from the database, bypassing the identity map"""
    async def _reload(model, pk):
        return await db.get(model, pk, populate_existing=True)
    return _reload
