"""
Pytest configuration and fixtures.
"""

import sys
import os
import uuid
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import AsyncMock

# Settings are read at import time
os.environ["DATABASE_URL"] = ""
os.environ["APP_ENV"] = "development"
os.environ["PAYTABS_SERVER_KEY"] = "test-server-key"
os.environ["PAYTABS_PROFILE_ID"] = "12345"
os.environ["BREVO_API_KEY"] = ""
os.environ["ADMIN_API_KEY"] = "test-admin-key"

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Add app to path
sys.path.append(os.getcwd())

from app.database import Base, get_db
from app.fsm.states import BillingInterval
from app.models import Business, SubscriptionPlan, User
from app.services.email_service import EmailService, get_email_service
from app.services.paytabs_service import PayTabsService, get_paytabs_service
from app.main import app

# Use in-memory SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


def _paytabs_result(cart_id, tran_ref: str = "TST2400000001", code: str = "A") -> dict:
    """A PayTabs query / callback body for `cart_id`."""
    return {
        "tran_ref": tran_ref,
        "cart_id": str(cart_id),
        "cart_currency": "SAR",
        "payment_result": {
            "response_status": code,
            "response_code": "G12345",
            "response_message": "Authorised" if code == "A" else "Declined",
        },
    }


@pytest.fixture
def paytabs_result():
    """Builder for PayTabs query / callback bodies."""
    return _paytabs_result


@pytest_asyncio.fixture
async def test_engine():
    """Create async engine for tests; one shared connection per test."""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_maker(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for a test."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def user(db) -> User:
    user = User(
        email="owner@example.com",
        first_name="Sara",
        last_name="Alqahtani",
        phone="966511111111",
    )
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def business(db, user) -> Business:
    business = Business(
        user_id=user.id,
        name="Qahwa House",
        slug="qahwa-house",
        email="hello@qahwa.example.com",
    )
    db.add(business)
    await db.commit()
    return business


@pytest.fixture
def make_plan(db):
    """Factory for subscription plans; every flag on unless overridden."""

    async def _make(**overrides) -> SubscriptionPlan:
        values = {
            "name": "Premium",
            "slug": f"premium-{uuid.uuid4().hex[:8]}",
            "price": Decimal("299.00"),
            "currency": "SAR",
            "billing_interval": BillingInterval.MONTH.value,
            "interval_count": 1,
            "allow_advertisements": True,
            "top_placement": True,
            "verified_badge": True,
            "priority_support": True,
        }
        values.update(overrides)
        plan = SubscriptionPlan(**values)
        db.add(plan)
        await db.commit()
        return plan

    return _make


@pytest.fixture
def gateway() -> AsyncMock:
    """PayTabs client double; tests set verify_payment / create_payment_page results."""
    return AsyncMock(spec=PayTabsService)


@pytest.fixture
def email() -> AsyncMock:
    return AsyncMock(spec=EmailService)


@pytest_asyncio.fixture
async def client(session_maker, gateway, email):
    """HTTP client against the app, wired to the test database and doubles."""

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_paytabs_service] = lambda: gateway
    app.dependency_overrides[get_email_service] = lambda: email

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def owner_headers(user):
    return {"X-User-Id": str(user.id), "X-User-Role": "BUSINESS_OWNER"}

