"""
Pytest configuration and fixtures.
"""

import os
import uuid
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Configure before the app reads settings
os.environ.setdefault("DATABASE_URL", "")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("WORKSHOP_VOUCHER_PRODUCT_ID", "prod_workshop_voucher")
os.environ.setdefault("RESEND_API_KEY", "")
os.environ.setdefault("POSTHOG_API_KEY", "")

from fulfillment.database import Base
from fulfillment import models  # noqa: F401  registers tables on Base.metadata
from fulfillment.logging_config import get_scoped_logger
from fulfillment.services.email_service import EmailResult

# Use in-memory SQLite for tests
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a fresh async engine and schema per test."""
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


@pytest_asyncio.fixture(scope="function")
async def db(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for a test."""
    async_session = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def log():
    return get_scoped_logger("Test", session_id="cs_test")


@pytest.fixture
def email_service():
    """Email collaborator that accepts every send."""
    service = MagicMock()

    async def ok(data):
        return EmailResult(success=True, email=data.to, email_id=f"em_{uuid.uuid4().hex[:8]}")

    async def ok_batch(emails):
        return [EmailResult(success=True, email=e.to) for e in emails]

    async def ok_contact(email, source):
        return EmailResult(success=True, email=email)

    service.send_ticket_confirmation = AsyncMock(side_effect=ok)
    service.send_ticket_confirmations_queued = AsyncMock(side_effect=ok_batch)
    service.send_voucher_confirmation = AsyncMock(side_effect=ok)
    service.send_vip_upgrade_confirmation = AsyncMock(side_effect=ok)
    service.add_newsletter_contact = AsyncMock(side_effect=ok_contact)
    service.cancel_email = AsyncMock(return_value=None)
    return service


@pytest.fixture
def analytics():
    service = MagicMock()
    service.track = AsyncMock(return_value=True)
    service.error = AsyncMock(return_value=True)
    service.capture_exception = AsyncMock(return_value=True)
    return service


@pytest.fixture
def pdf_service():
    service = MagicMock()
    service.generate_ticket_pdf = AsyncMock(return_value=b"%PDF-1.7 test")
    return service


@pytest.fixture
def stripe_service():
    service = MagicMock()
    service.list_line_items = AsyncMock(return_value=[])
    service.create_customer = AsyncMock(return_value="cus_new")
    return service
