"""
Pytest Configuration and Centralized Fixtures.

Provides reusable mocks and fixtures for testing:
- Mock database sessions (unit tests)
- Real SQLite databases via aiosqlite (integration tests)
- Fake content generator
- Stripe webhook signing helpers
- API test client wired to the fixtures
"""

import hashlib
import hmac
import json
import os
import time
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from argon2 import PasswordHasher
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

TEST_ADMIN_TOKEN = "test-admin-token"
TEST_WEBHOOK_SECRET = "whsec_test_fake_secret"

# Set required environment variables BEFORE importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STRIPE_API_KEY", "sk_test_fake_key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", TEST_WEBHOOK_SECRET)
os.environ.setdefault("GENERATION_API_KEY", "test-generation-key")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("ADMIN_TOKEN_HASH", PasswordHasher().hash(TEST_ADMIN_TOKEN))

from alchemist.db.models import AccessKey
from alchemist.db.session import Database
from alchemist.exceptions import ContentGenerationError
from alchemist.models.api import KeyStatus, Plan
from alchemist.models.domain import AccessKeyData, GeneratedArticle
from alchemist.services.key_store import KeyStore
from alchemist.services.stripe_provider import StripeProvider

# ============================================================================
# Database Session Fixtures
# ============================================================================


@pytest.fixture
def db_session() -> AsyncMock:
    """Create a mock database session with sensible defaults."""
    session = AsyncMock(spec=AsyncSession)

    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()

    # Default execute returns empty result
    mock_result = MagicMock()
    mock_result.scalar_one_or_none = MagicMock(return_value=None)
    mock_result.one_or_none = MagicMock(return_value=None)
    mock_result.scalars = MagicMock(return_value=MagicMock(all=MagicMock(return_value=[])))
    session.execute = AsyncMock(return_value=mock_result)

    return session


@pytest.fixture
async def database(tmp_path: Path) -> AsyncGenerator[Database, None]:
    """Real SQLite database (file-backed so every session sees the same data)."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'alchemist_test.db'}")
    await db.create_all()
    yield db
    await db.close()


async def make_key(
    database: Database,
    key_id: str = "KWA-TST-KEY-01",
    plan: Plan = Plan.BASIC,
    credits: int = 10,
    credits_used: int = 0,
    status: KeyStatus = KeyStatus.ACTIVE,
    email: str | None = "user@example.com",
) -> AccessKeyData:
    """Insert an access key in the given state."""
    async with database.session() as session:
        store = KeyStore(session)
        key = await store.create(key_id, plan, credits, email)
        if credits_used:
            await store.debit(key_id, credits_used)
            await store.commit()
        if status != KeyStatus.ACTIVE:
            await session.execute(
                update(AccessKey).where(AccessKey.id == key_id).values(status=status.value)
            )
            await session.commit()
        return await store.get_any(key_id) or key


async def read_key(database: Database, key_id: str) -> AccessKeyData | None:
    """Fetch a key in a fresh session."""
    async with database.session() as session:
        return await KeyStore(session).get_any(key_id)


# ============================================================================
# Content Generator Fixtures
# ============================================================================


def make_article(keyword: str, words: int = 450) -> GeneratedArticle:
    """Article whose body has exactly `words` words."""
    return GeneratedArticle(
        keyword=keyword,
        title=f"The Complete Guide to {keyword}",
        tldr=f"Everything you need to know about {keyword}.",
        body=" ".join(["word"] * words),
        approach="test-model",
        linking_suggestions=(f"{keyword} basics",),
    )


class FakeContentGenerator:
    """Content generator that fails for configured keywords and records calls."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.calls: list[str] = []

    async def generate(self, keyword: str) -> GeneratedArticle:
        self.calls.append(keyword)
        if keyword in self.failing:
            raise ContentGenerationError(keyword, "Provider returned 500")
        return make_article(keyword)

    async def close(self) -> None:
        pass


@pytest.fixture
def content_generator() -> FakeContentGenerator:
    """Generator that succeeds for every keyword."""
    return FakeContentGenerator()


# ============================================================================
# Stripe Webhook Fixtures
# ============================================================================


def sign_payload(payload: bytes, secret: str = TEST_WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header for a payload."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def checkout_completed_event(
    session_id: str = "cs_test_123",
    plan: str | None = "pro",
    credits: str | None = "240",
    customer_email: str | None = "a@b.com",
    event_id: str = "evt_test_1",
    amount_total: int = 10000,
) -> dict[str, Any]:
    """Stripe checkout.session.completed event payload."""
    metadata: dict[str, str] = {"service": "keyword-alchemist"}
    if plan is not None:
        metadata["plan"] = plan
    if credits is not None:
        metadata["credits"] = credits
    return {
        "id": event_id,
        "object": "event",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "amount_total": amount_total,
                "currency": "usd",
                "customer": "cus_test_1",
                "customer_email": customer_email,
                "metadata": metadata,
                "payment_status": "paid",
            }
        },
    }


def encode_event(event: dict[str, Any]) -> bytes:
    return json.dumps(event).encode("utf-8")


@pytest.fixture
def stripe_provider() -> StripeProvider:
    """Stripe provider using the test signing secret."""
    return StripeProvider(api_key="sk_test_fake_key", webhook_secret=TEST_WEBHOOK_SECRET)


# ============================================================================
# FastAPI Test Client Fixtures
# ============================================================================


@pytest.fixture
def app(
    database: Database,
    content_generator: FakeContentGenerator,
    stripe_provider: StripeProvider,
) -> FastAPI:
    """FastAPI app with collaborators on app.state (lifespan is not run)."""
    from alchemist.main import app as main_app

    main_app.state.database = database
    main_app.state.content_generator = content_generator
    main_app.state.payment_provider = stripe_provider
    yield main_app
    main_app.dependency_overrides.clear()


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async test client sharing the test's event loop."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


@pytest.fixture
def admin_headers() -> dict[str, str]:
    """Headers carrying the test admin token."""
    return {"X-Admin-Token": TEST_ADMIN_TOKEN}


@pytest.fixture
def fixed_datetime() -> datetime:
    """Fixed datetime for deterministic testing."""
    return datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)
