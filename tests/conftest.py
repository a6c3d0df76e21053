# Shared pytest configuration and fixtures for all test types
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from slowapi import Limiter
from slowapi.util import get_remote_address
from unittest.mock import patch
from uuid import uuid4

# Create a disabled test limiter with in-memory storage
test_limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri="memory://",
    enabled=False,
)

# Patch the limiter before importing the app so decorators use test limiter
with patch("common.providers.rate_limiter.limiter.limiter", test_limiter):
    from api.main import app

from common.db.base import Base
from packages.auth.dependencies import get_current_user
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.billing.models.database import (  # noqa: F401 - registers tables
    AuditLogEntity,
    BillingEventEntity,
    UsageCounterEntity,
)
from packages.billing.models.domain.enums import SubscriptionTier
from packages.subscribers.models.database.subscriber import SubscriberEntity

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine and initialize schema."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_connection(test_engine):
    """Create test connection with outer transaction for rollback isolation."""
    async with test_engine.connect() as connection:
        trans = await connection.begin()
        yield connection
        await trans.rollback()


@pytest_asyncio.fixture(scope="function")
async def test_session_factory(test_connection):
    """Create session factory bound to test connection.

    Using join_transaction_mode="create_savepoint" so transaction() and
    get_session() commits become savepoint releases inside the outer
    transaction.
    """
    return async_sessionmaker(
        bind=test_connection,
        class_=AsyncSession,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )


@pytest_asyncio.fixture(scope="function")
async def test_db(test_session_factory):
    """Create a test database session."""
    async with test_session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function", autouse=True)
async def patch_lazy_sessions(test_session_factory, monkeypatch):
    """
    Patch the session factory to use the test database.

    This allows real transaction() and get_session() to run with proper
    commit/rollback/ContextVar semantics while using the test database.
    """
    monkeypatch.setattr("common.db.scoped.AsyncSessionLocal", test_session_factory)


async def _add_subscriber(test_db: AsyncSession, **fields) -> SubscriberEntity:
    subscriber = SubscriberEntity(id=str(uuid4()), **fields)
    test_db.add(subscriber)
    await test_db.commit()
    await test_db.refresh(subscriber)
    return subscriber


@pytest_asyncio.fixture(scope="function")
async def sample_subscriber(test_db: AsyncSession):
    """Community subscriber with a Stripe customer already on file."""
    return await _add_subscriber(
        test_db,
        email="ana@example.com",
        name="Ana",
        country_code="US",
        subscription_tier=SubscriptionTier.COMMUNITY.value,
        stripe_customer_id="cus_test123",
    )


@pytest_asyncio.fixture(scope="function")
async def new_subscriber(test_db: AsyncSession):
    """Community subscriber with no provider customers yet."""
    return await _add_subscriber(
        test_db,
        email="luis@example.mx",
        name="Luis",
        country_code="MX",
        subscription_tier=SubscriptionTier.COMMUNITY.value,
    )


@pytest_asyncio.fixture(scope="function")
async def pro_subscriber(test_db: AsyncSession):
    """Subscriber on the top tier through an active Stripe subscription."""
    return await _add_subscriber(
        test_db,
        email="pro@example.com",
        country_code="US",
        subscription_tier=SubscriptionTier.PRO.value,
        stripe_customer_id="cus_pro123",
        billing_provider="stripe",
        provider_subscription_id="sub_pro123",
    )


@pytest_asyncio.fixture(scope="function")
async def janua_subscriber(test_db: AsyncSession):
    """Subscriber billed through the federated broker."""
    return await _add_subscriber(
        test_db,
        email="maria@example.mx",
        country_code="MX",
        subscription_tier=SubscriptionTier.COMMUNITY.value,
        janua_customer_id="jcus_test123",
    )


@pytest_asyncio.fixture(scope="function")
async def test_user(sample_subscriber):
    """Authenticated context for the sample subscriber."""
    return AuthenticatedUser(user_id=sample_subscriber.id, email=sample_subscriber.email)


@pytest_asyncio.fixture(scope="function")
async def client(test_user):
    """Create a test client authenticated as the sample subscriber."""

    def override_get_current_user():
        return test_user

    app.dependency_overrides[get_current_user] = override_get_current_user

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def anonymous_client():
    """Create a test client without any auth override."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
