import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from unittest.mock import AsyncMock, MagicMock
import os

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["SMS_ENABLED"] = "false"

from shared.directory import TenantRef, UnitRef
from shared.exceptions import NotFoundError


class FakeDirectory:
    """In-memory stand-in for the unit/tenant directory service."""

    def __init__(self):
        self.units = {}
        self.tenants = {}

    def add_unit(self, unit_id: str, property_id: str = "PROP-1", organization_id: str = "ORG-1"):
        self.units[unit_id] = UnitRef(unit_id, property_id, organization_id)

    def add_tenant(self, tenant_id: str, phone: str = "254700000001"):
        self.tenants[tenant_id] = TenantRef(tenant_id, phone)

    async def get_unit(self, unit_id: str) -> UnitRef:
        if unit_id not in self.units:
            raise NotFoundError(f"Unit {unit_id} not found")
        return self.units[unit_id]

    async def get_tenant(self, tenant_id: str) -> TenantRef:
        if tenant_id not in self.tenants:
            raise NotFoundError(f"Tenant {tenant_id} not found")
        return self.tenants[tenant_id]


@pytest.fixture(scope="function")
async def test_db_engine():
    """Create a test database engine."""
    # Use SQLite for testing (in-memory)
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        future=True,
    )

    # Create tables
    from shared.database.base import Base
    from shared import models  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Cleanup
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
def test_session_factory(test_db_engine):
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture(scope="function")
async def test_db_session(test_session_factory):
    """Create a test database session with the payment-type catalog seeded."""
    from shared.repositories.payment_type import LeasePaymentTypeRepository

    async with test_session_factory() as session:
        repo = LeasePaymentTypeRepository(session)
        await repo.seed_defaults()
        await repo.commit()
        yield session


@pytest.fixture
def directory():
    """Directory with one unit (PROP-1 / ORG-1) and one tenant."""
    fake = FakeDirectory()
    fake.add_unit("UNIT-1")
    fake.add_unit("UNIT-2")
    fake.add_tenant("TENANT-1")
    fake.add_tenant("TENANT-2", phone="254700000002")
    return fake


@pytest.fixture
def notifier():
    """Notifier that records messages instead of queueing SMS."""
    return MagicMock(return_value=True)


@pytest.fixture
def make_lease(test_db_session, directory, notifier):
    """Factory creating leases through the lease service."""
    from services.lease_service.domain.lease_service import LeaseService

    async def _make(**overrides):
        params = {
            "tenant_id": "TENANT-1",
            "unit_id": "UNIT-1",
            "start_date": date(2024, 1, 1),
            "end_date": date(2024, 12, 31),
            "amount": Decimal("30000"),
        }
        params.update(overrides)
        service = LeaseService(test_db_session, directory=directory, notifier=notifier)
        return await service.create_lease(**params)

    return _make


@pytest.fixture
async def client_for(test_session_factory, directory):
    """Build an httpx client for a service app wired to the test database."""
    from httpx import AsyncClient, ASGITransport
    from shared.database import get_db
    from shared.directory import get_directory
    from shared.repositories.payment_type import LeasePaymentTypeRepository

    async with test_session_factory() as session:
        repo = LeasePaymentTypeRepository(session)
        await repo.seed_defaults()
        await repo.commit()

    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    apps = []

    def _client(app, overrides=None):
        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_directory] = lambda: directory
        app.dependency_overrides.update(overrides or {})
        apps.append(app)
        return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")

    yield _client

    for app in apps:
        app.dependency_overrides.clear()


@pytest.fixture
def mock_redis():
    """Create a mock Redis client."""
    return AsyncMock()


@pytest.fixture(autouse=True)
def reset_event_bus():
    """Every test starts with an uninitialized event bus."""
    from shared.event_bus import event_bus

    event_bus.reset()
    yield
    event_bus.reset()


@pytest.fixture
async def mock_event_bus_initialized():
    """Initialize event bus with mock Redis for testing."""
    from shared.event_bus import event_bus
    from shared.redis_client import RedisClient

    # Mock Redis client
    mock_redis = AsyncMock()
    mock_redis.publish = AsyncMock(return_value=1)

    # Patch RedisClient.get_client to return mock
    original_get_client = RedisClient.get_client
    RedisClient.get_client = AsyncMock(return_value=mock_redis)

    await event_bus.initialize()

    yield mock_redis

    # Cleanup
    RedisClient.get_client = original_get_client
    event_bus.reset()
