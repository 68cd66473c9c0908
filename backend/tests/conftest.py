"""
Centralized Test Configuration.
"""

import pytest
from datetime import datetime, timedelta
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.jwt import create_access_token
from backend.app.core.redis_client import get_redis
from backend.app.models.ledger_entry import LedgerEntry
from backend.app.models.ledger_enums import EntryType, EntryStatus
from backend.app.models.credit_settings import CustomerCreditSettings, CompanyOverdueSettings
from backend.app.models.enums import UserRole
import backend.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Fixed clock for deterministic day counts
NOW = datetime(2024, 6, 1, 12, 0, 0)

COMPANY_ID = 1
OTHER_COMPANY_ID = 2
CUSTOMER_ID = 10

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.unreachable = False

    def _check(self):
        if self.unreachable:
            raise ConnectionError("Redis unreachable")

    async def ping(self):
        self._check()
        return True

    async def get(self, key):
        self._check()
        return self.store.get(key)

    async def set(self, key, value, ex=None, nx=False):
        self._check()
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def delete(self, key):
        self._check()
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def flushdb(self):
        self.store = {}
        self.unreachable = False


@pytest.fixture(scope="session")
def mock_redis():
    return MockRedis()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides(mock_redis):
    """Apply overrides once for the session."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = mock_redis

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database(mock_redis):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await mock_redis.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def auth_headers():
    """Build Bearer headers for a user of a company."""
    def _headers(role: UserRole = UserRole.ACCOUNTANT, company_id: int = COMPANY_ID, user_id: int = 1):
        token = create_access_token(data={
            "sub": f"user{user_id}@company{company_id}",
            "user_id": user_id,
            "company_id": company_id,
            "role": role.value,
        })
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def make_entry(db_session):
    """Insert a ledger entry dated `days_ago` days before `now` (NOW by default)."""
    async def _make(
        amount: float = 1000.0,
        days_ago: int = 0,
        entry_type: EntryType = EntryType.SELL,
        status: EntryStatus = EntryStatus.UNPAID,
        company_id: int = COMPANY_ID,
        customer_id: int = CUSTOMER_ID,
        now: datetime = NOW,
        **fields,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            company_id=company_id,
            customer_id=customer_id,
            entry_type=entry_type,
            status=status,
            amount=amount,
            date=now - timedelta(days=days_ago),
            **fields,
        )
        db_session.add(entry)
        await db_session.commit()
        return entry
    return _make


@pytest.fixture
def make_credit_settings(db_session):
    async def _make(
        credit_limit: float = 10000.0,
        grace_period=None,
        interest_rate=None,
        company_id: int = COMPANY_ID,
        customer_id: int = CUSTOMER_ID,
    ) -> CustomerCreditSettings:
        row = CustomerCreditSettings(
            customer_id=customer_id,
            company_id=company_id,
            credit_limit=credit_limit,
            original_credit_limit=credit_limit,
            grace_period=grace_period,
            interest_rate=interest_rate,
        )
        db_session.add(row)
        await db_session.commit()
        return row
    return _make


@pytest.fixture
def make_company_settings(db_session):
    async def _make(
        grace_period: int = 30,
        interest_rate: float = 18.0,
        company_id: int = COMPANY_ID,
        **fields,
    ) -> CompanyOverdueSettings:
        row = CompanyOverdueSettings(
            company_id=company_id,
            grace_period=grace_period,
            interest_rate=interest_rate,
            **fields,
        )
        db_session.add(row)
        await db_session.commit()
        return row
    return _make
