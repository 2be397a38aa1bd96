"""Pytest configuration and fixtures for JobFlow tests.

Each test gets its own SQLite file database (via aiosqlite) with every
table created from the models, so tests can open several independent
sessions against the same data.  Redis is replaced by an in-memory
stand-in so the cache layer is exercised without a server.
"""

import fnmatch
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Register every table on Base.metadata
import jobflow.models  # noqa: F401
from jobflow.auth.permissions import Actor
from jobflow.database import Base, get_db
from jobflow.main import app
from jobflow.models.employee import Employee, EmployeeRole
from jobflow.models.product import Product
from jobflow.schemas.job_card import JobCardCreate
from jobflow.services import job_cards
from jobflow.utils import cache


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create a throwaway SQLite database with the full schema."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'jobflow_test.db'}",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for calling services directly; tests commit explicitly."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client; every request gets its own session, committed on success."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Redis Fixtures ───────────────────────────────────────────────

class InMemoryRedis:
    """The handful of redis.asyncio.Redis calls the cache layer makes."""

    def __init__(self):
        self.store: dict[str, str] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value):
        self.store[key] = value

    async def setex(self, key, ttl, value):
        self.store[key] = value

    async def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)

    async def scan_iter(self, match="*"):
        for key in list(self.store):
            if fnmatch.fnmatch(key, match):
                yield key

    async def ping(self):
        return True


@pytest.fixture(autouse=True)
def redis_client(monkeypatch) -> InMemoryRedis:
    fake = InMemoryRedis()

    async def _get_redis():
        return fake

    monkeypatch.setattr(cache, "get_redis", _get_redis)
    return fake


# ── Test Data Fixtures ───────────────────────────────────────────

@pytest_asyncio.fixture
async def staff(db_session: AsyncSession) -> dict[EmployeeRole, Actor]:
    """One active employee per role, keyed by role."""
    actors = {}
    for role in EmployeeRole:
        employee = Employee(
            first_name=role.value.replace("_", " ").title(),
            last_name="Tester",
            email=f"{role.value.lower()}@garage.test",
            role=role,
            is_active=True,
        )
        db_session.add(employee)
        await db_session.flush()
        actors[role] = Actor(employee_id=employee.id, role=role)
    await db_session.commit()
    return actors


@pytest.fixture
def admin(staff) -> Actor:
    return staff[EmployeeRole.ADMIN]


@pytest.fixture
def advisor(staff) -> Actor:
    return staff[EmployeeRole.SERVICE_ADVISOR]


@pytest.fixture
def technician(staff) -> Actor:
    return staff[EmployeeRole.TECHNICIAN]


@pytest.fixture
def stores(staff) -> Actor:
    return staff[EmployeeRole.STORES]


@pytest.fixture
def manager(staff) -> Actor:
    return staff[EmployeeRole.MANAGER]


@pytest_asyncio.fixture
async def employee_factory(db_session: AsyncSession):
    """Create extra employees: ``await employee_factory(role, is_active=...)``."""
    created = 0

    async def _make(role: EmployeeRole = EmployeeRole.TECHNICIAN, is_active: bool = True) -> Employee:
        nonlocal created
        created += 1
        employee = Employee(
            first_name=f"Extra{created}",
            last_name="Tester",
            email=f"extra{created}@garage.test",
            role=role,
            is_active=is_active,
        )
        db_session.add(employee)
        await db_session.commit()
        return employee

    return _make


@pytest_asyncio.fixture
async def product(db_session: AsyncSession) -> Product:
    product = Product(
        code="BRK-PAD-01",
        name="Front brake pads",
        unit_of_measure="SET",
        unit_cost=Decimal("120.50"),
        selling_price=Decimal("185.00"),
        stock_quantity=20,
    )
    db_session.add(product)
    await db_session.commit()
    return product


@pytest_asyncio.fixture
async def job_card(db_session: AsyncSession, advisor: Actor, technician: Actor):
    """An OPEN job card with the default technician on its roster."""
    card = await job_cards.create_job_card(
        db_session,
        advisor,
        JobCardCreate(
            name="Brake service",
            client_id="client-001",
            vehicle_id="vehicle-001",
            technician_ids=[technician.employee_id],
        ),
    )
    await db_session.commit()
    return card


@pytest.fixture
def auth_headers():
    """Caller identity headers: ``auth_headers(actor)``."""

    def _for(actor: Actor) -> dict:
        return {"X-Employee-Id": actor.employee_id}

    return _for


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
    config.addinivalue_line("markers", "cache: Redis cache tests")
