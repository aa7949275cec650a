"""Pytest fixtures for timebill engine tests."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from timebill_engine.api.app import create_app
from timebill_engine.api.dependencies import get_app_settings, get_clock, get_db_session
from timebill_engine.clock import DeterministicClock
from timebill_engine.config import Settings
from timebill_engine.database import create_schema, get_engine, make_session_factory
from timebill_engine.models import Client, Employee, Project

# In-memory SQLite shared through a single connection
TEST_DATABASE_URL = "sqlite+aiosqlite://"

# Monday 5 January 2026, 09:00 UTC
START_TIME = datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
async def engine():
    """Create a fresh test database per test."""
    engine = get_engine(TEST_DATABASE_URL)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(START_TIME)


@pytest.fixture
def settings() -> Settings:
    """Settings with predictable money and timer limits."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        host="127.0.0.1",
        port=8000,
        debug=False,
        stale_timer_hours=12,
        timer_conflict_policy="reject",
        invoice_tax_rate=Decimal("0.10"),
        invoice_due_days=7,
        invoice_prefix="INV-",
        default_billing_rate=Decimal("50"),
    )


@pytest.fixture
async def test_client(session: AsyncSession) -> Client:
    """Create a billed customer."""
    client = Client(name="Acme Corp", email="billing@acme.test")
    session.add(client)
    await session.commit()
    return client


@pytest.fixture
async def test_project(session: AsyncSession, test_client: Client) -> Project:
    """Project with a 10 hour estimate billed at 100/h."""
    project = Project(
        name="Website Redesign",
        client_id=test_client.id,
        estimated_hours=Decimal("10"),
        global_rate=Decimal("100"),
        currency="USD",
    )
    session.add(project)
    await session.commit()
    return project


@pytest.fixture
async def unbudgeted_project(session: AsyncSession, test_client: Client) -> Project:
    """Project without an estimate; never triggers the overrun automator."""
    project = Project(name="Internal Tools", client_id=test_client.id, global_rate=Decimal("80"))
    session.add(project)
    await session.commit()
    return project


@pytest.fixture
async def test_employees(session: AsyncSession) -> dict[str, Employee]:
    """Create employees covering the payroll eligibility rules."""
    employees = {
        "alice": Employee(
            name="Alice Smith",
            email="alice@acme.test",
            role="EMPLOYEE",
            status="active",
            department="Engineering",
            designation="Developer",
            hourly_cost_rate=Decimal("120.00"),
            joining_date=date(2024, 3, 1),
        ),
        "bob": Employee(
            name="Bob Jones",
            email="bob@acme.test",
            role="EMPLOYEE",
            status="active",
            hourly_cost_rate=Decimal("0"),
        ),
        "carol": Employee(
            name="Carol White",
            role="EMPLOYEE",
            status="active",
            hourly_cost_rate=Decimal("90.00"),
        ),
        "manager": Employee(
            name="Dana Manager",
            role="MANAGER",
            status="active",
            hourly_cost_rate=Decimal("150.00"),
        ),
        "former": Employee(
            name="Evan Former",
            role="EMPLOYEE",
            status="inactive",
            hourly_cost_rate=Decimal("60.00"),
        ),
    }
    session.add_all(employees.values())
    await session.commit()
    return employees


@pytest.fixture
async def api_client(
    session_factory: async_sessionmaker[AsyncSession],
    clock: DeterministicClock,
    settings: Settings,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the test database, clock and settings."""
    app = create_app()

    async def override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as db:
            yield db

    app.dependency_overrides[get_db_session] = override_session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_app_settings] = lambda: settings

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
