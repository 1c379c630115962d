"""Async test fixtures for bridge tests using SQLite."""

from __future__ import annotations

from contextlib import asynccontextmanager
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ghl_bridge.api.client import ApiResponse
from ghl_bridge.config import settings
from ghl_bridge.database import create_tables, get_db
from ghl_bridge.models import (
    DashboardUser,
    Location,
    ManagerTeamAssignment,
    Tenant,
    UserLocationAssignment,
)
from ghl_bridge.security.sessions import issue_session_token

LOCATION_ID = "loc_main"


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(settings, "auth_secret", "test-secret")
    monkeypatch.setattr(settings, "webhook_secret", None)
    monkeypatch.setattr(settings, "security_fail_closed", False)
    monkeypatch.setattr(settings, "cron_secret", None)
    monkeypatch.setattr(settings, "environment", "development")


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def db(engine):
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(engine):
    """HTTPX async test client against the bridge app."""
    from ghl_bridge.app import app

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def tenant(db: AsyncSession):
    t = Tenant(name="Acme Roofing", slug="acme-roofing")
    db.add(t)
    await db.commit()
    await db.refresh(t)
    return t


@pytest_asyncio.fixture
async def location(db: AsyncSession, tenant: Tenant):
    loc = Location(id=LOCATION_ID, tenant_id=tenant.id, name="Main Office", timezone="UTC")
    db.add(loc)
    await db.commit()
    await db.refresh(loc)
    return loc


async def _make_user(db: AsyncSession, tenant: Tenant, role: str, ghl_user_id: str) -> DashboardUser:
    user = DashboardUser(
        tenant_id=tenant.id,
        email=f"{role}@example.com",
        full_name=role.title(),
        role=role,
        ghl_user_id=ghl_user_id,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def admin_user(db: AsyncSession, tenant: Tenant, location: Location):
    return await _make_user(db, tenant, "admin", "ghl_admin")


@pytest_asyncio.fixture
async def manager_user(db: AsyncSession, tenant: Tenant, location: Location):
    user = await _make_user(db, tenant, "manager", "ghl_manager")
    db.add(UserLocationAssignment(user_id=user.id, location_id=location.id))
    await db.commit()
    return user


@pytest_asyncio.fixture
async def agent_user(db: AsyncSession, tenant: Tenant, location: Location, manager_user: DashboardUser):
    user = await _make_user(db, tenant, "agent", "ghl_agent")
    db.add(UserLocationAssignment(user_id=user.id, location_id=location.id))
    db.add(ManagerTeamAssignment(manager_id=manager_user.id, agent_id=user.id))
    await db.commit()
    return user


@pytest.fixture
def auth_headers():
    """Build a bearer session header for a dashboard user."""

    def _headers(user: DashboardUser) -> dict[str, str]:
        token = issue_session_token(user.id, user.tenant_id, user.role)
        return {"Authorization": f"Bearer {token}"}

    return _headers


def ok(data) -> ApiResponse:
    return ApiResponse(data=data, status=200)


class FakeGHL:
    """Stand-in for an entered GHLApiClient; every resource call is an AsyncMock."""

    def __init__(self):
        empty_page = {"meta": {"total": 0}}
        self.contacts = SimpleNamespace(list=AsyncMock(return_value=ok({"contacts": [], **empty_page})))
        self.opportunities = SimpleNamespace(
            search=AsyncMock(return_value=ok({"opportunities": [], **empty_page})),
            pipelines=AsyncMock(return_value=ok({"pipelines": []})),
        )
        self.calendars = SimpleNamespace(
            list=AsyncMock(return_value=ok({"calendars": []})),
            events=AsyncMock(return_value=ok({"events": []})),
        )
        self.invoices = SimpleNamespace(list=AsyncMock(return_value=ok({"invoices": [], "total": 0})))
        self.locations = SimpleNamespace(
            get=AsyncMock(return_value=ok({"location": {"id": LOCATION_ID, "name": "Main Office"}})),
            users=AsyncMock(return_value=ok({"users": []})),
            products=AsyncMock(return_value=ok({"products": []})),
            workflows=AsyncMock(return_value=ok({"workflows": []})),
        )
        self.opened: list[tuple] = []


@pytest.fixture
def fake_ghl():
    return FakeGHL()


@pytest.fixture
def client_factory(fake_ghl: FakeGHL):
    @asynccontextmanager
    async def factory(tenant_id, location_id):
        fake_ghl.opened.append((tenant_id, location_id))
        yield fake_ghl

    return factory
