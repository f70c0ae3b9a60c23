"""
Test configuration and fixtures
"""

import os

# Set test environment variables BEFORE importing app modules
os.environ["RECURRING_EXPENSES_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from retailhub.core.deps import get_db
from retailhub.db.base import Base
from retailhub.db.session import enable_sqlite_foreign_keys
from retailhub.main import app
import retailhub.models  # noqa: F401

# In-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def session_factory():
    """Fresh in-memory database per test"""
    engine = create_async_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )
    yield factory
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    """Async test client with database dependency override"""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def auth_headers(org_id: int, member_id: int) -> dict:
    return {"X-Organization-Id": str(org_id), "X-Member-Id": str(member_id)}


async def create_org(client: AsyncClient, name: str = "Acme Retail", email: str = "owner@example.com") -> dict:
    """Create an organization and return ids plus owner headers"""
    response = await client.post(
        "/api/v1/organizations/",
        json={"name": name, "owner_name": "Olive Owner", "owner_email": email},
    )
    assert response.status_code == 200, response.text
    data = response.json()
    org_id = data["organization"]["id"]
    owner_id = data["owner_member_id"]
    return {"org_id": org_id, "owner_id": owner_id, "headers": auth_headers(org_id, owner_id)}


async def add_member(client: AsyncClient, org: dict, email: str, role: str, name: str = "Member") -> dict:
    """Add a member as the owner and return its id and headers"""
    response = await client.post(
        "/api/v1/members/",
        json={"email": email, "name": name, "role": role},
        headers=org["headers"],
    )
    assert response.status_code == 200, response.text
    member_id = response.json()["id"]
    return {"id": member_id, "headers": auth_headers(org["org_id"], member_id)}


@pytest.fixture
async def org(client):
    return await create_org(client)


@pytest.fixture
async def shop(client, org):
    """Default retail location"""
    response = await client.post(
        "/api/v1/locations/",
        json={"name": "Main Shop", "location_type": "retail_shop", "is_default": True},
        headers=org["headers"],
    )
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
async def product(client, org):
    """Product with base price 100 and reorder point 2"""
    response = await client.post(
        "/api/v1/products/",
        json={"name": "Coffee Beans", "sku": "COF-001", "base_price": "100.00", "reorder_point": 2},
        headers=org["headers"],
    )
    assert response.status_code == 200, response.text
    return response.json()
