"""
Shared fixtures. The environment is set before anything imports app.config,
so every test runs against a private in-memory SQLite store with relays off.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["TELEGRAM_RELAYS_ENABLED"] = "false"
os.environ["SENDGRID_API_KEY"] = ""
os.environ["JWT_SECRET"] = "test-secret"

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select

from app.config import settings
from app.main import app
from app.db import init_db, drop_db, async_session_maker, User


@pytest_asyncio.fixture(autouse=True)
async def setup_database():
    """Create a fresh database for each test"""
    await init_db()
    yield
    await drop_db()


@pytest.fixture(autouse=True)
def sqlite_data_dir(tmp_path, monkeypatch):
    """SQLite projects resolve under the test's tmp_path"""
    monkeypatch.setattr(settings, "sqlite_data_dir", str(tmp_path))
    return tmp_path


@pytest_asyncio.fixture
async def db_session():
    """Get a database session"""
    async with async_session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def client():
    """Create an async test client"""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def signup_and_login(client: AsyncClient, email: str, password: str = "secret123") -> dict:
    """Sign up, verify the email and log in. Returns bearer auth headers."""
    response = await client.post(
        "/api/auth/signup",
        json={"email": email, "password": password, "fname": "Ada", "lname": "Lovelace"},
    )
    assert response.status_code == 200, response.text

    async with async_session_maker() as db:
        result = await db.execute(select(User.verification_token).where(User.email == email))
        token = result.scalar_one()

    response = await client.get("/api/auth/verify-email", params={"token": token})
    assert response.status_code == 200, response.text

    response = await client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest_asyncio.fixture
async def auth_headers(client: AsyncClient):
    """Auth headers for a verified user"""
    return await signup_and_login(client, "ada@example.com")


@pytest_asyncio.fixture
async def other_auth_headers(client: AsyncClient):
    """Auth headers for a second, unrelated user"""
    return await signup_and_login(client, "grace@example.com")


@pytest_asyncio.fixture
async def user_data_dir(client: AsyncClient, auth_headers: dict, sqlite_data_dir):
    """SQLite data directory of the auth_headers user"""
    response = await client.get("/api/auth/me", headers=auth_headers)
    path = sqlite_data_dir / response.json()["id"]
    path.mkdir()
    return path
