"""Pytest configuration and fixtures for API tests."""
import os
import tempfile

# Set test env BEFORE any imports that use config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["INITIAL_ADMIN_PASSWORD"] = "testpass123"
os.environ["INITIAL_ADMIN_USERNAME"] = "admin"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="gamerun-uploads-")
os.environ["WHATSAPP_API_URL"] = ""

import pytest
from httpx import ASGITransport, AsyncClient

from gamerun.models.base import drop_db, init_db
from web.api.main import app


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
async def _init_db():
    """Fresh tables for each test (ASGI lifespan doesn't run with httpx)."""
    await drop_db()
    await init_db()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
async def client():
    """Async HTTP client for testing the API."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def auth_headers(client):
    """Login as admin and return Authorization headers for protected endpoints."""
    r = await client.post(
        "/api/auth/login",
        json={"username": "admin", "password": "testpass123"},
    )
    assert r.status_code == 200, f"Login failed: {r.text}"
    token = r.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def make_member(client, auth_headers):
    """Factory: create an approved member through the admin API, log in, return (headers, profile_id)."""

    async def _make(username: str, name: str | None = None):
        r = await client.post(
            "/api/auth/users",
            json={"username": username, "password": "secret123", "name": name or username.title()},
            headers=auth_headers,
        )
        assert r.status_code == 200, r.text
        profile_id = r.json()["profile_id"]
        r = await client.post("/api/auth/login", json={"username": username, "password": "secret123"})
        assert r.status_code == 200, r.text
        return {"Authorization": f"Bearer {r.json()['access_token']}"}, profile_id

    return _make


@pytest.fixture
async def game(client, auth_headers):
    """A game with team_size 4."""
    r = await client.post(
        "/api/games",
        json={"title": "GameRun 2024", "team_size": 4, "short_description": "Etapa 1"},
        headers=auth_headers,
    )
    assert r.status_code == 200, r.text
    return r.json()
