"""Pytest configuration and fixtures for httpauth tests."""
import os
import tempfile

# Set test env BEFORE any imports that use config
_tmpdir = tempfile.mkdtemp(prefix="httpauth-tests-")
os.environ["AUTH_BACKEND"] = "file"
os.environ["AUTH_FILE"] = os.path.join(_tmpdir, "auth.json")
os.environ["AUTH_SECRET_KEY"] = "test-secret-key"
os.environ["AUTH_ROLES"] = "user:40,admin:80"
os.environ["AUTH_DEFAULT_ROLE"] = "user"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["INITIAL_ADMIN_USERNAME"] = "admin"
os.environ["INITIAL_ADMIN_PASSWORD"] = "testpass123"

import pytest
from httpx import ASGITransport, AsyncClient

from helpers import ROLES, SECRET, Browser
from httpauth import Authorizer, FileUserStore, PasswordHasher, SessionJar
from web.api.main import app


@pytest.fixture
def browser():
    return Browser()


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)


@pytest.fixture
async def store(tmp_path):
    """A fresh file-backed user store."""
    path = tmp_path / "users.json"
    path.touch()
    store = FileUserStore(path)
    await store.open()
    yield store
    await store.close()


@pytest.fixture
def authorizer(store, hasher):
    return Authorizer(store, SECRET, "user", ROLES, hasher=hasher, jar=SessionJar(SECRET))


@pytest.fixture
async def client():
    """Async HTTP client for testing the example server."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def admin_client(client):
    """Client logged in as the bootstrap admin."""
    r = await client.post(
        "/login",
        json={"username": "admin", "password": "testpass123"},
    )
    assert r.status_code == 303, f"Login failed: {r.text}"
    assert r.headers["location"] == "/"
    return client
