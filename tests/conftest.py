import os

import httpx
import mongomock
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

os.environ.setdefault("JWT_SECRET", "test-secret")

import database
import uploads
from auth import create_access_token, hash_password
from client import PortfolioClient
from main import app

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "s3cret-pass"


@pytest.fixture(autouse=True)
def mongo(monkeypatch):
    """A fresh in-memory MongoDB per test."""
    db = mongomock.MongoClient().devarchive_test
    monkeypatch.setattr(database, "db", db)
    return db


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    path = tmp_path / "uploads"
    monkeypatch.setattr(uploads, "UPLOAD_DIR", str(path))
    return path


@pytest.fixture
def admin(mongo):
    user_id = mongo["user"].insert_one(
        {"name": "Admin", "email": ADMIN_EMAIL, "password": hash_password(ADMIN_PASSWORD)}
    ).inserted_id
    return {
        "id": str(user_id),
        "email": ADMIN_EMAIL,
        "password": ADMIN_PASSWORD,
        "token": create_access_token({"id": str(user_id)}),
    }


@pytest.fixture
def api():
    return TestClient(app)


@pytest.fixture
def auth_headers(admin):
    return {"Authorization": f"Bearer {admin['token']}"}


@pytest_asyncio.fixture
async def portfolio(admin):
    """PortfolioClient talking to the real app in-process."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield PortfolioClient(http=http, token=admin["token"])


@pytest.fixture
def mock_client():
    """Factory for a PortfolioClient over an httpx.MockTransport handler."""
    def make(handler, token="token"):
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test")
        return PortfolioClient(http=http, token=token)
    return make
