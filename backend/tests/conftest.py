from datetime import datetime, timedelta, timezone
from pathlib import Path
import os
import tempfile

import pytest

# Point the app at a throwaway database and upload dir before it is imported
_TMP = Path(tempfile.mkdtemp(prefix="auctionhub-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ["UPLOAD_DIR"] = str(_TMP / "uploads")
os.environ["RESEND_API_KEY"] = ""
os.environ["REDIS_URL"] = ""
os.environ["ENV"] = "dev"

from fastapi.testclient import TestClient  # noqa: E402

from auctionhub import main  # noqa: E402
from auctionhub.config import settings  # noqa: E402
from auctionhub.database import create_db_and_tables, drop_db_and_tables  # noqa: E402
from auctionhub.utils.rate_limit import InMemoryRateLimiter  # noqa: E402

PASSWORD = "Password123"


@pytest.fixture(autouse=True)
def reset_db(monkeypatch):
    """Ensure fresh tables and a fresh auth rate limiter for every test."""
    drop_db_and_tables()
    create_db_and_tables()
    monkeypatch.setattr(main, "_auth_rate_limiter", InMemoryRateLimiter())
    monkeypatch.setattr(settings, "AUTH_RATE_LIMIT_MAX", 100)
    yield


@pytest.fixture
def client():
    with TestClient(main.app) as c:
        yield c


def signup(client, name="Test User", email="test@example.com", password=PASSWORD):
    r = client.post("/api/auth/signup", json={"name": name, "email": email, "password": password})
    assert r.status_code == 201, r.text
    return r.json()["data"]


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def end_date(days: float = 2) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def create_item(client, token, **overrides):
    payload = {
        "name": "Desk Lamp",
        "description": "Adjustable LED desk lamp, barely used.",
        "startingPrice": 10,
        "category": "Home",
        "auctionEndDate": end_date(),
    }
    payload.update(overrides)
    r = client.post("/api/items", json=payload, headers=auth_headers(token))
    assert r.status_code == 201, r.text
    return r.json()["data"]["item"]


@pytest.fixture
def seller(client):
    return signup(client, name="Sally Seller", email="seller@example.com")


@pytest.fixture
def bidder(client):
    return signup(client, name="Bob Bidder", email="bidder@example.com")


@pytest.fixture
def other_bidder(client):
    return signup(client, name="Olive Other", email="other@example.com")
