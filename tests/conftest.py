"""
Shared pytest fixtures for the PublicCare test suite.

Provides an in-process httpx AsyncClient over an in-memory mongomock database,
seeded departments, one user per role and pre-authenticated headers for each.
"""

import os
import uuid
from datetime import datetime, timezone

os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-long-enough-for-hs256")

import mongomock
import pytest
import pytest_asyncio
import httpx

from publiccare import database
from publiccare.app import app, limiter
from publiccare.auth import create_access_token, pwd_context
from publiccare.departments import create_department
from publiccare.models import DepartmentCreate
from publiccare.notifications import hub
from publiccare.seed.departments import DEPARTMENTS

PASSWORD = "password123"


@pytest.fixture(scope="session")
def password_hash():
    """bcrypt is slow, so hash the shared test password once."""
    return pwd_context.hash(PASSWORD)


@pytest.fixture
def db(monkeypatch):
    """Fresh in-memory database wired into the API's database module."""
    mock_db = mongomock.MongoClient()["publiccare_test"]
    monkeypatch.setattr(database, "db", mock_db)
    return mock_db


@pytest_asyncio.fixture
async def client(db):
    # Disable rate limiting so repeated logins aren't throttled
    limiter.enabled = False
    hub.rooms.clear()
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    hub.rooms.clear()


def make_user(db, password_hash, username, role, is_active=True):
    doc = {
        "_id": str(uuid.uuid4()), "username": username, "hashed_password": password_hash,
        "full_name": username.replace(".", " ").title(), "email": f"{username}@example.com",
        "phone": None, "role": role, "is_active": is_active, "department": None,
        "created_at": datetime.now(timezone.utc),
    }
    db.users.insert_one(doc)
    return doc


@pytest.fixture
def users(db, password_hash):
    return {
        "citizen": make_user(db, password_hash, "citizen1", "citizen"),
        "other_citizen": make_user(db, password_hash, "citizen2", "citizen"),
        "provider": make_user(db, password_hash, "provider1", "provider"),
        "other_provider": make_user(db, password_hash, "provider2", "provider"),
        "admin": make_user(db, password_hash, "admin", "admin"),
    }


def auth_headers(user: dict) -> dict:
    token = create_access_token({"sub": user["username"], "role": user["role"]})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def citizen_headers(users):
    return auth_headers(users["citizen"])


@pytest.fixture
def other_citizen_headers(users):
    return auth_headers(users["other_citizen"])


@pytest.fixture
def provider_headers(users):
    return auth_headers(users["provider"])


@pytest.fixture
def other_provider_headers(users):
    return auth_headers(users["other_provider"])


@pytest.fixture
def admin_headers(users):
    return auth_headers(users["admin"])


@pytest.fixture
def departments(db):
    """The seeded departments keyed by first category: roads, water, electricity."""
    created = [create_department(db, DepartmentCreate(**raw)) for raw in DEPARTMENTS]
    return {d["categories"][0]: d for d in created}


class FakeSocket:
    """Stands in for a WebSocket subscriber; records every frame it is sent."""

    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_json(self, data):
        if self.fail:
            raise ConnectionError("socket closed")
        self.sent.append(data)

    def events(self):
        return [m["event"] for m in self.sent]


@pytest.fixture
def fake_socket():
    return FakeSocket


def complaint_body(category="roads", **overrides):
    body = {
        "title": "Pothole on Main Street",
        "description": "Large pothole causing damage to vehicles",
        "category": category,
        "priority": "medium",
        "location": {"latitude": 40.7128, "longitude": -74.0060,
                     "address": "123 Main Street", "city": "New York"},
    }
    body.update(overrides)
    return body
