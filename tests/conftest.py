import asyncio
import os
import tempfile

os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["MONGO_TRANSACTIONS"] = "0"
os.environ["LOG_DIR"] = ""
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="uploads-")

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

import database
import ratelimit
import realtime
from main import app


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def db():
    mock_db = AsyncMongoMockClient()["community_connect_test"]
    database.set_db(mock_db)
    run(database.ensure_indexes())
    yield mock_db
    database.set_db(None)


@pytest.fixture(autouse=True)
def emits(monkeypatch):
    mock = AsyncMock()
    monkeypatch.setattr(realtime.sio, "emit", mock)
    return mock


@pytest.fixture(autouse=True)
def reset_rate_limits():
    ratelimit.reset()
    yield
    ratelimit.reset()


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def make_user(client):
    """Register a user and return ``{id, token, headers, name, email}``."""

    def _make(name="Alice", email=None, password="secret123"):
        email = email or f"{name.lower()}@example.com"
        res = client.post("/api/v1/auth/register", json={"name": name, "email": email, "password": password})
        assert res.status_code == 201, res.text
        body = res.json()
        token = body["access_token"]
        return {
            "id": body["user"]["id"],
            "token": token,
            "headers": {"Authorization": f"Bearer {token}"},
            "name": name,
            "email": email,
        }

    return _make


def emitted(emits, event, room=None):
    """Payloads of ``event`` emitted so far, optionally filtered by room."""
    return [
        c.args[1]
        for c in emits.call_args_list
        if c.args and c.args[0] == event and (room is None or c.kwargs.get("room") == room)
    ]
