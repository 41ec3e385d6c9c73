from fastapi.testclient import TestClient

from main import app
from routers import auth


def test_register_returns_token_and_sets_refresh_cookie(client):
    res = client.post("/api/v1/auth/register", json={"name": "Alice", "email": "Alice@Example.com", "password": "secret123"})
    assert res.status_code == 201
    body = res.json()
    assert body["token_type"] == "bearer"
    assert body["access_token"]
    assert body["user"]["email"] == "alice@example.com"
    assert body["user"]["trust_score"] == 5.0
    assert "password" not in body["user"]
    assert "refreshToken" in res.cookies


def test_register_duplicate_email(client, make_user):
    make_user("Alice")
    res = client.post("/api/v1/auth/register", json={"name": "Other", "email": "alice@example.com", "password": "secret123"})
    assert res.status_code == 400


def test_register_rejects_short_password(client):
    res = client.post("/api/v1/auth/register", json={"name": "Bob", "email": "bob@example.com", "password": "123"})
    assert res.status_code == 422


def test_login(client, make_user):
    make_user("Alice")
    res = client.post("/api/v1/auth/login", json={"email": "alice@example.com", "password": "secret123"})
    assert res.status_code == 200
    assert res.json()["user"]["name"] == "Alice"

    res = client.post("/api/v1/auth/login", json={"email": "alice@example.com", "password": "wrong"})
    assert res.status_code == 401


def test_me_requires_token(client, make_user):
    alice = make_user("Alice")
    assert client.get("/api/v1/auth/me").status_code == 401
    assert client.get("/api/v1/auth/me", headers={"Authorization": "Bearer junk"}).status_code == 401
    res = client.get("/api/v1/auth/me", headers=alice["headers"])
    assert res.status_code == 200
    assert res.json()["id"] == alice["id"]


def test_refresh_token_uses_cookie(client, make_user):
    alice = make_user("Alice")
    res = client.post("/api/v1/auth/refresh-token")
    assert res.status_code == 200
    token = res.json()["access_token"]
    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["id"] == alice["id"]


def test_refresh_token_without_cookie(db):
    res = TestClient(app).post("/api/v1/auth/refresh-token")
    assert res.status_code == 403


def test_access_token_is_not_a_refresh_token(db, make_user):
    alice = make_user("Alice")
    fresh = TestClient(app)
    fresh.cookies.set("refreshToken", alice["token"])
    assert fresh.post("/api/v1/auth/refresh-token").status_code == 403


def test_update_profile(client, make_user):
    alice = make_user("Alice")
    make_user("Bob")
    res = client.put("/api/v1/auth/profile", json={"name": "Alicia", "avatar": "a.png"}, headers=alice["headers"])
    assert res.status_code == 200
    assert res.json()["name"] == "Alicia"

    res = client.put("/api/v1/auth/profile", json={"email": "bob@example.com"}, headers=alice["headers"])
    assert res.status_code == 400

    client.put("/api/v1/auth/profile", json={"password": "newsecret"}, headers=alice["headers"])
    res = client.post("/api/v1/auth/login", json={"email": "alice@example.com", "password": "newsecret"})
    assert res.status_code == 200


def test_logout_clears_cookie(client, make_user):
    make_user("Alice")
    res = client.post("/api/v1/auth/logout")
    assert res.status_code == 200
    assert client.post("/api/v1/auth/refresh-token").status_code == 403


def test_legacy_prefix_serves_same_routes(client, make_user):
    make_user("Alice")
    res = client.post("/auth/login", json={"email": "alice@example.com", "password": "secret123"})
    assert res.status_code == 200


def test_auth_routes_are_rate_limited(client, make_user, monkeypatch):
    make_user("Alice")
    monkeypatch.setattr(auth.auth_limiter, "limit", 2)
    payload = {"email": "alice@example.com", "password": "secret123"}
    # registration above already used one slot
    assert client.post("/api/v1/auth/login", json=payload).status_code == 200
    res = client.post("/api/v1/auth/login", json=payload)
    assert res.status_code == 429
    assert int(res.headers["Retry-After"]) >= 1
