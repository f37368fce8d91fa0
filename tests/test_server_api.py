"""Tests for the REST backend routes."""

import pytest
from fastapi.testclient import TestClient

from todo_sync.server import auth as auth_module
from todo_sync.server.app import create_app
from todo_sync.server.auth import reset_auth_service
from todo_sync.server.database import reset_db
from todo_sync.server.settings import Settings, configure_settings, reset_settings


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Test client backed by a throwaway database."""
    monkeypatch.setattr(auth_module, "BCRYPT_ROUNDS", 4)
    configure_settings(Settings(database_path=tmp_path / "server.db",
                                jwt_secret="api-test-secret-0123456789abcdef012345"))
    reset_db()
    reset_auth_service()

    with TestClient(create_app()) as test_client:
        yield test_client

    reset_auth_service()
    reset_db()
    reset_settings()


def register(client, email="user@example.com", password="password123", name="Test User"):
    response = client.post("/api/v1/auth/register",
                           json={"email": email, "password": password, "name": name})
    assert response.status_code == 201
    return response.json()["data"]


def auth_headers(tokens):
    return {"Authorization": f"Bearer {tokens['access_token']}"}


class TestHealth:
    """Health endpoints."""

    def test_health_endpoints(self, client):
        for path in ("/health", "/api/v1/health"):
            response = client.get(path)
            assert response.status_code == 200
            assert response.json()["status"] == "healthy"


class TestEmailAuth:
    """Registration, login, refresh and profile."""

    def test_register_returns_tokens_and_user(self, client):
        data = register(client)

        assert data["token_type"] == "Bearer"
        assert data["user"]["email"] == "user@example.com"
        assert "password_hash" not in data["user"]

    def test_duplicate_registration_conflicts(self, client):
        register(client)
        response = client.post("/api/v1/auth/register", json={
            "email": "user@example.com", "password": "password123", "name": "Again",
        })

        assert response.status_code == 409
        assert response.json()["success"] is False

    def test_short_password_fails_validation(self, client):
        response = client.post("/api/v1/auth/register", json={
            "email": "user@example.com", "password": "short", "name": "Test",
        })

        body = response.json()
        assert response.status_code == 422
        assert body["success"] is False
        assert body["message"] == "Validation failed"
        assert "password" in body["error"]

    def test_login(self, client):
        register(client)

        ok = client.post("/api/v1/auth/login",
                         json={"email": "user@example.com", "password": "password123"})
        bad = client.post("/api/v1/auth/login",
                          json={"email": "user@example.com", "password": "wrong-password"})

        assert ok.status_code == 200
        assert ok.json()["data"]["access_token"]
        assert bad.status_code == 401

    def test_refresh_issues_new_access_token(self, client):
        tokens = register(client)

        response = client.post("/api/v1/auth/token/refresh",
                               json={"refresh_token": tokens["refresh_token"]})
        rejected = client.post("/api/v1/auth/token/refresh",
                               json={"refresh_token": tokens["access_token"]})

        assert response.status_code == 200
        assert response.json()["data"]["access_token"]
        assert rejected.status_code == 401

    def test_profile_requires_token(self, client):
        tokens = register(client)

        assert client.get("/api/v1/auth/user/profile").status_code == 401
        response = client.get("/api/v1/auth/user/profile", headers=auth_headers(tokens))
        assert response.json()["data"]["name"] == "Test User"

    def test_invalid_token_rejected(self, client):
        response = client.get("/api/v1/todos", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401


class TestAppleAuth:
    """Sign in with Apple entry points."""

    def test_login_url_contains_state(self, client):
        response = client.get("/api/v1/auth/apple/login")

        data = response.json()["data"]
        assert response.status_code == 200
        assert data["login_url"].startswith("https://appleid.apple.com/auth/authorize")
        assert f"state={data['state']}" in data["login_url"]

    def test_callback_with_unknown_state_is_rejected(self, client):
        response = client.post("/api/v1/auth/apple/callback",
                               json={"code": "abc", "state": "forged"})

        assert response.status_code == 401
        assert "state" in response.json()["message"]

    def test_callback_without_apple_config_is_rejected(self, client):
        state = client.get("/api/v1/auth/apple/login").json()["data"]["state"]

        response = client.get("/api/v1/auth/apple/callback",
                              params={"code": "abc", "state": state})

        assert response.status_code == 401
        assert "not configured" in response.json()["message"]


class TestTodoRoutes:
    """Todo CRUD with ownership and pagination."""

    def test_crud_cycle(self, client):
        headers = auth_headers(register(client))

        created = client.post("/api/v1/todos", headers=headers,
                              json={"title": "Buy milk", "priority": "high"})
        assert created.status_code == 201
        todo = created.json()["data"]
        assert todo["priority"] == "high"
        assert todo["is_completed"] is False

        updated = client.put(f"/api/v1/todos/{todo['id']}", headers=headers,
                             json={"is_completed": True})
        assert updated.json()["data"]["is_completed"] is True
        assert updated.json()["data"]["title"] == "Buy milk"
        assert updated.json()["data"]["updated_at"] >= todo["updated_at"]

        fetched = client.get(f"/api/v1/todos/{todo['id']}", headers=headers)
        assert fetched.json()["data"]["is_completed"] is True

        deleted = client.delete(f"/api/v1/todos/{todo['id']}", headers=headers)
        assert deleted.status_code == 200
        assert client.get(f"/api/v1/todos/{todo['id']}", headers=headers).status_code == 404

    def test_due_date_can_be_cleared(self, client):
        headers = auth_headers(register(client))
        todo = client.post("/api/v1/todos", headers=headers, json={
            "title": "dated", "due_date": "2030-01-01T09:00:00Z",
        }).json()["data"]
        assert todo["due_date"].startswith("2030-01-01T09:00:00")

        cleared = client.put(f"/api/v1/todos/{todo['id']}", headers=headers,
                             json={"due_date": None}).json()["data"]

        assert cleared["due_date"] is None

    def test_pagination_and_filter(self, client):
        headers = auth_headers(register(client))
        for i in range(5):
            client.post("/api/v1/todos", headers=headers, json={"title": f"todo {i}"})
        first_id = client.get("/api/v1/todos", headers=headers).json()["data"][0]["id"]
        client.put(f"/api/v1/todos/{first_id}", headers=headers, json={"is_completed": True})

        page = client.get("/api/v1/todos", headers=headers, params={"page": 2, "limit": 2}).json()
        done = client.get("/api/v1/todos", headers=headers, params={"completed": "true"}).json()

        assert len(page["data"]) == 2
        assert page["pagination"]["total"] == 5
        assert page["pagination"]["total_pages"] == 3
        assert page["pagination"]["has_next"] is True
        assert page["pagination"]["has_prev"] is True
        assert [todo["id"] for todo in done["data"]] == [first_id]

    def test_other_users_todo_is_forbidden(self, client):
        owner = auth_headers(register(client, email="owner@example.com"))
        intruder = auth_headers(register(client, email="intruder@example.com"))
        todo_id = client.post("/api/v1/todos", headers=owner,
                              json={"title": "private"}).json()["data"]["id"]

        assert client.get(f"/api/v1/todos/{todo_id}", headers=intruder).status_code == 403
        assert client.delete(f"/api/v1/todos/{todo_id}", headers=intruder).status_code == 403
        assert client.get("/api/v1/todos", headers=intruder).json()["data"] == []

    def test_missing_todo_is_not_found(self, client):
        headers = auth_headers(register(client))
        response = client.put("/api/v1/todos/missing", headers=headers, json={"title": "x"})

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Todo not found",
                                   "error": "Todo not found"}

    def test_empty_title_rejected(self, client):
        headers = auth_headers(register(client))
        response = client.post("/api/v1/todos", headers=headers, json={"title": ""})
        assert response.status_code == 422
