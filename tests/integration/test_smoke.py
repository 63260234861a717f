import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["checks"]["db"] == "ok"
    assert "version" in data


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


@pytest.mark.asyncio
async def test_api_requires_token(client: AsyncClient):
    response = await client.get("/api/customers")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_TOKEN_INVALID"


@pytest.mark.asyncio
async def test_garbage_token_rejected(client: AsyncClient):
    response = await client.get("/api/orders", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_login_flow(client: AsyncClient):
    response = await client.post("/api/auth/login", json={"username": "admin", "password": "admin123"})
    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "Bearer"
    assert data["user"]["role"] == "admin"

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
    assert me.status_code == 200
    assert me.json()["username"] == "admin"


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient):
    response = await client.post("/api/auth/login", json={"username": "admin", "password": "nope"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_INVALID_CREDENTIALS"


@pytest.mark.asyncio
async def test_change_password(client: AsyncClient, auth_headers):
    response = await client.post(
        "/api/auth/change-password",
        json={"current_password": "admin123", "new_password": "s3cure-pass"},
        headers=auth_headers,
    )
    assert response.status_code == 204

    old = await client.post("/api/auth/login", json={"username": "admin", "password": "admin123"})
    assert old.status_code == 401
    new = await client.post("/api/auth/login", json={"username": "admin", "password": "s3cure-pass"})
    assert new.status_code == 200


@pytest.mark.asyncio
async def test_user_admin(client: AsyncClient, auth_headers):
    created = await client.post(
        "/api/users",
        json={"username": "clerk", "password": "clerk-pass-1", "display_name": "Clerk"},
        headers=auth_headers,
    )
    assert created.status_code == 201
    clerk = created.json()
    assert clerk["role"] == "user"

    dup = await client.post(
        "/api/users",
        json={"username": "clerk", "password": "another-pass"},
        headers=auth_headers,
    )
    assert dup.status_code == 409
    assert dup.json() == {"error": {"code": "CONFLICT", "message": "Username already exists"}}

    login = await client.post("/api/auth/login", json={"username": "clerk", "password": "clerk-pass-1"})
    clerk_headers = {"Authorization": f"Bearer {login.json()['token']}"}
    forbidden = await client.get("/api/users", headers=clerk_headers)
    assert forbidden.status_code == 403
    assert forbidden.json()["error"]["code"] == "INSUFFICIENT_PERMISSIONS"

    me = await client.get("/api/auth/me", headers=auth_headers)
    self_delete = await client.delete(f"/api/users/{me.json()['id']}", headers=auth_headers)
    assert self_delete.status_code == 400

    deleted = await client.delete(f"/api/users/{clerk['id']}", headers=auth_headers)
    assert deleted.status_code == 200
    users = await client.get("/api/users", headers=auth_headers)
    assert [u["username"] for u in users.json()] == ["admin"]
