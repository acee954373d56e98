"""Tests for security features."""

import pytest
from httpx import AsyncClient

from tracker.core.security import create_access_token, create_refresh_token
from tracker.models.user import User
from tests.conftest import auth_header


@pytest.mark.asyncio
async def test_cors_preflight(client: AsyncClient):
    """Test CORS preflight request handling."""
    response = await client.options(
        "/api/auth/login",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "POST",
        },
    )
    # Should not fail
    assert response.status_code in [200, 405]


@pytest.mark.asyncio
async def test_request_id_header(client: AsyncClient):
    """Test that X-Request-ID is returned in responses."""
    response = await client.get("/api/auth/me")
    # Even on error, should have request ID
    assert "x-request-id" in response.headers
    assert response.json()["error"]["request_id"] == response.headers["x-request-id"]


@pytest.mark.asyncio
async def test_request_id_is_propagated(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "trace-123"})

    assert response.headers["x-request-id"] == "trace-123"


@pytest.mark.asyncio
async def test_invalid_token_rejected(client: AsyncClient):
    """Test that invalid JWT tokens are rejected."""
    response = await client.get(
        "/api/auth/me",
        headers={"Authorization": "Bearer invalid_token_here"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_expired_token_format(client: AsyncClient):
    """Test that malformed tokens are rejected."""
    response = await client.get(
        "/api/auth/me",
        headers={"Authorization": "Bearer not.a.valid.jwt"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_missing_bearer_prefix(client: AsyncClient):
    """Test that tokens without Bearer prefix are rejected."""
    response = await client.get(
        "/api/auth/me",
        headers={"Authorization": "some_token"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_token_is_not_an_access_token(client: AsyncClient, test_user: User):
    token, _ = create_refresh_token(user_id=test_user.id, session_id="s1")

    response = await client.get("/api/auth/me", headers=auth_header(token))

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_for_deleted_user(client: AsyncClient):
    token = create_access_token(user_id=424242, session_id="s1")

    response = await client.get("/api/auth/me", headers=auth_header(token))

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_password_not_returned_in_response(
    client: AsyncClient, test_user: User, test_admin: User, admin_token: str
):
    """Test that password hashes are never returned in API responses."""
    response = await client.get(f"/api/users/{test_user.id}", headers=auth_header(admin_token))
    data = response.json()

    assert "cryptpassword" not in data
    assert "$argon2" not in response.text


@pytest.mark.asyncio
async def test_error_response_format(client: AsyncClient):
    """Test that error responses follow consistent format."""
    response = await client.get("/api/auth/me")
    assert response.status_code == 401
    data = response.json()
    assert "error" in data
    assert "code" in data["error"]
    assert "message" in data["error"]


@pytest.mark.asyncio
async def test_validation_error_format(client: AsyncClient):
    response = await client.post("/api/auth/login", json={"login": ""})

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert {d["field"] for d in error["details"]} >= {"body.login", "body.password"}


@pytest.mark.asyncio
async def test_oversized_request_rejected(client: AsyncClient):
    response = await client.post(
        "/api/auth/login",
        content=b"x" * (1024 * 1024 + 1),
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 413
