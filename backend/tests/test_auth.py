"""Tests for authentication endpoints."""

import pytest
from httpx import AsyncClient

from app.auth.jwt import create_refresh_token, decode_token
from app.auth.password import hash_password, verify_password
from app.models.user import User


@pytest.mark.auth
@pytest.mark.asyncio
class TestAuthEndpoints:
    """Test authentication endpoints."""

    async def test_register_physician(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register",
            json={
                "email": "grace@example.com",
                "password": "SecurePassword123!",
                "full_name": "Grace Brewster Hopper",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert "access_token" in data
        assert data["user"]["email"] == "grace@example.com"
        assert data["user"]["role"] == "physician"
        assert data["user"]["profile_complete"] is False

    async def test_register_facility_counts_as_complete(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register",
            json={
                "email": "staff@county.example.com",
                "password": "SecurePassword123!",
                "full_name": "County General",
                "role": "facility",
            },
        )
        assert response.status_code == 201
        assert response.json()["user"]["profile_complete"] is True

    async def test_register_admin_not_allowed(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/register",
            json={
                "email": "root@example.com",
                "password": "SecurePassword123!",
                "full_name": "Root",
                "role": "admin",
            },
        )
        assert response.status_code == 422

    async def test_register_duplicate_email(self, client: AsyncClient, test_user: User):
        response = await client.post(
            "/api/auth/register",
            json={
                "email": test_user.email,
                "password": "AnotherPassword123!",
                "full_name": "Another User",
            },
        )

        assert response.status_code == 400
        assert "already registered" in response.json()["error"]["message"].lower()

    async def test_login_success(self, client: AsyncClient, test_user: User):
        response = await client.post(
            "/api/auth/login",
            json={"email": test_user.email, "password": "testpassword123"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert decode_token(data["access_token"])["sub"] == test_user.id

    async def test_login_wrong_password(self, client: AsyncClient, test_user: User):
        response = await client.post(
            "/api/auth/login",
            json={"email": test_user.email, "password": "wrongpassword"},
        )
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "HTTP_401"

    async def test_login_unknown_email(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/login",
            json={"email": "nobody@example.com", "password": "whatever123"},
        )
        assert response.status_code == 401

    async def test_me(self, client: AsyncClient, test_user: User, auth_headers: dict):
        response = await client.get("/api/auth/me", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["email"] == test_user.email
        assert data["full_name"] == "Ada King Lovelace"

    async def test_me_without_token(self, client: AsyncClient):
        response = await client.get("/api/auth/me")
        assert response.status_code == 401

    async def test_me_with_invalid_token(self, client: AsyncClient):
        response = await client.get(
            "/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    async def test_refresh_token_cannot_be_used_as_access_token(
        self, client: AsyncClient, test_user: User
    ):
        token = create_refresh_token(test_user.id, test_user.role.value)
        response = await client.get(
            "/api/auth/me", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401


@pytest.mark.auth
@pytest.mark.asyncio
class TestTokenLifecycle:
    async def test_refresh_issues_new_pair(self, client: AsyncClient, test_user: User):
        token = create_refresh_token(test_user.id, test_user.role.value)
        response = await client.post("/api/auth/refresh", json={"refresh_token": token})

        assert response.status_code == 200
        assert decode_token(response.json()["access_token"])["type"] == "access"

    async def test_refresh_rejects_access_token(self, client: AsyncClient, test_token: str):
        response = await client.post("/api/auth/refresh", json={"refresh_token": test_token})
        assert response.status_code == 401

    async def test_logout_revokes_tokens(
        self, client: AsyncClient, test_user: User, auth_headers: dict, revoked_tokens: set
    ):
        refresh_token = create_refresh_token(test_user.id, test_user.role.value)
        response = await client.post(
            "/api/auth/logout",
            headers=auth_headers,
            json={"refresh_token": refresh_token},
        )
        assert response.status_code == 204
        assert refresh_token in revoked_tokens

        response = await client.get("/api/auth/me", headers=auth_headers)
        assert response.status_code == 401

        response = await client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
        assert response.status_code == 401


@pytest.mark.auth
class TestPasswordHashing:
    def test_round_trip(self):
        hashed = hash_password("correct horse battery")
        assert hashed != "correct horse battery"
        assert verify_password("correct horse battery", hashed)
        assert not verify_password("wrong", hashed)

    def test_missing_or_malformed_hash(self):
        assert not verify_password("anything", None)
        assert not verify_password("anything", "not-a-bcrypt-hash")
