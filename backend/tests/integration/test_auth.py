"""Integration tests for authentication endpoints."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.database.models.user import User

pytestmark = pytest.mark.asyncio


class TestRegistration:
    """Tests for user registration."""

    async def test_register_success(self, async_client: AsyncClient):
        response = await async_client.post(
            "/api/v1/auth/register",
            json={
                "email": "NewUser@Example.com",
                "password": "SecurePass123",
                "name": "New User",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "newuser@example.com"
        assert data["membership_tier"] == "free"
        assert data["role"] == "user"
        assert "password" not in data
        assert "password_hash" not in data

    async def test_register_duplicate_email(self, async_client: AsyncClient, test_user: User):
        response = await async_client.post(
            "/api/v1/auth/register",
            json={"email": test_user.email, "password": "SecurePass123"},
        )
        assert response.status_code == 400
        assert "already exists" in response.json()["detail"].lower()

    async def test_register_weak_password(self, async_client: AsyncClient):
        response = await async_client.post(
            "/api/v1/auth/register",
            json={"email": "weak@example.com", "password": "alllowercase1"},
        )
        assert response.status_code == 422

    async def test_register_invalid_email(self, async_client: AsyncClient):
        response = await async_client.post(
            "/api/v1/auth/register",
            json={"email": "not-an-email", "password": "SecurePass123"},
        )
        assert response.status_code == 422


class TestLogin:
    """Tests for login and logout."""

    async def test_login_success_sets_cookie(self, async_client: AsyncClient, test_user: User):
        response = await async_client.post(
            "/api/v1/auth/login",
            json={"email": test_user.email, "password": "testpassword123"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] > 0
        set_cookie = response.headers["set-cookie"]
        assert set_cookie.startswith(f"access_token={data['access_token']}")
        assert "httponly" in set_cookie.lower()

    async def test_cookie_authenticates(self, async_client: AsyncClient, test_user: User):
        login = await async_client.post(
            "/api/v1/auth/login",
            json={"email": test_user.email, "password": "testpassword123"},
        )

        response = await async_client.get(
            "/api/v1/auth/me",
            headers={"Cookie": f"access_token={login.json()['access_token']}"},
        )

        assert response.status_code == 200
        assert response.json()["id"] == test_user.id

    async def test_login_wrong_password(self, async_client: AsyncClient, test_user: User):
        response = await async_client.post(
            "/api/v1/auth/login",
            json={"email": test_user.email, "password": "WrongPassword1"},
        )
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    async def test_login_unknown_email(self, async_client: AsyncClient):
        response = await async_client.post(
            "/api/v1/auth/login",
            json={"email": "nobody@example.com", "password": "Whatever123"},
        )
        assert response.status_code == 401

    async def test_login_inactive_user(self, async_client: AsyncClient, user_factory):
        user = await user_factory("inactive@example.com", is_active=False)

        response = await async_client.post(
            "/api/v1/auth/login",
            json={"email": user.email, "password": "testpassword123"},
        )
        assert response.status_code == 403

    async def test_logout(self, async_client: AsyncClient):
        response = await async_client.post("/api/v1/auth/logout")

        assert response.status_code == 204
        assert "access_token" in response.headers.get("set-cookie", "")


class TestCurrentUser:
    """Tests for /auth/me."""

    async def test_me_requires_auth(self, async_client: AsyncClient):
        response = await async_client.get("/api/v1/auth/me")
        assert response.status_code == 401

    async def test_me_invalid_token(self, async_client: AsyncClient):
        response = await async_client.get(
            "/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    async def test_me(self, async_client: AsyncClient, test_user: User, auth_headers: dict):
        response = await async_client.get("/api/v1/auth/me", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["email"] == test_user.email
        assert data["membership_tier"] == "free"

    async def test_update_me(
        self,
        async_client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        auth_headers: dict,
    ):
        response = await async_client.patch(
            "/api/v1/auth/me",
            json={"name": "Renamed"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        await db_session.refresh(test_user)
        assert test_user.name == "Renamed"

    async def test_inactive_user_rejected(
        self, async_client: AsyncClient, user_factory, session_headers
    ):
        user = await user_factory("disabled@example.com", is_active=False)

        response = await async_client.get("/api/v1/auth/me", headers=session_headers(user))

        assert response.status_code == 403
