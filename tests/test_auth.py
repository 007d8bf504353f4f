"""
Authentication endpoint tests.
Covers: register, login, current profile and its self-service changes,
bearer token failures.
"""
from __future__ import annotations

import pytest
from httpx import AsyncClient

from tasktracker.core.security import create_access_token
from tasktracker.models.user import User

pytestmark = pytest.mark.asyncio

REGISTER_URL = "/api/v1/auth/register"
LOGIN_URL = "/api/v1/auth/login"
ME_URL = "/api/v1/auth/me"


class TestRegister:
    async def test_register_success(self, client: AsyncClient) -> None:
        response = await client.post(
            REGISTER_URL,
            json={
                "email": "NewUser@Example.com",
                "password": "NewPass12",
                "firstName": "New",
                "lastName": "User",
            },
        )
        assert response.status_code == 201, response.text
        data = response.json()
        assert data["email"] == "newuser@example.com"
        assert data["firstName"] == "New"
        assert data["role"] == "user"
        assert "hashedPassword" not in data
        assert "password" not in data

    async def test_register_duplicate_email(
        self, client: AsyncClient, user: User
    ) -> None:
        response = await client.post(
            REGISTER_URL,
            json={
                "email": "OWNER@example.com",
                "password": "TestPass1",
                "firstName": "Dup",
                "lastName": "Licate",
            },
        )
        assert response.status_code == 409
        assert response.json()["error"] == "CONFLICT"

    async def test_register_weak_password(self, client: AsyncClient) -> None:
        response = await client.post(
            REGISTER_URL,
            json={
                "email": "weak@example.com",
                "password": "alllowercase",
                "firstName": "Weak",
                "lastName": "Password",
            },
        )
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert "password" in body["message"]

    async def test_register_missing_fields_named(self, client: AsyncClient) -> None:
        response = await client.post(REGISTER_URL, json={"email": "x@example.com"})
        assert response.status_code == 400
        fields = {e["field"] for e in response.json()["errors"]}
        assert {"password", "firstName", "lastName"} <= fields


class TestLogin:
    async def test_login_success(self, client: AsyncClient, user: User) -> None:
        response = await client.post(
            LOGIN_URL, json={"email": "owner@example.com", "password": "TestPass1"}
        )
        assert response.status_code == 200, response.text
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["access_token"]
        assert data["user"]["id"] == str(user.id)

    async def test_login_wrong_password(self, client: AsyncClient, user: User) -> None:
        response = await client.post(
            LOGIN_URL, json={"email": "owner@example.com", "password": "WrongPass1"}
        )
        assert response.status_code == 401

    async def test_login_deactivated_user(self, client: AsyncClient, make_user) -> None:
        await make_user("gone@example.com", is_active=False)
        response = await client.post(
            LOGIN_URL, json={"email": "gone@example.com", "password": "TestPass1"}
        )
        assert response.status_code == 401

    async def test_token_from_login_authenticates(
        self, client: AsyncClient, user: User
    ) -> None:
        login = await client.post(
            LOGIN_URL, json={"email": "owner@example.com", "password": "TestPass1"}
        )
        token = login.json()["access_token"]
        response = await client.get(ME_URL, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.json()["email"] == "owner@example.com"


class TestBearerToken:
    async def test_missing_token(self, client: AsyncClient) -> None:
        response = await client.get(ME_URL)
        assert response.status_code == 401
        assert response.json()["error"] == "UNAUTHORIZED"

    async def test_garbage_token(self, client: AsyncClient) -> None:
        response = await client.get(
            ME_URL, headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401
        assert response.json()["error"] == "INVALID_TOKEN"

    async def test_token_for_deactivated_user(
        self, client: AsyncClient, make_user
    ) -> None:
        gone = await make_user("gone@example.com", is_active=False)
        token = create_access_token(str(gone.id), gone.role)
        response = await client.get(ME_URL, headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_me_returns_profile(
        self, client: AsyncClient, user: User, auth_headers: dict
    ) -> None:
        response = await client.get(ME_URL, headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == str(user.id)
        assert data["firstName"] == "Olive"
        assert data["isActive"] is True


class TestUpdateMe:
    async def test_update_names(
        self, client: AsyncClient, user: User, auth_headers: dict
    ) -> None:
        response = await client.put(
            ME_URL, json={"firstName": "Olivia", "lastName": "Owens"}, headers=auth_headers
        )
        assert response.status_code == 200, response.text
        data = response.json()
        assert (data["firstName"], data["lastName"]) == ("Olivia", "Owens")
        assert data["email"] == "owner@example.com"

    async def test_change_password(
        self, client: AsyncClient, user: User, auth_headers: dict
    ) -> None:
        response = await client.put(
            ME_URL, json={"password": "Changed99"}, headers=auth_headers
        )
        assert response.status_code == 200

        old = await client.post(
            LOGIN_URL, json={"email": "owner@example.com", "password": "TestPass1"}
        )
        assert old.status_code == 401
        new = await client.post(
            LOGIN_URL, json={"email": "owner@example.com", "password": "Changed99"}
        )
        assert new.status_code == 200

    async def test_weak_password_rejected(
        self, client: AsyncClient, user: User, auth_headers: dict
    ) -> None:
        response = await client.put(ME_URL, json={"password": "weakpass"}, headers=auth_headers)
        assert response.status_code == 400

    async def test_email_taken(
        self, client: AsyncClient, user: User, other_user: User, auth_headers: dict
    ) -> None:
        response = await client.put(
            ME_URL, json={"email": "OTHER@example.com"}, headers=auth_headers
        )
        assert response.status_code == 409

    async def test_role_not_editable(
        self, client: AsyncClient, user: User, auth_headers: dict
    ) -> None:
        response = await client.put(
            ME_URL, json={"role": "admin", "isActive": False}, headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["role"] == "user"
        assert response.json()["isActive"] is True


class TestDeleteMe:
    async def test_deactivates_account(
        self, client: AsyncClient, user: User, auth_headers: dict
    ) -> None:
        response = await client.delete(ME_URL, headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"message": "Account deactivated"}

        me = await client.get(ME_URL, headers=auth_headers)
        assert me.status_code == 401
        login = await client.post(
            LOGIN_URL, json={"email": "owner@example.com", "password": "TestPass1"}
        )
        assert login.status_code == 401

    async def test_requires_authentication(self, client: AsyncClient) -> None:
        response = await client.delete(ME_URL)
        assert response.status_code == 401
