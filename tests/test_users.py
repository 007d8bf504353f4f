"""
User management endpoint tests.
Covers: admin listing and creation, self-service profile edits, role changes, deactivation.
"""
from __future__ import annotations

import pytest
from httpx import AsyncClient

from tasktracker.models.user import User

pytestmark = pytest.mark.asyncio

USERS_URL = "/api/v1/users/"


class TestListUsers:
    async def test_admin_lists_active_users(
        self, client: AsyncClient, user: User, other_user: User, admin_headers: dict, make_user
    ) -> None:
        await make_user("inactive@example.com", is_active=False)
        response = await client.get(USERS_URL, headers=admin_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["pages"] == 1
        assert "inactive@example.com" not in {u["email"] for u in data["items"]}

    async def test_include_inactive(
        self, client: AsyncClient, admin_headers: dict, make_user
    ) -> None:
        await make_user("inactive@example.com", is_active=False)
        response = await client.get(
            USERS_URL, params={"includeInactive": "true"}, headers=admin_headers
        )
        assert response.json()["total"] == 2

    async def test_regular_user_forbidden(
        self, client: AsyncClient, auth_headers: dict
    ) -> None:
        response = await client.get(USERS_URL, headers=auth_headers)
        assert response.status_code == 403


class TestCreateUser:
    async def test_admin_creates_user_with_role(
        self, client: AsyncClient, admin_headers: dict
    ) -> None:
        response = await client.post(
            USERS_URL,
            json={
                "email": "Manager.com",
                "password": "Manager12",
                "firstName": "Mona",
                "lastName": "Manager",
                "role": "admin",
            },
            headers=admin_headers,
        )
        assert response.status_code == 201, response.text
        data = response.json()
        assert data["email"] == "manager.com"
        assert data["role"] == "admin"

        login = await client.post(
            "/api/v1/auth/login",
            json={"email": "manager.com", "password": "Manager12"},
        )
        assert login.status_code == 200

    async def test_role_defaults_to_user(
        self, client: AsyncClient, admin_headers: dict
    ) -> None:
        response = await client.post(
            USERS_URL,
            json={
                "email": "plain.com",
                "password": "Plain1234",
                "firstName": "Pat",
                "lastName": "Plain",
            },
            headers=admin_headers,
        )
        assert response.status_code == 201
        assert response.json()["role"] == "user"

    async def test_duplicate_email(
        self, client: AsyncClient, user: User, admin_headers: dict
    ) -> None:
        response = await client.post(
            USERS_URL,
            json={
                "email": "OWNER.com",
                "password": "Another12",
                "firstName": "Copy",
                "lastName": "Cat",
            },
            headers=admin_headers,
        )
        assert response.status_code == 409

    async def test_unknown_role_rejected(
        self, client: AsyncClient, admin_headers: dict
    ) -> None:
        response = await client.post(
            USERS_URL,
            json={
                "email": "odd.com",
                "password": "OddRole12",
                "firstName": "Odd",
                "lastName": "Role",
                "role": "superuser",
            },
            headers=admin_headers,
        )
        assert response.status_code == 400

    async def test_regular_user_cannot_create(
        self, client: AsyncClient, auth_headers: dict
    ) -> None:
        response = await client.post(
            USERS_URL,
            json={
                "email": "sneaky.com",
                "password": "Sneaky123",
                "firstName": "Sam",
                "lastName": "Sneaky",
                "role": "admin",
            },
            headers=auth_headers,
        )
        assert response.status_code == 403


class TestGetUser:
    async def test_admin_gets_user(
        self, client: AsyncClient, user: User, admin_headers: dict
    ) -> None:
        response = await client.get(f"{USERS_URL}{user.id}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["email"] == "owner@example.com"

    async def test_unknown_user(self, client: AsyncClient, admin_headers: dict) -> None:
        response = await client.get(
            f"{USERS_URL}00000000-0000-0000-0000-000000000000", headers=admin_headers
        )
        assert response.status_code == 404


class TestUpdateUser:
    async def test_user_updates_own_profile(
        self, client: AsyncClient, user: User, auth_headers: dict
    ) -> None:
        response = await client.put(
            f"{USERS_URL}{user.id}",
            json={"firstName": "Olivia"},
            headers=auth_headers,
        )
        assert response.status_code == 200, response.text
        assert response.json()["firstName"] == "Olivia"
        assert response.json()["lastName"] == "Owner"

    async def test_user_cannot_edit_someone_else(
        self, client: AsyncClient, other_user: User, auth_headers: dict
    ) -> None:
        response = await client.put(
            f"{USERS_URL}{other_user.id}",
            json={"firstName": "Mallory"},
            headers=auth_headers,
        )
        assert response.status_code == 403

    async def test_user_cannot_promote_self(
        self, client: AsyncClient, user: User, auth_headers: dict
    ) -> None:
        response = await client.put(
            f"{USERS_URL}{user.id}", json={"role": "admin"}, headers=auth_headers
        )
        assert response.status_code == 403

    async def test_admin_changes_role(
        self, client: AsyncClient, user: User, admin_headers: dict
    ) -> None:
        response = await client.put(
            f"{USERS_URL}{user.id}", json={"role": "admin"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["role"] == "admin"

    async def test_email_conflict(
        self, client: AsyncClient, user: User, other_user: User, auth_headers: dict
    ) -> None:
        response = await client.put(
            f"{USERS_URL}{user.id}",
            json={"email": "Other@Example.com"},
            headers=auth_headers,
        )
        assert response.status_code == 409


class TestDeactivateUser:
    async def test_admin_deactivates(
        self, client: AsyncClient, user: User, auth_headers: dict, admin_headers: dict
    ) -> None:
        response = await client.delete(f"{USERS_URL}{user.id}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json() == {"message": "User deactivated"}

        me = await client.get("/api/v1/auth/me", headers=auth_headers)
        assert me.status_code == 401

    async def test_regular_user_cannot_deactivate(
        self, client: AsyncClient, other_user: User, auth_headers: dict
    ) -> None:
        response = await client.delete(f"{USERS_URL}{other_user.id}", headers=auth_headers)
        assert response.status_code == 403
