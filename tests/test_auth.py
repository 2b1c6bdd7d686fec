"""
Tests for login, the current user endpoint and role checks.
"""

import pytest

from conftest import auth_headers, create_user
from edu_admin.models.users import ROLE_STUDENT


@pytest.mark.asyncio()
async def test_login_returns_token(client, system_admin):
    response = await client.post(
        "/api/auth/login",
        json={"email": system_admin.email, "password": "password123"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["user_id"] == system_admin.id
    assert data["role"] == "system_admin"

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == system_admin.email


@pytest.mark.asyncio()
async def test_login_is_case_insensitive_on_email(client, system_admin):
    response = await client.post(
        "/api/auth/login",
        json={"email": system_admin.email.upper(), "password": "password123"},
    )
    assert response.status_code == 200


@pytest.mark.asyncio()
async def test_login_wrong_password(client, system_admin):
    response = await client.post(
        "/api/auth/login",
        json={"email": system_admin.email, "password": "wrong-password"},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Incorrect email or password"


@pytest.mark.asyncio()
async def test_inactive_user_cannot_login(client, db_session, system_admin):
    system_admin.is_active = False
    await db_session.commit()

    response = await client.post(
        "/api/auth/login",
        json={"email": system_admin.email, "password": "password123"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio()
async def test_me_requires_token(client):
    response = await client.get("/api/auth/me")
    assert response.status_code == 401

    response = await client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Could not validate credentials"


@pytest.mark.asyncio()
async def test_roles_for_admins_only(client, db_session, admin_headers, entity_headers):
    response = await client.get("/api/auth/roles", headers=admin_headers)
    assert response.status_code == 200
    names = [role["name"] for role in response.json()]
    assert "system_admin" in names and "entity_admin" in names

    response = await client.get("/api/auth/roles", headers=entity_headers)
    assert response.status_code == 200

    student = await create_user(db_session, ROLE_STUDENT)
    response = await client.get("/api/auth/roles", headers=auth_headers(student))
    assert response.status_code == 403
    assert response.json()["detail"] == "Not enough permissions"
