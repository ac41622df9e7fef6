"""Tests for tenant-user login."""

import pytest
from httpx import AsyncClient

from app.core.security import decode_jwt
from app.models.user import TenantUser, TenantUserRole

PASSWORD = "correct-horse-battery"


@pytest.mark.asyncio
async def test_login_success(client: AsyncClient, make_tenant, make_tenant_user):
    """Login with valid credentials returns JWT + user + tenant."""
    tenant = await make_tenant("login-ok")
    user = await make_tenant_user("owner@login-ok.com", tenant.id, role=TenantUserRole.OWNER)

    resp = await client.post("/v1/auth/login", json={"email": "owner@login-ok.com", "password": PASSWORD})

    assert resp.status_code == 200
    data = resp.json()
    assert data["token_type"] == "bearer"
    assert data["user"]["id"] == user.id
    assert data["tenant"]["slug"] == "login-ok"

    claims = decode_jwt(data["access_token"])
    assert claims["kind"] == "tenant_user"
    assert claims["tid"] == tenant.id
    assert claims["role"] == "owner"


@pytest.mark.asyncio
async def test_login_picks_requested_tenant(client: AsyncClient, session, make_tenant, make_tenant_user):
    first = await make_tenant("first")
    second = await make_tenant("second")
    user = await make_tenant_user("multi@chain.com", first.id)
    session.add(TenantUser(user_id=user.id, tenant_id=second.id, role=TenantUserRole.ADMIN))
    await session.commit()

    resp = await client.post(
        "/v1/auth/login",
        json={"email": "multi@chain.com", "password": PASSWORD, "tenant_id": second.id},
    )

    assert resp.status_code == 200
    assert resp.json()["tenant"]["id"] == second.id
    assert decode_jwt(resp.json()["access_token"])["role"] == "admin"


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, make_tenant, make_tenant_user):
    """Login with wrong password returns 401."""
    tenant = await make_tenant("login-bad-pw")
    await make_tenant_user("owner@login-bad-pw.com", tenant.id)

    resp = await client.post(
        "/v1/auth/login", json={"email": "owner@login-bad-pw.com", "password": "wrongpassword"}
    )
    assert resp.status_code == 401
    assert "Invalid" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_login_unknown_email(client: AsyncClient):
    """Login with nonexistent email returns 401."""
    resp = await client.post("/v1/auth/login", json={"email": "nobody@nowhere.com", "password": "whatever123"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_login_without_active_membership(client: AsyncClient, make_tenant, make_tenant_user):
    closed = await make_tenant("closed", is_active=False)
    await make_tenant_user("left@closed.com", closed.id)
    await make_tenant_user("loner@nowhere.com")

    for email in ("left@closed.com", "loner@nowhere.com"):
        resp = await client.post("/v1/auth/login", json={"email": email, "password": PASSWORD})
        assert resp.status_code == 403
        assert resp.json()["detail"] == "No active tenant membership"
