from __future__ import annotations

import pytest

from solveur.services.auth.sessions import issue_session_token
from solveur.tests.utils.seed import create_tenant, create_user


async def _superuser_headers(session) -> tuple[dict[str, str], str]:
    system = await create_tenant(session, slug="system-admins", plan="ENTERPRISE")
    admin = await create_user(session, tenant_id=system.id, role="OWNER", is_superuser=True)
    token, _ = issue_session_token(
        user_id=admin.id, tenant_id=system.id, tenant_slug=system.slug, role="OWNER", is_superuser=True
    )
    return {"Authorization": f"Bearer {token}"}, admin.id


@pytest.mark.asyncio
async def test_admin_requires_superuser(client, session) -> None:
    tenant = await create_tenant(session)
    user = await create_user(session, tenant_id=tenant.id, role="OWNER")
    token, _ = issue_session_token(
        user_id=user.id, tenant_id=tenant.id, tenant_slug=tenant.slug, role="OWNER", is_superuser=True
    )

    anonymous = await client.get("/v1/admin/stats")
    assert anonymous.status_code == 401
    # A forged is_superuser claim is not enough; the stored user decides.
    forged = await client.get("/v1/admin/stats", headers={"Authorization": f"Bearer {token}"})
    assert forged.status_code == 403
    assert forged.json()["error"]["code"] == "AUTH_FORBIDDEN"


@pytest.mark.asyncio
async def test_admin_overview(client, session) -> None:
    headers, admin_id = await _superuser_headers(session)
    tenant = await create_tenant(session, slug="acme", name="Acme Corp")
    await create_user(session, tenant_id=tenant.id)
    await client.post("/chat", json={"message": "hi"}, headers={"x-tenant-id": tenant.id})

    me = (await client.get("/v1/admin/me", headers=headers)).json()["data"]
    assert me["id"] == admin_id
    assert me["isSuperuser"] is True

    stats = (await client.get("/admin/stats", headers=headers)).json()
    assert stats == {
        "totalTenants": 2,
        "totalUsers": 2,
        "totalDocuments": 0,
        "activeConversations": 1,
        "totalApiCalls": 1,
    }

    tenants = {t["slug"]: t for t in (await client.get("/admin/tenants", headers=headers)).json()}
    assert tenants["acme"]["usersCount"] == 1
    assert tenants["acme"]["apiCallsCount"] == 1

    users = (await client.get("/admin/users", params={"tenantId": tenant.id}, headers=headers)).json()
    assert len(users) == 1
    assert users[0]["tenantId"] == tenant.id


@pytest.mark.asyncio
async def test_suspending_tenant_blocks_chat(client, session) -> None:
    headers, _ = await _superuser_headers(session)
    tenant = await create_tenant(session, slug="acme")

    response = await client.put(f"/v1/admin/tenants/{tenant.id}/status", json={"status": "suspended"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "SUSPENDED"

    chat = await client.post("/chat", json={"message": "hi"}, headers={"x-tenant-id": tenant.id})
    assert chat.status_code == 403

    bad = await client.put(f"/admin/tenants/{tenant.id}/status", json={"status": "PAUSED"}, headers=headers)
    assert bad.status_code == 400
    assert bad.json()["error"]["code"] == "ADMIN_ACTION_INVALID"
    assert bad.json()["error"]["details"]["allowed"] == ["ACTIVE", "SUSPENDED", "CANCELLED"]
    missing = await client.put("/admin/tenants/nope/status", json={"status": "ACTIVE"}, headers=headers)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "NOT_FOUND"
    assert missing.json()["error"]["details"] == {"tenant_id": "nope"}


@pytest.mark.asyncio
async def test_user_status_and_superuser_flags(client, session) -> None:
    headers, admin_id = await _superuser_headers(session)
    tenant = await create_tenant(session)
    user = await create_user(session, tenant_id=tenant.id)

    suspended = await client.put(f"/admin/users/{user.id}/status", json={"status": "SUSPENDED"}, headers=headers)
    assert suspended.json()["status"] == "SUSPENDED"
    promoted = await client.put(f"/admin/users/{user.id}/superuser", json={"isSuperuser": True}, headers=headers)
    assert promoted.json()["isSuperuser"] is True

    self_lockout = await client.put(f"/admin/users/{admin_id}/status", json={"status": "SUSPENDED"}, headers=headers)
    assert self_lockout.status_code == 400
    assert self_lockout.json()["error"]["code"] == "ADMIN_ACTION_INVALID"
    self_demote = await client.put(f"/admin/users/{admin_id}/superuser", json={"isSuperuser": False}, headers=headers)
    assert self_demote.status_code == 400
    assert self_demote.json()["error"]["message"] == "Superusers cannot revoke their own access"
