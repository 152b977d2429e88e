"""Role, permission and user administration routes: guards, CRUD, audit trail."""

import pytest
from httpx import AsyncClient

from kindling.audit.models import AuditAction, AuditOutcome


async def _role_id(client: AsyncClient, headers, name: str) -> str:
    r = await client.get("/api/roles", headers=headers)
    return next(role["id"] for role in r.json() if role["name"] == name)


@pytest.mark.asyncio
async def test_anonymous_caller_gets_401(client: AsyncClient):
    r = await client.get("/api/roles")
    assert r.status_code == 401
    assert r.json() == {"detail": "Authentication required"}


@pytest.mark.asyncio
async def test_lender_cannot_manage_roles(client, make_user, login, audit_records):
    lender = await make_user("lender@example.com", role="lender")
    headers = await login("lender@example.com")

    r = await client.post(
        "/api/roles",
        json={"name": "auditor", "display_name": "Auditor"},
        headers=headers,
    )
    assert r.status_code == 403
    assert "roles.create" in r.json()["detail"]

    [record] = [rec for rec in await audit_records() if rec.resource == "roles"]
    assert record.action == AuditAction.CREATE
    assert record.outcome == AuditOutcome.FAILURE
    assert record.actor_id == lender.id


@pytest.mark.asyncio
async def test_role_crud(client, make_user, login):
    await make_user("root@example.com", role="super_admin")
    headers = await login("root@example.com")

    r = await client.post(
        "/api/roles",
        json={"name": "auditor", "display_name": "Auditor", "description": "External audit"},
        headers=headers,
    )
    assert r.status_code == 201
    role = r.json()
    assert role["is_system"] is False

    r = await client.post("/api/roles", json={"name": "auditor", "display_name": "Again"}, headers=headers)
    assert r.status_code == 409

    r = await client.post("/api/roles", json={"name": "Bad Name", "display_name": "x"}, headers=headers)
    assert r.status_code == 422

    r = await client.patch(f"/api/roles/{role['id']}", json={"display_name": "Auditor (ext)"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["display_name"] == "Auditor (ext)"
    assert r.json()["name"] == "auditor"

    r = await client.delete(f"/api/roles/{role['id']}", headers=headers)
    assert r.status_code == 204
    r = await client.get(f"/api/roles/{role['id']}", headers=headers)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_role_delete_records_before_snapshot(client, make_user, login, audit_records):
    await make_user("root@example.com", role="super_admin")
    headers = await login("root@example.com")
    r = await client.post("/api/roles", json={"name": "auditor", "display_name": "Auditor"}, headers=headers)
    role_id = r.json()["id"]

    r = await client.delete(f"/api/roles/{role_id}", headers=headers)
    assert r.status_code == 204

    deletes = [rec for rec in await audit_records() if rec.action == AuditAction.DELETE]
    [record] = deletes
    assert record.resource == "roles"
    assert record.resource_id == role_id
    assert record.changes.before["name"] == "auditor"
    assert record.changes.after is None


@pytest.mark.asyncio
async def test_permission_lifecycle_and_effect(client, make_user, login):
    await make_user("root@example.com", role="super_admin")
    root = await login("root@example.com")
    await make_user("lender@example.com", role="lender")
    lender = await login("lender@example.com")

    r = await client.post(
        "/api/permissions",
        json={"resource": "reports", "action": "export", "description": "Export reports"},
        headers=root,
    )
    assert r.status_code == 201
    permission = r.json()
    assert permission["key"] == "reports.export"

    r = await client.post("/api/permissions", json={"resource": "reports", "action": "export"}, headers=root)
    assert r.status_code == 409

    lender_role = await _role_id(client, root, "lender")
    for _ in range(2):
        r = await client.post(
            f"/api/roles/{lender_role}/permissions",
            json={"permission_id": permission["id"]},
            headers=root,
        )
        assert r.status_code == 201

    r = await client.get(f"/api/roles/{lender_role}/permissions", headers=root)
    keys = [p["key"] for p in r.json()]
    assert keys.count("reports.export") == 1

    r = await client.get("/api/auth/me", headers=lender)
    assert "reports.export" in r.json()["permissions"]

    r = await client.delete(f"/api/roles/{lender_role}/permissions/{permission['id']}", headers=root)
    assert r.status_code == 204
    r = await client.get("/api/auth/me", headers=lender)
    assert "reports.export" not in r.json()["permissions"]

    r = await client.delete(f"/api/permissions/{permission['id']}", headers=root)
    assert r.status_code == 204
    r = await client.delete(f"/api/permissions/{permission['id']}", headers=root)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_admin_assigns_role_and_grants_access(client, make_user, login):
    admin = await make_user("admin@example.com", role="admin")
    admin_headers = await login("admin@example.com")
    user = await make_user("officer@example.com")
    officer_headers = await login("officer@example.com")

    r = await client.get("/api/audit-logs", headers=officer_headers)
    assert r.status_code == 403

    officer_role = await _role_id(client, admin_headers, "compliance_officer")
    r = await client.post(f"/api/users/{user.id}/roles", json={"role_id": officer_role}, headers=admin_headers)
    assert r.status_code == 201
    assert r.json()["assigned_by"] == admin.id

    r = await client.get(f"/api/users/{user.id}/roles", headers=admin_headers)
    assert [role["name"] for role in r.json()] == ["compliance_officer"]

    r = await client.get("/api/audit-logs", headers=officer_headers)
    assert r.status_code == 200

    r = await client.delete(f"/api/users/{user.id}/roles/{officer_role}", headers=admin_headers)
    assert r.status_code == 204
    r = await client.get("/api/audit-logs", headers=officer_headers)
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_admin_cannot_create_roles(client, make_user, login):
    await make_user("admin@example.com", role="admin")
    headers = await login("admin@example.com")
    r = await client.post("/api/roles", json={"name": "auditor", "display_name": "Auditor"}, headers=headers)
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_assign_unknown_role_is_404(client, make_user, login):
    await make_user("admin@example.com", role="admin")
    headers = await login("admin@example.com")
    user = await make_user("someone@example.com")
    r = await client.post(f"/api/users/{user.id}/roles", json={"role_id": "missing"}, headers=headers)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_suspending_a_user_revokes_sessions_and_is_audited(client, make_user, login, audit_records):
    await make_user("admin@example.com", role="admin")
    admin_headers = await login("admin@example.com")
    user = await make_user("lender@example.com", role="lender")
    lender_headers = await login("lender@example.com")

    r = await client.patch(
        f"/api/users/{user.id}/status", json={"status": "suspended"}, headers=admin_headers
    )
    assert r.status_code == 200
    assert r.json()["status"] == "suspended"

    r = await client.get("/api/auth/me", headers=lender_headers)
    assert r.status_code == 401

    r = await client.post(
        "/api/auth/login",
        json={"email": "lender@example.com", "password": "correct-horse-battery"},
    )
    assert r.status_code == 403

    [record] = [rec for rec in await audit_records() if rec.resource == "users"]
    assert record.action == AuditAction.UPDATE
    assert record.resource_id == user.id
    assert record.changes.before["status"] == "active"
    assert record.changes.after == {"status": "suspended"}


@pytest.mark.asyncio
async def test_invalid_status_transition_is_400(client, make_user, login):
    await make_user("admin@example.com", role="admin")
    headers = await login("admin@example.com")
    r = await client.post("/api/auth/register", json={"email": "pending@example.com", "password": "long-enough-pw"})
    pending_id = r.json()["user"]["id"]

    r = await client.patch(f"/api/users/{pending_id}/status", json={"status": "active"}, headers=headers)
    assert r.status_code == 400
