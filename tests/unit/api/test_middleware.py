"""Audit middleware end to end: classification, redaction, actor, network, suppression, errors."""

import pytest
from httpx import AsyncClient

from kindling.audit.models import AuditAction, AuditOutcome
from kindling.audit.redaction import REDACTION_MARKER


def _non_auth(records):
    return [r for r in records if r.resource != "auth"]


@pytest.mark.asyncio
async def test_correlation_id_preserved_when_passed(client: AsyncClient):
    r = await client.get("/health", headers={"X-Correlation-ID": "my-correlation-123"})
    assert r.headers.get("X-Correlation-ID") == "my-correlation-123"
    assert r.json()["correlation_id"] == "my-correlation-123"


@pytest.mark.asyncio
async def test_register_is_recorded_with_redacted_body(client: AsyncClient, audit_records):
    r = await client.post(
        "/api/auth/register",
        json={"email": "new@example.com", "password": "super-secret-pw"},
        headers={
            "X-Forwarded-For": "203.0.113.5, 10.0.0.1",
            "User-Agent": "pytest-agent",
            "X-Correlation-ID": "corr-42",
        },
    )
    assert r.status_code == 201

    [record] = await audit_records()
    assert record.action == AuditAction.CREATE
    assert record.resource == "auth"
    assert record.resource_id == "register"
    assert record.outcome == AuditOutcome.SUCCESS
    assert record.actor_id is None
    assert record.network.ip_address == "203.0.113.5"
    assert record.network.user_agent == "pytest-agent"
    assert record.changes.after == {"email": "new@example.com", "password": REDACTION_MARKER}
    metadata = record.metadata.to_dict()
    assert metadata["status_code"] == 201
    assert metadata["correlation_id"] == "corr-42"
    assert metadata["duration_ms"] >= 0
    assert "super-secret-pw" not in str(record.to_dict())


@pytest.mark.asyncio
async def test_response_body_passes_through_unchanged(client: AsyncClient, make_user, login):
    await make_user("admin@example.com", role="super_admin")
    headers = await login("admin@example.com")
    r = await client.get("/api/permissions", headers=headers)
    assert r.status_code == 200
    keys = [p["key"] for p in r.json()]
    assert "audit_logs.read_all" in keys
    assert keys == sorted(keys)


@pytest.mark.asyncio
async def test_successful_single_read_is_not_recorded(client, make_user, login, audit_records, app):
    admin = await make_user("admin@example.com", role="super_admin")
    headers = await login("admin@example.com")
    r = await client.get(f"/api/users/{admin.id}", headers=headers)
    assert r.status_code == 200
    assert _non_auth(await audit_records()) == []


@pytest.mark.asyncio
async def test_failed_read_is_recorded_with_error(client, make_user, login, audit_records):
    admin = await make_user("admin@example.com", role="super_admin")
    headers = await login("admin@example.com")
    r = await client.get("/api/roles/does-not-exist", headers=headers)
    assert r.status_code == 404

    [record] = _non_auth(await audit_records())
    assert record.action == AuditAction.READ
    assert record.resource == "roles"
    assert record.resource_id == "does-not-exist"
    assert record.outcome == AuditOutcome.FAILURE
    assert record.actor_id == admin.id
    assert record.metadata.error == "Role does-not-exist not found"


@pytest.mark.asyncio
async def test_list_is_recorded_with_actor_and_entity(client, make_user, login, audit_records):
    admin = await make_user("admin@example.com", role="super_admin")
    headers = await login("admin@example.com")
    r = await client.get("/api/roles", headers={**headers, "X-Entity-ID": "entity-7"})
    assert r.status_code == 200

    [record] = _non_auth(await audit_records())
    assert record.action == AuditAction.LIST
    assert record.actor_id == admin.id
    assert record.acting_entity_id == "entity-7"


@pytest.mark.asyncio
async def test_anonymous_request_recorded_as_failure(client: AsyncClient, audit_records):
    r = await client.get("/api/audit-logs")
    assert r.status_code == 401
    assert r.json() == {"detail": "Authentication required"}

    [record] = await audit_records()
    assert record.resource == "audit-logs"
    assert record.action == AuditAction.LIST
    assert record.outcome == AuditOutcome.FAILURE
    assert record.actor_id is None
    assert record.metadata.error == "Authentication required"



@pytest.mark.asyncio
async def test_anonymous_entity_header_is_not_recorded(client: AsyncClient, audit_records):
    r = await client.get("/api/roles", headers={"X-Entity-ID": "entity-9"})
    assert r.status_code == 401

    [record] = await audit_records()
    assert record.actor_id is None
    assert record.acting_entity_id is None


@pytest.mark.asyncio
async def test_repeated_query_parameters_keep_every_value(client: AsyncClient, audit_records):
    await client.get("/api/roles", params=[("tag", "a"), ("tag", "b"), ("page", "2")])

    [record] = await audit_records()
    assert record.metadata.query == {"tag": ["a", "b"], "page": "2"}

@pytest.mark.asyncio
async def test_role_update_carries_before_and_after(client, make_user, login, audit_records, app):
    await make_user("admin@example.com", role="super_admin")
    headers = await login("admin@example.com")
    lender = next(r for r in await app.state.rbac.list_roles() if r.name == "lender")

    r = await client.patch(
        f"/api/roles/{lender.id}",
        json={"description": "Invests in notes"},
        headers=headers,
    )
    assert r.status_code == 200

    [record] = _non_auth(await audit_records())
    assert record.action == AuditAction.UPDATE
    assert record.resource_id == lender.id
    assert record.changes.before == {
        "id": lender.id,
        "name": "lender",
        "display_name": "Lender",
        "description": "View opportunities, invest and manage a portfolio",
        "is_system": False,
    }
    assert record.changes.after == {"description": "Invests in notes"}


@pytest.mark.asyncio
async def test_validation_error_does_not_leak_password(client: AsyncClient, audit_records):
    r = await client.post("/api/auth/register", json={"email": "x@example.com", "password": "Zq9"})
    assert r.status_code == 422

    [record] = await audit_records()
    assert record.outcome == AuditOutcome.FAILURE
    assert record.metadata.error is not None
    assert "Zq9" not in record.metadata.error
    assert "Zq9" not in r.text
    assert record.changes.after["password"] == REDACTION_MARKER


@pytest.mark.asyncio
async def test_non_api_paths_are_ignored(client: AsyncClient, audit_records):
    await client.get("/openapi.json")
    await client.get("/favicon.ico")
    assert await audit_records() == []
