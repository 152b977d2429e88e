"""Default roles and grants: idempotent seeding, expected access per role."""

import pytest

from kindling.infrastructure.memory.security_repository_memory import InMemorySecurityRepository
from kindling.security.rbac import RBACService
from kindling.security.seed import ALL_PERMISSION_KEYS, DEFAULT_ROLES, seed_defaults


@pytest.fixture
async def rbac():
    service = RBACService(InMemorySecurityRepository())
    await seed_defaults(service)
    return service


async def _user_with_role(rbac, role_name, user_id="u1"):
    roles = {r.name: r for r in await rbac.list_roles()}
    await rbac.assign_role(user_id, roles[role_name].id)
    return user_id


async def test_seed_creates_roles_and_permissions(rbac):
    assert {r.name for r in await rbac.list_roles()} == {name for name, *_ in DEFAULT_ROLES}
    assert {p.key for p in await rbac.list_permissions()} == set(ALL_PERMISSION_KEYS)


async def test_seed_is_idempotent(rbac):
    await seed_defaults(rbac)
    assert len(await rbac.list_roles()) == len(DEFAULT_ROLES)
    assert len(await rbac.list_permissions()) == len(ALL_PERMISSION_KEYS)
    super_admin = next(r for r in await rbac.list_roles() if r.name == "super_admin")
    assert len(await rbac.get_role_permissions(super_admin.id)) == len(ALL_PERMISSION_KEYS)


async def test_super_admin_has_everything(rbac):
    user = await _user_with_role(rbac, "super_admin")
    assert [p.key for p in await rbac.get_user_permissions(user)] == sorted(ALL_PERMISSION_KEYS)


async def test_lender_can_invest_but_not_approve(rbac):
    user = await _user_with_role(rbac, "lender")
    assert await rbac.user_has_permission(user, "investments", "create") is True
    assert await rbac.user_has_permission(user, "investments", "approve") is False
    assert await rbac.user_has_permission(user, "audit_logs", "read_all") is False


async def test_compliance_officer_reviews_documents(rbac):
    user = await _user_with_role(rbac, "compliance_officer")
    assert await rbac.user_has_permission(user, "documents", "approve") is True
    assert await rbac.user_has_permission(user, "entities", "approve_kyc") is True
    assert await rbac.user_has_permission(user, "ledger", "post") is False


async def test_accountant_owns_the_ledger(rbac):
    user = await _user_with_role(rbac, "accountant")
    for action in ("read", "create", "update", "post", "reverse", "reconcile"):
        assert await rbac.user_has_permission(user, "ledger", action) is True
    assert await rbac.user_has_permission(user, "users", "delete") is False


async def test_admin_manages_registrations(rbac):
    user = await _user_with_role(rbac, "admin")
    assert await rbac.user_has_permission(user, "registrations", "approve") is True
    assert await rbac.user_has_permission(user, "system", "backup") is False
