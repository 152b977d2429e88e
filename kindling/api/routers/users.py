"""User administration: role assignment and account status, /api/users."""

from dataclasses import asdict
from typing import Annotated, List

from fastapi import APIRouter, Depends, Request, status

from kindling.api.dependencies import get_accounts, get_rbac, require_permission
from kindling.api.middleware import stage_audit_before
from kindling.api.schemas import RoleResponse, UserResponse, UserRoleRequest, UserStatusRequest
from kindling.security.accounts import AccountService
from kindling.security.models import User
from kindling.security.rbac import RBACService

router = APIRouter()

Rbac = Annotated[RBACService, Depends(get_rbac)]
Accounts = Annotated[AccountService, Depends(get_accounts)]


@router.get("/{user_id}", response_model=UserResponse, dependencies=[Depends(require_permission("users", "read"))])
async def get_user(user_id: str, accounts: Accounts):
    return UserResponse.from_user(await accounts.get_user(user_id))


@router.get(
    "/{user_id}/roles",
    response_model=List[RoleResponse],
    dependencies=[Depends(require_permission("users", "read"))],
)
async def list_user_roles(user_id: str, accounts: Accounts, rbac: Rbac):
    await accounts.get_user(user_id)
    return [RoleResponse.from_role(role) for role in await rbac.get_user_roles(user_id)]


@router.post("/{user_id}/roles", status_code=status.HTTP_201_CREATED)
async def assign_role(
    user_id: str,
    body: UserRoleRequest,
    accounts: Accounts,
    rbac: Rbac,
    admin: Annotated[User, Depends(require_permission("roles", "assign"))],
):
    """Idempotent: assigning a role the user already holds returns the existing assignment."""
    await accounts.get_user(user_id)
    return asdict(await rbac.assign_role(user_id, body.role_id, assigned_by=admin.id))


@router.delete(
    "/{user_id}/roles/{role_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_permission("roles", "assign"))],
)
async def remove_role(user_id: str, role_id: str, rbac: Rbac):
    await rbac.remove_role(user_id, role_id)


@router.patch(
    "/{user_id}/status",
    response_model=UserResponse,
    dependencies=[Depends(require_permission("users", "update"))],
)
async def set_user_status(request: Request, user_id: str, body: UserStatusRequest, accounts: Accounts):
    """Suspend, deactivate or reactivate. Leaving active revokes every session of the user."""
    before = await accounts.get_user(user_id)
    stage_audit_before(request, "users", user_id, UserResponse.from_user(before).model_dump(mode="json"))
    return UserResponse.from_user(await accounts.set_status(user_id, body.status))
