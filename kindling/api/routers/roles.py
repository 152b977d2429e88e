"""Role and permission administration: /api/roles, /api/permissions."""

from dataclasses import asdict
from typing import Annotated, List

from fastapi import APIRouter, Depends, Request, status

from kindling.api.dependencies import get_rbac, require_permission
from kindling.api.middleware import stage_audit_before
from kindling.api.schemas import (
    PermissionCreateRequest,
    PermissionResponse,
    RoleCreateRequest,
    RolePermissionRequest,
    RoleResponse,
    RoleUpdateRequest,
)
from kindling.security.rbac import RBACService

router = APIRouter()
permissions_router = APIRouter()

Rbac = Annotated[RBACService, Depends(get_rbac)]


@router.get("", response_model=List[RoleResponse], dependencies=[Depends(require_permission("roles", "read"))])
async def list_roles(rbac: Rbac):
    return [RoleResponse.from_role(role) for role in await rbac.list_roles()]


@router.post(
    "",
    response_model=RoleResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission("roles", "create"))],
)
async def create_role(body: RoleCreateRequest, rbac: Rbac):
    role = await rbac.create_role(body.name, body.display_name, body.description)
    return RoleResponse.from_role(role)


@router.get("/{role_id}", response_model=RoleResponse, dependencies=[Depends(require_permission("roles", "read"))])
async def get_role(role_id: str, rbac: Rbac):
    return RoleResponse.from_role(await rbac.get_role(role_id))


@router.patch(
    "/{role_id}",
    response_model=RoleResponse,
    dependencies=[Depends(require_permission("roles", "update"))],
)
async def update_role(request: Request, role_id: str, body: RoleUpdateRequest, rbac: Rbac):
    before = await rbac.get_role(role_id)
    stage_audit_before(request, "roles", role_id, RoleResponse.from_role(before).model_dump(mode="json"))
    role = await rbac.update_role(
        role_id,
        display_name=body.display_name,
        description=body.description,
    )
    return RoleResponse.from_role(role)


@router.delete(
    "/{role_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_permission("roles", "delete"))],
)
async def delete_role(request: Request, role_id: str, rbac: Rbac):
    before = await rbac.get_role(role_id)
    stage_audit_before(request, "roles", role_id, RoleResponse.from_role(before).model_dump(mode="json"))
    await rbac.delete_role(role_id)


@router.get(
    "/{role_id}/permissions",
    response_model=List[PermissionResponse],
    dependencies=[Depends(require_permission("roles", "read"))],
)
async def list_role_permissions(role_id: str, rbac: Rbac):
    await rbac.get_role(role_id)
    return [PermissionResponse.from_permission(p) for p in await rbac.get_role_permissions(role_id)]


@router.post(
    "/{role_id}/permissions",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission("roles", "update"))],
)
async def attach_permission(role_id: str, body: RolePermissionRequest, rbac: Rbac):
    """Idempotent: attaching an already attached permission returns the existing link."""
    return asdict(await rbac.attach_permission(role_id, body.permission_id))


@router.delete(
    "/{role_id}/permissions/{permission_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_permission("roles", "update"))],
)
async def detach_permission(role_id: str, permission_id: str, rbac: Rbac):
    await rbac.detach_permission(role_id, permission_id)


# ---------------------------------------------------------------------------
# /api/permissions
# ---------------------------------------------------------------------------

@permissions_router.get(
    "",
    response_model=List[PermissionResponse],
    dependencies=[Depends(require_permission("roles", "read"))],
)
async def list_permissions(rbac: Rbac):
    return [PermissionResponse.from_permission(p) for p in await rbac.list_permissions()]


@permissions_router.post(
    "",
    response_model=PermissionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_permission("roles", "create"))],
)
async def create_permission(body: PermissionCreateRequest, rbac: Rbac):
    permission = await rbac.create_permission(body.resource, body.action, body.description)
    return PermissionResponse.from_permission(permission)


@permissions_router.delete(
    "/{permission_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_permission("roles", "delete"))],
)
async def delete_permission(permission_id: str, rbac: Rbac):
    await rbac.delete_permission(permission_id)
