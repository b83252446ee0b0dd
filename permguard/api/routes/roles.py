"""
Role routes.
"""

from uuid import UUID
from fastapi import APIRouter, Depends, Query, status

from permguard.schemas.permission import RoleCreate, RoleUpdate, RoleResponse, StatusUpdate
from permguard.services.manager import PermissionManager
from permguard.utils.pagination import OffsetPage, OffsetParams, convert_page, get_offset_params
from ..dependencies import AdminPermission, get_manager, require_any_permission, require_permission

router = APIRouter()


@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    data: RoleCreate,
    manager: PermissionManager = Depends(get_manager),
    operator_id: UUID = Depends(require_permission(AdminPermission.ROLE_MANAGE)),
):
    """Create a role."""
    role = await manager.create_role(data, operator_id=operator_id)
    return RoleResponse.model_validate(role)


@router.get("", response_model=OffsetPage[RoleResponse])
async def list_roles(
    keyword: str | None = Query(None, max_length=100),
    status: bool | None = None,
    pagination: OffsetParams = Depends(get_offset_params),
    manager: PermissionManager = Depends(get_manager),
    _: UUID = Depends(require_any_permission(AdminPermission.ROLE_VIEW, AdminPermission.ROLE_MANAGE)),
):
    """List administrator-defined roles."""
    page = await manager.list_roles(
        keyword=keyword,
        status=status,
        page=pagination.page,
        per_page=pagination.per_page,
    )
    return convert_page(page, RoleResponse)


@router.get("/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: UUID,
    manager: PermissionManager = Depends(get_manager),
    _: UUID = Depends(require_any_permission(AdminPermission.ROLE_VIEW, AdminPermission.ROLE_MANAGE)),
):
    """Get role by ID."""
    return RoleResponse.model_validate(await manager.get_role(role_id))


@router.patch("/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: UUID,
    data: RoleUpdate,
    manager: PermissionManager = Depends(get_manager),
    _: UUID = Depends(require_permission(AdminPermission.ROLE_MANAGE)),
):
    """Update role."""
    return RoleResponse.model_validate(await manager.update_role(role_id, data))


@router.patch("/{role_id}/status", response_model=RoleResponse)
async def set_role_status(
    role_id: UUID,
    data: StatusUpdate,
    manager: PermissionManager = Depends(get_manager),
    _: UUID = Depends(require_permission(AdminPermission.ROLE_MANAGE)),
):
    """Enable or disable a role."""
    return RoleResponse.model_validate(await manager.set_role_status(role_id, data.status))
