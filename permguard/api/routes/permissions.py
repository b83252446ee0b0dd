"""
Permission definition routes.
"""

from uuid import UUID
from fastapi import APIRouter, Depends, Query, status

from permguard.models.enums import Module, PermissionType
from permguard.schemas.permission import PermissionCreate, PermissionUpdate, PermissionResponse
from permguard.services.manager import PermissionManager
from permguard.utils.pagination import OffsetPage, OffsetParams, convert_page, get_offset_params
from ..dependencies import AdminPermission, get_manager, require_any_permission, require_permission

router = APIRouter()


@router.post("", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    data: PermissionCreate,
    manager: PermissionManager = Depends(get_manager),
    _: UUID = Depends(require_permission(AdminPermission.PERMISSION_MANAGE)),
):
    """Create a permission."""
    permission = await manager.create_permission(data)
    return PermissionResponse.model_validate(permission)


@router.get("", response_model=OffsetPage[PermissionResponse])
async def list_permissions(
    module: Module | None = None,
    type: PermissionType | None = None,
    status: bool | None = None,
    keyword: str | None = Query(None, max_length=100),
    pagination: OffsetParams = Depends(get_offset_params),
    manager: PermissionManager = Depends(get_manager),
    _: UUID = Depends(
        require_any_permission(AdminPermission.PERMISSION_VIEW, AdminPermission.PERMISSION_MANAGE)
    ),
):
    """List permissions."""
    page = await manager.list_permissions(
        module=module.value if module else None,
        type=type.value if type else None,
        status=status,
        keyword=keyword,
        page=pagination.page,
        per_page=pagination.per_page,
    )
    return convert_page(page, PermissionResponse)


@router.get("/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: UUID,
    manager: PermissionManager = Depends(get_manager),
    _: UUID = Depends(
        require_any_permission(AdminPermission.PERMISSION_VIEW, AdminPermission.PERMISSION_MANAGE)
    ),
):
    """Get permission by ID."""
    return PermissionResponse.model_validate(await manager.get_permission(permission_id))


@router.patch("/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_id: UUID,
    data: PermissionUpdate,
    manager: PermissionManager = Depends(get_manager),
    _: UUID = Depends(require_permission(AdminPermission.PERMISSION_MANAGE)),
):
    """Update permission."""
    permission = await manager.update_permission(permission_id, data)
    return PermissionResponse.model_validate(permission)


@router.delete("/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_permission(
    permission_id: UUID,
    manager: PermissionManager = Depends(get_manager),
    _: UUID = Depends(require_permission(AdminPermission.PERMISSION_MANAGE)),
):
    """Delete a permission no role or template uses."""
    await manager.delete_permission(permission_id)
