"""
User-role assignment routes.
"""

from uuid import UUID
from fastapi import APIRouter, Depends, status

from permguard.schemas.permission import UserRoleCreate, UserRoleResponse, UserRoleStatusUpdate
from permguard.services.audit import RequestInfo
from permguard.services.manager import PermissionManager
from ..dependencies import (
    AdminPermission,
    get_manager,
    get_request_info,
    require_any_permission,
    require_permission,
)

router = APIRouter()


@router.post("/user-roles", response_model=UserRoleResponse, status_code=status.HTTP_201_CREATED)
async def assign_user_role(
    data: UserRoleCreate,
    manager: PermissionManager = Depends(get_manager),
    request_info: RequestInfo = Depends(get_request_info),
    operator_id: UUID = Depends(require_permission(AdminPermission.ROLE_ASSIGN)),
):
    """Assign a role to a user."""
    link = await manager.assign_user_role(data, operator_id=operator_id, request_info=request_info)
    return UserRoleResponse.model_validate(link)


@router.patch("/user-roles/status", response_model=UserRoleResponse)
async def set_user_role_status(
    data: UserRoleStatusUpdate,
    manager: PermissionManager = Depends(get_manager),
    request_info: RequestInfo = Depends(get_request_info),
    operator_id: UUID = Depends(require_permission(AdminPermission.ROLE_ASSIGN)),
):
    """Enable or disable a user's role."""
    link = await manager.set_user_role_status(
        data.user_id,
        data.role_id,
        data.status,
        operator_id=operator_id,
        request_info=request_info,
    )
    return UserRoleResponse.model_validate(link)


@router.get("/users/{user_id}/roles", response_model=list[UserRoleResponse])
async def list_user_roles(
    user_id: UUID,
    manager: PermissionManager = Depends(get_manager),
    _: UUID = Depends(require_any_permission(AdminPermission.ROLE_VIEW, AdminPermission.ROLE_ASSIGN)),
):
    """List a user's role links, enabled or not."""
    return [UserRoleResponse.model_validate(link) for link in await manager.list_user_roles(user_id)]
