"""
Direct and batch permission assignment, plus permission checks.
"""

from datetime import datetime, timezone
from uuid import UUID
from fastapi import APIRouter, Depends

from permguard.schemas.assignment import (
    BatchAssign,
    BatchResult,
    DirectAssign,
    PermissionCheckRequest,
    PermissionCheckResponse,
    ResolvedPermissionsResponse,
    UserPermissionTree,
)
from permguard.services.audit import RequestInfo
from permguard.services.manager import PermissionManager
from permguard.services.resolver import PermissionResolver
from permguard.services.scope import ScopeEvaluator
from ..dependencies import (
    AdminPermission,
    get_manager,
    get_operator_id,
    get_request_info,
    get_resolver,
    get_scope_evaluator,
    require_any_permission,
    require_permission,
)

router = APIRouter()


@router.get("/users/{user_id}/permissions", response_model=UserPermissionTree)
async def get_user_permission_assignments(
    user_id: UUID,
    manager: PermissionManager = Depends(get_manager),
    _: UUID = Depends(
        require_any_permission(AdminPermission.PERMISSION_VIEW, AdminPermission.PERMISSION_ASSIGN)
    ),
):
    """All enabled permissions by module, flagged when the user holds them."""
    return await manager.get_user_permission_assignments(user_id)


@router.put("/users/{user_id}/permissions", response_model=UserPermissionTree)
async def assign_user_permissions(
    user_id: UUID,
    data: DirectAssign,
    manager: PermissionManager = Depends(get_manager),
    request_info: RequestInfo = Depends(get_request_info),
    operator_id: UUID = Depends(require_permission(AdminPermission.PERMISSION_ASSIGN)),
):
    """Replace the permissions granted directly to a user."""
    await manager.assign_user_permissions(
        user_id,
        data.permission_ids,
        operator_id=operator_id,
        request_info=request_info,
    )
    return await manager.get_user_permission_assignments(user_id)


@router.get("/users/{user_id}/permissions/resolved", response_model=ResolvedPermissionsResponse)
async def get_resolved_permissions(
    user_id: UUID,
    resolver: PermissionResolver = Depends(get_resolver),
    _: UUID = Depends(
        require_any_permission(AdminPermission.PERMISSION_VIEW, AdminPermission.PERMISSION_ASSIGN)
    ),
):
    """A user's effective permission set with resolved scopes."""
    resolved = await resolver.get_user_permissions(user_id)
    return ResolvedPermissionsResponse(**resolved.to_cache())


@router.post("/permissions/batch-assign", response_model=BatchResult)
async def batch_assign_permissions(
    data: BatchAssign,
    manager: PermissionManager = Depends(get_manager),
    request_info: RequestInfo = Depends(get_request_info),
    operator_id: UUID = Depends(require_permission(AdminPermission.PERMISSION_ASSIGN)),
):
    """Merge permissions into several users' custom roles."""
    return await manager.batch_assign_permissions(
        data.user_ids,
        data.permission_ids,
        operator_id=operator_id,
        request_info=request_info,
    )


@router.post("/permissions/check", response_model=PermissionCheckResponse)
async def check_permission(
    data: PermissionCheckRequest,
    evaluator: ScopeEvaluator = Depends(get_scope_evaluator),
    operator_id: UUID = Depends(get_operator_id),
):
    """Check whether the calling user may use a permission, optionally on a record."""
    allowed = await evaluator.evaluate_enhanced(operator_id, data.code, data.target, data.module)
    return PermissionCheckResponse(
        code=data.code,
        allowed=allowed,
        checked_at=datetime.now(timezone.utc),
    )
