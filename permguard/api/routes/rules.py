"""
Data-scope rule routes.
"""

from uuid import UUID
from fastapi import APIRouter, Depends, status

from permguard.models.enums import Module
from permguard.schemas.permission import StatusUpdate
from permguard.schemas.rule import DataScopeRuleCreate, DataScopeRuleResponse
from permguard.services.audit import RequestInfo
from permguard.services.manager import PermissionManager
from permguard.utils.pagination import OffsetPage, OffsetParams, convert_page, get_offset_params
from ..dependencies import (
    AdminPermission,
    get_manager,
    get_request_info,
    require_any_permission,
    require_permission,
)

router = APIRouter()


@router.post("", response_model=DataScopeRuleResponse, status_code=status.HTTP_201_CREATED)
async def create_data_scope_rule(
    data: DataScopeRuleCreate,
    manager: PermissionManager = Depends(get_manager),
    request_info: RequestInfo = Depends(get_request_info),
    operator_id: UUID = Depends(require_permission(AdminPermission.RULE_MANAGE)),
):
    """Create a custom data-scope rule."""
    rule = await manager.create_data_scope_rule(data, operator_id=operator_id, request_info=request_info)
    return DataScopeRuleResponse.model_validate(rule)


@router.get("", response_model=OffsetPage[DataScopeRuleResponse])
async def list_data_scope_rules(
    permission_id: UUID | None = None,
    module: Module | None = None,
    status: bool | None = None,
    pagination: OffsetParams = Depends(get_offset_params),
    manager: PermissionManager = Depends(get_manager),
    _: UUID = Depends(require_any_permission(AdminPermission.RULE_VIEW, AdminPermission.RULE_MANAGE)),
):
    """List data-scope rules."""
    page = await manager.list_data_scope_rules(
        permission_id=permission_id,
        module=module.value if module else None,
        status=status,
        page=pagination.page,
        per_page=pagination.per_page,
    )
    return convert_page(page, DataScopeRuleResponse)


@router.get("/{rule_id}", response_model=DataScopeRuleResponse)
async def get_data_scope_rule(
    rule_id: UUID,
    manager: PermissionManager = Depends(get_manager),
    _: UUID = Depends(require_any_permission(AdminPermission.RULE_VIEW, AdminPermission.RULE_MANAGE)),
):
    """Get rule by ID."""
    return DataScopeRuleResponse.model_validate(await manager.get_data_scope_rule(rule_id))


@router.patch("/{rule_id}/status", response_model=DataScopeRuleResponse)
async def set_data_scope_rule_status(
    rule_id: UUID,
    data: StatusUpdate,
    manager: PermissionManager = Depends(get_manager),
    request_info: RequestInfo = Depends(get_request_info),
    operator_id: UUID = Depends(require_permission(AdminPermission.RULE_MANAGE)),
):
    """Enable or disable a rule."""
    rule = await manager.set_data_scope_rule_status(
        rule_id,
        data.status,
        operator_id=operator_id,
        request_info=request_info,
    )
    return DataScopeRuleResponse.model_validate(rule)
