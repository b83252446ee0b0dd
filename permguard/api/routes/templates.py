"""
Permission template routes.
"""

from uuid import UUID
from fastapi import APIRouter, Depends, Query, status

from permguard.schemas.assignment import (
    BatchResult,
    TemplateApply,
    TemplateCreate,
    TemplateResponse,
    TemplateUpdate,
)
from permguard.services.audit import RequestInfo
from permguard.services.manager import PermissionManager
from permguard.utils.pagination import OffsetPage, OffsetParams, convert_page, get_offset_params
from ..dependencies import (
    AdminPermission,
    get_manager,
    get_request_info,
    require_all_permissions,
    require_any_permission,
    require_permission,
)

router = APIRouter()


@router.post("", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    data: TemplateCreate,
    manager: PermissionManager = Depends(get_manager),
    operator_id: UUID = Depends(require_permission(AdminPermission.TEMPLATE_MANAGE)),
):
    """Create a permission template."""
    template = await manager.create_template(data, operator_id=operator_id)
    return TemplateResponse.model_validate(template)


@router.get("", response_model=OffsetPage[TemplateResponse])
async def list_templates(
    name: str | None = Query(None, max_length=100),
    status: bool | None = None,
    pagination: OffsetParams = Depends(get_offset_params),
    manager: PermissionManager = Depends(get_manager),
    _: UUID = Depends(
        require_any_permission(AdminPermission.TEMPLATE_VIEW, AdminPermission.TEMPLATE_MANAGE)
    ),
):
    """List templates, default first."""
    page = await manager.list_templates(
        name=name,
        status=status,
        page=pagination.page,
        per_page=pagination.per_page,
    )
    return convert_page(page, TemplateResponse)


@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: UUID,
    manager: PermissionManager = Depends(get_manager),
    _: UUID = Depends(
        require_any_permission(AdminPermission.TEMPLATE_VIEW, AdminPermission.TEMPLATE_MANAGE)
    ),
):
    """Get template by ID."""
    return TemplateResponse.model_validate(await manager.get_template(template_id))


@router.patch("/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: UUID,
    data: TemplateUpdate,
    manager: PermissionManager = Depends(get_manager),
    _: UUID = Depends(require_permission(AdminPermission.TEMPLATE_MANAGE)),
):
    """Update template."""
    return TemplateResponse.model_validate(await manager.update_template(template_id, data))


@router.post("/{template_id}/apply", response_model=BatchResult)
async def apply_template(
    template_id: UUID,
    data: TemplateApply,
    manager: PermissionManager = Depends(get_manager),
    request_info: RequestInfo = Depends(get_request_info),
    operator_id: UUID = Depends(
        require_all_permissions(AdminPermission.TEMPLATE_VIEW, AdminPermission.PERMISSION_ASSIGN)
    ),
):
    """Merge a template's permissions into users' custom roles."""
    return await manager.apply_template_to_users(
        template_id,
        data.user_ids,
        operator_id=operator_id,
        request_info=request_info,
    )
