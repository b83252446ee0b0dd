"""
Permission assignment log routes.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends

from permguard.core.exceptions import NotFoundError
from permguard.models.enums import LogStatus, OperationType
from permguard.schemas.audit import AssignmentLogFilter, AssignmentLogResponse
from permguard.services.audit import PermissionAuditLogger
from permguard.utils.pagination import OffsetPage, OffsetParams, convert_page, get_offset_params
from ..dependencies import AdminPermission, get_audit_logger, require_permission

router = APIRouter()


@router.get("", response_model=OffsetPage[AssignmentLogResponse])
async def list_logs(
    user_id: UUID | None = None,
    target_user_id: UUID | None = None,
    operation_type: OperationType | None = None,
    status: LogStatus | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    pagination: OffsetParams = Depends(get_offset_params),
    audit: PermissionAuditLogger = Depends(get_audit_logger),
    _: UUID = Depends(require_permission(AdminPermission.LOG_VIEW)),
):
    """List assignment logs, newest first."""
    filters = AssignmentLogFilter(
        user_id=user_id,
        target_user_id=target_user_id,
        operation_type=operation_type,
        status=status,
        start_date=start_date,
        end_date=end_date,
    )
    page = await audit.list_logs(filters, page=pagination.page, per_page=pagination.per_page)
    return convert_page(page, AssignmentLogResponse)


@router.get("/{log_id}", response_model=AssignmentLogResponse)
async def get_log(
    log_id: UUID,
    audit: PermissionAuditLogger = Depends(get_audit_logger),
    _: UUID = Depends(require_permission(AdminPermission.LOG_VIEW)),
):
    """Get a log entry by ID."""
    log = await audit.get_log(log_id)
    if not log:
        raise NotFoundError("Log entry not found", details={"log_id": str(log_id)})
    return AssignmentLogResponse.model_validate(log)
