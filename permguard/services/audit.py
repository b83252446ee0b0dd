"""Permission assignment audit logger."""

from dataclasses import dataclass
from typing import Any, Iterable, Optional
from uuid import UUID

import structlog
from pydantic_core import to_jsonable_python
from sqlalchemy.ext.asyncio import AsyncSession

from permguard.models.assignment_log import (
    PermissionAssignmentLog,
    PermissionAssignmentLogTarget,
)
from permguard.models.enums import LogStatus
from permguard.repositories.data_scope_rule import AssignmentLogRepository
from permguard.schemas.audit import AssignmentLogFilter
from permguard.utils.pagination import Page

logger = structlog.get_logger()


@dataclass(frozen=True)
class RequestInfo:
    """Request metadata stored with each audit entry."""
    ip: Optional[str] = None
    user_agent: Optional[str] = None


class PermissionAuditLogger:
    """
    Records every mutating permission operation attempt.

    record() commits its own entry, so callers must have committed or
    rolled back their business transaction first. A failure to write the
    entry is logged and swallowed; it never affects the operation it
    describes.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logs = AssignmentLogRepository(db)

    async def record(
        self,
        *,
        user_id: Optional[UUID],
        target_users: UUID | Iterable[UUID],
        operation_type: str,
        before_state: Any = None,
        after_state: Any = None,
        details: Optional[str] = None,
        status: Optional[str] = None,
        error: Optional[str] = None,
        request_info: Optional[RequestInfo] = None,
    ) -> Optional[PermissionAssignmentLog]:
        """
        Create an audit entry.

        Args:
            user_id: Operator who performed the operation
            target_users: Affected user(s)
            operation_type: OperationType value
            before_state: Snapshot captured before mutating
            after_state: Snapshot captured after mutating
            details: Human-readable summary
            status: LogStatus value; derived from `error` when omitted
            error: Error message for failed attempts
            request_info: Caller IP and user agent
        """
        if isinstance(target_users, UUID):
            target_users = [target_users]
        targets = list(dict.fromkeys(target_users))
        status = status or (LogStatus.FAILED.value if error else LogStatus.SUCCESS.value)
        request_info = request_info or RequestInfo()

        try:
            entry = PermissionAssignmentLog(
                user_id=user_id,
                operation_type=operation_type,
                before_state=to_jsonable_python(before_state),
                after_state=to_jsonable_python(after_state),
                details=details,
                status=status,
                error_message=error,
                ip_address=request_info.ip,
                user_agent=request_info.user_agent,
                targets=[PermissionAssignmentLogTarget(user_id=t) for t in targets],
            )
            self.db.add(entry)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception(
                "Failed to record permission audit log",
                operation_type=operation_type,
                operator_id=str(user_id) if user_id else None,
            )
            return None

        logger.info(
            "Permission audit log created",
            operation_type=operation_type,
            status=status,
            operator_id=str(user_id) if user_id else None,
            target_count=len(targets),
        )
        return entry

    async def get_log(self, log_id: UUID) -> Optional[PermissionAssignmentLog]:
        """Get an audit log by ID."""
        return await self.logs.get_by_id(log_id)

    async def list_logs(
        self,
        filters: Optional[AssignmentLogFilter] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Page:
        """List audit logs, newest first."""
        filters = filters or AssignmentLogFilter()
        stmt = self.logs.filtered_query(
            user_id=filters.user_id,
            target_user_id=filters.target_user_id,
            operation_type=filters.operation_type.value if filters.operation_type else None,
            status=filters.status.value if filters.status else None,
            start_date=filters.start_date,
            end_date=filters.end_date,
        )
        return await self.logs.paginate(
            stmt,
            page=page,
            per_page=per_page,
            order_by=PermissionAssignmentLog.created_at.desc(),
        )
