"""
Data-scope rule and audit log repositories.
"""

from datetime import datetime
from uuid import UUID
from sqlalchemy import Select, select

from permguard.models.assignment_log import (
    PermissionAssignmentLog,
    PermissionAssignmentLogTarget,
)
from permguard.models.data_scope_rule import DataScopeRule, DataScopeRuleUser
from .base import BaseRepository


class DataScopeRuleRepository(BaseRepository[DataScopeRule]):
    model = DataScopeRule

    async def applicable(
        self,
        permission_id: UUID,
        module: str,
        user_id: UUID,
    ) -> list[DataScopeRule]:
        """Enabled rules for (permission, module) whose applyTo includes the user."""
        stmt = (
            select(DataScopeRule)
            .join(DataScopeRuleUser, DataScopeRuleUser.rule_id == DataScopeRule.id)
            .where(
                DataScopeRule.permission_id == permission_id,
                DataScopeRule.module == module,
                DataScopeRule.status.is_(True),
                DataScopeRuleUser.user_id == user_id,
            )
            .order_by(DataScopeRule.created_at)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().unique().all())

    def filtered_query(
        self,
        permission_id: UUID | None = None,
        module: str | None = None,
        status: bool | None = None,
    ) -> Select:
        stmt = self._base_query()
        if permission_id:
            stmt = stmt.where(DataScopeRule.permission_id == permission_id)
        if module:
            stmt = stmt.where(DataScopeRule.module == module)
        if status is not None:
            stmt = stmt.where(DataScopeRule.status.is_(status))
        return stmt


class AssignmentLogRepository(BaseRepository[PermissionAssignmentLog]):
    model = PermissionAssignmentLog

    def filtered_query(
        self,
        user_id: UUID | None = None,
        target_user_id: UUID | None = None,
        operation_type: str | None = None,
        status: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> Select:
        stmt = self._base_query()
        if user_id:
            stmt = stmt.where(PermissionAssignmentLog.user_id == user_id)
        if target_user_id:
            stmt = stmt.where(
                PermissionAssignmentLog.id.in_(
                    select(PermissionAssignmentLogTarget.log_id).where(
                        PermissionAssignmentLogTarget.user_id == target_user_id
                    )
                )
            )
        if operation_type:
            stmt = stmt.where(PermissionAssignmentLog.operation_type == operation_type)
        if status:
            stmt = stmt.where(PermissionAssignmentLog.status == status)
        if start_date:
            stmt = stmt.where(PermissionAssignmentLog.created_at >= start_date)
        if end_date:
            stmt = stmt.where(PermissionAssignmentLog.created_at <= end_date)
        return stmt
