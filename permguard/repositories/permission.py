"""
Permission, role and template repositories.
"""

from uuid import UUID
from sqlalchemy import Select, select, update, or_, exists
from sqlalchemy.orm import selectinload

from permguard.models.data_scope_rule import DataScopeRule
from permguard.models.permission import Permission
from permguard.models.role import Role, RolePermission
from permguard.models.template import PermissionTemplate, TemplatePermission
from .base import BaseRepository


class PermissionRepository(BaseRepository[Permission]):
    model = Permission

    async def get_by_code(self, code: str) -> Permission | None:
        return await self.get_one(code=code)

    async def is_referenced(self, permission_id: UUID) -> bool:
        """True when any role, template or data-scope rule holds the permission."""
        stmt = select(
            or_(
                exists().where(RolePermission.permission_id == permission_id),
                exists().where(TemplatePermission.permission_id == permission_id),
                exists().where(DataScopeRule.permission_id == permission_id),
            )
        )
        return bool(await self.db.scalar(stmt))

    async def list_enabled(self) -> list[Permission]:
        stmt = (
            select(Permission)
            .where(Permission.status.is_(True))
            .order_by(Permission.module, Permission.type, Permission.code)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    def filtered_query(
        self,
        module: str | None = None,
        type: str | None = None,
        status: bool | None = None,
        keyword: str | None = None,
    ) -> Select:
        stmt = self._base_query()
        if module:
            stmt = stmt.where(Permission.module == module)
        if type:
            stmt = stmt.where(Permission.type == type)
        if status is not None:
            stmt = stmt.where(Permission.status.is_(status))
        if keyword:
            pattern = f"%{keyword}%"
            stmt = stmt.where(or_(Permission.code.ilike(pattern), Permission.name.ilike(pattern)))
        return stmt


class RoleRepository(BaseRepository[Role]):
    model = Role

    def _base_query(self) -> Select:
        return select(Role).options(
            selectinload(Role.permissions).selectinload(RolePermission.permission)
        )

    async def get_by_code(self, code: str) -> Role | None:
        return await self.get_one(code=code)

    def filtered_query(
        self,
        keyword: str | None = None,
        status: bool | None = None,
        include_system: bool = False,
    ) -> Select:
        stmt = self._base_query()
        if not include_system:
            stmt = stmt.where(Role.is_system.is_(False))
        if status is not None:
            stmt = stmt.where(Role.status.is_(status))
        if keyword:
            pattern = f"%{keyword}%"
            stmt = stmt.where(or_(Role.code.ilike(pattern), Role.name.ilike(pattern)))
        return stmt


class TemplateRepository(BaseRepository[PermissionTemplate]):
    model = PermissionTemplate

    def _base_query(self) -> Select:
        return select(PermissionTemplate).options(
            selectinload(PermissionTemplate.permissions).selectinload(TemplatePermission.permission)
        )

    async def get_by_name(self, name: str) -> PermissionTemplate | None:
        return await self.get_one(name=name)

    async def demote_defaults(self, keep_id: UUID | None = None) -> int:
        """Clear is_default on every template except `keep_id`."""
        stmt = (
            update(PermissionTemplate)
            .where(PermissionTemplate.is_default.is_(True))
            .values(is_default=False)
            .execution_options(synchronize_session="fetch")
        )
        if keep_id is not None:
            stmt = stmt.where(PermissionTemplate.id != keep_id)
        result = await self.db.execute(stmt)
        return result.rowcount

    def filtered_query(
        self,
        name: str | None = None,
        status: bool | None = None,
    ) -> Select:
        stmt = self._base_query()
        if name:
            stmt = stmt.where(PermissionTemplate.name.ilike(f"%{name}%"))
        if status is not None:
            stmt = stmt.where(PermissionTemplate.status.is_(status))
        return stmt
