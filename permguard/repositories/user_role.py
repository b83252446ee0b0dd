"""
User and user-role repositories.

The grant queries here are the resolver's only path to the store: they
already apply the "enabled link, enabled role, enabled permission" rule.
"""

from uuid import UUID
from sqlalchemy import Select, select

from permguard.models.permission import Permission
from permguard.models.role import Role, RolePermission
from permguard.models.user import User
from permguard.models.user_role import UserRole
from .base import BaseRepository


class UserRepository(BaseRepository[User]):
    model = User

    async def missing_ids(self, ids: list[UUID]) -> list[UUID]:
        """Return the ids from `ids` that have no user row."""
        found = {u.id for u in await self.get_by_ids(ids)}
        return [i for i in ids if i not in found]


class UserRoleRepository(BaseRepository[UserRole]):
    model = UserRole

    def _active(self, user_id: UUID, *columns) -> Select:
        return (
            select(*(columns or (UserRole,)))
            .select_from(UserRole)
            .join(Role, Role.id == UserRole.role_id)
            .where(
                UserRole.user_id == user_id,
                UserRole.status.is_(True),
                Role.status.is_(True),
            )
        )

    async def get_pair(self, user_id: UUID, role_id: UUID) -> UserRole | None:
        return await self.get_one(user_id=user_id, role_id=role_id)

    async def list_for_user(self, user_id: UUID) -> list[UserRole]:
        stmt = (
            select(UserRole)
            .where(UserRole.user_id == user_id)
            .order_by(UserRole.created_at)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def enabled_grants(self, user_id: UUID) -> list[tuple[str, str]]:
        """(permission code, data scope) pairs reachable through enabled links."""
        stmt = (
            select(Permission.code, RolePermission.data_scope)
            .select_from(UserRole)
            .join(Role, Role.id == UserRole.role_id)
            .join(RolePermission, RolePermission.role_id == Role.id)
            .join(Permission, Permission.id == RolePermission.permission_id)
            .where(
                UserRole.user_id == user_id,
                UserRole.status.is_(True),
                Role.status.is_(True),
                Permission.status.is_(True),
            )
            .order_by(UserRole.created_at, RolePermission.id)
        )
        result = await self.db.execute(stmt)
        return [(code, scope) for code, scope in result.all()]

    async def department_ids(self, user_id: UUID) -> list[str]:
        stmt = (
            self._active(user_id, UserRole.department_id)
            .where(UserRole.department_id.is_not(None))
            .distinct()
        )
        result = await self.db.execute(stmt)
        return [dept for dept in result.scalars().all()]

    async def role_ids(self, user_id: UUID) -> list[UUID]:
        stmt = self._active(user_id, UserRole.role_id).distinct()
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
