"""
Per-user custom role.

Direct, batch and template grants all land in one synthesized role per
user, "CUSTOM_<userId>". It's created lazily on the first grant and
reused afterwards: direct assignment replaces its permission set, batch
and template assignment merge into it.

Several call paths read-modify-write the same role, so every write bumps
roles.version (SQLAlchemy's version_id_col). A concurrent writer makes
the UPDATE match zero rows (StaleDataError) or the lazy create collide on
the unique role code (IntegrityError); both roll back, re-read and retry.
"""

from dataclasses import dataclass
from typing import Literal, Sequence
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from permguard.core.config import PermissionSettings, get_settings
from permguard.core.exceptions import NotFoundError, StaleObjectError
from permguard.models.permission import Permission
from permguard.models.role import Role, RolePermission
from permguard.models.user_role import UserRole

logger = structlog.get_logger()

AssignMode = Literal["replace", "merge"]


@dataclass(frozen=True)
class ScopedGrant:
    permission_id: UUID
    data_scope: str


@dataclass
class CustomRoleResult:
    role_id: UUID
    created: bool
    version: int
    permission_ids: list[UUID]


class CustomRoleService:
    """Find-or-create and update a user's custom role."""

    def __init__(self, db: AsyncSession, settings: PermissionSettings | None = None):
        self.db = db
        self.settings = settings or get_settings().permissions

    def role_code(self, user_id: UUID) -> str:
        return f"{self.settings.custom_role_prefix}{user_id}"

    async def get_role(self, user_id: UUID) -> Role | None:
        stmt = (
            select(Role)
            .where(Role.code == self.role_code(user_id))
            .options(selectinload(Role.permissions).selectinload(RolePermission.permission))
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def assign(
        self,
        user_id: UUID,
        grants: Sequence[ScopedGrant],
        mode: AssignMode,
        operator_id: UUID | None = None,
        role_name: str | None = None,
    ) -> CustomRoleResult:
        """
        Apply grants to the user's custom role and commit.

        Args:
            user_id: Owner of the custom role
            grants: (permission, scope) pairs, deduplicated by permission
            mode: "replace" the whole set or "merge" into it
            operator_id: Recorded as creator of new rows
            role_name: Display name used when the role is created

        Raises:
            StaleObjectError: Concurrent writers won every retry
        """
        grants = list({g.permission_id: g for g in grants}.values())
        last_error: Exception | None = None

        for attempt in range(1, self.settings.custom_role_max_retries + 1):
            try:
                result = await self._apply(user_id, grants, mode, operator_id, role_name)
                await self.db.commit()
                return result
            except (StaleDataError, IntegrityError) as e:
                await self.db.rollback()
                last_error = e
                logger.warning(
                    "Custom role write conflict, retrying",
                    user_id=str(user_id),
                    attempt=attempt,
                    error=type(e).__name__,
                )

        raise StaleObjectError(
            f"Custom role for user {user_id} was modified concurrently",
            details={
                "user_id": str(user_id),
                "attempts": self.settings.custom_role_max_retries,
                "error": str(last_error) if last_error else None,
            },
        )

    async def _apply(
        self,
        user_id: UUID,
        grants: list[ScopedGrant],
        mode: AssignMode,
        operator_id: UUID | None,
        role_name: str | None,
    ) -> CustomRoleResult:
        # Re-read every attempt: a rollback expires everything loaded before it
        permissions = await self._load_permissions([g.permission_id for g in grants])
        role = await self.get_role(user_id)
        created = role is None

        if role is None:
            role = Role(
                code=self.role_code(user_id),
                name=role_name or f"Custom permissions for {user_id}",
                description="Permissions granted directly to the user",
                is_system=True,
                created_by=operator_id,
                permissions=[make_role_permission(permissions[g.permission_id], g) for g in grants],
            )
            self.db.add(role)
            await self.db.flush()
        else:
            apply_grants(role, grants, permissions, mode)
            role.version += 1
            await self.db.flush()

        await self._ensure_link(user_id, role.id, operator_id)

        permission_ids = [rp.permission_id for rp in role.permissions]
        logger.info(
            "Custom role updated" if not created else "Custom role created",
            user_id=str(user_id),
            role_id=str(role.id),
            mode=mode,
            version=role.version,
            permission_count=len(permission_ids),
        )
        return CustomRoleResult(
            role_id=role.id,
            created=created,
            version=role.version,
            permission_ids=permission_ids,
        )

    async def _load_permissions(self, ids: list[UUID]) -> dict[UUID, Permission]:
        if not ids:
            return {}
        stmt = select(Permission).where(Permission.id.in_(ids))
        result = await self.db.execute(stmt)
        found = {p.id: p for p in result.scalars().all()}
        missing = [str(i) for i in ids if i not in found]
        if missing:
            raise NotFoundError("Permission not found", details={"permission_ids": missing})
        return found

    async def _ensure_link(self, user_id: UUID, role_id: UUID, operator_id: UUID | None) -> None:
        stmt = select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
        if await self.db.scalar(stmt) is None:
            self.db.add(
                UserRole(
                    user_id=user_id,
                    role_id=role_id,
                    created_by=operator_id,
                )
            )
            await self.db.flush()


def make_role_permission(permission: Permission, grant: ScopedGrant) -> RolePermission:
    return RolePermission(
        permission_id=permission.id,
        permission=permission,
        data_scope=grant.data_scope,
    )


def apply_grants(
    role: Role,
    grants: Sequence[ScopedGrant],
    permissions: dict[UUID, Permission],
    mode: AssignMode,
) -> None:
    """
    Merge grants into, or replace, a role's (permission, scope) pairs.

    Merge keeps the scope of pairs the role already has. Replace keeps
    the rows for permissions still granted (updating their scope) so the
    (role, permission) unique key is never inserted twice in one flush.
    """
    existing = {rp.permission_id: rp for rp in role.permissions}

    if mode == "merge":
        for grant in grants:
            if grant.permission_id not in existing:
                role.permissions.append(make_role_permission(permissions[grant.permission_id], grant))
        return

    wanted = {g.permission_id: g for g in grants}
    kept: list[RolePermission] = []
    for permission_id, role_permission in existing.items():
        if permission_id in wanted:
            role_permission.data_scope = wanted[permission_id].data_scope
            kept.append(role_permission)
    for grant in grants:
        if grant.permission_id not in existing:
            kept.append(make_role_permission(permissions[grant.permission_id], grant))
    role.permissions = kept
