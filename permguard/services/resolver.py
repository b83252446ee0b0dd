"""
Permission resolver.

Computes a user's effective permission set and per-permission data
scope from every enabled role assigned to them, and answers
checkPermission-style questions against it.

The cache is a read-through accelerator only: any cache failure falls
back to the store, and dropping the cache never changes an answer.

Usage:
    resolver = PermissionResolver(db, cache)
    if await resolver.check_permission(user_id, "finance:transaction:create"):
        ...
    await resolver.check_permission(user_id, "task:update", {"created_by": user_id})
"""

from dataclasses import dataclass, field
from typing import Any, Iterable
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from permguard.core.cache import CacheBackend
from permguard.core.config import PermissionSettings, get_settings
from permguard.models.enums import DataScope, scope_weight
from permguard.repositories.user_role import UserRoleRepository
from permguard.utils.ids import id_str, same_id

logger = structlog.get_logger()


@dataclass(frozen=True)
class ResolvedPermissions:
    """A user's resolved permission set (the cached value)."""

    permissions: frozenset[str] = frozenset()
    data_scopes: dict[str, str] = field(default_factory=dict)
    departments: frozenset[str] = frozenset()

    def has(self, code: str) -> bool:
        return code in self.permissions

    def scope_for(self, code: str) -> str | None:
        return self.data_scopes.get(code)

    def to_cache(self) -> dict[str, Any]:
        return {
            "permissions": sorted(self.permissions),
            "data_scopes": dict(self.data_scopes),
            "departments": sorted(self.departments),
        }

    @classmethod
    def from_cache(cls, data: dict[str, Any]) -> "ResolvedPermissions":
        return cls(
            permissions=frozenset(data.get("permissions", [])),
            data_scopes=dict(data.get("data_scopes", {})),
            departments=frozenset(data.get("departments", [])),
        )


def fold_grants(grants: Iterable[tuple[str, str]]) -> tuple[frozenset[str], dict[str, str]]:
    """
    Fold (code, scope) pairs into a code set and a code -> scope map.

    The widest scope wins (all > department > personal). Custom and
    unknown scopes weigh 0, so they only survive when nothing weighted
    grants the same code; ties keep the first scope seen.
    """
    codes: set[str] = set()
    scopes: dict[str, str] = {}
    for code, scope in grants:
        codes.add(code)
        current = scopes.get(code)
        if current is None or scope_weight(scope) > scope_weight(current):
            scopes[code] = scope
    return frozenset(codes), scopes


class PermissionResolver:
    """Resolves and checks a user's effective permissions."""

    def __init__(
        self,
        db: AsyncSession,
        cache: CacheBackend,
        settings: PermissionSettings | None = None,
    ):
        self.db = db
        self.cache = cache
        self.settings = settings or get_settings().permissions
        self.user_roles = UserRoleRepository(db)

    def cache_key(self, user_id: UUID | str) -> str:
        return f"{self.settings.cache_key_prefix}{user_id}"

    # ============================================================
    # RESOLUTION
    # ============================================================

    async def get_user_permissions(self, user_id: UUID) -> ResolvedPermissions:
        """Resolved permissions for a user, from cache when possible."""
        key = self.cache_key(user_id)

        cached = await self._cache_get(key)
        if cached is not None:
            return ResolvedPermissions.from_cache(cached)

        resolved = await self._load(user_id)
        await self._cache_set(key, resolved.to_cache())
        return resolved

    async def _load(self, user_id: UUID) -> ResolvedPermissions:
        grants = await self.user_roles.enabled_grants(user_id)
        codes, scopes = fold_grants(grants)
        departments = await self.user_roles.department_ids(user_id)

        logger.debug(
            "Resolved user permissions",
            user_id=str(user_id),
            permission_count=len(codes),
        )
        return ResolvedPermissions(
            permissions=codes,
            data_scopes=scopes,
            departments=frozenset(departments),
        )

    async def get_user_role_ids(self, user_id: UUID) -> list[UUID]:
        """Ids of enabled roles held through enabled links (not cached)."""
        return await self.user_roles.role_ids(user_id)

    # ============================================================
    # CHECKS
    # ============================================================

    async def check_permission(
        self,
        user_id: UUID,
        code: str,
        target: dict[str, Any] | None = None,
    ) -> bool:
        """
        Check a permission, optionally against a specific record.

        Without a target this is a menu/operation-level check. With one,
        the resolved data scope decides:
            all        -> granted
            department -> target's department is one of the user's
            personal   -> target was created by the user
            anything else (custom) -> denied
        """
        resolved = await self.get_user_permissions(user_id)
        if not resolved.has(code):
            return False
        if target is None:
            return True
        return self.scope_allows(resolved, resolved.scope_for(code), user_id, target)

    def scope_allows(
        self,
        resolved: ResolvedPermissions,
        scope: str | None,
        user_id: UUID,
        target: dict[str, Any],
    ) -> bool:
        if scope == DataScope.ALL.value:
            return True
        if scope == DataScope.DEPARTMENT.value:
            department = id_str(target.get(self.settings.department_field))
            if department is None:
                return False
            return department.lower() in {d.lower() for d in resolved.departments}
        if scope == DataScope.PERSONAL.value:
            return same_id(target.get(self.settings.owner_field), user_id)
        return False

    async def check_any_permission(self, user_id: UUID, codes: list[str]) -> bool:
        """True if the user holds at least one of the codes."""
        if not codes:
            return False
        resolved = await self.get_user_permissions(user_id)
        return any(resolved.has(code) for code in codes)

    async def check_all_permissions(self, user_id: UUID, codes: list[str]) -> bool:
        """True if the user holds every one of the codes."""
        resolved = await self.get_user_permissions(user_id)
        return all(resolved.has(code) for code in codes)

    # ============================================================
    # INVALIDATION
    # ============================================================

    async def invalidate_user(self, user_id: UUID) -> None:
        try:
            await self.cache.delete(self.cache_key(user_id))
        except Exception:
            logger.warning("Permission cache delete failed", user_id=str(user_id), exc_info=True)

    async def invalidate_users(self, user_ids: Iterable[UUID]) -> None:
        for user_id in user_ids:
            await self.invalidate_user(user_id)

    async def invalidate_all(self) -> None:
        try:
            count = await self.cache.delete_pattern(f"{self.settings.cache_key_prefix}*")
            logger.info("Permission cache cleared", count=count)
        except Exception:
            logger.warning("Permission cache clear failed", exc_info=True)

    # ============================================================
    # CACHE ACCESS (failures degrade to a store read)
    # ============================================================

    async def _cache_get(self, key: str) -> dict[str, Any] | None:
        try:
            value = await self.cache.get(key)
        except Exception:
            logger.warning("Permission cache read failed", key=key, exc_info=True)
            return None
        if value is not None and not isinstance(value, dict):
            logger.warning("Ignoring malformed permission cache entry", key=key)
            return None
        return value

    async def _cache_set(self, key: str, value: dict[str, Any]) -> None:
        try:
            await self.cache.set(key, value, ttl=self.settings.cache_ttl)
        except Exception:
            logger.warning("Permission cache write failed", key=key, exc_info=True)
