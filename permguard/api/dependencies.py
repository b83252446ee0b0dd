"""
FastAPI dependencies.

Authentication happens upstream: the gateway forwards the authenticated
user's id in the X-User-Id header. Administrative routes are gated with
require_permission(), which asks the resolver.
"""

from typing import AsyncGenerator, Callable
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from permguard.core.cache import CacheBackend
from permguard.core.config import get_settings
from permguard.core.exceptions import ForbiddenError
from permguard.models.database import async_session_factory
from permguard.services.audit import PermissionAuditLogger, RequestInfo
from permguard.services.manager import PermissionManager
from permguard.services.resolver import PermissionResolver
from permguard.services.scope import ScopeEvaluator


class AdminPermission:
    """Permission codes that gate the administrative surface."""

    PERMISSION_VIEW = "system:permission:view"
    PERMISSION_MANAGE = "system:permission:manage"
    PERMISSION_ASSIGN = "system:permission:assign"
    ROLE_VIEW = "system:role:view"
    ROLE_MANAGE = "system:role:manage"
    ROLE_ASSIGN = "system:role:assign"
    TEMPLATE_VIEW = "system:template:view"
    TEMPLATE_MANAGE = "system:template:manage"
    RULE_VIEW = "system:rule:view"
    RULE_MANAGE = "system:rule:manage"
    LOG_VIEW = "system:log:view"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_cache(request: Request) -> CacheBackend:
    """Resolved-permission cache created at startup."""
    return request.app.state.cache


async def get_resolver(
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
) -> PermissionResolver:
    return PermissionResolver(db, cache, get_settings().permissions)


async def get_scope_evaluator(
    db: AsyncSession = Depends(get_db),
    resolver: PermissionResolver = Depends(get_resolver),
) -> ScopeEvaluator:
    return ScopeEvaluator(db, resolver)


async def get_manager(
    db: AsyncSession = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
) -> PermissionManager:
    return PermissionManager(db, cache, get_settings().permissions)


async def get_audit_logger(db: AsyncSession = Depends(get_db)) -> PermissionAuditLogger:
    return PermissionAuditLogger(db)


async def get_operator_id(x_user_id: str | None = Header(default=None)) -> UUID:
    """Authenticated user id forwarded by the gateway."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid X-User-Id header",
        )


def get_request_info(request: Request) -> RequestInfo:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else None
    return RequestInfo(ip=ip, user_agent=request.headers.get("User-Agent"))


def require_permission(code: str) -> Callable:
    """
    Dependency factory gating a route on one permission.

    Usage:
    ```python
    @router.post("")
    async def create_role(
        data: RoleCreate,
        operator_id: UUID = Depends(require_permission("system:role:manage")),
    ):
        ...
    ```
    """

    async def check_permission(
        operator_id: UUID = Depends(get_operator_id),
        resolver: PermissionResolver = Depends(get_resolver),
    ) -> UUID:
        if not await resolver.check_permission(operator_id, code):
            raise ForbiddenError(f"Permission denied: {code}", details={"permission": code})
        return operator_id

    return check_permission


def require_any_permission(*codes: str) -> Callable:
    """Dependency factory gating a route on any one of several permissions."""

    async def check_permission(
        operator_id: UUID = Depends(get_operator_id),
        resolver: PermissionResolver = Depends(get_resolver),
    ) -> UUID:
        if not await resolver.check_any_permission(operator_id, list(codes)):
            raise ForbiddenError(
                "Permission denied",
                details={"any_of": list(codes)},
            )
        return operator_id

    return check_permission


def require_all_permissions(*codes: str) -> Callable:
    """Dependency factory gating a route on every one of several permissions."""

    async def check_permission(
        operator_id: UUID = Depends(get_operator_id),
        resolver: PermissionResolver = Depends(get_resolver),
    ) -> UUID:
        if not await resolver.check_all_permissions(operator_id, list(codes)):
            raise ForbiddenError(
                "Permission denied",
                details={"all_of": list(codes)},
            )
        return operator_id

    return check_permission
