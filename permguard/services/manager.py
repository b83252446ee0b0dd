"""
Permission manager.

CRUD and business rules for permissions, roles, user-role links,
templates and data-scope rules, plus the direct/batch/template grant
workflows that maintain each user's custom role.

Transaction pattern for audited operations:
    1. snapshot the affected users' resolved permissions
    2. mutate and commit
    3. invalidate the affected cache entries, snapshot again
    4. record an audit entry (its own commit)
On failure the business transaction is rolled back first, then a
"failed" audit entry is recorded and the error re-raised. After a
rollback every loaded entity is expired, so failure paths only use
values captured beforehand.
"""

from typing import Any, Iterable, Optional
from uuid import UUID

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from permguard.core.cache import CacheBackend
from permguard.core.config import PermissionSettings, get_settings
from permguard.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionEngineError,
    StaleObjectError,
    ValidationError,
)
from permguard.models.data_scope_rule import DataScopeRule, DataScopeRuleUser
from permguard.models.enums import LogStatus, OperationType, module_display_name
from permguard.models.permission import Permission
from permguard.models.role import Role
from permguard.models.template import PermissionTemplate, TemplatePermission
from permguard.models.user_role import UserRole
from permguard.repositories import (
    DataScopeRuleRepository,
    PermissionRepository,
    RoleRepository,
    TemplateRepository,
    UserRepository,
    UserRoleRepository,
)
from permguard.schemas.assignment import (
    BatchResult,
    ModuleNode,
    PermissionNode,
    TemplateCreate,
    TemplateUpdate,
    UserAssignResult,
    UserPermissionTree,
)
from permguard.schemas.permission import (
    PermissionCreate,
    PermissionUpdate,
    RoleCreate,
    RoleUpdate,
    ScopedPermission,
    UserRoleCreate,
)
from permguard.schemas.rule import DataScopeRuleCreate
from permguard.utils.pagination import Page
from .audit import PermissionAuditLogger, RequestInfo
from .custom_role import (
    CustomRoleResult,
    CustomRoleService,
    ScopedGrant,
    apply_grants,
    make_role_permission,
)
from .resolver import PermissionResolver
from .scope import ScopeEvaluator

logger = structlog.get_logger()


def error_message(error: Exception) -> str:
    if isinstance(error, PermissionEngineError):
        return error.message
    return str(error) or type(error).__name__


def _unique(ids: Iterable[UUID]) -> list[UUID]:
    return list(dict.fromkeys(ids))


class PermissionManager:
    """
    Usage:
        manager = PermissionManager(db, cache)
        await manager.assign_user_permissions(user_id, [perm_id], operator_id=admin_id)
        result = await manager.batch_assign_permissions([u1, u2], [perm_id], operator_id=admin_id)
    """

    def __init__(
        self,
        db: AsyncSession,
        cache: CacheBackend,
        settings: PermissionSettings | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings().permissions
        self.resolver = PermissionResolver(db, cache, self.settings)
        self.scope = ScopeEvaluator(db, self.resolver)
        self.custom_roles = CustomRoleService(db, self.settings)
        self.audit = PermissionAuditLogger(db)

        self.permissions = PermissionRepository(db)
        self.roles = RoleRepository(db)
        self.templates = TemplateRepository(db)
        self.users = UserRepository(db)
        self.user_roles = UserRoleRepository(db)
        self.rules = DataScopeRuleRepository(db)

    # ============================================================
    # HELPERS
    # ============================================================

    async def _snapshot(self, user_id: UUID) -> dict[str, Any]:
        return (await self.resolver.get_user_permissions(user_id)).to_cache()

    async def _commit(self, conflict_message: str) -> None:
        """Commit, turning unique-key and version races into conflicts."""
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(conflict_message) from e
        except StaleDataError as e:
            await self.db.rollback()
            raise StaleObjectError(conflict_message) from e

    async def _record_failure(
        self,
        error: Exception,
        *,
        operator_id: Optional[UUID],
        target_users: list[UUID],
        operation_type: OperationType,
        before_state: Any = None,
        details: Optional[str] = None,
        request_info: Optional[RequestInfo] = None,
    ) -> None:
        await self.db.rollback()
        logger.warning(
            "Permission operation failed",
            operation_type=operation_type.value,
            error=error_message(error),
        )
        await self.audit.record(
            user_id=operator_id,
            target_users=target_users,
            operation_type=operation_type.value,
            before_state=before_state,
            details=details,
            status=LogStatus.FAILED.value,
            error=error_message(error),
            request_info=request_info,
        )

    async def _require_user(self, user_id: UUID):
        user = await self.users.get_by_id(user_id)
        if not user:
            raise NotFoundError("User not found", details={"user_id": str(user_id)})
        return user

    async def _require_permissions(self, permission_ids: list[UUID]) -> dict[UUID, Permission]:
        found = {p.id: p for p in await self.permissions.get_by_ids(permission_ids)}
        missing = [str(i) for i in permission_ids if i not in found]
        if missing:
            raise NotFoundError("Permission not found", details={"permission_ids": missing})
        return found

    async def _scoped_grants(self, items: list[ScopedPermission]) -> tuple[list[ScopedGrant], dict[UUID, Permission]]:
        grants = list({
            item.permission_id: ScopedGrant(item.permission_id, item.data_scope.value)
            for item in items
        }.values())
        permissions = await self._require_permissions([g.permission_id for g in grants])
        return grants, permissions

    # ============================================================
    # PERMISSIONS
    # ============================================================

    async def create_permission(self, data: PermissionCreate) -> Permission:
        """Create a permission; codes are unique."""
        if await self.permissions.exists(code=data.code):
            raise ConflictError("Permission code already exists", details={"code": data.code})

        permission = Permission(
            code=data.code,
            name=data.name,
            description=data.description,
            module=data.module.value,
            type=data.type.value,
        )
        self.db.add(permission)
        await self._commit("Permission code already exists")
        await self.resolver.invalidate_all()

        logger.info("Permission created", code=permission.code, permission_id=str(permission.id))
        return permission

    async def list_permissions(
        self,
        module: Optional[str] = None,
        type: Optional[str] = None,
        status: Optional[bool] = None,
        keyword: Optional[str] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Page:
        stmt = self.permissions.filtered_query(module=module, type=type, status=status, keyword=keyword)
        return await self.permissions.paginate(
            stmt,
            page=page,
            per_page=per_page,
            order_by=[Permission.module, Permission.code],
        )

    async def get_permission(self, permission_id: UUID) -> Permission:
        permission = await self.permissions.get_by_id(permission_id)
        if not permission:
            raise NotFoundError("Permission not found", details={"permission_id": str(permission_id)})
        return permission

    async def update_permission(self, permission_id: UUID, data: PermissionUpdate) -> Permission:
        """Update a permission. A referenced permission keeps its code."""
        permission = await self.get_permission(permission_id)
        changes = data.model_dump(exclude_unset=True)

        new_code = changes.get("code")
        if new_code and new_code != permission.code:
            if await self.permissions.is_referenced(permission.id):
                raise ConflictError(
                    "Cannot change the code of a permission used by roles, templates or rules",
                    details={"code": permission.code},
                )
            if await self.permissions.exists(code=new_code):
                raise ConflictError("Permission code already exists", details={"code": new_code})

        for field, value in changes.items():
            if value is None and field != "description":
                continue
            setattr(permission, field, getattr(value, "value", value))

        await self._commit("Permission code already exists")
        await self.resolver.invalidate_all()
        return permission

    async def delete_permission(self, permission_id: UUID) -> None:
        """Delete a permission that no role, template or rule references."""
        permission = await self.get_permission(permission_id)
        if await self.permissions.is_referenced(permission.id):
            raise ConflictError(
                "Permission is used by roles, templates or rules",
                details={"code": permission.code},
            )
        code = permission.code
        await self.permissions.delete(permission)
        await self.db.commit()
        await self.resolver.invalidate_all()
        logger.info("Permission deleted", code=code)

    # ============================================================
    # ROLES
    # ============================================================

    async def create_role(self, data: RoleCreate, operator_id: Optional[UUID] = None) -> Role:
        """Create an administrator-defined role."""
        if data.code.startswith(self.settings.custom_role_prefix):
            raise ValidationError(
                f"Role codes starting with {self.settings.custom_role_prefix} are reserved",
                details={"code": data.code},
            )
        if await self.roles.exists(code=data.code):
            raise ConflictError("Role code already exists", details={"code": data.code})

        grants, permissions = await self._scoped_grants(data.permissions)
        role = Role(
            code=data.code,
            name=data.name,
            description=data.description,
            is_system=False,
            created_by=operator_id,
            permissions=[make_role_permission(permissions[g.permission_id], g) for g in grants],
        )
        self.db.add(role)
        await self._commit("Role code already exists")
        await self.resolver.invalidate_all()

        logger.info("Role created", code=role.code, role_id=str(role.id), permission_count=len(grants))
        return role

    async def list_roles(
        self,
        keyword: Optional[str] = None,
        status: Optional[bool] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Page:
        stmt = self.roles.filtered_query(keyword=keyword, status=status)
        return await self.roles.paginate(
            stmt,
            page=page,
            per_page=per_page,
            order_by=Role.created_at.desc(),
        )

    async def get_role(self, role_id: UUID) -> Role:
        role = await self.roles.get_by_id(role_id)
        if not role:
            raise NotFoundError("Role not found", details={"role_id": str(role_id)})
        return role

    async def update_role(self, role_id: UUID, data: RoleUpdate) -> Role:
        """Update an administrator-defined role; `permissions` replaces the set."""
        role = await self.get_role(role_id)
        if role.is_system:
            raise ValidationError(
                "System roles are managed by the permission engine",
                details={"code": role.code},
            )

        changes = data.model_dump(exclude_unset=True, exclude={"permissions"})
        for field, value in changes.items():
            if value is not None or field == "description":
                setattr(role, field, value)

        if data.permissions is not None:
            grants, permissions = await self._scoped_grants(data.permissions)
            apply_grants(role, grants, permissions, "replace")

        role.version += 1
        await self._commit("Role was modified concurrently")
        await self.resolver.invalidate_all()
        return role

    async def set_role_status(self, role_id: UUID, status: bool) -> Role:
        role = await self.get_role(role_id)
        role.status = status
        role.version += 1
        await self._commit("Role was modified concurrently")
        await self.resolver.invalidate_all()
        logger.info("Role status changed", role_id=str(role_id), status=status)
        return role

    # ============================================================
    # USER ROLES
    # ============================================================

    async def assign_user_role(
        self,
        data: UserRoleCreate,
        operator_id: Optional[UUID] = None,
        request_info: Optional[RequestInfo] = None,
    ) -> UserRole:
        """Link a role to a user; at most one link per (user, role)."""
        user_id, role_id = data.user_id, data.role_id
        before = None
        try:
            await self._require_user(user_id)
            role = await self.get_role(role_id)
            if role.is_system:
                raise ValidationError(
                    "System roles cannot be assigned directly",
                    details={"code": role.code},
                )
            if await self.user_roles.get_pair(user_id, role_id):
                raise ConflictError(
                    "User already has this role",
                    details={"user_id": str(user_id), "role_id": str(role_id)},
                )
            role_code = role.code
            before = await self._snapshot(user_id)

            link = UserRole(
                user_id=user_id,
                role_id=role.id,
                role=role,
                department_id=data.department_id,
                created_by=operator_id,
            )
            self.db.add(link)
            await self._commit("User already has this role")
        except Exception as e:
            await self._record_failure(
                e,
                operator_id=operator_id,
                target_users=[user_id],
                operation_type=OperationType.ROLE_ASSIGN,
                before_state=before,
                details=f"Assign role {role_id}",
                request_info=request_info,
            )
            raise

        await self.resolver.invalidate_user(user_id)
        after = await self._snapshot(user_id)
        await self.audit.record(
            user_id=operator_id,
            target_users=[user_id],
            operation_type=OperationType.ROLE_ASSIGN.value,
            before_state=before,
            after_state=after,
            details=f"Assigned role {role_code}"
            + (f" in department {data.department_id}" if data.department_id else ""),
            request_info=request_info,
        )
        return link

    async def set_user_role_status(
        self,
        user_id: UUID,
        role_id: UUID,
        status: bool,
        operator_id: Optional[UUID] = None,
        request_info: Optional[RequestInfo] = None,
    ) -> UserRole:
        """Enable or disable a user-role link (the only in-place update)."""
        before = None
        try:
            link = await self.user_roles.get_pair(user_id, role_id)
            if not link:
                raise NotFoundError(
                    "User role not found",
                    details={"user_id": str(user_id), "role_id": str(role_id)},
                )
            before = await self._snapshot(user_id)
            link.status = status
            await self.db.commit()
        except Exception as e:
            await self._record_failure(
                e,
                operator_id=operator_id,
                target_users=[user_id],
                operation_type=OperationType.ROLE_ASSIGN,
                before_state=before,
                details=f"Set role {role_id} status to {status}",
                request_info=request_info,
            )
            raise

        await self.resolver.invalidate_user(user_id)
        after = await self._snapshot(user_id)
        await self.audit.record(
            user_id=operator_id,
            target_users=[user_id],
            operation_type=OperationType.ROLE_ASSIGN.value,
            before_state=before,
            after_state=after,
            details=f"{'Enabled' if status else 'Disabled'} role {role_id}",
            request_info=request_info,
        )
        return link

    async def list_user_roles(self, user_id: UUID) -> list[UserRole]:
        await self._require_user(user_id)
        return await self.user_roles.list_for_user(user_id)

    # ============================================================
    # DIRECT ASSIGNMENT
    # ============================================================

    async def assign_user_permissions(
        self,
        user_id: UUID,
        permission_ids: list[UUID],
        operator_id: Optional[UUID] = None,
        request_info: Optional[RequestInfo] = None,
    ) -> CustomRoleResult:
        """Replace the permissions granted directly to a user."""
        permission_ids = _unique(permission_ids)
        before = None
        try:
            user = await self._require_user(user_id)
            user_name = user.name
            await self._require_permissions(permission_ids)
            before = await self._snapshot(user_id)

            grants = [ScopedGrant(pid, self.settings.custom_role_default_scope) for pid in permission_ids]
            result = await self.custom_roles.assign(
                user_id,
                grants,
                "replace",
                operator_id=operator_id,
                role_name=f"Custom permissions for {user_name}",
            )
        except Exception as e:
            await self._record_failure(
                e,
                operator_id=operator_id,
                target_users=[user_id],
                operation_type=OperationType.DIRECT_PERMISSION,
                before_state=before,
                details=f"Set {len(permission_ids)} direct permission(s)",
                request_info=request_info,
            )
            raise

        await self.resolver.invalidate_user(user_id)
        after = await self._snapshot(user_id)
        await self.audit.record(
            user_id=operator_id,
            target_users=[user_id],
            operation_type=OperationType.DIRECT_PERMISSION.value,
            before_state=before,
            after_state=after,
            details=f"Set {len(permission_ids)} direct permission(s) for {user_name}",
            request_info=request_info,
        )
        return result

    async def get_user_permission_assignments(self, user_id: UUID) -> UserPermissionTree:
        """Enabled permissions grouped by module, flagged when the user holds them."""
        await self._require_user(user_id)
        resolved = await self.resolver.get_user_permissions(user_id)

        modules: dict[str, ModuleNode] = {}
        for permission in await self.permissions.list_enabled():
            node = modules.get(permission.module)
            if node is None:
                node = modules[permission.module] = ModuleNode(
                    module=permission.module,
                    name=module_display_name(permission.module),
                    permissions=[],
                )
            node.permissions.append(
                PermissionNode(
                    id=permission.id,
                    code=permission.code,
                    name=permission.name,
                    type=permission.type,
                    description=permission.description,
                    assigned=resolved.has(permission.code),
                )
            )
        return UserPermissionTree(user_id=user_id, modules=list(modules.values()))

    # ============================================================
    # BATCH ASSIGNMENT
    # ============================================================

    async def batch_assign_permissions(
        self,
        user_ids: list[UUID],
        permission_ids: list[UUID],
        operator_id: Optional[UUID] = None,
        request_info: Optional[RequestInfo] = None,
        scopes: Optional[dict[UUID, str]] = None,
    ) -> BatchResult:
        """
        Merge permissions into several users' custom roles.

        Every user and permission must exist before anything is written.
        After that each user commits independently: one user's failure
        is reported in the result and doesn't undo the others. One audit
        entry covers the whole batch.

        Args:
            scopes: Per-permission data scope (defaults to the configured
                custom role scope)
        """
        user_ids = _unique(user_ids)
        permission_ids = _unique(permission_ids)
        scopes = scopes or {}

        try:
            missing_users = await self.users.missing_ids(user_ids)
            if missing_users:
                raise NotFoundError(
                    "User not found",
                    details={"user_ids": [str(u) for u in missing_users]},
                )
            await self._require_permissions(permission_ids)
            names = {u.id: u.name for u in await self.users.get_by_ids(user_ids)}
        except Exception as e:
            await self._record_failure(
                e,
                operator_id=operator_id,
                target_users=user_ids,
                operation_type=OperationType.BATCH_ASSIGN,
                details=f"Batch assign {len(permission_ids)} permission(s) to {len(user_ids)} user(s)",
                request_info=request_info,
            )
            raise

        grants = [
            ScopedGrant(pid, scopes.get(pid, self.settings.custom_role_default_scope))
            for pid in permission_ids
        ]
        before_states: dict[str, Any] = {}
        after_states: dict[str, Any] = {}
        results: list[UserAssignResult] = []

        for user_id in user_ids:
            key = str(user_id)
            try:
                before_states[key] = await self._snapshot(user_id)
                outcome = await self.custom_roles.assign(
                    user_id,
                    grants,
                    "merge",
                    operator_id=operator_id,
                    role_name=f"Custom permissions for {names[user_id]}",
                )
            except Exception as e:
                await self.db.rollback()
                logger.warning(
                    "Batch assignment failed for user",
                    user_id=key,
                    error=error_message(e),
                )
                results.append(UserAssignResult(user_id=user_id, success=False, error=error_message(e)))
                continue

            await self.resolver.invalidate_user(user_id)
            after_states[key] = await self._snapshot(user_id)
            results.append(
                UserAssignResult(
                    user_id=user_id,
                    success=True,
                    permission_count=len(outcome.permission_ids),
                )
            )

        success_count = sum(1 for r in results if r.success)
        failed_count = len(results) - success_count

        await self.audit.record(
            user_id=operator_id,
            target_users=user_ids,
            operation_type=OperationType.BATCH_ASSIGN.value,
            before_state={"users": before_states},
            after_state={
                "users": after_states,
                "permission_ids": permission_ids,
                "results": [r.model_dump(mode="json") for r in results],
            },
            details=(
                f"Batch assigned {len(permission_ids)} permission(s): "
                f"{success_count} succeeded, {failed_count} failed"
            ),
            status=LogStatus.SUCCESS.value if failed_count == 0 else LogStatus.FAILED.value,
            error=f"{failed_count} user(s) failed" if failed_count else None,
            request_info=request_info,
        )

        logger.info(
            "Batch permission assignment finished",
            user_count=len(user_ids),
            success_count=success_count,
            failed_count=failed_count,
        )
        return BatchResult(success_count=success_count, failed_count=failed_count, results=results)

    # ============================================================
    # TEMPLATES
    # ============================================================

    async def create_template(
        self,
        data: TemplateCreate,
        operator_id: Optional[UUID] = None,
    ) -> PermissionTemplate:
        """Create a template; making it default demotes every other template."""
        if await self.templates.exists(name=data.name):
            raise ConflictError("Template name already exists", details={"name": data.name})

        grants, permissions = await self._scoped_grants(data.permissions)
        if data.is_default:
            await self.templates.demote_defaults()

        template = PermissionTemplate(
            name=data.name,
            description=data.description,
            is_default=data.is_default,
            created_by=operator_id,
            permissions=[
                TemplatePermission(
                    permission_id=g.permission_id,
                    permission=permissions[g.permission_id],
                    data_scope=g.data_scope,
                )
                for g in grants
            ],
        )
        self.db.add(template)
        await self._commit("Template name already exists")

        logger.info("Permission template created", name=template.name, is_default=template.is_default)
        return template

    async def list_templates(
        self,
        name: Optional[str] = None,
        status: Optional[bool] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Page:
        """List templates, default template first."""
        stmt = self.templates.filtered_query(name=name, status=status)
        return await self.templates.paginate(
            stmt,
            page=page,
            per_page=per_page,
            order_by=[PermissionTemplate.is_default.desc(), PermissionTemplate.created_at.desc()],
        )

    async def get_template(self, template_id: UUID) -> PermissionTemplate:
        template = await self.templates.get_by_id(template_id)
        if not template:
            raise NotFoundError("Template not found", details={"template_id": str(template_id)})
        return template

    async def update_template(self, template_id: UUID, data: TemplateUpdate) -> PermissionTemplate:
        template = await self.get_template(template_id)

        if data.name and data.name != template.name:
            if await self.templates.exists(name=data.name):
                raise ConflictError("Template name already exists", details={"name": data.name})
            template.name = data.name
        if "description" in data.model_fields_set:
            template.description = data.description
        if data.status is not None:
            template.status = data.status

        if data.permissions is not None:
            grants, permissions = await self._scoped_grants(data.permissions)
            existing = {tp.permission_id: tp for tp in template.permissions}
            wanted = {g.permission_id: g for g in grants}
            kept = []
            for permission_id, item in existing.items():
                if permission_id in wanted:
                    item.data_scope = wanted[permission_id].data_scope
                    kept.append(item)
            for g in grants:
                if g.permission_id not in existing:
                    kept.append(
                        TemplatePermission(
                            permission_id=g.permission_id,
                            permission=permissions[g.permission_id],
                            data_scope=g.data_scope,
                        )
                    )
            template.permissions = kept

        if data.is_default is not None:
            if data.is_default:
                await self.templates.demote_defaults(keep_id=template.id)
            template.is_default = data.is_default

        await self._commit("Template name already exists")
        return template

    async def apply_template_to_users(
        self,
        template_id: UUID,
        user_ids: list[UUID],
        operator_id: Optional[UUID] = None,
        request_info: Optional[RequestInfo] = None,
    ) -> BatchResult:
        """
        Merge a template's permissions into users' custom roles.

        Delegates to batch assignment (which writes its own audit entry)
        and records a separate template_apply entry.
        """
        user_ids = _unique(user_ids)
        template_name = str(template_id)
        try:
            template = await self.get_template(template_id)
            template_name = template.name
            if not template.status:
                raise ValidationError("Template is disabled", details={"name": template.name})
            scopes = {tp.permission_id: tp.data_scope for tp in template.permissions}
            if not scopes:
                raise ValidationError("Template has no permissions", details={"name": template.name})

            result = await self.batch_assign_permissions(
                user_ids,
                list(scopes),
                operator_id=operator_id,
                request_info=request_info,
                scopes=scopes,
            )
        except Exception as e:
            await self._record_failure(
                e,
                operator_id=operator_id,
                target_users=user_ids,
                operation_type=OperationType.TEMPLATE_APPLY,
                before_state={"template_id": str(template_id), "template_name": template_name},
                details=f"Apply template {template_name}",
                request_info=request_info,
            )
            raise

        await self.audit.record(
            user_id=operator_id,
            target_users=user_ids,
            operation_type=OperationType.TEMPLATE_APPLY.value,
            before_state={"template_id": str(template_id), "template_name": template_name},
            after_state={
                "permission_ids": list(scopes),
                "success_count": result.success_count,
                "failed_count": result.failed_count,
            },
            details=(
                f"Applied template {template_name} to {len(user_ids)} user(s): "
                f"{result.success_count} succeeded, {result.failed_count} failed"
            ),
            status=LogStatus.SUCCESS.value if result.failed_count == 0 else LogStatus.FAILED.value,
            error=f"{result.failed_count} user(s) failed" if result.failed_count else None,
            request_info=request_info,
        )
        return result

    # ============================================================
    # DATA SCOPE RULES
    # ============================================================

    async def create_data_scope_rule(
        self,
        data: DataScopeRuleCreate,
        operator_id: Optional[UUID] = None,
        request_info: Optional[RequestInfo] = None,
    ) -> DataScopeRule:
        """Create a custom rule after validating its conditions for the rule type."""
        apply_to = _unique(data.apply_to)
        try:
            await self.get_permission(data.permission_id)
            self.scope.validate_conditions(data.rule_type.value, data.rule_conditions)
            missing_users = await self.users.missing_ids(apply_to)
            if missing_users:
                raise NotFoundError(
                    "User not found",
                    details={"user_ids": [str(u) for u in missing_users]},
                )

            rule = DataScopeRule(
                name=data.name,
                description=data.description,
                permission_id=data.permission_id,
                module=data.module.value,
                rule_type=data.rule_type.value,
                rule_conditions=data.rule_conditions,
                created_by=operator_id,
                apply_to=[DataScopeRuleUser(user_id=u) for u in apply_to],
            )
            self.db.add(rule)
            await self.db.commit()
        except Exception as e:
            await self._record_failure(
                e,
                operator_id=operator_id,
                target_users=apply_to,
                operation_type=OperationType.CUSTOM_DATA_RULE,
                details=f"Create {data.rule_type.value} rule {data.name}",
                request_info=request_info,
            )
            raise

        await self.resolver.invalidate_users(apply_to)
        await self.audit.record(
            user_id=operator_id,
            target_users=apply_to,
            operation_type=OperationType.CUSTOM_DATA_RULE.value,
            after_state={
                "rule_id": str(rule.id),
                "permission_id": str(rule.permission_id),
                "module": rule.module,
                "rule_type": rule.rule_type,
                "rule_conditions": rule.rule_conditions,
            },
            details=f"Created {rule.rule_type} rule {rule.name}",
            request_info=request_info,
        )
        return rule

    async def list_data_scope_rules(
        self,
        permission_id: Optional[UUID] = None,
        module: Optional[str] = None,
        status: Optional[bool] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Page:
        stmt = self.rules.filtered_query(permission_id=permission_id, module=module, status=status)
        return await self.rules.paginate(
            stmt,
            page=page,
            per_page=per_page,
            order_by=DataScopeRule.created_at.desc(),
        )

    async def get_data_scope_rule(self, rule_id: UUID) -> DataScopeRule:
        rule = await self.rules.get_by_id(rule_id)
        if not rule:
            raise NotFoundError("Data scope rule not found", details={"rule_id": str(rule_id)})
        return rule

    async def set_data_scope_rule_status(
        self,
        rule_id: UUID,
        status: bool,
        operator_id: Optional[UUID] = None,
        request_info: Optional[RequestInfo] = None,
    ) -> DataScopeRule:
        apply_to: list[UUID] = []
        try:
            rule = await self.get_data_scope_rule(rule_id)
            apply_to = list(rule.user_ids)
            before = {"status": rule.status}
            rule.status = status
            await self.db.commit()
        except Exception as e:
            await self._record_failure(
                e,
                operator_id=operator_id,
                target_users=apply_to,
                operation_type=OperationType.CUSTOM_DATA_RULE,
                details=f"Set rule {rule_id} status to {status}",
                request_info=request_info,
            )
            raise

        await self.resolver.invalidate_users(apply_to)
        await self.audit.record(
            user_id=operator_id,
            target_users=apply_to,
            operation_type=OperationType.CUSTOM_DATA_RULE.value,
            before_state=before,
            after_state={"rule_id": str(rule_id), "status": status},
            details=f"{'Enabled' if status else 'Disabled'} rule {rule_id}",
            request_info=request_info,
        )
        return rule
