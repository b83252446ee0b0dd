"""
Tests for permission, role, user-role, template and rule management.
"""

from uuid import uuid4

import pytest
from sqlalchemy import delete

from permguard.core.exceptions import ConflictError, NotFoundError, ValidationError
from permguard.models import UserRole
from permguard.schemas.assignment import TemplateCreate, TemplateUpdate
from permguard.schemas.audit import AssignmentLogFilter
from permguard.schemas.permission import (
    PermissionCreate,
    PermissionUpdate,
    RoleCreate,
    RoleUpdate,
    ScopedPermission,
    UserRoleCreate,
)
from permguard.schemas.rule import DataScopeRuleCreate
from permguard.services.manager import PermissionManager


# ============ Permissions ============


@pytest.mark.asyncio
async def test_create_permission(manager: PermissionManager):
    """Test creating a permission."""
    permission = await manager.create_permission(
        PermissionCreate(code="task:view", name="View tasks", module="task")
    )

    assert permission.code == "task:view"
    assert permission.module == "task"
    assert permission.type == "operation"
    assert permission.status is True


@pytest.mark.asyncio
async def test_create_permission_duplicate_code(manager: PermissionManager):
    """Test that permission codes are unique."""
    data = PermissionCreate(code="task:view", name="View tasks", module="task")
    await manager.create_permission(data)

    with pytest.raises(ConflictError):
        await manager.create_permission(data)


@pytest.mark.asyncio
async def test_referenced_permission_keeps_its_code(manager: PermissionManager, factory):
    permission = await factory.permission("task:view")
    await factory.role("VIEWER", [(permission, "all")])

    with pytest.raises(ConflictError):
        await manager.update_permission(permission.id, PermissionUpdate(code="task:read"))

    updated = await manager.update_permission(permission.id, PermissionUpdate(name="Read tasks"))
    assert updated.code == "task:view"
    assert updated.name == "Read tasks"


@pytest.mark.asyncio
async def test_unreferenced_permission_can_be_renamed_and_deleted(manager: PermissionManager, factory):
    permission = await factory.permission("task:view")
    permission_id = permission.id

    updated = await manager.update_permission(permission_id, PermissionUpdate(code="task:read"))
    assert updated.code == "task:read"

    await manager.delete_permission(permission_id)
    with pytest.raises(NotFoundError):
        await manager.get_permission(permission_id)


@pytest.mark.asyncio
async def test_referenced_permission_cannot_be_deleted(manager: PermissionManager, factory):
    permission = await factory.permission("task:view")
    await factory.role("VIEWER", [(permission, "all")])

    with pytest.raises(ConflictError):
        await manager.delete_permission(permission.id)


@pytest.mark.asyncio
async def test_permission_used_by_a_rule_cannot_be_deleted(manager: PermissionManager, factory):
    user = await factory.user()
    close = await factory.permission("task:close")
    close_id = close.id
    await manager.create_data_scope_rule(
        DataScopeRuleCreate(
            name="Open tasks",
            permission_id=close_id,
            module="task",
            rule_type="field",
            rule_conditions={"field": "status", "operator": "eq", "value": "open"},
            apply_to=[user.id],
        )
    )

    with pytest.raises(ConflictError, match="rules"):
        await manager.delete_permission(close_id)

    assert (await manager.list_data_scope_rules()).total == 1


@pytest.mark.asyncio
async def test_list_permissions_filters(manager: PermissionManager, factory):
    await factory.permission("task:view")
    await factory.permission("task:edit")
    await factory.permission("project:view")

    page = await manager.list_permissions(module="task")

    assert page.total == 2
    assert [p.code for p in page.items] == ["task:edit", "task:view"]


# ============ Roles ============


@pytest.mark.asyncio
async def test_create_role_with_scoped_permissions(manager: PermissionManager, factory):
    view = await factory.permission("task:view")
    edit = await factory.permission("task:edit")

    role = await manager.create_role(
        RoleCreate(
            code="TASK_EDITOR",
            name="Task editor",
            permissions=[
                ScopedPermission(permission_id=view.id),
                ScopedPermission(permission_id=edit.id, data_scope="personal"),
            ],
        )
    )

    scopes = {rp.permission_id: rp.data_scope for rp in role.permissions}
    assert scopes == {view.id: "all", edit.id: "personal"}
    assert role.is_system is False
    assert role.version == 1


@pytest.mark.asyncio
async def test_custom_role_prefix_is_reserved(manager: PermissionManager):
    with pytest.raises(ValidationError):
        await manager.create_role(RoleCreate(code="CUSTOM_someone", name="Sneaky"))


@pytest.mark.asyncio
async def test_create_role_duplicate_code(manager: PermissionManager):
    await manager.create_role(RoleCreate(code="VIEWER", name="Viewer"))

    with pytest.raises(ConflictError):
        await manager.create_role(RoleCreate(code="VIEWER", name="Viewer again"))


@pytest.mark.asyncio
async def test_create_role_with_unknown_permission(manager: PermissionManager):
    with pytest.raises(NotFoundError):
        await manager.create_role(
            RoleCreate(code="VIEWER", name="Viewer", permissions=[ScopedPermission(permission_id=uuid4())])
        )


@pytest.mark.asyncio
async def test_update_role_replaces_permissions(manager: PermissionManager, factory):
    """Test that updating a role's permissions takes effect for its holders."""
    user = await factory.user()
    view = await factory.permission("task:view")
    edit = await factory.permission("task:edit")
    role = await factory.role("WORKER", [(view, "all")])
    await factory.link(user, role)
    assert await manager.resolver.check_permission(user.id, "task:view")

    updated = await manager.update_role(
        role.id,
        RoleUpdate(permissions=[ScopedPermission(permission_id=edit.id, data_scope="department")]),
    )

    assert updated.permission_ids == {edit.id}
    assert updated.version == 2
    assert not await manager.resolver.check_permission(user.id, "task:view")
    assert await manager.resolver.check_permission(user.id, "task:edit")


@pytest.mark.asyncio
async def test_disabling_role_revokes_its_permissions(manager: PermissionManager, factory):
    user = await factory.user()
    view = await factory.permission("task:view")
    role = await factory.role("VIEWER", [(view, "all")])
    await factory.link(user, role)
    assert await manager.resolver.check_permission(user.id, "task:view")

    await manager.set_role_status(role.id, False)

    assert not await manager.resolver.check_permission(user.id, "task:view")


# ============ User Roles ============


@pytest.mark.asyncio
async def test_assign_user_role(manager: PermissionManager, factory, admin):
    user = await factory.user()
    view = await factory.permission("finance:report:view", module="finance")
    role = await factory.role("ANALYST", [(view, "department")])

    link = await manager.assign_user_role(
        UserRoleCreate(user_id=user.id, role_id=role.id, department_id="D1"),
        operator_id=admin.id,
    )

    assert link.department_id == "D1"
    assert await manager.resolver.check_permission(user.id, "finance:report:view", {"department": "D1"})

    page = await manager.audit.list_logs(AssignmentLogFilter(target_user_id=user.id))
    assert page.total == 1
    entry = page.items[0]
    assert entry.operation_type == "role_assign"
    assert entry.status == "success"
    assert entry.before_state["permissions"] == []
    assert entry.after_state["permissions"] == ["finance:report:view"]


@pytest.mark.asyncio
async def test_assign_user_role_twice_conflicts(manager: PermissionManager, factory):
    """Test the (user, role) pair is unique and the failed attempt is audited."""
    user = await factory.user()
    role = await factory.role("VIEWER", [])
    user_id, role_id = user.id, role.id
    await manager.assign_user_role(UserRoleCreate(user_id=user_id, role_id=role_id))

    with pytest.raises(ConflictError):
        await manager.assign_user_role(UserRoleCreate(user_id=user_id, role_id=role_id))

    failed = await manager.audit.list_logs(AssignmentLogFilter(target_user_id=user_id, status="failed"))
    assert failed.total == 1
    assert failed.items[0].error_message == "User already has this role"


@pytest.mark.asyncio
async def test_assign_user_role_unknown_user(manager: PermissionManager, factory):
    role = await factory.role("VIEWER", [])

    with pytest.raises(NotFoundError):
        await manager.assign_user_role(UserRoleCreate(user_id=uuid4(), role_id=role.id))


@pytest.mark.asyncio
async def test_set_user_role_status(manager: PermissionManager, factory):
    user = await factory.user()
    view = await factory.permission("task:view")
    role = await factory.role("VIEWER", [(view, "all")])
    await factory.link(user, role)
    user_id, role_id = user.id, role.id

    await manager.set_user_role_status(user_id, role_id, False)
    assert not await manager.resolver.check_permission(user_id, "task:view")

    await manager.set_user_role_status(user_id, role_id, True)
    assert await manager.resolver.check_permission(user_id, "task:view")

    with pytest.raises(NotFoundError):
        await manager.set_user_role_status(user_id, uuid4(), False)


# ============ Direct Assignment ============


@pytest.mark.asyncio
async def test_direct_assignment_round_trip(manager: PermissionManager, factory, db):
    """Test that a directly assigned permission is held, and revoked with its link."""
    user = await factory.user()
    permission = await factory.permission("project:create", module="project")
    user_id = user.id

    result = await manager.assign_user_permissions(user_id, [permission.id])

    assert result.created is True
    assert await manager.resolver.check_permission(user_id, "project:create")

    role = await manager.custom_roles.get_role(user_id)
    assert role.code == f"CUSTOM_{user_id}"
    assert role.is_system is True

    await db.execute(delete(UserRole).where(UserRole.user_id == user_id))
    await db.commit()
    await manager.resolver.invalidate_user(user_id)

    assert not await manager.resolver.check_permission(user_id, "project:create")


@pytest.mark.asyncio
async def test_direct_assignment_replaces(manager: PermissionManager, factory):
    """Test that direct assignment replaces rather than merges."""
    user = await factory.user()
    a = await factory.permission("task:a")
    b = await factory.permission("task:b")
    c = await factory.permission("task:c")

    first = await manager.assign_user_permissions(user.id, [a.id, b.id])
    second = await manager.assign_user_permissions(user.id, [b.id, c.id])

    assert set(second.permission_ids) == {b.id, c.id}
    assert second.role_id == first.role_id
    assert second.version == first.version + 1
    resolved = await manager.resolver.get_user_permissions(user.id)
    assert resolved.permissions == {"task:b", "task:c"}

    cleared = await manager.assign_user_permissions(user.id, [])
    assert cleared.permission_ids == []
    assert not (await manager.resolver.get_user_permissions(user.id)).permissions


@pytest.mark.asyncio
async def test_direct_assignment_unknown_permission(manager: PermissionManager, factory):
    user = await factory.user()
    user_id = user.id

    with pytest.raises(NotFoundError):
        await manager.assign_user_permissions(user_id, [uuid4()])

    assert await manager.custom_roles.get_role(user_id) is None
    failed = await manager.audit.list_logs(AssignmentLogFilter(target_user_id=user_id))
    assert failed.total == 1
    assert failed.items[0].operation_type == "direct_permission"
    assert failed.items[0].status == "failed"


@pytest.mark.asyncio
async def test_custom_role_cannot_be_assigned_or_edited(manager: PermissionManager, factory):
    user = await factory.user()
    other = await factory.user()
    permission = await factory.permission("task:view")
    result = await manager.assign_user_permissions(user.id, [permission.id])

    with pytest.raises(ValidationError):
        await manager.update_role(result.role_id, RoleUpdate(name="Hijacked"))
    with pytest.raises(ValidationError):
        await manager.assign_user_role(UserRoleCreate(user_id=other.id, role_id=result.role_id))


@pytest.mark.asyncio
async def test_permission_tree(manager: PermissionManager, factory):
    user = await factory.user()
    view = await factory.permission("task:view")
    await factory.permission("task:edit")
    await factory.permission("project:view")
    await factory.permission("project:archive", status=False)
    await factory.link(user, await factory.role("VIEWER", [(view, "all")]))

    tree = await manager.get_user_permission_assignments(user.id)

    modules = {m.module: m for m in tree.modules}
    assert set(modules) == {"task", "project"}
    assert modules["task"].name == "Task Management"
    assigned = {p.code: p.assigned for m in tree.modules for p in m.permissions}
    assert assigned == {"task:view": True, "task:edit": False, "project:view": False}


# ============ Templates ============


@pytest.mark.asyncio
async def test_only_one_default_template(manager: PermissionManager, factory):
    permission = await factory.permission("task:view")
    items = [ScopedPermission(permission_id=permission.id)]

    first = await manager.create_template(TemplateCreate(name="Starter", permissions=items, is_default=True))
    second = await manager.create_template(TemplateCreate(name="Basic", permissions=items, is_default=True))
    first_id, second_id = first.id, second.id

    assert (await manager.get_template(first_id)).is_default is False
    assert (await manager.get_template(second_id)).is_default is True

    await manager.update_template(first_id, TemplateUpdate(is_default=True))
    assert (await manager.get_template(second_id)).is_default is False

    page = await manager.list_templates()
    assert page.items[0].id == first_id


@pytest.mark.asyncio
async def test_template_name_is_unique(manager: PermissionManager):
    await manager.create_template(TemplateCreate(name="Starter"))

    with pytest.raises(ConflictError):
        await manager.create_template(TemplateCreate(name="Starter"))


@pytest.mark.asyncio
async def test_update_template_permissions(manager: PermissionManager, factory):
    view = await factory.permission("task:view")
    edit = await factory.permission("task:edit")
    template = await manager.create_template(
        TemplateCreate(name="Starter", permissions=[ScopedPermission(permission_id=view.id)])
    )

    updated = await manager.update_template(
        template.id,
        TemplateUpdate(permissions=[
            ScopedPermission(permission_id=view.id, data_scope="personal"),
            ScopedPermission(permission_id=edit.id, data_scope="department"),
        ]),
    )

    scopes = {tp.permission_id: tp.data_scope for tp in updated.permissions}
    assert scopes == {view.id: "personal", edit.id: "department"}


# ============ Data Scope Rules ============


@pytest.mark.asyncio
async def test_create_rule_invalidates_targets(manager: PermissionManager, factory, cache):
    user = await factory.user()
    close = await factory.permission("task:close")
    await factory.link(user, await factory.role("CLOSER", [(close, "custom")]))
    await manager.resolver.get_user_permissions(user.id)
    key = manager.resolver.cache_key(user.id)
    assert await cache.get(key) is not None

    rule = await manager.create_data_scope_rule(
        DataScopeRuleCreate(
            name="Open tasks",
            permission_id=close.id,
            module="task",
            rule_type="field",
            rule_conditions={"field": "status", "operator": "eq", "value": "open"},
            apply_to=[user.id, user.id],
        )
    )

    assert rule.user_ids == [user.id]
    assert await cache.get(key) is None
    assert await manager.scope.evaluate_enhanced(user.id, "task:close", {"status": "open"}, module="task")

    logs = await manager.audit.list_logs(AssignmentLogFilter(operation_type="custom_data_rule"))
    assert logs.total == 1


@pytest.mark.asyncio
async def test_create_rule_rejects_bad_conditions(manager: PermissionManager, factory):
    user = await factory.user()
    close = await factory.permission("task:close")
    user_id = user.id

    with pytest.raises(ValidationError):
        await manager.create_data_scope_rule(
            DataScopeRuleCreate(
                name="Broken",
                permission_id=close.id,
                module="task",
                rule_type="department",
                rule_conditions={"users": ["x"]},
                apply_to=[user_id],
            )
        )

    page = await manager.list_data_scope_rules()
    assert page.total == 0
    failed = await manager.audit.list_logs(AssignmentLogFilter(status="failed"))
    assert failed.total == 1


@pytest.mark.asyncio
async def test_disable_rule(manager: PermissionManager, factory):
    user = await factory.user()
    close = await factory.permission("task:close")
    await factory.link(user, await factory.role("CLOSER", [(close, "custom")]))
    user_id = user.id
    rule = await manager.create_data_scope_rule(
        DataScopeRuleCreate(
            name="Open tasks",
            permission_id=close.id,
            module="task",
            rule_type="condition",
            rule_conditions={"expression": "target.status == 'open'"},
            apply_to=[user_id],
        )
    )

    await manager.set_data_scope_rule_status(rule.id, False)

    assert not await manager.scope.evaluate_enhanced(user_id, "task:close", {"status": "open"}, module="task")


@pytest.mark.asyncio
async def test_create_rule_rejects_deeply_nested_expression(manager: PermissionManager, factory):
    user = await factory.user()
    close = await factory.permission("task:close")
    user_id, close_id = user.id, close.id

    with pytest.raises(ValidationError, match="nested too deeply"):
        await manager.create_data_scope_rule(
            DataScopeRuleCreate(
                name="Nested",
                permission_id=close_id,
                module="task",
                rule_type="condition",
                rule_conditions={"expression": "(" * 240 + "true" + ")" * 240},
                apply_to=[user_id],
            )
        )

    assert (await manager.list_data_scope_rules()).total == 0
