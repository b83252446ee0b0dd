"""
Tests for permission resolution, scope checks and the resolved-permission cache.
"""

import pytest
from sqlalchemy import delete

from permguard.models import UserRole
from permguard.services.resolver import PermissionResolver, ResolvedPermissions, fold_grants


# ============ Folding ============


def test_fold_widest_scope_wins_regardless_of_order():
    """Test that all beats personal whichever role is seen first."""
    grants = [("task:edit", "personal"), ("task:edit", "all")]

    _, forward = fold_grants(grants)
    _, backward = fold_grants(list(reversed(grants)))

    assert forward == {"task:edit": "all"}
    assert backward == {"task:edit": "all"}


def test_fold_weights_custom_as_zero():
    """Test that custom never displaces a weighted scope."""
    codes, scopes = fold_grants([
        ("a", "custom"),
        ("a", "personal"),
        ("b", "department"),
        ("b", "custom"),
        ("c", "custom"),
    ])
    assert codes == {"a", "b", "c"}
    assert scopes == {"a": "personal", "b": "department", "c": "custom"}


def test_resolved_permissions_cache_round_trip():
    resolved = ResolvedPermissions(
        permissions=frozenset({"b", "a"}),
        data_scopes={"a": "all", "b": "personal"},
        departments=frozenset({"D1"}),
    )
    payload = resolved.to_cache()

    assert payload["permissions"] == ["a", "b"]
    assert ResolvedPermissions.from_cache(payload) == resolved


# ============ Resolution ============


@pytest.mark.asyncio
async def test_user_without_roles_has_no_permissions(resolver: PermissionResolver, factory):
    """Test that zero enabled role links resolve to an empty set."""
    user = await factory.user()

    resolved = await resolver.get_user_permissions(user.id)

    assert resolved.permissions == frozenset()
    assert resolved.data_scopes == {}
    assert not await resolver.check_permission(user.id, "task:view")


@pytest.mark.asyncio
async def test_widest_scope_across_roles(resolver: PermissionResolver, factory):
    """Test that a code granted at all and personal by two roles resolves to all."""
    user = await factory.user()
    permission = await factory.permission("task:edit")
    narrow = await factory.role("EDITOR_SELF", [(permission, "personal")])
    wide = await factory.role("EDITOR_ALL", [(permission, "all")])
    await factory.link(user, narrow)
    await factory.link(user, wide)

    resolved = await resolver.get_user_permissions(user.id)

    assert resolved.scope_for("task:edit") == "all"
    assert await resolver.check_permission(user.id, "task:edit", {"created_by": "someone-else"})


@pytest.mark.asyncio
async def test_disabled_links_roles_and_permissions_are_ignored(resolver: PermissionResolver, factory):
    """Test that only enabled links to enabled roles grant enabled permissions."""
    user = await factory.user()
    active = await factory.permission("doc:view")
    inactive = await factory.permission("doc:delete", status=False)
    via_disabled_role = await factory.permission("doc:share")
    via_disabled_link = await factory.permission("doc:export")

    await factory.link(user, await factory.role("READER", [(active, "all"), (inactive, "all")]))
    await factory.link(user, await factory.role("SHARER", [(via_disabled_role, "all")], status=False))
    await factory.link(user, await factory.role("EXPORTER", [(via_disabled_link, "all")]), status=False)

    resolved = await resolver.get_user_permissions(user.id)

    assert resolved.permissions == {"doc:view"}


@pytest.mark.asyncio
async def test_department_scope_scenario(resolver: PermissionResolver, factory):
    """Test department-scoped access for an accountant in D1."""
    user = await factory.user()
    permission = await factory.permission("finance:transaction:create", module="finance")
    accountant = await factory.role("ACCOUNTANT", [(permission, "department")])
    await factory.link(user, accountant, department_id="D1")

    code = "finance:transaction:create"
    assert await resolver.check_permission(user.id, code, {"department": "D1"}) is True
    assert await resolver.check_permission(user.id, code, {"department": "D2"}) is False
    assert await resolver.check_permission(user.id, code, {}) is False
    assert await resolver.check_permission(user.id, code) is True


@pytest.mark.asyncio
async def test_personal_scope_matches_creator(resolver: PermissionResolver, factory):
    """Test personal scope against the record's creator, as UUID or string."""
    user = await factory.user()
    permission = await factory.permission("task:update")
    await factory.link(user, await factory.role("WORKER", [(permission, "personal")]))

    assert await resolver.check_permission(user.id, "task:update", {"created_by": user.id})
    assert await resolver.check_permission(user.id, "task:update", {"created_by": str(user.id)})
    assert not await resolver.check_permission(user.id, "task:update", {"created_by": "other"})
    assert not await resolver.check_permission(user.id, "task:update", {"title": "no owner"})


@pytest.mark.asyncio
async def test_custom_scope_denies_record_checks(resolver: PermissionResolver, factory):
    """Test that a custom scope with nothing wider is denied for records."""
    user = await factory.user()
    permission = await factory.permission("task:close")
    await factory.link(user, await factory.role("CLOSER", [(permission, "custom")]))

    assert await resolver.check_permission(user.id, "task:close") is True
    assert await resolver.check_permission(user.id, "task:close", {"created_by": user.id}) is False


@pytest.mark.asyncio
async def test_check_any_and_all(resolver: PermissionResolver, factory):
    """Test the OR/AND combinators, including empty code lists."""
    user = await factory.user()
    view = await factory.permission("project:view")
    await factory.permission("project:delete")
    await factory.link(user, await factory.role("VIEWER", [(view, "all")]))

    assert await resolver.check_any_permission(user.id, ["project:delete", "project:view"])
    assert not await resolver.check_any_permission(user.id, ["project:delete"])
    assert not await resolver.check_all_permissions(user.id, ["project:delete", "project:view"])
    assert await resolver.check_all_permissions(user.id, ["project:view"])

    assert await resolver.check_any_permission(user.id, []) is False
    assert await resolver.check_all_permissions(user.id, []) is True


# ============ Cache ============


@pytest.mark.asyncio
async def test_resolution_is_cached_under_user_key(resolver: PermissionResolver, factory, cache, db):
    """Test read-through caching and that invalidation exposes the new state."""
    user = await factory.user()
    user_id = user.id
    permission = await factory.permission("task:view")
    await factory.link(user, await factory.role("VIEWER", [(permission, "all")]))

    assert await resolver.check_permission(user_id, "task:view")
    key = f"user_permissions:{user_id}"
    assert (await cache.get(key))["permissions"] == ["task:view"]
    assert await cache.ttl(key) == 3600

    # Remove the grant behind the cache's back: the cached answer stands
    await db.execute(delete(UserRole).where(UserRole.user_id == user_id))
    await db.commit()
    assert await resolver.check_permission(user_id, "task:view")

    await resolver.invalidate_user(user_id)
    assert not await resolver.check_permission(user_id, "task:view")


@pytest.mark.asyncio
async def test_cache_entry_expires_after_ttl(resolver: PermissionResolver, factory, db, clock):
    """Test that a stale entry is refetched after one hour."""
    user = await factory.user()
    user_id = user.id
    permission = await factory.permission("task:view")
    await factory.link(user, await factory.role("VIEWER", [(permission, "all")]))
    assert await resolver.check_permission(user_id, "task:view")

    await db.execute(delete(UserRole).where(UserRole.user_id == user_id))
    await db.commit()

    clock.advance(3600)
    assert not await resolver.check_permission(user_id, "task:view")


@pytest.mark.asyncio
async def test_invalidate_all_clears_every_user(resolver: PermissionResolver, factory, cache):
    first = await factory.user()
    second = await factory.user()
    await resolver.get_user_permissions(first.id)
    await resolver.get_user_permissions(second.id)
    await cache.set("unrelated", 1)

    await resolver.invalidate_all()

    assert await cache.get(resolver.cache_key(first.id)) is None
    assert await cache.get(resolver.cache_key(second.id)) is None
    assert await cache.get("unrelated") == 1


class BrokenCache:
    """Cache whose transport is down."""

    async def get(self, key):
        raise ConnectionError("cache unavailable")

    async def set(self, key, value, ttl=None):
        raise ConnectionError("cache unavailable")

    async def delete(self, key):
        raise ConnectionError("cache unavailable")

    async def delete_pattern(self, pattern):
        raise ConnectionError("cache unavailable")


@pytest.mark.asyncio
async def test_cache_failures_fall_back_to_store(db, factory, permission_settings):
    """Test that a failing cache never changes answers or raises."""
    resolver = PermissionResolver(db, BrokenCache(), permission_settings)
    user = await factory.user()
    permission = await factory.permission("task:view")
    await factory.link(user, await factory.role("VIEWER", [(permission, "all")]))

    assert await resolver.check_permission(user.id, "task:view")
    await resolver.invalidate_user(user.id)
    await resolver.invalidate_all()


@pytest.mark.asyncio
async def test_malformed_cache_entry_is_ignored(resolver: PermissionResolver, factory, cache):
    user = await factory.user()
    permission = await factory.permission("task:view")
    await factory.link(user, await factory.role("VIEWER", [(permission, "all")]))
    await cache.set(resolver.cache_key(user.id), "garbage")

    assert await resolver.check_permission(user.id, "task:view")


@pytest.mark.asyncio
async def test_departments_and_role_ids(resolver: PermissionResolver, factory):
    user = await factory.user()
    permission = await factory.permission("task:view")
    role_a = await factory.role("A", [(permission, "department")])
    role_b = await factory.role("B", [(permission, "department")])
    role_off = await factory.role("OFF", [(permission, "department")], status=False)
    await factory.link(user, role_a, department_id="D1")
    await factory.link(user, role_b, department_id="D2")
    await factory.link(user, role_off, department_id="D3")

    assert (await resolver.get_user_permissions(user.id)).departments == {"D1", "D2"}
    assert set(await resolver.get_user_role_ids(user.id)) == {role_a.id, role_b.id}
