"""
Role/permission authorization engine.

Business modules consume the engine through the resolver:

    resolver = PermissionResolver(db, cache)
    if await resolver.check_permission(user_id, "finance:transaction:create", record):
        ...
"""

__version__ = "0.1.0"
