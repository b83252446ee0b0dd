"""
Database models.
"""

from .base import Base
from .user import User
from .permission import Permission
from .role import Role, RolePermission
from .user_role import UserRole
from .template import PermissionTemplate, TemplatePermission
from .data_scope_rule import DataScopeRule, DataScopeRuleUser
from .assignment_log import PermissionAssignmentLog, PermissionAssignmentLogTarget

__all__ = [
    "Base",
    "User",
    "Permission",
    "Role",
    "RolePermission",
    "UserRole",
    "PermissionTemplate",
    "TemplatePermission",
    "DataScopeRule",
    "DataScopeRuleUser",
    "PermissionAssignmentLog",
    "PermissionAssignmentLogTarget",
]
