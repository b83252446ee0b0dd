"""
Repositories: the only code that builds queries against the store.
"""

from .base import BaseRepository
from .permission import PermissionRepository, RoleRepository, TemplateRepository
from .user_role import UserRepository, UserRoleRepository
from .data_scope_rule import DataScopeRuleRepository, AssignmentLogRepository

__all__ = [
    "BaseRepository",
    "PermissionRepository",
    "RoleRepository",
    "TemplateRepository",
    "UserRepository",
    "UserRoleRepository",
    "DataScopeRuleRepository",
    "AssignmentLogRepository",
]
