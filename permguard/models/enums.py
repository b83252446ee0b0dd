"""
Permission engine enumerations.
"""

from enum import Enum


class PermissionType(str, Enum):
    """Kind of capability a permission represents."""
    MENU = "menu"
    OPERATION = "operation"
    DATA = "data"


class DataScope(str, Enum):
    """Breadth of records a granted permission applies to."""
    ALL = "all"
    DEPARTMENT = "department"
    PERSONAL = "personal"
    CUSTOM = "custom"


# Widest scope wins when several roles grant the same code.
# Custom scopes are resolved by data-scope rules, not by weight.
SCOPE_WEIGHTS = {
    DataScope.ALL.value: 3,
    DataScope.DEPARTMENT.value: 2,
    DataScope.PERSONAL.value: 1,
}


def scope_weight(scope: str | None) -> int:
    return SCOPE_WEIGHTS.get(scope, 0)


class RuleType(str, Enum):
    """Custom data-scope rule kinds."""
    DEPARTMENT = "department"
    USER = "user"
    ROLE = "role"
    FIELD = "field"
    CONDITION = "condition"


class OperationType(str, Enum):
    """Audited permission operations."""
    ROLE_ASSIGN = "role_assign"
    DIRECT_PERMISSION = "direct_permission"
    TEMPLATE_APPLY = "template_apply"
    BATCH_ASSIGN = "batch_assign"
    CUSTOM_DATA_RULE = "custom_data_rule"


class LogStatus(str, Enum):
    """Outcome of an audited operation."""
    SUCCESS = "success"
    FAILED = "failed"


class Module(str, Enum):
    """Business domains permissions belong to."""
    SYSTEM = "system"
    USER = "user"
    PROJECT = "project"
    TASK = "task"
    DOCUMENT = "document"
    KNOWLEDGE = "knowledge"
    NOTIFICATION = "notification"
    ATTENDANCE = "attendance"
    FINANCE = "finance"
    CONTRACT = "contract"
    SUPPLIER = "supplier"
    MATERIAL = "material"
    EQUIPMENT = "equipment"
    QUALITY = "quality"
    SECURITY = "security"


MODULE_NAMES = {
    Module.SYSTEM: "System Administration",
    Module.USER: "User Management",
    Module.PROJECT: "Project Management",
    Module.TASK: "Task Management",
    Module.DOCUMENT: "Document Management",
    Module.KNOWLEDGE: "Knowledge Base",
    Module.NOTIFICATION: "Notifications",
    Module.ATTENDANCE: "Attendance",
    Module.FINANCE: "Finance",
    Module.CONTRACT: "Contracts",
    Module.SUPPLIER: "Suppliers",
    Module.MATERIAL: "Materials",
    Module.EQUIPMENT: "Equipment",
    Module.QUALITY: "Quality",
    Module.SECURITY: "Safety & Security",
}


def module_display_name(module: str) -> str:
    try:
        return MODULE_NAMES[Module(module)]
    except ValueError:
        return module
