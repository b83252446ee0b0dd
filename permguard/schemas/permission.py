"""
Permission, role and user-role schemas.
"""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict

from permguard.models.enums import DataScope, Module, PermissionType


class PermissionCreate(BaseModel):
    """Permission creation schema."""
    code: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9_]+(:[a-z0-9_]+)*$")
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    module: Module
    type: PermissionType = PermissionType.OPERATION


class PermissionUpdate(BaseModel):
    """Permission update schema."""
    code: str | None = Field(None, min_length=1, max_length=100, pattern=r"^[a-z0-9_]+(:[a-z0-9_]+)*$")
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    module: Module | None = None
    type: PermissionType | None = None
    status: bool | None = None


class PermissionResponse(BaseModel):
    """Permission response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    description: str | None = None
    module: str
    type: str
    status: bool
    created_at: datetime


class ScopedPermission(BaseModel):
    """A permission reference with the data scope it is granted at."""
    permission_id: UUID
    data_scope: DataScope = DataScope.ALL


class ScopedPermissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    permission_id: UUID
    data_scope: str
    permission: PermissionResponse | None = None


class RoleCreate(BaseModel):
    """Role creation schema."""
    code: str = Field(min_length=1, max_length=100, pattern=r"^[A-Za-z0-9_]+$")
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(None, max_length=500)
    permissions: list[ScopedPermission] = Field(default_factory=list)


class RoleUpdate(BaseModel):
    """Role update schema. `permissions` replaces the whole set when given."""
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=500)
    permissions: list[ScopedPermission] | None = None
    status: bool | None = None


class RoleResponse(BaseModel):
    """Role response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    description: str | None = None
    is_system: bool
    status: bool
    version: int
    permissions: list[ScopedPermissionResponse] = []
    created_at: datetime


class StatusUpdate(BaseModel):
    status: bool


class UserRoleCreate(BaseModel):
    """Assign a role to a user, optionally within a department."""
    user_id: UUID
    role_id: UUID
    department_id: str | None = Field(None, max_length=64)


class UserRoleStatusUpdate(BaseModel):
    user_id: UUID
    role_id: UUID
    status: bool


class UserRoleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    role_id: UUID
    department_id: str | None = None
    status: bool
    created_by: UUID | None = None
    created_at: datetime
