"""
Direct, batch and template assignment schemas.
"""

from datetime import datetime
from typing import Any
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict

from .permission import ScopedPermission, ScopedPermissionResponse


class DirectAssign(BaseModel):
    """Replace a user's directly granted permissions."""
    permission_ids: list[UUID] = Field(default_factory=list)


class BatchAssign(BaseModel):
    """Merge permissions into several users' custom roles."""
    user_ids: list[UUID] = Field(min_length=1)
    permission_ids: list[UUID] = Field(min_length=1)


class UserAssignResult(BaseModel):
    user_id: UUID
    success: bool
    permission_count: int | None = None
    error: str | None = None


class BatchResult(BaseModel):
    """Per-user outcome of a batch assignment."""
    success_count: int
    failed_count: int
    results: list[UserAssignResult]


class TemplateCreate(BaseModel):
    """Permission template creation schema."""
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    permissions: list[ScopedPermission] = Field(default_factory=list)
    is_default: bool = False


class TemplateUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    permissions: list[ScopedPermission] | None = None
    is_default: bool | None = None
    status: bool | None = None


class TemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None = None
    is_default: bool
    status: bool
    permissions: list[ScopedPermissionResponse] = []
    created_by: UUID | None = None
    created_at: datetime


class TemplateApply(BaseModel):
    user_ids: list[UUID] = Field(min_length=1)


class PermissionNode(BaseModel):
    id: UUID
    code: str
    name: str
    type: str
    description: str | None = None
    assigned: bool


class ModuleNode(BaseModel):
    module: str
    name: str
    permissions: list[PermissionNode]


class UserPermissionTree(BaseModel):
    """All enabled permissions grouped by module, flagged when the user holds them."""
    user_id: UUID
    modules: list[ModuleNode]


class ResolvedPermissionsResponse(BaseModel):
    permissions: list[str]
    data_scopes: dict[str, str]
    departments: list[str]


class PermissionCheckRequest(BaseModel):
    code: str
    target: dict[str, Any] | None = None
    module: str | None = None


class PermissionCheckResponse(BaseModel):
    code: str
    allowed: bool
    checked_at: datetime
