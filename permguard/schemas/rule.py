"""
Data-scope rule schemas.

Condition payload shape is checked per rule type by the rule registry;
here it's just an object.
"""

from datetime import datetime
from typing import Any
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict

from permguard.models.enums import Module, RuleType


class DataScopeRuleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    permission_id: UUID
    module: Module
    rule_type: RuleType
    rule_conditions: dict[str, Any]
    apply_to: list[UUID] = Field(default_factory=list)


class DataScopeRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str | None = None
    permission_id: UUID
    module: str
    rule_type: str
    rule_conditions: dict[str, Any]
    user_ids: list[UUID]
    status: bool
    created_by: UUID | None = None
    created_at: datetime
