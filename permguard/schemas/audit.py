"""Permission assignment log schemas."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from permguard.models.enums import LogStatus, OperationType


class AssignmentLogResponse(BaseModel):
    """Schema for assignment log response."""

    id: UUID
    user_id: Optional[UUID]
    target_users: list[UUID]
    operation_type: str
    before_state: Optional[Any]
    after_state: Optional[Any]
    details: Optional[str]
    status: str
    error_message: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class AssignmentLogFilter(BaseModel):
    """Schema for filtering assignment logs."""

    user_id: Optional[UUID] = None
    target_user_id: Optional[UUID] = None
    operation_type: Optional[OperationType] = None
    status: Optional[LogStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
