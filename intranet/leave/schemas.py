"""Leave request Pydantic v2 schemas."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from intranet.common.constants import DocumentStatus, LeaveType


class LeaveRequestCreate(BaseModel):
    """Apply for leave. ``end_date`` defaults to ``start_date``."""

    leave_type: LeaveType
    start_date: date
    end_date: Optional[date] = None
    reason: Optional[str] = Field(None, max_length=2000)


class LeaveRequestUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    leave_type: Optional[LeaveType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    reason: Optional[str] = Field(None, max_length=2000)


class LeaveRejectRequest(BaseModel):
    reason: str = Field(..., max_length=2000)


class LeaveRequestOut(BaseModel):
    """Full leave request representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str
    leave_type: LeaveType
    start_date: date
    end_date: date
    days: Decimal
    reason: Optional[str] = None
    status: DocumentStatus
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    version: int
