"""Document Pydantic v2 schemas — drafts, patches, decisions, labels.

Naming conventions:
  - *Draft / *Create / *Request → request bodies (write)
  - *Out                        → response bodies (read)
  - *Brief                      → compact embedded representations

A draft is a discriminated union on ``kind``: an expense draft carries line
items, an attendance draft carries the leave/overtime claim.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

from intranet.common.constants import (
    ApproverRole,
    AttendanceType,
    DocumentKind,
    DocumentStatus,
    LeaveType,
)


# ═════════════════════════════════════════════════════════════════════
# Embedded
# ═════════════════════════════════════════════════════════════════════


class ExpenseItem(BaseModel):
    """One line of an expense document."""

    item: str = Field(..., min_length=1, max_length=200)
    category: Optional[str] = Field(None, max_length=100)
    vendor: Optional[str] = Field(None, max_length=200)
    amount: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    note: Optional[str] = Field(None, max_length=500)


class LabelBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: int
    name: str
    color: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Drafts
# ═════════════════════════════════════════════════════════════════════


class _DraftBase(BaseModel):
    label_id: uuid.UUID
    title: str = Field(..., min_length=1, max_length=200)
    content: Optional[str] = None
    execution_date: Optional[date] = None
    payment_method: Optional[str] = Field(None, max_length=50)
    attachments: list[Any] = Field(default_factory=list)
    is_private: bool = False

    @field_validator("title")
    @classmethod
    def _strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be blank")
        return v


class ExpenseDraft(_DraftBase):
    """Expense document; the approval path depends on the item total."""

    kind: Literal["expense"] = "expense"
    expense_items: list[ExpenseItem] = Field(default_factory=list)


class AttendanceDraft(_DraftBase):
    """Attendance document carrying a leave or overtime claim."""

    kind: Literal["attendance"] = "attendance"
    attendance_type: AttendanceType = AttendanceType.none
    leave_type: Optional[LeaveType] = None
    leave_start_date: Optional[date] = None
    leave_end_date: Optional[date] = None
    extra_work_hours: Decimal = Field(Decimal("0"), ge=0, max_digits=6, decimal_places=2)

    @model_validator(mode="after")
    def _check_claim(self) -> "AttendanceDraft":
        if self.attendance_type == AttendanceType.leave:
            missing = []
            if self.leave_type is None:
                missing.append("leave_type")
            if self.leave_start_date is None:
                missing.append("leave_start_date")
            if missing:
                raise ValueError(f"Leave claim requires {', '.join(missing)}")
        return self


DocumentDraft = Annotated[
    Union[ExpenseDraft, AttendanceDraft],
    Field(discriminator="kind"),
]

draft_adapter: TypeAdapter[Union[ExpenseDraft, AttendanceDraft]] = TypeAdapter(DocumentDraft)


class DocumentPatch(BaseModel):
    """Partial update of a pending draft; merged onto the stored draft."""

    model_config = ConfigDict(extra="forbid")

    kind: Optional[DocumentKind] = None
    label_id: Optional[uuid.UUID] = None
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = None
    execution_date: Optional[date] = None
    payment_method: Optional[str] = Field(None, max_length=50)
    attachments: Optional[list[Any]] = None
    is_private: Optional[bool] = None
    expense_items: Optional[list[ExpenseItem]] = None
    attendance_type: Optional[AttendanceType] = None
    leave_type: Optional[LeaveType] = None
    leave_start_date: Optional[date] = None
    leave_end_date: Optional[date] = None
    extra_work_hours: Optional[Decimal] = Field(None, ge=0, max_digits=6, decimal_places=2)


# ═════════════════════════════════════════════════════════════════════
# Decisions
# ═════════════════════════════════════════════════════════════════════


class ApproveRequest(BaseModel):
    role: ApproverRole


class RejectRequest(BaseModel):
    reason: str = Field(..., max_length=2000)


# ═════════════════════════════════════════════════════════════════════
# Document out
# ═════════════════════════════════════════════════════════════════════


class DocumentOut(BaseModel):
    """Full document representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    doc_number: str
    kind: DocumentKind
    label_id: uuid.UUID
    label: Optional[LabelBrief] = None
    drafter_id: str
    status: DocumentStatus
    title: str
    content: Optional[str] = None
    execution_date: Optional[date] = None
    payment_method: Optional[str] = None
    attachments: list[Any] = Field(default_factory=list)
    expense_items: list[ExpenseItem] = Field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    attendance_type: AttendanceType = AttendanceType.none
    leave_type: Optional[LeaveType] = None
    leave_start_date: Optional[date] = None
    leave_end_date: Optional[date] = None
    leave_days: Optional[Decimal] = None
    extra_work_hours: Decimal = Decimal("0")
    is_private: bool = False
    rejected_reason: Optional[str] = None
    approver_id: Optional[str] = None
    chairman_approver_id: Optional[str] = None
    chairman_approved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    approved_at: Optional[datetime] = None
    version: int


# ═════════════════════════════════════════════════════════════════════
# Labels
# ═════════════════════════════════════════════════════════════════════


class LabelCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = Field(None, max_length=20)


class LabelUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    color: Optional[str] = Field(None, max_length=20)


class LabelOut(LabelBrief):
    created_at: datetime
