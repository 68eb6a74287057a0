"""Document ORM models: DocumentLabel, Document, DocumentNumberCounter."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from intranet.common.constants import (
    AttendanceType,
    DocumentKind,
    DocumentStatus,
    LeaveType,
)
from intranet.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


_JSON = sa.JSON().with_variant(JSONB(), "postgresql")


class DocumentLabel(Base):
    __tablename__ = "document_labels"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    code: Mapped[int] = mapped_column(sa.Integer, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(sa.String(20))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow
    )

    def __repr__(self) -> str:
        return f"<DocumentLabel {self.code} {self.name}>"


class Document(Base):
    """A drafted request moving through approval."""

    __tablename__ = "documents"
    __table_args__ = (
        sa.Index("ix_documents_drafter_id", "drafter_id"),
        sa.Index("ix_documents_status", "status"),
        sa.Index("ix_documents_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    doc_number: Mapped[str] = mapped_column(sa.String(20), unique=True, nullable=False)
    kind: Mapped[DocumentKind] = mapped_column(
        sa.Enum(DocumentKind, name="document_kind", native_enum=False, length=20),
        nullable=False,
    )
    label_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("document_labels.id"), nullable=False
    )
    drafter_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    status: Mapped[DocumentStatus] = mapped_column(
        sa.Enum(DocumentStatus, name="document_status", native_enum=False, length=20),
        nullable=False,
        default=DocumentStatus.pending,
    )

    title: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    content: Mapped[Optional[str]] = mapped_column(sa.Text)
    execution_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    payment_method: Mapped[Optional[str]] = mapped_column(sa.String(50))
    # Opaque references owned by the file store
    attachments: Mapped[list[Any]] = mapped_column(_JSON, nullable=False, default=list)
    # [{item, category, vendor, amount, note}, ...] with amount kept as a decimal string
    expense_items: Mapped[list[dict[str, Any]]] = mapped_column(
        _JSON, nullable=False, default=list
    )

    # Attendance / leave claim
    attendance_type: Mapped[AttendanceType] = mapped_column(
        sa.Enum(AttendanceType, name="attendance_type", native_enum=False, length=20),
        nullable=False,
        default=AttendanceType.none,
    )
    leave_type: Mapped[Optional[LeaveType]] = mapped_column(
        sa.Enum(LeaveType, name="leave_type", native_enum=False, length=20)
    )
    leave_start_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    leave_end_date: Mapped[Optional[date]] = mapped_column(sa.Date)
    leave_days: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(6, 3))
    extra_work_hours: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 2), nullable=False, default=Decimal("0")
    )

    is_private: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    rejected_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    approver_id: Mapped[Optional[str]] = mapped_column(sa.String(64))
    chairman_approver_id: Mapped[Optional[str]] = mapped_column(sa.String(64))
    chairman_approved_at: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    label: Mapped[DocumentLabel] = relationship(lazy="joined", innerjoin=True)

    __mapper_args__ = {"version_id_col": version}

    @property
    def total_amount(self) -> Decimal:
        return sum(
            (Decimal(str(item.get("amount") or 0)) for item in self.expense_items or ()),
            Decimal("0"),
        )

    def __repr__(self) -> str:
        return f"<Document {self.doc_number} {self.kind.value} {self.status.value}>"


class DocumentNumberCounter(Base):
    """Last doc-number suffix handed out for a local calendar day.

    Rows only ever increase, so a number is never reused even after deletes.
    """

    __tablename__ = "document_number_counters"

    day: Mapped[date] = mapped_column(sa.Date, primary_key=True)
    last_value: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
