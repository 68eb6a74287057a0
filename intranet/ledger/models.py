"""Ledger ORM models: AnnualLeaveBalance, CompLeaveBalance, LedgerEntry."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from intranet.common.constants import LedgerEntryKind, LedgerSource
from intranet.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnnualLeaveBalance(Base):
    """Annual leave for one user and year, counted in days."""

    __tablename__ = "annual_leave_balances"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "year", name="uq_annual_leave_user_year"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    total_days: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 3), nullable=False, default=Decimal("0")
    )
    used_days: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 3), nullable=False, default=Decimal("0")
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    @property
    def remaining_days(self) -> Decimal:
        return self.total_days - self.used_days

    def __repr__(self) -> str:
        return f"<AnnualLeaveBalance {self.user_id}/{self.year} {self.used_days}/{self.total_days}>"


class CompLeaveBalance(Base):
    """Compensatory leave for one user and year, counted in hours."""

    __tablename__ = "comp_leave_balances"
    __table_args__ = (
        sa.UniqueConstraint("user_id", "year", name="uq_comp_leave_user_year"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    # Document whose overtime grant created this row
    document_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    total_hours: Mapped[Decimal] = mapped_column(
        sa.Numeric(8, 3), nullable=False, default=Decimal("0")
    )
    used_hours: Mapped[Decimal] = mapped_column(
        sa.Numeric(8, 3), nullable=False, default=Decimal("0")
    )
    description: Mapped[Optional[str]] = mapped_column(sa.String(255))
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    @property
    def remaining_hours(self) -> Decimal:
        return self.total_hours - self.used_hours

    def __repr__(self) -> str:
        return f"<CompLeaveBalance {self.user_id}/{self.year} {self.used_hours}/{self.total_hours}>"


class LedgerEntry(Base):
    """Record of the single ledger mutation a terminal approval performed.

    One row per source; deleting the source reverses exactly this amount
    against exactly this (user, year) balance.
    """

    __tablename__ = "ledger_entries"
    __table_args__ = (
        sa.UniqueConstraint("source_type", "source_id", name="uq_ledger_entry_source"),
        sa.Index("ix_ledger_entries_user_year", "user_id", "year"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    source_type: Mapped[LedgerSource] = mapped_column(
        sa.Enum(LedgerSource, name="ledger_source", native_enum=False, length=20),
        nullable=False,
    )
    source_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    entry_kind: Mapped[LedgerEntryKind] = mapped_column(
        sa.Enum(LedgerEntryKind, name="ledger_entry_kind", native_enum=False, length=20),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(sa.Numeric(8, 3), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.String(255))
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.entry_kind.value} {self.amount} "
            f"{self.user_id}/{self.year} from {self.source_type.value}/{self.source_id}>"
        )
