"""Ledger service layer — annual/comp balances and the side-effect journal.

Business logic:
  - Deduct / restore / grant / admin-override for annual (days) and comp (hours)
  - Deductions never push used above total; restores floor at zero and never fail
  - Journaled side effects: one LedgerEntry per approved source, reversed on delete
  - Balance summaries and the admin listing for a year

The mutation helpers expect the caller's UnitOfWork to hold the
``ledger:<user>:<year>`` lock; only the admin overrides open their own unit.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from intranet.auth.schemas import Caller
from intranet.common.audit import create_audit_entry
from intranet.common.constants import LeaveType, LedgerEntryKind, LedgerSource
from intranet.common.exceptions import (
    ConflictError,
    ForbiddenException,
    InsufficientBalanceException,
)
from intranet.common.locks import ledger_key
from intranet.common.uow import UnitOfWork
from intranet.config import settings
from intranet.ledger.models import AnnualLeaveBalance, CompLeaveBalance, LedgerEntry
from intranet.ledger.rules import comp_hours_for
from intranet.ledger.schemas import AnnualBalanceOut, BalanceSummaryOut, CompBalanceOut

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


# ═════════════════════════════════════════════════════════════════════
# LedgerService
# ═════════════════════════════════════════════════════════════════════


class LedgerService:
    """Async balance operations for annual and compensatory leave."""

    # ─────────────────────────────────────────────────────────────────
    # Row access
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_annual(
        db: AsyncSession,
        user_id: str,
        year: int,
        *,
        for_update: bool = False,
    ) -> Optional[AnnualLeaveBalance]:
        query = select(AnnualLeaveBalance).where(
            AnnualLeaveBalance.user_id == user_id,
            AnnualLeaveBalance.year == year,
        )
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        return (await db.execute(query)).scalar_one_or_none()

    @staticmethod
    async def get_comp(
        db: AsyncSession,
        user_id: str,
        year: int,
        *,
        for_update: bool = False,
    ) -> Optional[CompLeaveBalance]:
        query = select(CompLeaveBalance).where(
            CompLeaveBalance.user_id == user_id,
            CompLeaveBalance.year == year,
        )
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        return (await db.execute(query)).scalar_one_or_none()

    @staticmethod
    async def _annual_for_write(
        db: AsyncSession, user_id: str, year: int
    ) -> AnnualLeaveBalance:
        """Locked annual row, created with the default allowance if absent."""
        balance = await LedgerService.get_annual(db, user_id, year, for_update=True)
        if balance is None:
            balance = AnnualLeaveBalance(
                user_id=user_id,
                year=year,
                total_days=settings.DEFAULT_ANNUAL_LEAVE_DAYS,
                used_days=ZERO,
            )
            db.add(balance)
            await db.flush()
            logger.info(
                "Created annual balance %s/%s with %s days",
                user_id, year, balance.total_days,
            )
        return balance

    # ─────────────────────────────────────────────────────────────────
    # Annual leave (days)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def deduct_annual(
        db: AsyncSession, user_id: str, year: int, days: Decimal
    ) -> AnnualLeaveBalance:
        balance = await LedgerService._annual_for_write(db, user_id, year)
        available = balance.total_days - balance.used_days
        if days > available:
            raise InsufficientBalanceException("annual leave", available, days)
        balance.used_days = balance.used_days + days
        await db.flush()
        logger.info("Deducted %s annual days from %s/%s", days, user_id, year)
        return balance

    @staticmethod
    async def restore_annual(
        db: AsyncSession, user_id: str, year: int, days: Decimal
    ) -> Optional[AnnualLeaveBalance]:
        balance = await LedgerService.get_annual(db, user_id, year, for_update=True)
        if balance is None:
            logger.warning("No annual balance %s/%s to restore %s days to", user_id, year, days)
            return None
        balance.used_days = max(ZERO, balance.used_days - days)
        await db.flush()
        logger.info("Restored %s annual days to %s/%s", days, user_id, year)
        return balance

    @staticmethod
    async def grant_annual(
        db: AsyncSession, user_id: str, year: int, days: Decimal
    ) -> AnnualLeaveBalance:
        balance = await LedgerService._annual_for_write(db, user_id, year)
        balance.total_days = balance.total_days + days
        await db.flush()
        return balance

    @staticmethod
    async def set_annual_total(
        db: AsyncSession, user_id: str, year: int, total_days: Decimal
    ) -> AnnualLeaveBalance:
        """Admin override; no floor against used days."""
        balance = await LedgerService.get_annual(db, user_id, year, for_update=True)
        if balance is None:
            balance = AnnualLeaveBalance(
                user_id=user_id, year=year, total_days=total_days, used_days=ZERO
            )
            db.add(balance)
        else:
            balance.total_days = total_days
        await db.flush()
        if balance.used_days > total_days:
            logger.warning(
                "Annual balance %s/%s now in deficit: used %s > total %s",
                user_id, year, balance.used_days, total_days,
            )
        return balance

    # ─────────────────────────────────────────────────────────────────
    # Compensatory leave (hours)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def deduct_comp(
        db: AsyncSession, user_id: str, year: int, hours: Decimal
    ) -> CompLeaveBalance:
        balance = await LedgerService.get_comp(db, user_id, year, for_update=True)
        available = ZERO if balance is None else balance.total_hours - balance.used_hours
        if balance is None or hours > available:
            raise InsufficientBalanceException("comp leave", available, hours)
        balance.used_hours = balance.used_hours + hours
        await db.flush()
        logger.info("Deducted %s comp hours from %s/%s", hours, user_id, year)
        return balance

    @staticmethod
    async def restore_comp(
        db: AsyncSession, user_id: str, year: int, hours: Decimal
    ) -> Optional[CompLeaveBalance]:
        balance = await LedgerService.get_comp(db, user_id, year, for_update=True)
        if balance is None:
            logger.warning("No comp balance %s/%s to restore %s hours to", user_id, year, hours)
            return None
        balance.used_hours = max(ZERO, balance.used_hours - hours)
        await db.flush()
        logger.info("Restored %s comp hours to %s/%s", hours, user_id, year)
        return balance

    @staticmethod
    async def grant_comp(
        db: AsyncSession,
        user_id: str,
        year: int,
        hours: Decimal,
        *,
        document_id: Optional[uuid.UUID] = None,
        description: Optional[str] = None,
    ) -> CompLeaveBalance:
        """Add earned hours; the first grant of a year creates the row linked to its document."""
        balance = await LedgerService.get_comp(db, user_id, year, for_update=True)
        if balance is None:
            balance = CompLeaveBalance(
                user_id=user_id,
                year=year,
                document_id=document_id,
                total_hours=hours,
                used_hours=ZERO,
                description=description,
            )
            db.add(balance)
        else:
            balance.total_hours = balance.total_hours + hours
        await db.flush()
        logger.info("Granted %s comp hours to %s/%s", hours, user_id, year)
        return balance

    @staticmethod
    async def withdraw_comp_grant(
        db: AsyncSession, user_id: str, year: int, hours: Decimal
    ) -> Optional[CompLeaveBalance]:
        balance = await LedgerService.get_comp(db, user_id, year, for_update=True)
        if balance is None:
            logger.warning("No comp balance %s/%s to withdraw %s hours from", user_id, year, hours)
            return None
        balance.total_hours = max(ZERO, balance.total_hours - hours)
        await db.flush()
        logger.info("Withdrew %s granted comp hours from %s/%s", hours, user_id, year)
        return balance

    @staticmethod
    async def set_comp_total(
        db: AsyncSession, user_id: str, year: int, total_hours: Decimal
    ) -> CompLeaveBalance:
        """Admin override; no floor against used hours."""
        balance = await LedgerService.get_comp(db, user_id, year, for_update=True)
        if balance is None:
            balance = CompLeaveBalance(
                user_id=user_id, year=year, total_hours=total_hours, used_hours=ZERO
            )
            db.add(balance)
        else:
            balance.total_hours = total_hours
        await db.flush()
        return balance

    # ─────────────────────────────────────────────────────────────────
    # Availability check (submit / edit time)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def ensure_leave_available(
        db: AsyncSession,
        user_id: str,
        year: int,
        leave_type: LeaveType,
        days: Decimal,
    ) -> None:
        """Raise InsufficientBalance if the claim cannot be covered right now.

        A missing annual row counts as the default allowance and is not
        created; a missing comp row has nothing to spend.
        """
        if leave_type == LeaveType.comp:
            balance = await LedgerService.get_comp(db, user_id, year)
            available = ZERO if balance is None else balance.total_hours - balance.used_hours
            requested = comp_hours_for(days)
            if available < requested:
                raise InsufficientBalanceException("comp leave", available, requested)
            return

        balance = await LedgerService.get_annual(db, user_id, year)
        if balance is None:
            available = settings.DEFAULT_ANNUAL_LEAVE_DAYS
        else:
            available = balance.total_days - balance.used_days
        if days > available:
            raise InsufficientBalanceException("annual leave", available, days)

    # ─────────────────────────────────────────────────────────────────
    # Journaled side effects
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_entry(
        db: AsyncSession, source_type: LedgerSource, source_id: uuid.UUID
    ) -> Optional[LedgerEntry]:
        result = await db.execute(
            select(LedgerEntry).where(
                LedgerEntry.source_type == source_type,
                LedgerEntry.source_id == source_id,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def apply_entry(
        db: AsyncSession,
        *,
        source_type: LedgerSource,
        source_id: uuid.UUID,
        entry_kind: LedgerEntryKind,
        user_id: str,
        year: int,
        amount: Decimal,
        description: Optional[str] = None,
    ) -> LedgerEntry:
        """Perform one balance mutation and record it against its source."""
        if await LedgerService.get_entry(db, source_type, source_id) is not None:
            raise ConflictError(
                f"Ledger effect for {source_type.value} '{source_id}' was already applied."
            )

        if entry_kind == LedgerEntryKind.annual_deduct:
            await LedgerService.deduct_annual(db, user_id, year, amount)
        elif entry_kind == LedgerEntryKind.comp_deduct:
            await LedgerService.deduct_comp(db, user_id, year, amount)
        else:
            await LedgerService.grant_comp(
                db, user_id, year, amount,
                document_id=source_id if source_type == LedgerSource.document else None,
                description=description,
            )

        entry = LedgerEntry(
            source_type=source_type,
            source_id=source_id,
            entry_kind=entry_kind,
            user_id=user_id,
            year=year,
            amount=amount,
            description=description,
        )
        db.add(entry)
        await db.flush()
        return entry

    @staticmethod
    async def reverse_entry(db: AsyncSession, entry: LedgerEntry) -> None:
        """Undo exactly what *entry* did, then drop it."""
        if entry.entry_kind == LedgerEntryKind.annual_deduct:
            await LedgerService.restore_annual(db, entry.user_id, entry.year, entry.amount)
        elif entry.entry_kind == LedgerEntryKind.comp_deduct:
            await LedgerService.restore_comp(db, entry.user_id, entry.year, entry.amount)
        else:
            await LedgerService.withdraw_comp_grant(db, entry.user_id, entry.year, entry.amount)
        logger.info(
            "Reversed %s of %s for %s/%s",
            entry.entry_kind.value, entry.amount, entry.source_type.value, entry.source_id,
        )
        await db.delete(entry)
        await db.flush()

    # ─────────────────────────────────────────────────────────────────
    # Read side
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balances(
        db: AsyncSession, user_id: str, year: int
    ) -> BalanceSummaryOut:
        annual = await LedgerService.get_annual(db, user_id, year)
        comp = await LedgerService.get_comp(db, user_id, year)
        return BalanceSummaryOut(
            user_id=user_id,
            year=year,
            annual=(
                AnnualBalanceOut.model_validate(annual)
                if annual is not None
                else AnnualBalanceOut(
                    user_id=user_id,
                    year=year,
                    total_days=settings.DEFAULT_ANNUAL_LEAVE_DAYS,
                    used_days=ZERO,
                )
            ),
            comp=(
                CompBalanceOut.model_validate(comp)
                if comp is not None
                else CompBalanceOut(
                    user_id=user_id, year=year, total_hours=ZERO, used_hours=ZERO
                )
            ),
        )

    @staticmethod
    async def list_annual_balances(
        db: AsyncSession, year: int
    ) -> list[AnnualLeaveBalance]:
        result = await db.execute(
            select(AnnualLeaveBalance)
            .where(AnnualLeaveBalance.year == year)
            .order_by(AnnualLeaveBalance.user_id)
        )
        return list(result.scalars().all())

    # ─────────────────────────────────────────────────────────────────
    # Admin overrides (own unit of work)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def update_annual_total(
        db: AsyncSession,
        user_id: str,
        year: int,
        total_days: Decimal,
        caller: Caller,
    ) -> AnnualLeaveBalance:
        if not caller.is_approver:
            raise ForbiddenException("Only approvers can change leave allowances.")

        async with UnitOfWork(db) as uow:
            await uow.lock(ledger_key(user_id, year))
            previous = await LedgerService.get_annual(db, user_id, year, for_update=True)
            old_total = None if previous is None else str(previous.total_days)
            balance = await LedgerService.set_annual_total(db, user_id, year, total_days)
            await create_audit_entry(
                db,
                action="set_total",
                entity_type="annual_leave_balance",
                entity_id=balance.id,
                actor_id=caller.user_id,
                old_values={"total_days": old_total},
                new_values={"total_days": str(total_days)},
            )
        logger.info("Annual total for %s/%s set to %s by %s", user_id, year, total_days, caller.user_id)
        return balance

    @staticmethod
    async def update_comp_total(
        db: AsyncSession,
        user_id: str,
        year: int,
        total_hours: Decimal,
        caller: Caller,
    ) -> CompLeaveBalance:
        if not caller.is_approver:
            raise ForbiddenException("Only approvers can change leave allowances.")

        async with UnitOfWork(db) as uow:
            await uow.lock(ledger_key(user_id, year))
            previous = await LedgerService.get_comp(db, user_id, year, for_update=True)
            old_total = None if previous is None else str(previous.total_hours)
            balance = await LedgerService.set_comp_total(db, user_id, year, total_hours)
            await create_audit_entry(
                db,
                action="set_total",
                entity_type="comp_leave_balance",
                entity_id=balance.id,
                actor_id=caller.user_id,
                old_values={"total_hours": old_total},
                new_values={"total_hours": str(total_hours)},
            )
        logger.info("Comp total for %s/%s set to %s by %s", user_id, year, total_hours, caller.user_id)
        return balance
