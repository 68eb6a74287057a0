"""Ledger test suite — deduct/restore/grant/override, availability checks,
journaled entries, leave-day arithmetic and the admin endpoints' service layer.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from intranet.auth.schemas import Caller
from intranet.common.audit import AuditTrail
from intranet.common.constants import LeaveType, LedgerEntryKind, LedgerSource
from intranet.common.exceptions import (
    ConflictError,
    ForbiddenException,
    InsufficientBalanceException,
    ValidationException,
)
from intranet.ledger.models import AnnualLeaveBalance, LedgerEntry
from intranet.ledger.rules import comp_hours_for, compute_leave_days
from intranet.ledger.service import LedgerService
from tests.conftest import seed_annual, seed_comp

USER = "ledger-user"
YEAR = 2025


# ═════════════════════════════════════════════════════════════════════
# Leave-day arithmetic
# ═════════════════════════════════════════════════════════════════════


class TestComputeLeaveDays:
    def test_full_range_is_inclusive(self):
        assert compute_leave_days(LeaveType.full, date(2025, 3, 10), date(2025, 3, 12)) == 3

    def test_end_defaults_to_start(self):
        assert compute_leave_days(LeaveType.comp, date(2025, 3, 10)) == 1

    def test_fixed_fractions_ignore_range(self):
        start, end = date(2025, 3, 10), date(2025, 3, 20)
        assert compute_leave_days(LeaveType.half_am, start, end) == Decimal("0.5")
        assert compute_leave_days(LeaveType.half_pm, start) == Decimal("0.5")
        assert compute_leave_days(LeaveType.out_1h, start) == Decimal("0.125")
        assert compute_leave_days(LeaveType.out_2h, start) == Decimal("0.25")
        assert compute_leave_days(LeaveType.out_3h, start) == Decimal("0.375")

    def test_end_before_start_is_rejected(self):
        with pytest.raises(ValidationException) as exc_info:
            compute_leave_days(LeaveType.full, date(2025, 3, 12), date(2025, 3, 10))
        assert "leave_end_date" in exc_info.value.errors

    def test_range_longer_than_a_year_is_rejected(self):
        assert compute_leave_days(LeaveType.full, date(2025, 1, 1), date(2025, 12, 31)) == 365
        assert compute_leave_days(LeaveType.comp, date(2024, 1, 1), date(2024, 12, 31)) == 366
        with pytest.raises(ValidationException) as exc_info:
            compute_leave_days(LeaveType.full, date(2025, 1, 1), date(2030, 1, 1))
        assert "leave_end_date" in exc_info.value.errors

    def test_missing_type_and_start_reported_together(self):
        with pytest.raises(ValidationException) as exc_info:
            compute_leave_days(None, None)
        assert set(exc_info.value.errors) == {"leave_type", "leave_start_date"}

    def test_comp_hours_use_eight_hour_days(self):
        assert comp_hours_for(Decimal("2")) == Decimal("16")


# ═════════════════════════════════════════════════════════════════════
# Annual balance
# ═════════════════════════════════════════════════════════════════════


class TestAnnualBalance:
    async def test_deduct_creates_row_with_default_allowance(self, db: AsyncSession):
        balance = await LedgerService.deduct_annual(db, USER, YEAR, Decimal("3"))
        await db.commit()

        assert balance.total_days == Decimal("15")
        assert balance.used_days == Decimal("3")

    async def test_deduct_beyond_remaining_fails(self, db: AsyncSession):
        await seed_annual(db, USER, YEAR, total="2", used="1.5")

        with pytest.raises(InsufficientBalanceException) as exc_info:
            await LedgerService.deduct_annual(db, USER, YEAR, Decimal("1"))
        assert exc_info.value.available == Decimal("0.5")

    async def test_deduct_exactly_remaining_succeeds(self, db: AsyncSession):
        await seed_annual(db, USER, YEAR, total="2", used="1.5")

        balance = await LedgerService.deduct_annual(db, USER, YEAR, Decimal("0.5"))
        assert balance.used_days == balance.total_days

    async def test_restore_floors_at_zero(self, db: AsyncSession):
        await seed_annual(db, USER, YEAR, used="1")

        balance = await LedgerService.restore_annual(db, USER, YEAR, Decimal("3"))
        assert balance.used_days == Decimal("0")

    async def test_restore_missing_row_is_noop(self, db: AsyncSession):
        assert await LedgerService.restore_annual(db, USER, YEAR, Decimal("1")) is None
        assert await LedgerService.get_annual(db, USER, YEAR) is None

    async def test_set_total_allows_deficit(self, db: AsyncSession):
        await seed_annual(db, USER, YEAR, total="15", used="10")

        balance = await LedgerService.set_annual_total(db, USER, YEAR, Decimal("8"))
        await db.commit()
        assert balance.total_days == Decimal("8")
        assert balance.used_days == Decimal("10")

        summary = await LedgerService.get_balances(db, USER, YEAR)
        assert summary.annual.deficit == Decimal("2")
        assert summary.annual.remaining_days == Decimal("0")

    async def test_grant_annual_adds_to_total(self, db: AsyncSession):
        await seed_annual(db, USER, YEAR, total="15")

        balance = await LedgerService.grant_annual(db, USER, YEAR, Decimal("2"))
        assert balance.total_days == Decimal("17")


# ═════════════════════════════════════════════════════════════════════
# Comp balance
# ═════════════════════════════════════════════════════════════════════


class TestCompBalance:
    async def test_deduct_without_row_is_insufficient(self, db: AsyncSession):
        with pytest.raises(InsufficientBalanceException) as exc_info:
            await LedgerService.deduct_comp(db, USER, YEAR, Decimal("8"))
        assert exc_info.value.available == Decimal("0")

    async def test_grant_creates_then_increments(self, db: AsyncSession):
        doc_id = uuid.uuid4()
        first = await LedgerService.grant_comp(
            db, USER, YEAR, Decimal("4"), document_id=doc_id, description="야근",
        )
        assert first.total_hours == Decimal("4")
        assert first.document_id == doc_id

        second = await LedgerService.grant_comp(
            db, USER, YEAR, Decimal("6"), document_id=uuid.uuid4(),
        )
        assert second.id == first.id
        assert second.total_hours == Decimal("10")
        # the row stays linked to the grant that created it
        assert second.document_id == doc_id

    async def test_withdraw_grant_floors_at_zero(self, db: AsyncSession):
        await seed_comp(db, USER, YEAR, total="4")

        balance = await LedgerService.withdraw_comp_grant(db, USER, YEAR, Decimal("6"))
        assert balance.total_hours == Decimal("0")

    async def test_used_never_exceeds_total(self, db: AsyncSession):
        await seed_comp(db, USER, YEAR, total="16")

        balance = await LedgerService.deduct_comp(db, USER, YEAR, Decimal("16"))
        assert balance.used_hours == balance.total_hours
        with pytest.raises(InsufficientBalanceException):
            await LedgerService.deduct_comp(db, USER, YEAR, Decimal("0.5"))


# ═════════════════════════════════════════════════════════════════════
# Availability check
# ═════════════════════════════════════════════════════════════════════


class TestEnsureLeaveAvailable:
    async def test_missing_annual_row_counts_as_default_and_is_not_created(
        self, db: AsyncSession,
    ):
        await LedgerService.ensure_leave_available(db, USER, YEAR, LeaveType.full, Decimal("15"))
        assert await LedgerService.get_annual(db, USER, YEAR) is None

        with pytest.raises(InsufficientBalanceException):
            await LedgerService.ensure_leave_available(
                db, USER, YEAR, LeaveType.full, Decimal("15.5"),
            )

    async def test_comp_check_uses_hours(self, db: AsyncSession):
        await seed_comp(db, USER, YEAR, total="12")

        await LedgerService.ensure_leave_available(db, USER, YEAR, LeaveType.comp, Decimal("1"))
        with pytest.raises(InsufficientBalanceException) as exc_info:
            await LedgerService.ensure_leave_available(
                db, USER, YEAR, LeaveType.comp, Decimal("2"),
            )
        assert exc_info.value.requested == Decimal("16")


# ═════════════════════════════════════════════════════════════════════
# Journal
# ═════════════════════════════════════════════════════════════════════


class TestLedgerEntries:
    async def test_apply_then_reverse_annual(self, db: AsyncSession):
        await seed_annual(db, USER, YEAR, total="15", used="2")
        source_id = uuid.uuid4()

        entry = await LedgerService.apply_entry(
            db,
            source_type=LedgerSource.document,
            source_id=source_id,
            entry_kind=LedgerEntryKind.annual_deduct,
            user_id=USER,
            year=YEAR,
            amount=Decimal("3"),
        )
        await db.commit()
        balance = await LedgerService.get_annual(db, USER, YEAR)
        assert balance.used_days == Decimal("5")

        await LedgerService.reverse_entry(db, entry)
        await db.commit()

        balance = await LedgerService.get_annual(db, USER, YEAR, for_update=True)
        assert balance.used_days == Decimal("2")
        assert await LedgerService.get_entry(db, LedgerSource.document, source_id) is None

    async def test_comp_grant_entry_links_document(self, db: AsyncSession):
        source_id = uuid.uuid4()
        await LedgerService.apply_entry(
            db,
            source_type=LedgerSource.document,
            source_id=source_id,
            entry_kind=LedgerEntryKind.comp_grant,
            user_id=USER,
            year=YEAR,
            amount=Decimal("16"),
        )
        comp = await LedgerService.get_comp(db, USER, YEAR)
        assert comp.document_id == source_id
        assert comp.total_hours == Decimal("16")

    async def test_second_entry_for_same_source_conflicts(self, db: AsyncSession):
        source_id = uuid.uuid4()
        kwargs = dict(
            source_type=LedgerSource.leave_request,
            source_id=source_id,
            entry_kind=LedgerEntryKind.annual_deduct,
            user_id=USER,
            year=YEAR,
            amount=Decimal("1"),
        )
        await LedgerService.apply_entry(db, **kwargs)
        await db.commit()

        with pytest.raises(ConflictError):
            await LedgerService.apply_entry(db, **kwargs)

        balance = await LedgerService.get_annual(db, USER, YEAR)
        assert balance.used_days == Decimal("1")
        entries = (await db.execute(select(LedgerEntry))).scalars().all()
        assert len(entries) == 1


# ═════════════════════════════════════════════════════════════════════
# Admin overrides and listings
# ═════════════════════════════════════════════════════════════════════


class TestAdminOverrides:
    async def test_update_annual_total_commits_and_audits(
        self, db: AsyncSession, chairman: Caller,
    ):
        await seed_annual(db, USER, YEAR, total="15", used="4")

        balance = await LedgerService.update_annual_total(
            db, USER, YEAR, Decimal("20"), chairman,
        )
        assert balance.total_days == Decimal("20")

        audit = (
            await db.execute(
                select(AuditTrail).where(AuditTrail.entity_type == "annual_leave_balance")
            )
        ).scalars().one()
        assert audit.actor_id == chairman.user_id
        assert Decimal(audit.old_values["total_days"]) == Decimal("15")
        assert Decimal(audit.new_values["total_days"]) == Decimal("20")

    async def test_update_comp_total_creates_row(self, db: AsyncSession, director: Caller):
        balance = await LedgerService.update_comp_total(
            db, USER, YEAR, Decimal("24"), director,
        )
        assert balance.total_hours == Decimal("24")
        assert balance.used_hours == Decimal("0")

    async def test_non_approver_cannot_override(self, db: AsyncSession, drafter: Caller):
        with pytest.raises(ForbiddenException):
            await LedgerService.update_annual_total(db, USER, YEAR, Decimal("30"), drafter)

    async def test_balances_default_when_rows_missing(self, db: AsyncSession):
        summary = await LedgerService.get_balances(db, USER, YEAR)
        assert summary.annual.total_days == Decimal("15")
        assert summary.annual.remaining_days == Decimal("15")
        assert summary.comp.total_hours == Decimal("0")

    async def test_list_annual_balances_filters_by_year(self, db: AsyncSession):
        await seed_annual(db, "a", YEAR)
        await seed_annual(db, "b", YEAR)
        await seed_annual(db, "a", YEAR + 1)

        rows = await LedgerService.list_annual_balances(db, YEAR)
        assert [r.user_id for r in rows] == ["a", "b"]
        assert all(isinstance(r, AnnualLeaveBalance) for r in rows)
