"""Ledger router — own balances, the yearly allowance listing, admin overrides."""


from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from intranet.auth.dependencies import get_current_caller, require_approver
from intranet.auth.schemas import Caller
from intranet.common.clock import local_today
from intranet.database import get_db
from intranet.ledger.schemas import (
    AnnualBalanceOut,
    AnnualTotalUpdate,
    BalanceSummaryOut,
    CompBalanceOut,
    CompTotalUpdate,
)
from intranet.ledger.service import LedgerService

router = APIRouter(prefix="", tags=["ledger"])


# ── GET /me ─────────────────────────────────────────────────────────

@router.get("/me", response_model=BalanceSummaryOut)
async def my_balances(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Annual and comp balances of the caller (defaults to the current local year)."""
    return await LedgerService.get_balances(
        db, caller.user_id, year or local_today().year,
    )


# ── GET /annual ─────────────────────────────────────────────────────

@router.get("/annual", response_model=list[AnnualBalanceOut])
async def list_annual(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    caller: Caller = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
):
    """All annual allowances recorded for a year."""
    return await LedgerService.list_annual_balances(db, year or local_today().year)


# ── PUT /annual/{user_id}/{year} ────────────────────────────────────

@router.put("/annual/{user_id}/{year}", response_model=AnnualBalanceOut)
async def set_annual_total(
    user_id: str,
    year: int,
    body: AnnualTotalUpdate,
    caller: Caller = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
):
    """Override a user's annual allowance. Used days are left untouched."""
    return await LedgerService.update_annual_total(
        db, user_id, year, body.total_days, caller,
    )


# ── PUT /comp/{user_id}/{year} ──────────────────────────────────────

@router.put("/comp/{user_id}/{year}", response_model=CompBalanceOut)
async def set_comp_total(
    user_id: str,
    year: int,
    body: CompTotalUpdate,
    caller: Caller = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
):
    """Override a user's compensatory hours."""
    return await LedgerService.update_comp_total(
        db, user_id, year, body.total_hours, caller,
    )
