"""Leave router — apply, edit, cancel, approve/reject and listings.

All endpoints require a bearer token; approval endpoints require an approver.
"""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from intranet.auth.dependencies import get_current_caller, require_approver
from intranet.auth.schemas import Caller
from intranet.common.constants import DocumentStatus
from intranet.common.pagination import PaginatedResponse, PaginationParams
from intranet.common.rate_limit import SUBMIT_RATE_LIMIT, limiter
from intranet.database import get_db
from intranet.leave.schemas import (
    LeaveRejectRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestUpdate,
)
from intranet.leave.service import LeaveRequestService

router = APIRouter(prefix="", tags=["leave"])


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=LeaveRequestOut, status_code=201)
@limiter.limit(SUBMIT_RATE_LIMIT)
async def apply_leave(
    request: Request,
    body: LeaveRequestCreate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Apply for leave. Validates the day count against the current balance."""
    return await LeaveRequestService.submit(db, body, caller)


# ── GET /requests/mine ──────────────────────────────────────────────

@router.get("/requests/mine", response_model=PaginatedResponse[LeaveRequestOut])
async def my_requests(
    status: Optional[DocumentStatus] = Query(None),
    pagination: PaginationParams = Depends(),
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    rows, meta = await LeaveRequestService.list_mine(db, caller, pagination, status)
    return {"data": rows, "meta": meta}


# ── GET /requests/pending ───────────────────────────────────────────

@router.get("/requests/pending", response_model=PaginatedResponse[LeaveRequestOut])
async def pending_requests(
    pagination: PaginationParams = Depends(),
    caller: Caller = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
):
    """Requests waiting for a decision, oldest first."""
    rows, meta = await LeaveRequestService.list_pending(db, caller, pagination)
    return {"data": rows, "meta": meta}


# ── PATCH /requests/{id} ────────────────────────────────────────────

@router.patch("/requests/{request_id}", response_model=LeaveRequestOut)
async def edit_request(
    request_id: uuid.UUID,
    body: LeaveRequestUpdate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveRequestService.edit(db, request_id, body, caller)


# ── POST /requests/{id}/approve ─────────────────────────────────────

@router.post("/requests/{request_id}/approve", response_model=LeaveRequestOut)
async def approve_request(
    request_id: uuid.UUID,
    caller: Caller = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
):
    """Approve a pending request. Deducts annual days or comp hours."""
    return await LeaveRequestService.approve(db, request_id, caller)


# ── POST /requests/{id}/reject ──────────────────────────────────────

@router.post("/requests/{request_id}/reject", response_model=LeaveRequestOut)
async def reject_request(
    request_id: uuid.UUID,
    body: LeaveRejectRequest,
    caller: Caller = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveRequestService.reject(db, request_id, body.reason, caller)


# ── DELETE /requests/{id} ───────────────────────────────────────────

@router.delete("/requests/{request_id}", status_code=204)
async def delete_request(
    request_id: uuid.UUID,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Approvers delete any request (restoring its deduction); others cancel their own pending one."""
    if caller.is_approver:
        await LeaveRequestService.delete(db, request_id, caller)
    else:
        await LeaveRequestService.cancel(db, request_id, caller)
