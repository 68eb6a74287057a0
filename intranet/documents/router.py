"""Documents router — drafting, approval workflow, listings and labels.

All endpoints require a bearer token. Label writes and the approval queue are
limited to approvers; transition rules are enforced by the service layer.
"""


import uuid
from datetime import date
from typing import Optional, Union

from fastapi import APIRouter, Body, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from intranet.auth.dependencies import get_current_caller, require_approver
from intranet.auth.schemas import Caller
from intranet.common.constants import AttendanceType, DocumentKind, DocumentStatus
from intranet.common.pagination import PaginatedResponse, PaginationParams
from intranet.common.rate_limit import SUBMIT_RATE_LIMIT, limiter
from intranet.database import get_db
from intranet.documents.schemas import (
    ApproveRequest,
    AttendanceDraft,
    DocumentOut,
    DocumentPatch,
    ExpenseDraft,
    LabelCreate,
    LabelOut,
    LabelUpdate,
    RejectRequest,
)
from intranet.documents.service import DocumentService
from intranet.documents.store import DocumentStore

router = APIRouter(prefix="", tags=["documents"])


# ═════════════════════════════════════════════════════════════════════
# Labels
# ═════════════════════════════════════════════════════════════════════


# ── GET /labels ─────────────────────────────────────────────────────

@router.get("/labels", response_model=list[LabelOut])
async def list_labels(
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """All document labels ordered by code."""
    return await DocumentStore.list_labels(db)


# ── POST /labels ────────────────────────────────────────────────────

@router.post("/labels", response_model=LabelOut, status_code=201)
async def create_label(
    body: LabelCreate,
    caller: Caller = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
):
    """Create a label; its code is one past the highest existing code."""
    return await DocumentService.create_label(db, body, caller)


# ── PATCH /labels/{id} ──────────────────────────────────────────────

@router.patch("/labels/{label_id}", response_model=LabelOut)
async def update_label(
    label_id: uuid.UUID,
    body: LabelUpdate,
    caller: Caller = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
):
    return await DocumentService.update_label(db, label_id, body, caller)


# ── DELETE /labels/{id} ─────────────────────────────────────────────

@router.delete("/labels/{label_id}", status_code=204)
async def delete_label(
    label_id: uuid.UUID,
    caller: Caller = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
):
    """Delete an unused label. The attendance label is permanent."""
    await DocumentService.delete_label(db, label_id, caller)


# ═════════════════════════════════════════════════════════════════════
# Documents
# ═════════════════════════════════════════════════════════════════════


# ── POST / ──────────────────────────────────────────────────────────

@router.post("", response_model=DocumentOut, status_code=201)
@limiter.limit(SUBMIT_RATE_LIMIT)
async def submit_document(
    request: Request,
    body: Union[ExpenseDraft, AttendanceDraft] = Body(..., discriminator="kind"),
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Submit a draft. It starts pending with a fresh ``YYYY/MM/DD-N`` number."""
    return await DocumentService.submit(db, body, caller)


# ── GET / ───────────────────────────────────────────────────────────

@router.get("", response_model=PaginatedResponse[DocumentOut])
async def list_documents(
    status: Optional[DocumentStatus] = Query(None),
    kind: Optional[DocumentKind] = Query(None),
    attendance_type: Optional[AttendanceType] = Query(None),
    label_id: Optional[uuid.UUID] = Query(None),
    drafter_id: Optional[str] = Query(None),
    mine: bool = Query(False, description="Only documents drafted by the caller"),
    title: Optional[str] = Query(None, description="Substring match on title"),
    leave_from: Optional[date] = Query(None, description="Leave starting on or after"),
    leave_to: Optional[date] = Query(None, description="Leave starting on or before"),
    pagination: PaginationParams = Depends(),
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Documents visible to the caller, newest first by default."""
    filters = {
        "status": status,
        "kind": kind,
        "attendance_type": attendance_type,
        "label_id": label_id,
        "drafter_id": caller.user_id if mine else drafter_id,
        "title__ilike": title,
        "leave_start_date__from": leave_from,
        "leave_start_date__to": leave_to,
    }
    rows, meta = await DocumentService.list_documents(db, caller, pagination, filters)
    return {"data": rows, "meta": meta}


# ── GET /queue ──────────────────────────────────────────────────────

@router.get("/queue", response_model=PaginatedResponse[DocumentOut])
async def approval_queue(
    pagination: PaginationParams = Depends(),
    caller: Caller = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
):
    """Pending and chairman-approved documents awaiting a decision."""
    rows, meta = await DocumentService.queue(db, caller, pagination)
    return {"data": rows, "meta": meta}


# ── GET /{id} ───────────────────────────────────────────────────────

@router.get("/{document_id}", response_model=DocumentOut)
async def get_document(
    document_id: uuid.UUID,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await DocumentService.get(db, document_id, caller)


# ── PATCH /{id} ─────────────────────────────────────────────────────

@router.patch("/{document_id}", response_model=DocumentOut)
async def edit_document(
    document_id: uuid.UUID,
    body: DocumentPatch,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Edit a pending draft you drafted. Leave days and balances are re-checked."""
    return await DocumentService.edit(db, document_id, body, caller)


# ── POST /{id}/approve ──────────────────────────────────────────────

@router.post("/{document_id}/approve", response_model=DocumentOut)
async def approve_document(
    document_id: uuid.UUID,
    body: ApproveRequest,
    caller: Caller = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
):
    """Sign one approval stage in the given role."""
    return await DocumentService.approve(db, document_id, body.role, caller)


# ── POST /{id}/reject ───────────────────────────────────────────────

@router.post("/{document_id}/reject", response_model=DocumentOut)
async def reject_document(
    document_id: uuid.UUID,
    body: RejectRequest,
    caller: Caller = Depends(require_approver),
    db: AsyncSession = Depends(get_db),
):
    return await DocumentService.reject(db, document_id, body.reason, caller)


# ── DELETE /{id} ────────────────────────────────────────────────────

@router.delete("/{document_id}", status_code=204)
async def delete_document(
    document_id: uuid.UUID,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Delete a document; any leave it deducted or comp time it granted is reversed."""
    await DocumentService.delete(db, document_id, caller)
