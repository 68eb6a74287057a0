"""Leave request service layer — apply, edit, cancel, approve, reject, delete.

Stand-alone leave requests share the day rules and balance checks of
attendance documents but are approved in a single step by any approver.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from intranet.auth.schemas import Caller
from intranet.common.audit import create_audit_entry
from intranet.common.clock import utcnow
from intranet.common.constants import (
    LEAVE_TYPE_LABELS,
    ApproverRole,
    DocumentStatus,
    LeaveType,
    LedgerEntryKind,
    LedgerSource,
)
from intranet.common.exceptions import ForbiddenException, NotFoundException
from intranet.common.locks import leave_request_key, ledger_key
from intranet.common.pagination import PaginationMeta, PaginationParams, paginate
from intranet.common.uow import UnitOfWork
from intranet.documents.policy import ApprovalPolicy
from intranet.leave.models import LeaveRequest
from intranet.leave.schemas import LeaveRequestCreate, LeaveRequestUpdate
from intranet.ledger.rules import comp_hours_for, compute_leave_days
from intranet.ledger.service import LedgerService

logger = logging.getLogger(__name__)


def _snapshot(request: LeaveRequest) -> dict[str, Any]:
    return {
        "leave_type": request.leave_type.value,
        "start_date": request.start_date.isoformat(),
        "end_date": request.end_date.isoformat(),
        "days": str(request.days),
        "status": request.status.value,
    }


# ═════════════════════════════════════════════════════════════════════
# LeaveRequestService
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestService:
    """Async leave request operations."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_for_update(db: AsyncSession, request_id: uuid.UUID) -> LeaveRequest:
        result = await db.execute(
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        request = result.scalar_one_or_none()
        if request is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return request

    @staticmethod
    def _ledger_effect(request: LeaveRequest) -> tuple[LedgerEntryKind, Decimal]:
        if request.leave_type == LeaveType.comp:
            return LedgerEntryKind.comp_deduct, comp_hours_for(request.days)
        return LedgerEntryKind.annual_deduct, request.days

    @staticmethod
    def _signing_role(caller: Caller) -> ApproverRole:
        # single-stage: either capability signs, chairman preferred for the record
        if caller.has_role(ApproverRole.chairman):
            return ApproverRole.chairman
        return ApproverRole.director

    # ─────────────────────────────────────────────────────────────────
    # Drafter operations
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit(
        db: AsyncSession, data: LeaveRequestCreate, caller: Caller
    ) -> LeaveRequest:
        """Apply for leave; the day count and balance are checked now."""
        async with UnitOfWork(db):
            days = compute_leave_days(data.leave_type, data.start_date, data.end_date)
            await LedgerService.ensure_leave_available(
                db, caller.user_id, data.start_date.year, data.leave_type, days,
            )
            request = LeaveRequest(
                user_id=caller.user_id,
                leave_type=data.leave_type,
                start_date=data.start_date,
                end_date=data.end_date or data.start_date,
                days=days,
                reason=data.reason,
                status=DocumentStatus.pending,
            )
            db.add(request)
            await db.flush()

            await create_audit_entry(
                db,
                action="submit",
                entity_type="leave_request",
                entity_id=request.id,
                actor_id=caller.user_id,
                new_values=_snapshot(request),
            )

        logger.info(
            "Leave request %s (%s, %s days) submitted by %s",
            request.id, request.leave_type.value, request.days, caller.user_id,
        )
        return request

    @staticmethod
    async def edit(
        db: AsyncSession,
        request_id: uuid.UUID,
        data: LeaveRequestUpdate,
        caller: Caller,
    ) -> LeaveRequest:
        async with UnitOfWork(db) as uow:
            await uow.lock(leave_request_key(request_id))
            request = await LeaveRequestService._get_for_update(db, request_id)
            if not ApprovalPolicy.can_edit(request.status, request.user_id, caller):
                raise ForbiddenException(
                    "Only the requester can edit a leave request, and only while it is pending."
                )

            changes = data.model_dump(exclude_unset=True)
            leave_type = changes.get("leave_type") or request.leave_type
            start_date = changes.get("start_date") or request.start_date
            if "end_date" in changes:
                end_date = changes["end_date"]
            elif "start_date" in changes:
                # a moved start without an explicit end keeps the original length
                end_date = start_date + (request.end_date - request.start_date)
            else:
                end_date = request.end_date

            days = compute_leave_days(leave_type, start_date, end_date)
            await LedgerService.ensure_leave_available(
                db, request.user_id, start_date.year, leave_type, days,
            )

            before = _snapshot(request)
            request.leave_type = leave_type
            request.start_date = start_date
            request.end_date = end_date or start_date
            request.days = days
            if "reason" in changes:
                request.reason = changes["reason"]
            await db.flush()

            await create_audit_entry(
                db,
                action="edit",
                entity_type="leave_request",
                entity_id=request.id,
                actor_id=caller.user_id,
                old_values=before,
                new_values=_snapshot(request),
            )
        return request

    @staticmethod
    async def cancel(db: AsyncSession, request_id: uuid.UUID, caller: Caller) -> None:
        """Withdraw one's own pending request."""
        async with UnitOfWork(db) as uow:
            await uow.lock(leave_request_key(request_id))
            request = await LeaveRequestService._get_for_update(db, request_id)
            if request.user_id != caller.user_id:
                raise ForbiddenException("You can only cancel your own leave requests.")
            if request.status != DocumentStatus.pending:
                raise ForbiddenException("Only pending leave requests can be cancelled.")

            await create_audit_entry(
                db,
                action="cancel",
                entity_type="leave_request",
                entity_id=request.id,
                actor_id=caller.user_id,
                old_values=_snapshot(request),
            )
            await db.delete(request)
            await db.flush()

        logger.info("Leave request %s cancelled by %s", request_id, caller.user_id)

    # ─────────────────────────────────────────────────────────────────
    # Approver operations
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve(db: AsyncSession, request_id: uuid.UUID, caller: Caller) -> LeaveRequest:
        """Approve in one step, deducting annual days or comp hours."""
        if not caller.is_approver:
            raise ForbiddenException("Only approvers can approve leave requests.")

        async with UnitOfWork(db) as uow:
            await uow.lock(leave_request_key(request_id))
            request = await LeaveRequestService._get_for_update(db, request_id)
            transition = ApprovalPolicy.next_status(
                request.status, Decimal("0"), LeaveRequestService._signing_role(caller),
            )

            entry_kind, amount = LeaveRequestService._ledger_effect(request)
            year = request.start_date.year
            await uow.lock(ledger_key(request.user_id, year))
            await LedgerService.apply_entry(
                db,
                source_type=LedgerSource.leave_request,
                source_id=request.id,
                entry_kind=entry_kind,
                user_id=request.user_id,
                year=year,
                amount=amount,
                description=f"{LEAVE_TYPE_LABELS[request.leave_type]} {request.start_date.isoformat()}",
            )

            request.status = transition.status
            request.approved_by = caller.user_id
            request.approved_at = utcnow()
            await db.flush()

            await create_audit_entry(
                db,
                action="approve",
                entity_type="leave_request",
                entity_id=request.id,
                actor_id=caller.user_id,
                old_values={"status": DocumentStatus.pending.value},
                new_values={"status": request.status.value},
            )

        logger.info("Leave request %s approved by %s", request.id, caller.user_id)
        return request

    @staticmethod
    async def reject(
        db: AsyncSession,
        request_id: uuid.UUID,
        reason: Optional[str],
        caller: Caller,
    ) -> LeaveRequest:
        if not caller.is_approver:
            raise ForbiddenException("Only approvers can reject leave requests.")

        async with UnitOfWork(db) as uow:
            await uow.lock(leave_request_key(request_id))
            request = await LeaveRequestService._get_for_update(db, request_id)
            trimmed = ApprovalPolicy.check_reject(request.status, reason, caller)
            previous = request.status

            request.status = DocumentStatus.rejected
            request.rejected_reason = trimmed
            request.approved_by = caller.user_id
            await db.flush()

            await create_audit_entry(
                db,
                action="reject",
                entity_type="leave_request",
                entity_id=request.id,
                actor_id=caller.user_id,
                old_values={"status": previous.value},
                new_values={"status": request.status.value, "rejected_reason": trimmed},
            )

        logger.info("Leave request %s rejected by %s", request.id, caller.user_id)
        return request

    @staticmethod
    async def delete(db: AsyncSession, request_id: uuid.UUID, caller: Caller) -> None:
        """Remove a request in any status, restoring whatever its approval deducted."""
        if not caller.is_approver:
            raise ForbiddenException("Only approvers can delete leave requests.")

        async with UnitOfWork(db) as uow:
            await uow.lock(leave_request_key(request_id))
            request = await LeaveRequestService._get_for_update(db, request_id)

            entry = await LedgerService.get_entry(db, LedgerSource.leave_request, request.id)
            if entry is not None:
                await uow.lock(ledger_key(entry.user_id, entry.year))
                await LedgerService.reverse_entry(db, entry)

            await create_audit_entry(
                db,
                action="delete",
                entity_type="leave_request",
                entity_id=request.id,
                actor_id=caller.user_id,
                old_values=_snapshot(request),
            )
            await db.delete(request)
            await db.flush()

        logger.info("Leave request %s deleted by %s", request_id, caller.user_id)

    # ─────────────────────────────────────────────────────────────────
    # Listings
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def list_mine(
        db: AsyncSession,
        caller: Caller,
        params: PaginationParams,
        status: Optional[DocumentStatus] = None,
    ) -> tuple[list[LeaveRequest], PaginationMeta]:
        query = select(LeaveRequest).where(LeaveRequest.user_id == caller.user_id)
        if status is not None:
            query = query.where(LeaveRequest.status == status)
        return await paginate(
            db, query, params, model=LeaveRequest, default_sort="-start_date",
        )

    @staticmethod
    async def list_pending(
        db: AsyncSession,
        caller: Caller,
        params: PaginationParams,
    ) -> tuple[list[LeaveRequest], PaginationMeta]:
        if not caller.is_approver:
            raise ForbiddenException("Only approvers can review leave requests.")
        query = select(LeaveRequest).where(LeaveRequest.status == DocumentStatus.pending)
        return await paginate(
            db, query, params, model=LeaveRequest, default_sort="created_at",
        )
