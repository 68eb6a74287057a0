"""Document service layer — submission, edits, approvals, rejection, deletion.

Business logic:
  - Submit assigns a per-day doc number and validates the attendance claim
  - Edits merge onto the stored draft while pending; kind is fixed at submit
  - Approvals follow ApprovalPolicy; a terminal approval applies at most one
    ledger side effect (annual deduct, comp deduct or overtime comp grant)
  - Deletion reverses the recorded side effect in the same transaction
  - Label management for approvers

Every public write runs in one UnitOfWork; locks are taken document first,
ledger second.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from intranet.auth.schemas import Caller
from intranet.common.audit import create_audit_entry
from intranet.common.clock import local_now, local_today, utcnow
from intranet.common.constants import (
    LEAVE_TYPE_LABELS,
    ApproverRole,
    AttendanceType,
    DocumentKind,
    DocumentStatus,
    LeaveType,
    LedgerEntryKind,
    LedgerSource,
)
from intranet.common.exceptions import ForbiddenException, NotFoundException, ValidationException
from intranet.common.locks import LABELS_KEY, doc_number_key, document_key, ledger_key
from intranet.common.pagination import PaginationMeta, PaginationParams
from intranet.common.uow import UnitOfWork
from intranet.config import settings
from intranet.documents.models import Document, DocumentLabel
from intranet.documents.policy import ApprovalPolicy
from intranet.documents.schemas import (
    AttendanceDraft,
    DocumentPatch,
    ExpenseDraft,
    LabelCreate,
    LabelUpdate,
    draft_adapter,
)
from intranet.documents.store import DocumentStore
from intranet.ledger.rules import comp_hours_for, compute_leave_days
from intranet.ledger.service import LedgerService

logger = logging.getLogger(__name__)

Draft = Union[ExpenseDraft, AttendanceDraft]

_COMMON_DRAFT_FIELDS = (
    "label_id",
    "title",
    "content",
    "execution_date",
    "payment_method",
    "attachments",
    "is_private",
)
_ATTENDANCE_DRAFT_FIELDS = (
    "attendance_type",
    "leave_type",
    "leave_start_date",
    "leave_end_date",
    "extra_work_hours",
)


def pydantic_errors(exc: PydanticValidationError) -> dict[str, list[str]]:
    """Flatten a pydantic error list into the ``{field: [messages]}`` shape."""
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        name = ".".join(str(p) for p in err.get("loc", ()) if not isinstance(p, int)) or "draft"
        errors.setdefault(name, []).append(err.get("msg", "Invalid value"))
    return errors


# ═════════════════════════════════════════════════════════════════════
# DocumentService
# ═════════════════════════════════════════════════════════════════════


class DocumentService:
    """Async document workflow operations."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _is_attendance_label(label: DocumentLabel) -> bool:
        return label.code == settings.ATTENDANCE_LABEL_CODE

    @staticmethod
    async def _prepare_columns(
        db: AsyncSession,
        draft: Draft,
        label: DocumentLabel,
        drafter_id: str,
    ) -> dict[str, Any]:
        """Validate *draft* against its label and the drafter's balances; return column values."""
        is_attendance_label = DocumentService._is_attendance_label(label)
        if draft.kind == DocumentKind.attendance.value and not is_attendance_label:
            raise ValidationException(
                {"label_id": ["Attendance documents must use the attendance label."]}
            )
        if draft.kind == DocumentKind.expense.value and is_attendance_label:
            raise ValidationException(
                {"label_id": ["The attendance label is reserved for attendance documents."]}
            )

        columns: dict[str, Any] = {
            field: getattr(draft, field) for field in _COMMON_DRAFT_FIELDS
        }
        columns["kind"] = DocumentKind(draft.kind)
        columns["expense_items"] = []
        columns["attendance_type"] = AttendanceType.none
        columns["leave_type"] = None
        columns["leave_start_date"] = None
        columns["leave_end_date"] = None
        columns["leave_days"] = None
        columns["extra_work_hours"] = Decimal("0")

        if isinstance(draft, ExpenseDraft):
            columns["expense_items"] = [
                item.model_dump(mode="json") for item in draft.expense_items
            ]
            return columns

        columns["attendance_type"] = draft.attendance_type
        if draft.attendance_type == AttendanceType.leave:
            days = compute_leave_days(
                draft.leave_type, draft.leave_start_date, draft.leave_end_date,
            )
            await LedgerService.ensure_leave_available(
                db, drafter_id, draft.leave_start_date.year, draft.leave_type, days,
            )
            columns.update(
                leave_type=draft.leave_type,
                leave_start_date=draft.leave_start_date,
                leave_end_date=draft.leave_end_date or draft.leave_start_date,
                leave_days=days,
            )
        elif draft.attendance_type == AttendanceType.overtime:
            columns["extra_work_hours"] = draft.extra_work_hours
        return columns

    @staticmethod
    def _current_draft(document: Document) -> dict[str, Any]:
        data: dict[str, Any] = {
            field: getattr(document, field) for field in _COMMON_DRAFT_FIELDS
        }
        data["kind"] = document.kind.value
        if document.kind == DocumentKind.expense:
            data["expense_items"] = list(document.expense_items or [])
        else:
            for field in _ATTENDANCE_DRAFT_FIELDS:
                data[field] = getattr(document, field)
        return data

    @staticmethod
    def _snapshot(document: Document) -> dict[str, Any]:
        """JSON-safe view of the fields worth auditing."""
        return {
            "doc_number": document.doc_number,
            "kind": document.kind.value,
            "status": document.status.value,
            "title": document.title,
            "label_id": str(document.label_id),
            "total_amount": str(document.total_amount),
            "attendance_type": document.attendance_type.value,
            "leave_type": document.leave_type.value if document.leave_type else None,
            "leave_days": None if document.leave_days is None else str(document.leave_days),
            "extra_work_hours": str(document.extra_work_hours),
            "is_private": document.is_private,
        }

    @staticmethod
    def _ledger_effect(
        document: Document, approved_at: datetime
    ) -> Optional[tuple[LedgerEntryKind, int, Decimal, str]]:
        """Side effect a terminal approval of *document* must apply, if any."""
        if document.kind != DocumentKind.attendance:
            return None

        if document.attendance_type == AttendanceType.leave:
            year = document.leave_start_date.year
            label = LEAVE_TYPE_LABELS.get(document.leave_type, document.leave_type.value)
            description = f"{document.doc_number} {label}"
            if document.leave_type == LeaveType.comp:
                return (
                    LedgerEntryKind.comp_deduct,
                    year,
                    comp_hours_for(document.leave_days),
                    description,
                )
            return LedgerEntryKind.annual_deduct, year, document.leave_days, description

        if (
            document.attendance_type == AttendanceType.overtime
            and DocumentService._is_attendance_label(document.label)
            and document.extra_work_hours > 0
        ):
            return (
                LedgerEntryKind.comp_grant,
                local_now(approved_at).year,
                document.extra_work_hours,
                f"{document.doc_number} {document.title}",
            )
        return None

    # ─────────────────────────────────────────────────────────────────
    # Submit / edit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def submit(db: AsyncSession, draft: Draft, caller: Caller) -> Document:
        """Create a pending document from a validated draft."""
        async with UnitOfWork(db) as uow:
            label = await DocumentStore.get_label(db, draft.label_id)
            columns = await DocumentService._prepare_columns(db, draft, label, caller.user_id)

            day = local_today()
            await uow.lock(doc_number_key(day))
            doc_number = await DocumentStore.next_doc_number(db, day)

            document = Document(
                doc_number=doc_number,
                drafter_id=caller.user_id,
                status=DocumentStatus.pending,
                **columns,
            )
            document.label = label
            db.add(document)
            await db.flush()

            await create_audit_entry(
                db,
                action="submit",
                entity_type="document",
                entity_id=document.id,
                actor_id=caller.user_id,
                new_values=DocumentService._snapshot(document),
            )

        logger.info("Document %s submitted by %s", document.doc_number, caller.user_id)
        return document

    @staticmethod
    async def edit(
        db: AsyncSession,
        document_id: uuid.UUID,
        patch: DocumentPatch,
        caller: Caller,
    ) -> Document:
        """Merge *patch* onto a pending draft owned by the caller and re-validate it."""
        async with UnitOfWork(db) as uow:
            await uow.lock(document_key(document_id))
            document = await DocumentStore.get_for_update(db, document_id)
            if not ApprovalPolicy.can_edit(document.status, document.drafter_id, caller):
                raise ForbiddenException(
                    "Only the drafter can edit a document, and only while it is pending."
                )

            changes = patch.model_dump(exclude_unset=True)
            requested_kind = changes.pop("kind", None)
            if requested_kind is not None and requested_kind != document.kind:
                raise ValidationException({"kind": ["Document kind cannot be changed."]})

            allowed = set(_COMMON_DRAFT_FIELDS) | (
                {"expense_items"}
                if document.kind == DocumentKind.expense
                else set(_ATTENDANCE_DRAFT_FIELDS)
            )
            unknown = sorted(set(changes) - allowed)
            if unknown:
                raise ValidationException(
                    {field: [f"Not a field of a {document.kind.value} document."] for field in unknown}
                )

            merged = {**DocumentService._current_draft(document), **changes}
            try:
                draft = draft_adapter.validate_python(merged)
            except PydanticValidationError as exc:
                raise ValidationException(pydantic_errors(exc))

            label = (
                document.label
                if draft.label_id == document.label_id
                else await DocumentStore.get_label(db, draft.label_id)
            )
            columns = await DocumentService._prepare_columns(
                db, draft, label, document.drafter_id,
            )

            before = DocumentService._snapshot(document)
            for field, value in columns.items():
                setattr(document, field, value)
            document.label = label
            await db.flush()

            await create_audit_entry(
                db,
                action="edit",
                entity_type="document",
                entity_id=document.id,
                actor_id=caller.user_id,
                old_values=before,
                new_values=DocumentService._snapshot(document),
            )

        logger.info("Document %s edited by %s", document.doc_number, caller.user_id)
        return document

    # ─────────────────────────────────────────────────────────────────
    # Decisions
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve(
        db: AsyncSession,
        document_id: uuid.UUID,
        role: ApproverRole,
        caller: Caller,
    ) -> Document:
        """Advance a document one approval step as *role*.

        A terminal approval applies the document's ledger side effect in the
        same transaction; any failure leaves status and balances untouched.
        """
        ApprovalPolicy.check_approve(caller, role)

        async with UnitOfWork(db) as uow:
            await uow.lock(document_key(document_id))
            document = await DocumentStore.get_for_update(db, document_id)
            previous = document.status
            transition = ApprovalPolicy.next_status(
                document.status, document.total_amount, role,
            )
            now = utcnow()

            if transition.is_terminal:
                document.status = transition.status
                document.approver_id = caller.user_id
                document.approved_at = now

                effect = DocumentService._ledger_effect(document, now)
                if effect is not None:
                    entry_kind, year, amount, description = effect
                    await uow.lock(ledger_key(document.drafter_id, year))
                    await LedgerService.apply_entry(
                        db,
                        source_type=LedgerSource.document,
                        source_id=document.id,
                        entry_kind=entry_kind,
                        user_id=document.drafter_id,
                        year=year,
                        amount=amount,
                        description=description,
                    )
            else:
                document.status = transition.status
                document.chairman_approver_id = caller.user_id
                document.chairman_approved_at = now

            await db.flush()
            await create_audit_entry(
                db,
                action="approve",
                entity_type="document",
                entity_id=document.id,
                actor_id=caller.user_id,
                old_values={"status": previous.value},
                new_values={"status": document.status.value, "role": role.value},
            )

        logger.info(
            "Document %s %s -> %s by %s (%s)",
            document.doc_number, previous.value, document.status.value,
            caller.user_id, role.value,
        )
        return document

    @staticmethod
    async def reject(
        db: AsyncSession,
        document_id: uuid.UUID,
        reason: Optional[str],
        caller: Caller,
    ) -> Document:
        """Reject an open document with a reason. No ledger effect."""
        if not caller.is_approver:
            raise ForbiddenException("Only approvers can reject documents.")

        async with UnitOfWork(db) as uow:
            await uow.lock(document_key(document_id))
            document = await DocumentStore.get_for_update(db, document_id)
            trimmed = ApprovalPolicy.check_reject(document.status, reason, caller)
            previous = document.status

            document.status = DocumentStatus.rejected
            document.rejected_reason = trimmed
            document.approver_id = caller.user_id
            await db.flush()

            await create_audit_entry(
                db,
                action="reject",
                entity_type="document",
                entity_id=document.id,
                actor_id=caller.user_id,
                old_values={"status": previous.value},
                new_values={"status": document.status.value, "rejected_reason": trimmed},
            )

        logger.info("Document %s rejected by %s", document.doc_number, caller.user_id)
        return document

    @staticmethod
    async def delete(db: AsyncSession, document_id: uuid.UUID, caller: Caller) -> None:
        """Remove a document, reversing whatever its approval did to the ledger."""
        async with UnitOfWork(db) as uow:
            await uow.lock(document_key(document_id))
            document = await DocumentStore.get_for_update(db, document_id)
            if not ApprovalPolicy.can_delete(document.status, document.drafter_id, caller):
                raise ForbiddenException(
                    "Drafters can delete only their own pending documents."
                )

            entry = await LedgerService.get_entry(db, LedgerSource.document, document.id)
            if entry is not None:
                await uow.lock(ledger_key(entry.user_id, entry.year))
                await LedgerService.reverse_entry(db, entry)

            await create_audit_entry(
                db,
                action="delete",
                entity_type="document",
                entity_id=document.id,
                actor_id=caller.user_id,
                old_values=DocumentService._snapshot(document),
            )
            doc_number = document.doc_number
            await db.delete(document)
            await db.flush()

        logger.info("Document %s deleted by %s", doc_number, caller.user_id)

    # ─────────────────────────────────────────────────────────────────
    # Read side
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get(db: AsyncSession, document_id: uuid.UUID, caller: Caller) -> Document:
        document = await DocumentStore.get(db, document_id)
        if not DocumentStore.is_visible(document, caller):
            # private documents are indistinguishable from missing ones
            raise NotFoundException("Document", str(document_id))
        return document

    @staticmethod
    async def list_documents(
        db: AsyncSession,
        caller: Caller,
        params: PaginationParams,
        filters: Optional[dict[str, Any]] = None,
    ) -> tuple[list[Document], PaginationMeta]:
        return await DocumentStore.list_documents(db, caller, params, filters)

    @staticmethod
    async def queue(
        db: AsyncSession,
        caller: Caller,
        params: PaginationParams,
    ) -> tuple[list[Document], PaginationMeta]:
        if not caller.is_approver:
            raise ForbiddenException("Only approvers have an approval queue.")
        return await DocumentStore.list_queue(db, params)

    # ─────────────────────────────────────────────────────────────────
    # Labels
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create_label(db: AsyncSession, data: LabelCreate, caller: Caller) -> DocumentLabel:
        if not caller.is_approver:
            raise ForbiddenException("Only approvers can manage labels.")

        async with UnitOfWork(db) as uow:
            await uow.lock(LABELS_KEY)
            label = DocumentLabel(
                code=await DocumentStore.next_label_code(db),
                name=data.name,
                color=data.color,
            )
            db.add(label)
            await db.flush()
            await create_audit_entry(
                db,
                action="create",
                entity_type="document_label",
                entity_id=label.id,
                actor_id=caller.user_id,
                new_values={"code": label.code, "name": label.name, "color": label.color},
            )
        return label

    @staticmethod
    async def update_label(
        db: AsyncSession,
        label_id: uuid.UUID,
        data: LabelUpdate,
        caller: Caller,
    ) -> DocumentLabel:
        if not caller.is_approver:
            raise ForbiddenException("Only approvers can manage labels.")

        async with UnitOfWork(db) as uow:
            await uow.lock(LABELS_KEY)
            label = await DocumentStore.get_label(db, label_id)
            before = {"name": label.name, "color": label.color}
            for field, value in data.model_dump(exclude_unset=True).items():
                setattr(label, field, value)
            await db.flush()
            await create_audit_entry(
                db,
                action="update",
                entity_type="document_label",
                entity_id=label.id,
                actor_id=caller.user_id,
                old_values=before,
                new_values={"name": label.name, "color": label.color},
            )
        return label

    @staticmethod
    async def delete_label(db: AsyncSession, label_id: uuid.UUID, caller: Caller) -> None:
        if not caller.is_approver:
            raise ForbiddenException("Only approvers can manage labels.")

        async with UnitOfWork(db) as uow:
            await uow.lock(LABELS_KEY)
            label = await DocumentStore.get_label(db, label_id)
            if DocumentService._is_attendance_label(label):
                raise ValidationException({"label_id": ["The attendance label cannot be deleted."]})
            in_use = await DocumentStore.count_documents_with_label(db, label.id)
            if in_use:
                raise ValidationException(
                    {"label_id": [f"Label is used by {in_use} document(s)."]}
                )
            await create_audit_entry(
                db,
                action="delete",
                entity_type="document_label",
                entity_id=label.id,
                actor_id=caller.user_id,
                old_values={"code": label.code, "name": label.name, "color": label.color},
            )
            await db.delete(label)
            await db.flush()
