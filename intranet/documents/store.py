"""Document persistence — lookups, locked reads, doc numbers, listings, labels."""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from intranet.auth.schemas import Caller
from intranet.common.constants import DOC_NUMBER_DATE_FORMAT
from intranet.common.exceptions import NotFoundException
from intranet.common.filters import apply_filters
from intranet.common.pagination import PaginationMeta, PaginationParams, paginate
from intranet.documents.models import Document, DocumentLabel, DocumentNumberCounter
from intranet.documents.policy import OPEN_STATUSES

logger = logging.getLogger(__name__)


class DocumentStore:
    """Async queries over documents, labels and the per-day number counter."""

    # ── Documents ───────────────────────────────────────────────────

    @staticmethod
    async def get(db: AsyncSession, document_id: uuid.UUID) -> Document:
        document = await db.get(Document, document_id)
        if document is None:
            raise NotFoundException("Document", str(document_id))
        return document

    @staticmethod
    async def get_for_update(db: AsyncSession, document_id: uuid.UUID) -> Document:
        """Re-read the row under a row lock, overwriting any stale identity-map copy."""
        result = await db.execute(
            select(Document)
            .where(Document.id == document_id)
            .with_for_update(of=Document)
            .execution_options(populate_existing=True)
        )
        document = result.scalar_one_or_none()
        if document is None:
            raise NotFoundException("Document", str(document_id))
        return document

    @staticmethod
    async def next_doc_number(db: AsyncSession, day: date) -> str:
        """Allocate ``YYYY/MM/DD-N`` from the day's counter row.

        The caller must hold the ``docnum:<day>`` lock. A concurrent first
        insert from another process surfaces as IntegrityError on flush.
        """
        result = await db.execute(
            select(DocumentNumberCounter)
            .where(DocumentNumberCounter.day == day)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        counter = result.scalar_one_or_none()
        if counter is None:
            counter = DocumentNumberCounter(day=day, last_value=1)
            db.add(counter)
        else:
            counter.last_value += 1
        await db.flush()

        number = f"{day.strftime(DOC_NUMBER_DATE_FORMAT)}-{counter.last_value}"
        logger.debug("Allocated doc number %s", number)
        return number

    @staticmethod
    def _visible_to(caller: Caller):
        if caller.is_approver:
            return None
        return or_(Document.is_private.is_(False), Document.drafter_id == caller.user_id)

    @staticmethod
    def is_visible(document: Document, caller: Caller) -> bool:
        return (
            not document.is_private
            or caller.is_approver
            or document.drafter_id == caller.user_id
        )

    @staticmethod
    async def list_documents(
        db: AsyncSession,
        caller: Caller,
        params: PaginationParams,
        filters: Optional[dict[str, Any]] = None,
    ) -> tuple[list[Document], PaginationMeta]:
        """Documents the caller may see; private ones only reach drafter and approvers."""
        query = select(Document)
        visibility = DocumentStore._visible_to(caller)
        if visibility is not None:
            query = query.where(visibility)
        if filters:
            query = apply_filters(query, Document, filters)
        return await paginate(
            db, query, params, model=Document, default_sort="-created_at",
        )

    @staticmethod
    async def list_queue(
        db: AsyncSession,
        params: PaginationParams,
    ) -> tuple[list[Document], PaginationMeta]:
        """Approver work queue: everything still awaiting a decision, oldest first."""
        query = apply_filters(select(Document), Document, {"status__in": OPEN_STATUSES})
        return await paginate(
            db, query, params, model=Document, default_sort="created_at",
        )

    # ── Labels ──────────────────────────────────────────────────────

    @staticmethod
    async def get_label(db: AsyncSession, label_id: uuid.UUID) -> DocumentLabel:
        label = await db.get(DocumentLabel, label_id)
        if label is None:
            raise NotFoundException("DocumentLabel", str(label_id))
        return label

    @staticmethod
    async def list_labels(db: AsyncSession) -> list[DocumentLabel]:
        result = await db.execute(select(DocumentLabel).order_by(DocumentLabel.code))
        return list(result.scalars().all())

    @staticmethod
    async def next_label_code(db: AsyncSession) -> int:
        current = (await db.execute(select(func.max(DocumentLabel.code)))).scalar()
        return (current or 0) + 1

    @staticmethod
    async def count_documents_with_label(db: AsyncSession, label_id: uuid.UUID) -> int:
        result = await db.execute(
            select(func.count()).select_from(Document).where(Document.label_id == label_id)
        )
        return result.scalar_one()

