"""Approval policy — the single authoritative transition table for documents.

Pure functions over (status, amount, role, caller); nothing here touches the
database. Amounts below the threshold are signed off in one step by either
approver capability. At or above it the chairman signs first and the director
completes; the two capabilities are distinct, not ranked.
"""

from __future__ import annotations

from decimal import Decimal
from typing import NamedTuple, Optional

from intranet.auth.schemas import Caller
from intranet.common.constants import ApproverRole, DocumentStatus
from intranet.common.exceptions import (
    ForbiddenException,
    InvalidTransitionException,
    ValidationException,
)
from intranet.config import settings

OPEN_STATUSES: frozenset[DocumentStatus] = frozenset(
    {DocumentStatus.pending, DocumentStatus.chairman_approved}
)


class Transition(NamedTuple):
    status: DocumentStatus
    is_terminal: bool


# (current status, role) → transition, for each approval path
_SINGLE_STAGE: dict[tuple[DocumentStatus, ApproverRole], Transition] = {
    (DocumentStatus.pending, ApproverRole.chairman): Transition(DocumentStatus.approved, True),
    (DocumentStatus.pending, ApproverRole.director): Transition(DocumentStatus.approved, True),
}

_TWO_STAGE: dict[tuple[DocumentStatus, ApproverRole], Transition] = {
    (DocumentStatus.pending, ApproverRole.chairman): Transition(
        DocumentStatus.chairman_approved, False
    ),
    (DocumentStatus.chairman_approved, ApproverRole.director): Transition(
        DocumentStatus.approved, True
    ),
}


class ApprovalPolicy:
    """Decides what an approval, rejection, edit or delete may do."""

    @staticmethod
    def threshold() -> Decimal:
        return settings.APPROVAL_THRESHOLD

    @staticmethod
    def requires_two_stage(total_amount: Decimal) -> bool:
        return total_amount >= ApprovalPolicy.threshold()

    @staticmethod
    def next_status(
        current_status: DocumentStatus,
        total_amount: Decimal,
        approver_role: ApproverRole,
    ) -> Transition:
        """Return the transition *approver_role* may perform, or raise InvalidTransition."""
        table = (
            _TWO_STAGE if ApprovalPolicy.requires_two_stage(total_amount) else _SINGLE_STAGE
        )
        transition = table.get((current_status, approver_role))
        if transition is None:
            raise InvalidTransitionException(
                current_status, f"approve as {approver_role.value}"
            )
        return transition

    @staticmethod
    def check_approve(caller: Caller, role: ApproverRole) -> None:
        if not caller.has_role(role):
            raise ForbiddenException(f"Caller does not hold the {role.value} capability.")

    @staticmethod
    def check_reject(
        current_status: DocumentStatus,
        reason: Optional[str],
        caller: Caller,
    ) -> str:
        """Validate a rejection and return the trimmed reason."""
        if not caller.is_approver:
            raise ForbiddenException("Only approvers can reject documents.")
        if current_status not in OPEN_STATUSES:
            raise InvalidTransitionException(current_status, "reject")
        trimmed = (reason or "").strip()
        if not trimmed:
            raise ValidationException({"reason": ["A rejection reason is required."]})
        return trimmed

    @staticmethod
    def can_edit(current_status: DocumentStatus, drafter_id: str, caller: Caller) -> bool:
        return current_status == DocumentStatus.pending and drafter_id == caller.user_id

    @staticmethod
    def can_delete(current_status: DocumentStatus, drafter_id: str, caller: Caller) -> bool:
        if caller.is_approver:
            return True
        return current_status == DocumentStatus.pending and drafter_id == caller.user_id
