"""Enums and constants for the approval engine — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum
from decimal import Decimal


# ── Auth / Roles ────────────────────────────────────────────────────

class ApproverRole(str, enum.Enum):
    """Approval capabilities carried by a caller.

    The two stages are distinct capabilities, not a hierarchy: a chairman
    cannot sign the second stage and a director cannot sign the first.
    """

    chairman = "chairman"
    director = "director"


# ── Documents ───────────────────────────────────────────────────────

class DocumentStatus(str, enum.Enum):
    pending = "pending"
    chairman_approved = "chairman_approved"
    approved = "approved"
    rejected = "rejected"


class DocumentKind(str, enum.Enum):
    expense = "expense"
    attendance = "attendance"


class AttendanceType(str, enum.Enum):
    none = "none"
    overtime = "overtime"
    leave = "leave"


class LeaveType(str, enum.Enum):
    full = "full"
    half_am = "half_am"
    half_pm = "half_pm"
    out_1h = "out_1h"
    out_2h = "out_2h"
    out_3h = "out_3h"
    comp = "comp"


# ── Ledger ──────────────────────────────────────────────────────────

class LedgerEntryKind(str, enum.Enum):
    annual_deduct = "annual_deduct"
    comp_deduct = "comp_deduct"
    comp_grant = "comp_grant"


class LedgerSource(str, enum.Enum):
    document = "document"
    leave_request = "leave_request"


# ── Leave day rules ─────────────────────────────────────────────────

# Leave types counted over an inclusive date range
RANGE_LEAVE_TYPES: frozenset[LeaveType] = frozenset({LeaveType.full, LeaveType.comp})

# Fixed fraction of a day for the non-range leave types
LEAVE_TYPE_DAYS: dict[LeaveType, Decimal] = {
    LeaveType.half_am: Decimal("0.5"),
    LeaveType.half_pm: Decimal("0.5"),
    LeaveType.out_1h: Decimal("0.125"),
    LeaveType.out_2h: Decimal("0.25"),
    LeaveType.out_3h: Decimal("0.375"),
}

LEAVE_TYPE_LABELS: dict[LeaveType, str] = {
    LeaveType.full: "연차",
    LeaveType.half_am: "오전 반차",
    LeaveType.half_pm: "오후 반차",
    LeaveType.out_1h: "외출 1시간",
    LeaveType.out_2h: "외출 2시간",
    LeaveType.out_3h: "외출 3시간",
    LeaveType.comp: "대체휴무",
}

# ── Misc constants ──────────────────────────────────────────────────

DOC_NUMBER_DATE_FORMAT = "%Y/%m/%d"
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
