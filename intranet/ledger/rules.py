"""Leave-day arithmetic shared by attendance documents and leave requests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from intranet.common.constants import LEAVE_TYPE_DAYS, RANGE_LEAVE_TYPES, LeaveType
from intranet.common.exceptions import ValidationException
from intranet.config import settings


def compute_leave_days(
    leave_type: Optional[LeaveType],
    start_date: Optional[date],
    end_date: Optional[date] = None,
) -> Decimal:
    """Return the number of leave days a claim consumes.

    ``full`` and ``comp`` count calendar days over the inclusive range
    (``end_date`` defaults to ``start_date``); every other type is a fixed
    fraction of a day regardless of the range.
    """
    errors: dict[str, list[str]] = {}
    if leave_type is None:
        errors["leave_type"] = ["Leave type is required for a leave claim."]
    if start_date is None:
        errors["leave_start_date"] = ["Start date is required for a leave claim."]
    if errors:
        raise ValidationException(errors)

    if leave_type not in RANGE_LEAVE_TYPES:
        return LEAVE_TYPE_DAYS[leave_type]

    end = end_date or start_date
    if end < start_date:
        raise ValidationException(
            {"leave_end_date": ["End date cannot be before start date."]}
        )
    span = (end - start_date).days + 1
    if span > settings.MAX_LEAVE_RANGE_DAYS:
        raise ValidationException(
            {"leave_end_date": [
                f"A leave claim may span at most {settings.MAX_LEAVE_RANGE_DAYS} days."
            ]}
        )
    return Decimal(span)


def comp_hours_for(days: Decimal) -> Decimal:
    """Comp balance is kept in hours; one leave day costs a full working day."""
    return days * settings.COMP_HOURS_PER_DAY
