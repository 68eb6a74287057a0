"""Ledger Pydantic v2 schemas — balance outputs and admin overrides."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


# ═════════════════════════════════════════════════════════════════════
# Balances
# ═════════════════════════════════════════════════════════════════════


class AnnualBalanceOut(BaseModel):
    """Annual leave in days. ``deficit`` is non-zero only after an admin override."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    year: int
    total_days: Decimal
    used_days: Decimal
    updated_at: Optional[datetime] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remaining_days(self) -> Decimal:
        return max(Decimal("0"), self.total_days - self.used_days)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def deficit(self) -> Decimal:
        return max(Decimal("0"), self.used_days - self.total_days)


class CompBalanceOut(BaseModel):
    """Compensatory leave in hours."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    year: int
    document_id: Optional[uuid.UUID] = None
    total_hours: Decimal
    used_hours: Decimal
    description: Optional[str] = None
    updated_at: Optional[datetime] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def remaining_hours(self) -> Decimal:
        return max(Decimal("0"), self.total_hours - self.used_hours)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def deficit(self) -> Decimal:
        return max(Decimal("0"), self.used_hours - self.total_hours)


class BalanceSummaryOut(BaseModel):
    """Both balances for one user and year; a missing row is reported as defaults."""

    user_id: str
    year: int
    annual: AnnualBalanceOut
    comp: CompBalanceOut


# ═════════════════════════════════════════════════════════════════════
# Admin overrides
# ═════════════════════════════════════════════════════════════════════


class AnnualTotalUpdate(BaseModel):
    total_days: Decimal = Field(..., ge=0, max_digits=6, decimal_places=3)


class CompTotalUpdate(BaseModel):
    total_hours: Decimal = Field(..., ge=0, max_digits=8, decimal_places=3)
