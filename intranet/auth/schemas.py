"""Caller identity passed explicitly into every engine operation."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from intranet.common.constants import ApproverRole


class Caller(BaseModel):
    """Who is performing an operation and which approval capabilities they hold."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1, max_length=64)
    roles: frozenset[ApproverRole] = frozenset()

    @property
    def is_approver(self) -> bool:
        return bool(self.roles)

    def has_role(self, role: ApproverRole) -> bool:
        return role in self.roles
