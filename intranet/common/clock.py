"""Local-calendar helpers; doc numbers and ledger years follow the office clock."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from intranet.config import settings


def local_zone() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def local_now(now: Optional[datetime] = None) -> datetime:
    """Current time (or *now*) in the configured office timezone."""
    return (now or utcnow()).astimezone(local_zone())


def local_today(now: Optional[datetime] = None) -> date:
    return local_now(now).date()
