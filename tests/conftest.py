"""Shared test fixtures — async DB, client, callers, tokens, seed helpers.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
Service calls commit through their UnitOfWork, so seed data is committed
before a test exercises a service (a failing operation rolls the whole
session back).
"""

from __future__ import annotations

import os

# Set test JWT_SECRET before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Iterable, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from intranet.auth.schemas import Caller
from intranet.common.constants import ApproverRole
from intranet.common.locks import registry
from intranet.common.rate_limit import limiter
from intranet.config import settings
from intranet.database import Base, get_db
from intranet.documents.models import DocumentLabel
from intranet.ledger.models import AnnualLeaveBalance, CompLeaveBalance
from intranet.main import create_app

# Import every model module so metadata is complete before create_all
import intranet.common.audit  # noqa: F401
import intranet.documents.models  # noqa: F401
import intranet.leave.models  # noqa: F401
import intranet.ledger.models  # noqa: F401

# ── SQLite compat: compile PG-specific types ────────────────────────

from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_process_state():
    """Fresh lock registry and rate-limit counters for every test."""
    registry.clear()
    limiter.reset()
    yield
    registry.clear()


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct service calls in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Callers and tokens ──────────────────────────────────────────────

DRAFTER_ID = "drafter-01"
OTHER_ID = "drafter-02"
CHAIRMAN_ID = "chairman-01"
DIRECTOR_ID = "director-01"


@pytest.fixture
def drafter() -> Caller:
    return Caller(user_id=DRAFTER_ID)


@pytest.fixture
def other_user() -> Caller:
    return Caller(user_id=OTHER_ID)


@pytest.fixture
def chairman() -> Caller:
    return Caller(user_id=CHAIRMAN_ID, roles=frozenset({ApproverRole.chairman}))


@pytest.fixture
def director() -> Caller:
    return Caller(user_id=DIRECTOR_ID, roles=frozenset({ApproverRole.director}))


def create_access_token(
    user_id: str,
    roles: Iterable[ApproverRole] = (),
    *,
    expires_in: timedelta = timedelta(minutes=30),
) -> str:
    """Sign a bearer token the way the upstream identity service would."""
    payload = {
        "sub": user_id,
        "roles": [role.value for role in roles],
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_header(user_id: str, roles: Iterable[ApproverRole] = ()) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id, roles)}"}


# ── Seed helpers ────────────────────────────────────────────────────

async def seed_label(
    db: AsyncSession,
    *,
    code: int,
    name: str,
    color: Optional[str] = None,
) -> DocumentLabel:
    label = DocumentLabel(code=code, name=name, color=color)
    db.add(label)
    await db.commit()
    return label


async def seed_annual(
    db: AsyncSession,
    user_id: str,
    year: int,
    *,
    total: str = "15",
    used: str = "0",
) -> AnnualLeaveBalance:
    balance = AnnualLeaveBalance(
        user_id=user_id, year=year, total_days=Decimal(total), used_days=Decimal(used),
    )
    db.add(balance)
    await db.commit()
    return balance


async def seed_comp(
    db: AsyncSession,
    user_id: str,
    year: int,
    *,
    total: str = "0",
    used: str = "0",
) -> CompLeaveBalance:
    balance = CompLeaveBalance(
        user_id=user_id, year=year, total_hours=Decimal(total), used_hours=Decimal(used),
    )
    db.add(balance)
    await db.commit()
    return balance


@pytest.fixture
async def expense_label(db: AsyncSession) -> DocumentLabel:
    return await seed_label(db, code=1, name="지출결의")


@pytest.fixture
async def attendance_label(db: AsyncSession) -> DocumentLabel:
    return await seed_label(db, code=settings.ATTENDANCE_LABEL_CODE, name="근태")
