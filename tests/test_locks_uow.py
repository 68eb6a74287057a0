"""Keyed lock registry and UnitOfWork — bounded waits, cleanup, commit,
rollback and storage error translation.
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import exc as sa_exc
from sqlalchemy import select
from sqlalchemy.orm.exc import StaleDataError

from intranet.common.exceptions import (
    ConflictError,
    NotFoundException,
    StorageFailureException,
    ValidationException,
)
from intranet.common.locks import KeyedLockRegistry, document_key, ledger_key
from intranet.common.uow import UnitOfWork, translate_db_error
from intranet.documents.models import DocumentLabel
from tests.conftest import TestSessionFactory


# ── KeyedLockRegistry ───────────────────────────────────────────────


async def test_registry_drops_released_keys():
    locks = KeyedLockRegistry()
    await locks.acquire("ledger:u:2025", timeout=1)
    assert locks.locked("ledger:u:2025")
    assert len(locks) == 1

    locks.release("ledger:u:2025")
    assert not locks.locked("ledger:u:2025")
    assert len(locks) == 0


async def test_registry_times_out_with_conflict():
    locks = KeyedLockRegistry()
    await locks.acquire("document:x", timeout=1)

    with pytest.raises(ConflictError) as exc_info:
        await locks.acquire("document:x", timeout=0.05)
    assert exc_info.value.retryable

    # the waiter's reference is gone; the holder's remains
    assert len(locks) == 1
    locks.release("document:x")
    assert len(locks) == 0


async def test_registry_serializes_same_key():
    locks = KeyedLockRegistry()
    order: list[str] = []

    async def worker(name: str):
        await locks.acquire("k", timeout=1)
        try:
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")
        finally:
            locks.release("k")

    await asyncio.gather(worker("a"), worker("b"))
    assert order == ["a-in", "a-out", "b-in", "b-out"]
    assert len(locks) == 0


async def test_distinct_keys_do_not_block():
    locks = KeyedLockRegistry()
    await locks.acquire(ledger_key("u", 2025), timeout=1)
    await locks.acquire(ledger_key("u", 2026), timeout=0.05)
    assert len(locks) == 2


# ── UnitOfWork ──────────────────────────────────────────────────────


async def test_uow_locks_through_injected_empty_registry(db):
    locks = KeyedLockRegistry()
    assert len(locks) == 0

    async with UnitOfWork(db, locks=locks) as uow:
        await uow.lock(ledger_key("u", 2025))
        assert locks.locked(ledger_key("u", 2025))
        assert len(locks) == 1

    assert not locks.locked(ledger_key("u", 2025))


async def test_uow_commits_on_success(db):
    locks = KeyedLockRegistry()
    async with UnitOfWork(db, locks=locks) as uow:
        await uow.lock(document_key("a"))
        db.add(DocumentLabel(code=10, name="품의"))
        assert locks.locked(document_key("a"))

    assert len(locks) == 0
    async with TestSessionFactory() as other:
        names = (await other.execute(select(DocumentLabel.name))).scalars().all()
    assert names == ["품의"]


async def test_uow_rolls_back_on_app_error(db):
    locks = KeyedLockRegistry()
    with pytest.raises(ValidationException):
        async with UnitOfWork(db, locks=locks) as uow:
            await uow.lock(document_key("a"), ledger_key("u", 2025))
            db.add(DocumentLabel(code=11, name="폐기"))
            await db.flush()
            raise ValidationException({"title": ["bad"]})

    assert len(locks) == 0
    assert (await db.execute(select(DocumentLabel))).scalars().all() == []


async def test_uow_translates_integrity_error(db):
    with pytest.raises(ConflictError):
        async with UnitOfWork(db):
            db.add(DocumentLabel(code=7, name="a"))
            db.add(DocumentLabel(code=7, name="b"))
            await db.flush()

    assert (await db.execute(select(DocumentLabel))).scalars().all() == []


async def test_uow_lock_timeout_surfaces_conflict(db):
    locks = KeyedLockRegistry()
    await locks.acquire(document_key("busy"), timeout=1)

    with pytest.raises(ConflictError):
        async with UnitOfWork(db, locks=locks, lock_timeout=0.05) as uow:
            await uow.lock(document_key("busy"))

    assert locks.locked(document_key("busy"))
    assert len(locks) == 1


async def test_uow_lock_is_reentrant_within_unit(db):
    locks = KeyedLockRegistry()
    async with UnitOfWork(db, locks=locks, lock_timeout=0.05) as uow:
        await uow.lock(document_key("a"))
        await uow.lock(document_key("a"))
    assert len(locks) == 0


# ── Error translation ───────────────────────────────────────────────


def test_translate_maps_storage_errors():
    stale = translate_db_error(StaleDataError("version mismatch"))
    assert isinstance(stale, ConflictError)

    unavailable = translate_db_error(
        sa_exc.OperationalError("SELECT 1", {}, Exception("connection refused")),
    )
    assert isinstance(unavailable, StorageFailureException)
    assert unavailable.retryable

    assert isinstance(translate_db_error(asyncio.TimeoutError()), StorageFailureException)

    overflow = translate_db_error(
        sa_exc.DataError("INSERT INTO documents", {}, Exception("numeric field overflow")),
    )
    assert isinstance(overflow, ValidationException)
    assert overflow.status_code == 422


def test_translate_passes_app_errors_and_ignores_others():
    missing = NotFoundException("Document", "x")
    assert translate_db_error(missing) is missing
    assert translate_db_error(ValueError("nope")) is None
