"""Unit of work: one atomic transaction per public engine operation.

Usage::

    async with UnitOfWork(db) as uow:
        await uow.lock(document_key(doc_id))
        ...                                    # reads + writes via db
        await uow.lock(ledger_key(user, year))
        ...

On normal exit the session is committed while the locks are still held; on
any exception the session is rolled back, SQLAlchemy errors are translated
into the application taxonomy and the locks are released. Nothing an
operation staged survives a failure.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from intranet.common.exceptions import (
    AppException,
    ConflictError,
    StorageFailureException,
    ValidationException,
)
from intranet.common.locks import KeyedLockRegistry, registry as default_registry
from intranet.config import settings

logger = logging.getLogger(__name__)


def translate_db_error(exc: BaseException) -> Optional[AppException]:
    """Map a storage-layer exception onto the application taxonomy.

    Returns ``None`` for exceptions that are not storage errors.
    """
    if isinstance(exc, AppException):
        return exc
    if isinstance(exc, StaleDataError):
        return ConflictError("The record was modified by another request. Re-fetch and retry.")
    if isinstance(exc, sa_exc.IntegrityError):
        return ConflictError("A conflicting record was written concurrently. Re-fetch and retry.")
    if isinstance(exc, sa_exc.DataError):
        return ValidationException({"value": ["A value is out of range for its column."]})
    if isinstance(exc, (sa_exc.TimeoutError, asyncio.TimeoutError)):
        return StorageFailureException("The data store did not respond in time.")
    if isinstance(exc, sa_exc.OperationalError) or (
        isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated
    ):
        return StorageFailureException()
    return None


class UnitOfWork:
    """Async context manager wrapping one transaction plus its keyed locks."""

    def __init__(
        self,
        db: AsyncSession,
        *,
        locks: Optional[KeyedLockRegistry] = None,
        lock_timeout: Optional[float] = None,
        store_timeout: Optional[float] = None,
    ) -> None:
        self.db = db
        self._registry = locks if locks is not None else default_registry
        self._lock_timeout = (
            settings.LOCK_TIMEOUT_SECONDS if lock_timeout is None else lock_timeout
        )
        self._store_timeout = (
            settings.STORE_TIMEOUT_SECONDS if store_timeout is None else store_timeout
        )
        self._held: list[str] = []

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def lock(self, *keys: str) -> None:
        """Acquire *keys* (sorted, skipping ones already held) for the rest of the unit."""
        for key in sorted(set(keys)):
            if key in self._held:
                continue
            await self._registry.acquire(key, self._lock_timeout)
            self._held.append(key)

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc is None:
                try:
                    await asyncio.wait_for(self.db.commit(), timeout=self._store_timeout)
                except Exception as commit_exc:
                    await self._rollback_quietly()
                    mapped = translate_db_error(commit_exc)
                    if mapped is None:
                        raise
                    logger.warning("Commit failed: %s", commit_exc)
                    raise mapped from commit_exc
                return False

            await self._rollback_quietly()
            mapped = translate_db_error(exc)
            if mapped is not None and mapped is not exc:
                logger.warning("Operation rolled back: %s", exc)
                raise mapped from exc
            return False
        finally:
            self._release_all()

    async def _rollback_quietly(self) -> None:
        try:
            await self.db.rollback()
        except sa_exc.SQLAlchemyError:
            # the original failure is what the caller needs to see
            logger.exception("Rollback failed")

    def _release_all(self) -> None:
        while self._held:
            self._registry.release(self._held.pop())
