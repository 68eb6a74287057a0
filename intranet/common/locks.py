"""Keyed in-process locks with bounded acquisition.

Serializes work on the same document, leave request or (user, year) ledger
row inside one process. Row locks (``SELECT ... FOR UPDATE``) and version
columns cover the multi-process case; these locks keep a single worker from
interleaving reads and writes of the same key across ``await`` points.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Union

from intranet.common.exceptions import ConflictError

logger = logging.getLogger(__name__)


def document_key(document_id: uuid.UUID) -> str:
    return f"document:{document_id}"


def leave_request_key(request_id: uuid.UUID) -> str:
    return f"leave_request:{request_id}"


def ledger_key(user_id: str, year: int) -> str:
    return f"ledger:{user_id}:{year}"


def doc_number_key(day: Union[str, object]) -> str:
    return f"docnum:{day}"


LABELS_KEY = "labels"


class _Entry:
    __slots__ = ("lock", "refs")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.refs = 0


class KeyedLockRegistry:
    """Lazily created ``asyncio.Lock`` per key.

    Entries are dropped once no task holds or awaits them, so the registry
    never grows beyond the set of keys currently in use.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def acquire(self, key: str, timeout: float) -> None:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.refs += 1
        try:
            await asyncio.wait_for(entry.lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            self._unref(key, entry)
            logger.warning("Lock wait on %s exceeded %.1fs", key, timeout)
            raise ConflictError(
                f"Another operation is in progress on {key.split(':', 1)[0]}. "
                "Re-fetch and retry.",
            )
        except BaseException:
            self._unref(key, entry)
            raise

    def release(self, key: str) -> None:
        entry = self._entries.get(key)
        if entry is None:
            return
        entry.lock.release()
        self._unref(key, entry)

    def locked(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def clear(self) -> None:
        self._entries.clear()

    def _unref(self, key: str, entry: _Entry) -> None:
        entry.refs -= 1
        if entry.refs <= 0 and self._entries.get(key) is entry:
            del self._entries[key]


# Module-level registry shared by every UnitOfWork in the process
registry = KeyedLockRegistry()
