"""Per-resource locks for booking, cancellation and settlement critical sections."""

import asyncio
import hashlib
import weakref
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_scheduler.database import is_postgresql

logger = structlog.get_logger(__name__)


class LocalLockTable:
    """Process-local keyed locks; an entry lives only while someone holds or awaits it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


# Fallback for dialects without advisory locks, one table per event loop
_local_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, LocalLockTable]" = (
    weakref.WeakKeyDictionary()
)


def local_lock_table() -> LocalLockTable:
    """Lock table for the running event loop."""
    loop = asyncio.get_running_loop()
    table = _local_locks.get(loop)
    if table is None:
        table = _local_locks[loop] = LocalLockTable()
    return table


def doctor_key(doctor_id: object) -> str:
    """Lock key for a doctor's calendar."""
    return f"doctor:{doctor_id}"


def room_key(room_id: object) -> str:
    """Lock key for a room's calendar."""
    return f"room:{room_id}"


def appointment_key(appointment_id: object) -> str:
    """Lock key for a single appointment's lifecycle."""
    return f"appointment:{appointment_id}"


def advisory_lock_id(key: str) -> int:
    """Map a lock key to a signed 64-bit advisory lock id."""
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class ResourceLocker:
    """
    Serializes work on named resources for the length of a transaction.

    On PostgreSQL each key maps to ``pg_advisory_xact_lock``, released when the
    session's transaction commits or rolls back. Other dialects fall back to
    process-local asyncio locks released when the context exits. In both cases
    the caller must commit before leaving the ``hold`` block.
    """

    def __init__(self, db: AsyncSession):
        """Initialize locker for a session."""
        self.db = db

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        """
        Hold all keys for the duration of the block.

        Keys are acquired in sorted order so concurrent holders of
        overlapping key sets cannot deadlock.
        """
        ordered = sorted(set(keys))

        if is_postgresql(self.db):
            for key in ordered:
                await self.db.execute(
                    text("SELECT pg_advisory_xact_lock(:lock_id)"),
                    {"lock_id": advisory_lock_id(key)},
                )
            yield
            return

        table = local_lock_table()
        async with AsyncExitStack() as stack:
            for key in ordered:
                await stack.enter_async_context(table.acquire(key))
            logger.debug("resource_locks_acquired", keys=ordered)
            yield
