"""Per-filament serialization of weight-changing operations.

Every logical mutation (entry write plus one or more spool writes) runs under
the locks of the filaments it touches and inside a single session
transaction, so two requests against the same filament can't interleave
their read-modify-write of spool weights and a failure never leaves half an
operation committed.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession


class FilamentLocks:
    """Registry of one ``asyncio.Lock`` per filament id.

    A lock is dropped from the registry once no holder or waiter uses it.
    """

    def __init__(self):
        self._locks: dict[int, asyncio.Lock] = {}
        self._users: dict[int, int] = {}

    def _checkout(self, filament_id: int) -> asyncio.Lock:
        lock = self._locks.get(filament_id)
        if lock is None:
            lock = self._locks[filament_id] = asyncio.Lock()
        self._users[filament_id] = self._users.get(filament_id, 0) + 1
        return lock

    def _checkin(self, filament_id: int) -> None:
        self._users[filament_id] -= 1
        if not self._users[filament_id]:
            del self._users[filament_id]
            del self._locks[filament_id]

    def is_locked(self, filament_id: int) -> bool:
        lock = self._locks.get(filament_id)
        return lock is not None and lock.locked()

    def registered_count(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, *filament_ids: int | None) -> AsyncIterator[None]:
        # Sorted acquisition order so two multi-filament operations can't deadlock
        ids = sorted({fid for fid in filament_ids if fid is not None})
        checked_out: list[int] = []
        acquired: list[asyncio.Lock] = []
        try:
            for filament_id in ids:
                lock = self._checkout(filament_id)
                checked_out.append(filament_id)
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for filament_id in checked_out:
                self._checkin(filament_id)


# Module-level registry shared by all sessions in the process
filament_locks = FilamentLocks()


@asynccontextmanager
async def commit_or_rollback(db: AsyncSession) -> AsyncIterator[None]:
    try:
        yield
        await db.commit()
    except Exception:
        await db.rollback()
        raise


@asynccontextmanager
async def locked_transaction(
    db: AsyncSession,
    *filament_ids: int | None,
    locks: FilamentLocks | None = None,
) -> AsyncIterator[None]:
    """Hold the filaments' locks and commit the session once the block succeeds."""
    async with (locks or filament_locks).hold(*filament_ids):
        async with commit_or_rollback(db):
            yield
