"""Per-entity exclusive sections for workflow transitions."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable, List, Optional, Tuple

import structlog

from app.core.exceptions import LockTimeoutError

logger = structlog.get_logger(__name__)

LockKey = Tuple[str, str]


def entity_key(entity_type, entity_id) -> LockKey:
    """Lock key for one entity instance, e.g. ("submission", "<uuid>")."""
    return (getattr(entity_type, "value", str(entity_type)), str(entity_id))


class EntityLockRegistry:
    """
    Keyed asyncio locks.

    Transitions on the same entity queue up in acquisition order; transitions on
    different entities never contend. Entries are reference counted and dropped
    once nobody holds or waits for them.
    """

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._refs: Dict[Hashable, int] = {}

    def _checkout(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._refs[key] = self._refs.get(key, 0) + 1
        return lock

    def _checkin(self, key: Hashable) -> None:
        self._refs[key] -= 1
        if self._refs[key] == 0:
            del self._refs[key]
            del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())

    @asynccontextmanager
    async def acquire(self, *keys: Hashable, timeout: Optional[float] = None) -> AsyncIterator[None]:
        """
        Hold every lock in ``keys`` for the duration of the block.

        Keys are deduplicated and taken in sorted order so two callers that need
        overlapping sets cannot deadlock. If the locks are not all obtained within
        ``timeout`` seconds nothing is held and LockTimeoutError is raised.
        """
        ordered = sorted(set(keys))
        locks = [self._checkout(key) for key in ordered]
        held: List[asyncio.Lock] = []
        try:
            try:
                await asyncio.wait_for(self._acquire_all(locks, held), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("entity_lock_timeout", keys=ordered, timeout=timeout)
                raise LockTimeoutError(
                    "Timed out waiting for the entity lock",
                    details={"keys": [":".join(map(str, key)) for key in ordered]},
                ) from None
            yield
        finally:
            for lock in reversed(held):
                lock.release()
            for key in ordered:
                self._checkin(key)

    @staticmethod
    async def _acquire_all(locks: List[asyncio.Lock], held: List[asyncio.Lock]) -> None:
        for lock in locks:
            await lock.acquire()
            held.append(lock)
