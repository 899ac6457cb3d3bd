import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional, Tuple

from .lifecycle_errors import LockTimeout
from .settings import settings

logger = logging.getLogger(__name__)


class EntityLockRegistry:
    """One asyncio.Lock per ``scope:key``, created on demand.

    Entries are dropped once no task holds or waits on them.
    Callers nesting scopes must take them in the order
    booking -> room_type -> agreement.
    """

    def __init__(self, default_timeout: Optional[float] = None):
        self.default_timeout = default_timeout
        self._locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        self._users: Dict[Tuple[str, str], int] = {}

    def _acquire_entry(self, name: Tuple[str, str]) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        self._users[name] = self._users.get(name, 0) + 1
        return lock

    def _release_entry(self, name: Tuple[str, str]):
        remaining = self._users.get(name, 1) - 1
        if remaining <= 0:
            self._users.pop(name, None)
            self._locks.pop(name, None)
        else:
            self._users[name] = remaining

    def is_locked(self, scope: str, key) -> bool:
        lock = self._locks.get((scope, str(key)))
        return bool(lock and lock.locked())

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, scope: str, key, timeout: Optional[float] = None):
        name = (scope, str(key))
        if timeout is None:
            timeout = self.default_timeout
        if timeout is None:
            timeout = settings.LOCK_TIMEOUT_SECONDS

        lock = self._acquire_entry(name)
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Lock wait timed out for {scope}:{key} after {timeout}s")
                raise LockTimeout(
                    detail=f"Timed out after {timeout}s waiting for {scope}:{key}"
                )
            try:
                yield
            finally:
                lock.release()
        finally:
            self._release_entry(name)


entity_locks = EntityLockRegistry()
