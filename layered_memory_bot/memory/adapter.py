from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, AsyncIterator, Optional, Protocol

from .models import UNSET, Resource

logger = logging.getLogger("layered_memory_bot")


class ResourceStore(Protocol):
    async def get_resource_by_id(self, resource_id: str) -> Optional[Resource]: ...

    async def update_resource(
        self,
        resource_id: str,
        *,
        working_memory: Any = UNSET,
        metadata: dict[str, Any] | None = None,
    ) -> Resource: ...


class ResourceStoreAdapter:
    """Narrow view over a resource store.

    Reads never raise: an unknown id and a failing store both come back as None,
    so callers degrade to "no memory". Writes propagate their errors and leave
    the logging decision to the caller.
    """

    def __init__(self, store: ResourceStore, *, serialize_writes: bool = True) -> None:
        self.store = store
        self.serialize_writes = serialize_writes
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    async def get(self, resource_id: str) -> Resource | None:
        try:
            return await self.store.get_resource_by_id(resource_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Memory read failed for resource=%s: %s", resource_id, exc)
            return None

    async def update(
        self,
        resource_id: str,
        *,
        working_memory: Any = UNSET,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        await self.store.update_resource(resource_id, working_memory=working_memory, metadata=metadata)

    def _get_lock(self, resource_id: str) -> asyncio.Lock:
        lock = self._locks.get(resource_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[resource_id] = lock
        self._lock_users[resource_id] = self._lock_users.get(resource_id, 0) + 1
        return lock

    def _release_lock(self, resource_id: str) -> None:
        """Drop the lock entry once no holder or waiter still refers to it."""
        users = self._lock_users.get(resource_id, 0) - 1
        if users > 0:
            self._lock_users[resource_id] = users
            return
        self._lock_users.pop(resource_id, None)
        self._locks.pop(resource_id, None)

    @contextlib.asynccontextmanager
    async def locked(self, resource_id: str) -> AsyncIterator[None]:
        """Serialize read-modify-write cycles on one resource id within this process."""
        if not self.serialize_writes:
            yield
            return
        lock = self._get_lock(resource_id)
        try:
            async with lock:
                yield
        finally:
            self._release_lock(resource_id)
