from __future__ import annotations

from .storage.resources import MemoryResourcesMixin
from .storage.schema import MemorySchemaMixin
from .storage.utils import _sqlite_memory_connection


class MemoryStore(
    MemorySchemaMixin,
    MemoryResourcesMixin,
):
    """SQLite key/value resource store holding working memory and metadata documents."""

    backend_name = "sqlite"

    async def ping(self) -> None:
        async with _sqlite_memory_connection(self.db_path) as db:
            await db.execute("SELECT 1")

    async def close(self) -> None:
        # Connections are opened per call.
        return None
