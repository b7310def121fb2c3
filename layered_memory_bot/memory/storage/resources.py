from __future__ import annotations

from typing import Any, Optional

import aiosqlite

from ..models import UNSET, Resource
from .utils import _sqlite_memory_connection, decode_metadata, encode_metadata, merge_metadata


class MemoryResourcesMixin:
    async def get_resource_by_id(self, resource_id: str) -> Optional[Resource]:
        async with _sqlite_memory_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT id, working_memory, metadata
                FROM resources
                WHERE id = ?
                """,
                (resource_id,),
            ) as cursor:
                row = await cursor.fetchone()

        if row is None:
            return None
        return Resource(
            id=str(row["id"]),
            working_memory=row["working_memory"],
            metadata=decode_metadata(row["metadata"], resource_id=resource_id),
        )

    async def update_resource(
        self,
        resource_id: str,
        *,
        working_memory: Any = UNSET,
        metadata: dict[str, Any] | None = None,
    ) -> Resource:
        async with _sqlite_memory_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT working_memory, metadata FROM resources WHERE id = ?",
                (resource_id,),
            ) as cursor:
                row = await cursor.fetchone()

            existing_metadata = decode_metadata(row["metadata"], resource_id=resource_id) if row else {}
            existing_working = row["working_memory"] if row else None
            next_working = existing_working if working_memory is UNSET else working_memory
            next_metadata = merge_metadata(existing_metadata, metadata)

            await db.execute(
                """
                INSERT INTO resources (id, working_memory, metadata, created_at, updated_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)
                ON CONFLICT(id) DO UPDATE SET
                    working_memory = excluded.working_memory,
                    metadata = excluded.metadata,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (resource_id, next_working, encode_metadata(next_metadata)),
            )
            await db.commit()

        return Resource(id=resource_id, working_memory=next_working, metadata=next_metadata)
