from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import asyncpg

from .models import UNSET, Resource
from .storage.utils import decode_metadata, encode_metadata


logger = logging.getLogger("layered_memory_bot")


class PostgresMemoryStore:
    """Postgres-backed resource store implementing the same API as MemoryStore."""

    SCHEMA_VERSION = 1
    backend_name = "postgres"

    def __init__(self, dsn: str) -> None:
        self.dsn = dsn.strip()
        if not self.dsn:
            raise ValueError("MEMORY_POSTGRES_DSN cannot be empty")
        self._pool: "asyncpg.Pool | None" = None
        self._init_lock = asyncio.Lock()
        self._initialized = False

    async def _ensure_pool(self) -> "asyncpg.Pool":
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                dsn=self.dsn,
                min_size=1,
                max_size=6,
                command_timeout=30.0,
            )
        return self._pool

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
        self._initialized = False

    async def ping(self) -> None:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            await conn.execute("SELECT 1")

    async def init(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return
            pool = await self._ensure_pool()
            async with pool.acquire() as conn:
                async with conn.transaction():
                    version = await self._get_schema_version(conn)
                    if version > self.SCHEMA_VERSION:
                        raise RuntimeError(
                            f"Postgres memory schema version {version} is newer than supported {self.SCHEMA_VERSION}. "
                            "Upgrade the bot before starting."
                        )
                    await self._create_schema(conn)
                    if version != self.SCHEMA_VERSION:
                        await self._set_schema_version(conn, self.SCHEMA_VERSION)
            self._initialized = True
            logger.info("Postgres memory store ready (schema v%s)", self.SCHEMA_VERSION)

    async def _create_schema(self, conn: "asyncpg.Connection") -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS memory_resources (
                id TEXT PRIMARY KEY,
                working_memory TEXT,
                metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );

            CREATE INDEX IF NOT EXISTS idx_memory_resources_updated
            ON memory_resources(updated_at DESC);
            """
        )

    async def _get_schema_version(self, conn: "asyncpg.Connection") -> int:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS memory_schema_meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """
        )
        row = await conn.fetchrow("SELECT value FROM memory_schema_meta WHERE key = 'schema_version'")
        if row is None:
            return 0
        try:
            return int(str(row["value"]))
        except ValueError:
            return 0

    async def _set_schema_version(self, conn: "asyncpg.Connection", version: int) -> None:
        await conn.execute(
            """
            INSERT INTO memory_schema_meta (key, value, updated_at)
            VALUES ('schema_version', $1, NOW())
            ON CONFLICT(key) DO UPDATE SET
                value = EXCLUDED.value,
                updated_at = NOW()
            """,
            str(int(version)),
        )

    async def get_resource_by_id(self, resource_id: str) -> Optional[Resource]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT id, working_memory, metadata FROM memory_resources WHERE id = $1",
                resource_id,
            )
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
        replace_working = working_memory is not UNSET
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            # jsonb `||` replaces top-level keys only, which is the shallow merge contract.
            row = await conn.fetchrow(
                """
                INSERT INTO memory_resources (id, working_memory, metadata, created_at, updated_at)
                VALUES ($1, $2, $3::jsonb, NOW(), NOW())
                ON CONFLICT(id) DO UPDATE SET
                    working_memory = CASE WHEN $4 THEN EXCLUDED.working_memory ELSE memory_resources.working_memory END,
                    metadata = memory_resources.metadata || EXCLUDED.metadata,
                    updated_at = NOW()
                RETURNING id, working_memory, metadata
                """,
                resource_id,
                working_memory if replace_working else None,
                encode_metadata(metadata or {}),
                replace_working,
            )
        return Resource(
            id=str(row["id"]),
            working_memory=row["working_memory"],
            metadata=decode_metadata(row["metadata"], resource_id=resource_id),
        )
