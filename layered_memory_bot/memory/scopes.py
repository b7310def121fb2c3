from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from ..config import MemorySettings
from .adapter import ResourceStoreAdapter
from .models import SCOPE_TYPES, ScopeMemoryMetadata, dedupe, format_timestamp, scope_resource_id, utc_now
from .text import append_summary
from .topics import extract_topics

logger = logging.getLogger("layered_memory_bot")


class ScopeMemory:
    """Rolling, expiring summaries for guild, channel and thread scopes.

    Expiry is lazy: an expired record stays in the store and simply reads as
    absent until the next save replaces it with a fresh summary.
    """

    def __init__(
        self,
        adapter: ResourceStoreAdapter,
        settings: MemorySettings,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.adapter = adapter
        self.settings = settings
        self.clock = clock

    def ttl(self, scope_type: str) -> timedelta:
        return timedelta(minutes=self.settings.ttl_minutes(scope_type))

    async def load(self, scope_type: str, scope_id: str) -> ScopeMemoryMetadata | None:
        if scope_type not in SCOPE_TYPES or not scope_id:
            return None
        resource = await self.adapter.get(scope_resource_id(scope_type, scope_id))
        if resource is None:
            return None
        meta = ScopeMemoryMetadata.from_document(resource.metadata, scope_type)
        if meta is None or meta.is_expired(self.clock()):
            return None
        return meta

    async def save(
        self,
        scope_type: str,
        scope_id: str,
        user_text: str,
        assistant_text: str | None = None,
    ) -> ScopeMemoryMetadata:
        resource_id = scope_resource_id(scope_type, scope_id)
        async with self.adapter.locked(resource_id):
            previous = await self.load(scope_type, scope_id)
            now = self.clock()
            topics = extract_topics(f"{user_text}\n{assistant_text or ''}")
            meta = ScopeMemoryMetadata(
                type=scope_type,
                rolling_summary=append_summary(
                    previous.rolling_summary if previous else "",
                    user_text,
                    assistant_text,
                    self.settings.summary_max_chars,
                ),
                topics=dedupe([*(previous.topics if previous else []), *topics]),
                expires_at=now + self.ttl(scope_type),
                updated_at=format_timestamp(now),
            )
            await self.adapter.update(resource_id, metadata=meta.to_document())
        logger.debug(
            "Scope memory saved scope=%s id=%s chars=%s topics=%s",
            scope_type,
            scope_id,
            len(meta.rolling_summary),
            ",".join(meta.topics),
        )
        return meta
