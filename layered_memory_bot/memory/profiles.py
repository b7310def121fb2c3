from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from .adapter import ResourceStoreAdapter
from .models import (
    CharacterBinding,
    UserProfile,
    UserProfileMetadata,
    dedupe,
    format_timestamp,
    user_resource_id,
    utc_now,
)

logger = logging.getLogger("layered_memory_bot")


class UserProfileMemory:
    """Per-user identity record: aliases and per-guild character bindings."""

    def __init__(self, adapter: ResourceStoreAdapter, *, clock: Callable[[], datetime] = utc_now) -> None:
        self.adapter = adapter
        self.clock = clock

    async def _load_metadata(self, user_id: str) -> UserProfileMetadata:
        resource = await self.adapter.get(user_resource_id(user_id))
        if resource is None:
            return UserProfileMetadata()
        return UserProfileMetadata.from_document(resource.metadata) or UserProfileMetadata()

    async def _save_metadata(self, user_id: str, meta: UserProfileMetadata) -> None:
        meta.updated_at = format_timestamp(self.clock())
        await self.adapter.update(user_resource_id(user_id), metadata=meta.to_document())

    async def get_profile(self, user_id: str, guild_id: str | None = None) -> UserProfile:
        meta = await self._load_metadata(user_id)
        guild_aliases = meta.aliases_by_guild.get(guild_id, []) if guild_id else []
        characters = meta.characters_by_guild.get(guild_id, []) if guild_id else []
        return UserProfile(
            aliases=dedupe([*meta.aliases, *guild_aliases]),
            characters=dedupe(characters, key=lambda c: c.key),
            battle_tag=meta.battle_tag,
        )

    async def add_alias(self, user_id: str, alias: str, guild_id: str | None = None) -> None:
        cleaned = str(alias or "").strip()
        if not cleaned:
            raise ValueError("alias cannot be empty")

        async with self.adapter.locked(user_resource_id(user_id)):
            meta = await self._load_metadata(user_id)
            meta.aliases = dedupe([*meta.aliases, cleaned])
            if guild_id:
                existing = meta.aliases_by_guild.get(guild_id, [])
                meta.aliases_by_guild[guild_id] = dedupe([*existing, cleaned])
            await self._save_metadata(user_id, meta)
        logger.debug("Alias stored user=%s guild=%s alias=%s", user_id, guild_id or "-", cleaned)

    async def bind_character(self, user_id: str, guild_id: str, binding: CharacterBinding) -> None:
        if not guild_id:
            raise ValueError("character bindings require a guild id")
        if not (binding.name.strip() and binding.realm.strip() and binding.region.strip()):
            raise ValueError("character binding needs name, realm and region")

        async with self.adapter.locked(user_resource_id(user_id)):
            meta = await self._load_metadata(user_id)
            existing = meta.characters_by_guild.get(guild_id, [])
            meta.characters_by_guild[guild_id] = dedupe([*existing, binding], key=lambda c: c.key)
            await self._save_metadata(user_id, meta)
        logger.debug("Character bound user=%s guild=%s key=%s", user_id, guild_id, binding.key)

    async def set_battle_tag(self, user_id: str, battle_tag: str | None) -> None:
        cleaned = str(battle_tag or "").strip() or None
        async with self.adapter.locked(user_resource_id(user_id)):
            meta = await self._load_metadata(user_id)
            meta.battle_tag = cleaned
            await self._save_metadata(user_id, meta)
