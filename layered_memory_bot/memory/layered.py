from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable

from ..config import MemorySettings
from ..prompts.memory import (
    build_layered_context,
    build_scope_lines,
    build_user_profile_lines,
    format_character,
)
from .adapter import ResourceStore, ResourceStoreAdapter
from .contracts import MessageLike, is_thread_channel
from .models import (
    PreparedMemory,
    ScopeSnapshot,
    UserProfile,
    per_user_thread_id,
    user_resource_id,
    utc_now,
)
from .profiles import UserProfileMemory
from .reply_context import ReplyContextResolver
from .scopes import ScopeMemory
from .text import strip_think_blocks

logger = logging.getLogger("layered_memory_bot")


def _guild_id(message: MessageLike) -> str | None:
    guild = getattr(message, "guild", None)
    if guild is None:
        return None
    value = getattr(guild, "id", None)
    return str(value) if value else None


class LayeredMemory:
    """Assembles user, guild, channel and thread memory around one conversational turn.

    `prepare` runs before the model is called and returns the ordered context
    entries; `remember` runs after the reply and appends the turn to every
    scope the message belongs to.
    """

    def __init__(
        self,
        store: ResourceStore,
        settings: MemorySettings | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings or MemorySettings()
        self.adapter = ResourceStoreAdapter(store, serialize_writes=self.settings.serialize_writes)
        self.profiles = UserProfileMemory(self.adapter, clock=clock)
        self.scopes = ScopeMemory(self.adapter, self.settings, clock=clock)
        self.replies = ReplyContextResolver()

    async def load_scopes(self, message: MessageLike) -> ScopeSnapshot:
        guild_id = _guild_id(message)
        channel_id = str(message.channel.id)
        snapshot = ScopeSnapshot()
        if guild_id:
            snapshot.guild = await self.scopes.load("guild", guild_id)
        snapshot.channel = await self.scopes.load("channel", channel_id)
        if is_thread_channel(message.channel):
            snapshot.thread = await self.scopes.load("thread", channel_id)
        return snapshot

    @staticmethod
    def render_system_context(profile: UserProfile, scopes: ScopeSnapshot) -> str:
        characters = [
            format_character(c.name, c.realm, c.region, (c.character_class, c.spec, c.role))
            for c in profile.characters
        ]
        sections = [build_user_profile_lines(profile.aliases, characters, profile.battle_tag)]
        for scope_type, meta in (("guild", scopes.guild), ("channel", scopes.channel), ("thread", scopes.thread)):
            if meta is not None:
                sections.append(build_scope_lines(scope_type, meta.rolling_summary, meta.topics))
        return build_layered_context(sections)

    async def prepare(self, message: MessageLike, bot_user_id: str | None = None) -> PreparedMemory:
        user_id = str(message.author.id)
        guild_id = _guild_id(message)
        channel_id = str(message.channel.id)

        profile = await self.profiles.get_profile(user_id, guild_id)
        scopes = await self.load_scopes(message)
        system_text = self.render_system_context(profile, scopes)

        context: list[dict[str, str]] = []
        if system_text:
            context.append({"role": "system", "content": system_text})
        context.extend(await self.replies.resolve(message, bot_user_id))

        return PreparedMemory(
            resource_key=user_resource_id(user_id),
            thread_key=per_user_thread_id(guild_id, channel_id, user_id),
            context=context,
        )

    async def remember(self, message: MessageLike, user_text: str, assistant_text: str) -> None:
        clean_user = strip_think_blocks(user_text)
        clean_assistant = strip_think_blocks(assistant_text)
        guild_id = _guild_id(message)
        channel_id = str(message.channel.id)

        targets: list[tuple[str, str]] = []
        if guild_id:
            targets.append(("guild", guild_id))
        targets.append(("channel", channel_id))
        if is_thread_channel(message.channel):
            targets.append(("thread", channel_id))

        for scope_type, scope_id in targets:
            try:
                await self.scopes.save(scope_type, scope_id, clean_user, clean_assistant)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Failed to persist %s memory for id=%s", scope_type, scope_id)
