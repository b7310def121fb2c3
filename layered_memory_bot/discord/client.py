from __future__ import annotations

import asyncio
import logging

import discord

from ..config import Settings
from ..memory.adapter import ResourceStore
from ..memory.layered import LayeredMemory
from ..services.ollama_chat_client import OllamaChatClient
from .mixins.command_mixin import CommandMixin
from .mixins.identity_mixin import IdentityMixin
from .mixins.message_mixin import MessageMixin

logger = logging.getLogger("layered_memory_bot")


class LayeredMemoryDiscordBot(
    CommandMixin,
    MessageMixin,
    IdentityMixin,
    discord.Client,
):
    def __init__(
        self,
        settings: Settings,
        store: ResourceStore,
        llm: OllamaChatClient,
    ) -> None:
        intents = discord.Intents.default()
        intents.message_content = settings.discord_message_content_intent

        super().__init__(intents=intents)

        self.settings = settings
        self.store = store
        self.llm = llm
        self.memory = LayeredMemory(store, settings.memory)

    async def setup_hook(self) -> None:
        await self.store.init()
        await self.store.ping()
        await self.llm.start()
        logger.info(
            "Memory ready (backend=%s guild_ttl=%sm channel_ttl=%sm thread_ttl=%sm)",
            getattr(self.store, "backend_name", "unknown"),
            self.settings.memory.guild_ttl_minutes,
            self.settings.memory.channel_ttl_minutes,
            self.settings.memory.thread_ttl_minutes,
        )

    async def close(self) -> None:
        await self._run_shutdown_step("llm.close", self.llm.close(), timeout=6.0)
        await self._run_shutdown_step("store.close", self.store.close(), timeout=6.0)
        await self._run_shutdown_step("discord.Client.close", super().close(), timeout=6.0)

    async def _run_shutdown_step(self, label: str, coro: object, *, timeout: float) -> None:
        try:
            await asyncio.wait_for(coro, timeout=timeout)  # type: ignore[arg-type]
        except asyncio.TimeoutError:
            logger.warning("Shutdown step timed out: %s", label)
        except Exception as exc:
            logger.warning("Shutdown step failed: %s (%s)", label, exc)

    async def on_ready(self) -> None:
        if self.user:
            logger.info("Connected as %s (%s)", self.user, self.user.id)
