from __future__ import annotations

import logging
from typing import Any

import discord

from ...prompts.dialogue import build_system_core_prompt, fallback_reply
from ..common import chunk_text, truncate
from ..message_context import DiscordMessageContext

logger = logging.getLogger("layered_memory_bot")


class MessageMixin:
    async def _send_chunks(
        self,
        channel: discord.abc.Messageable,
        text: str,
        reference: discord.Message | None = None,
    ) -> None:
        for index, chunk in enumerate(chunk_text(text, 1900)):
            kwargs: dict[str, Any] = {}
            if index == 0 and reference is not None:
                kwargs["reference"] = reference
            await channel.send(chunk, **kwargs)

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot:
            return
        if await self._try_handle_memory_command(message):
            return
        if not self._should_auto_reply(message):
            return

        user_text = self._strip_bot_mention(message.content)
        if not user_text:
            return

        context = DiscordMessageContext(message, content=user_text)
        try:
            async with message.channel.typing():
                reply = await self._run_dialogue_turn(context, user_text)
            await self._send_chunks(message.channel, reply, reference=message)
        except Exception as exc:
            logger.exception("Text turn failed: %s", exc)
            await message.reply(fallback_reply())
            return

        await self.memory.remember(context, user_text, reply)

    def _build_llm_messages(self, context: list[dict[str, str]], user_text: str) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": build_system_core_prompt(self.settings.system_core_prompt)}]
        messages.extend(context)
        messages.append({"role": "user", "content": user_text})
        return messages

    async def _run_dialogue_turn(self, message: DiscordMessageContext, user_text: str) -> str:
        label = message.author.display_name or message.author.name or f"user:{message.author.id}"
        logger.info(
            "[msg.user] channel=%s user=%s text=\"%s\"",
            message.channel.id,
            label,
            truncate(user_text, 120),
        )

        prepared = await self.memory.prepare(message, self._bot_user_id())
        llm_messages = self._build_llm_messages(prepared.context, user_text)

        reply = await self.llm.chat(llm_messages)
        if not reply:
            reply = fallback_reply()
        limit = self.settings.max_response_chars
        if limit and len(reply) > limit:
            reply = truncate(reply, limit)

        logger.info(
            "[msg.bot] channel=%s thread=%s text=\"%s\"",
            message.channel.id,
            prepared.thread_key,
            truncate(reply, 120),
        )
        return reply
