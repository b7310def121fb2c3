from __future__ import annotations

import re

import discord

from ..common import collapse_spaces


class IdentityMixin:
    def _should_auto_reply(self, message: discord.Message) -> bool:
        if message.guild is None:
            return True
        if self.user and self.user.mentioned_in(message):
            return True
        if message.channel.id in self.settings.auto_reply_channel_ids:
            return True
        parent_id = getattr(message.channel, "parent_id", None)
        if parent_id is not None and parent_id in self.settings.auto_reply_channel_ids:
            return True
        return not self.settings.mention_only

    def _strip_bot_mention(self, text: str) -> str:
        if not self.user:
            return collapse_spaces(text)
        pattern = re.compile(rf"<@!?{self.user.id}>")
        return collapse_spaces(pattern.sub("", text))

    def _bot_user_id(self) -> str | None:
        return str(self.user.id) if self.user else None
