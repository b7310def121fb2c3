from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import discord


@dataclass(frozen=True, slots=True)
class AuthorRef:
    id: str
    name: str = ""
    display_name: str = ""


@dataclass(frozen=True, slots=True)
class GuildRef:
    id: str


@dataclass(frozen=True, slots=True)
class ReferenceRef:
    message_id: Optional[str]


class ChannelRef:
    __slots__ = ("id", "_thread")

    def __init__(self, channel_id: str, thread: bool) -> None:
        self.id = channel_id
        self._thread = thread

    def is_thread(self) -> bool:
        return self._thread


class DiscordMessageContext:
    """Adapts a `discord.Message` to the memory layer's message contract."""

    def __init__(self, message: discord.Message, *, content: str | None = None) -> None:
        self._message = message
        self.content = message.content if content is None else content
        author = message.author
        self.author = AuthorRef(
            id=str(author.id),
            name=str(getattr(author, "name", "") or ""),
            display_name=str(getattr(author, "display_name", "") or ""),
        )
        self.guild = GuildRef(id=str(message.guild.id)) if message.guild is not None else None
        self.channel = ChannelRef(str(message.channel.id), isinstance(message.channel, discord.Thread))
        reference = message.reference
        if reference is not None and reference.message_id is not None:
            self.reference: Optional[ReferenceRef] = ReferenceRef(message_id=str(reference.message_id))
        else:
            self.reference = None

    async def fetch_reference(self) -> "DiscordMessageContext":
        reference = self._message.reference
        if reference is None or reference.message_id is None:
            raise LookupError("message has no reference")
        resolved = reference.resolved
        if isinstance(resolved, discord.Message):
            return DiscordMessageContext(resolved)
        if isinstance(resolved, discord.DeletedReferencedMessage):
            raise LookupError(f"referenced message {reference.message_id} was deleted")
        fetched = await self._message.channel.fetch_message(reference.message_id)
        return DiscordMessageContext(fetched)
