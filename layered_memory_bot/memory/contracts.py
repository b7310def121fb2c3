from __future__ import annotations

from typing import Optional, Protocol


class AuthorLike(Protocol):
    id: str


class GuildLike(Protocol):
    id: str


class ChannelLike(Protocol):
    id: str

    def is_thread(self) -> bool: ...


class ReferenceLike(Protocol):
    message_id: Optional[str]


class MessageLike(Protocol):
    """What a chat-platform adapter must expose for the memory layer to use a message.

    Authors may additionally carry `display_name` or `name`; they are only used
    to label third-party reply context.
    """

    content: str
    author: AuthorLike
    guild: Optional[GuildLike]
    channel: ChannelLike
    reference: Optional[ReferenceLike]

    async def fetch_reference(self) -> "MessageLike": ...


def author_label(author: object) -> str:
    for attr in ("display_name", "global_name", "username", "name"):
        value = getattr(author, attr, None)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return f"user:{getattr(author, 'id', 'unknown')}"


def is_thread_channel(channel: object) -> bool:
    check = getattr(channel, "is_thread", None)
    if not callable(check):
        return False
    try:
        return bool(check())
    except Exception:
        return False
