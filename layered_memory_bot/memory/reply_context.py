from __future__ import annotations

import asyncio
import logging

from ..prompts.memory import build_reply_context, build_third_party_reply_context
from .contracts import MessageLike, author_label
from .text import strip_think_blocks

logger = logging.getLogger("layered_memory_bot")


class ReplyContextResolver:
    """Turns the message a user replied to into context entries, labelled by who wrote it."""

    async def resolve(self, message: MessageLike, bot_user_id: str | None = None) -> list[dict[str, str]]:
        reference = getattr(message, "reference", None)
        if reference is None or not getattr(reference, "message_id", None):
            return []

        try:
            referenced = await message.fetch_reference()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.debug("Reply context unavailable for reference=%s: %s", reference.message_id, exc)
            return []
        if referenced is None:
            return []

        content = strip_think_blocks(getattr(referenced, "content", "") or "")
        if not content:
            return []

        referenced_author = getattr(referenced, "author", None)
        referenced_author_id = str(getattr(referenced_author, "id", "") or "")
        current_author_id = str(message.author.id)

        if bot_user_id and referenced_author_id == str(bot_user_id):
            return [{"role": "assistant", "content": build_reply_context(content)}]
        if referenced_author_id and referenced_author_id == current_author_id:
            return [{"role": "user", "content": build_reply_context(content)}]
        return [
            {
                "role": "system",
                "content": build_third_party_reply_context(author_label(referenced_author), content),
            }
        ]
