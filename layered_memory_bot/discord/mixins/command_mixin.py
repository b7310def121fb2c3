from __future__ import annotations

import asyncio
import logging

import discord

from ...memory.models import CharacterBinding
from ...prompts.memory import build_user_profile_lines, format_character
from ..common import collapse_spaces, split_command_args

logger = logging.getLogger("layered_memory_bot")

DEFAULT_REGION = "US"


class CommandMixin:
    async def _try_handle_memory_command(self, message: discord.Message) -> bool:
        raw = collapse_spaces(message.content)
        prefix = self.settings.command_prefix.strip()
        if not raw or not prefix or not raw.startswith(prefix):
            return False

        name, _, rest = raw[len(prefix) :].strip().partition(" ")
        handler = {
            "alias": self._command_alias,
            "bind": self._command_bind,
            "battletag": self._command_battletag,
            "profile": self._command_profile,
        }.get(name.lower())
        if handler is None:
            return False

        try:
            reply = await handler(message, rest.strip())
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Command %s failed for user=%s: %s", name.lower(), message.author.id, exc)
            reply = "Could not update your profile right now."
        await message.reply(reply)
        return True

    def _usage(self, text: str) -> str:
        return f"Usage: `{self.settings.command_prefix.strip()}{text}`"

    async def _command_alias(self, message: discord.Message, args: str) -> str:
        alias = args.strip().strip('"').strip()
        if not alias:
            return self._usage("alias <name>")
        guild_id = str(message.guild.id) if message.guild else None
        await self.memory.profiles.add_alias(str(message.author.id), alias, guild_id)
        where = "this server" if guild_id else "everywhere"
        return f"Saved alias `{alias}` ({where})."

    async def _command_bind(self, message: discord.Message, args: str) -> str:
        if message.guild is None:
            return "Character binding works only in a server."
        parts = split_command_args(args)
        if len(parts) < 2:
            return self._usage("bind <name> <realm> [region] [class] [spec] [role]")

        name, realm, *extra = parts
        region = (extra[0] if extra else DEFAULT_REGION).upper()
        binding = CharacterBinding(
            name=name,
            realm=realm,
            region=region,
            character_class=extra[1] if len(extra) > 1 else None,
            spec=extra[2] if len(extra) > 2 else None,
            role=extra[3].lower() if len(extra) > 3 else None,
        )
        await self.memory.profiles.bind_character(str(message.author.id), str(message.guild.id), binding)
        label = format_character(
            binding.name,
            binding.realm,
            binding.region,
            (binding.character_class, binding.spec, binding.role),
        )
        return f"Bound character {label}."

    async def _command_battletag(self, message: discord.Message, args: str) -> str:
        tag = args.strip()
        if not tag:
            return self._usage("battletag <Name#1234>")
        await self.memory.profiles.set_battle_tag(str(message.author.id), tag)
        return f"Saved BattleTag `{tag}`."

    async def _command_profile(self, message: discord.Message, args: str) -> str:
        guild_id = str(message.guild.id) if message.guild else None
        profile = await self.memory.profiles.get_profile(str(message.author.id), guild_id)
        if profile.is_empty():
            return "I have nothing stored for you yet."
        characters = [
            format_character(c.name, c.realm, c.region, (c.character_class, c.spec, c.role))
            for c in profile.characters
        ]
        return "\n".join(build_user_profile_lines(profile.aliases, characters, profile.battle_tag))
