from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Set

from dotenv import load_dotenv


load_dotenv()


def _env_lookup(name: str, aliases: tuple[str, ...] = ()) -> str | None:
    for key in (name, *aliases):
        # Be tolerant to UTF-8 BOM accidentally saved in .env key names.
        for candidate in (key, f"\ufeff{key}"):
            raw = os.getenv(candidate)
            if raw is not None:
                return raw
    return None


def _env_bool(name: str, default: bool, aliases: tuple[str, ...] = ()) -> bool:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int, aliases: tuple[str, ...] = ()) -> int:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float, aliases: tuple[str, ...] = ()) -> float:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_id_set(name: str, aliases: tuple[str, ...] = ()) -> Set[int]:
    raw = (_env_lookup(name, aliases) or "").strip()
    if not raw:
        return set()
    result: Set[int] = set()
    for chunk in raw.split(","):
        value = chunk.strip()
        if not value:
            continue
        try:
            result.add(int(value))
        except ValueError:
            continue
    return result


def _clean_token(value: str) -> str:
    cleaned = value.strip()
    if cleaned.lower().startswith("bot "):
        cleaned = cleaned[4:].strip()
    if (cleaned.startswith('"') and cleaned.endswith('"')) or (
        cleaned.startswith("'") and cleaned.endswith("'")
    ):
        cleaned = cleaned[1:-1].strip()
    return cleaned


def _env_str(name: str, default: str, aliases: tuple[str, ...] = ()) -> str:
    raw = _env_lookup(name, aliases)
    if raw is None:
        return default
    value = raw.strip()
    return value if value else default


@dataclass(slots=True)
class MemorySettings:
    """Options of the layered memory subsystem, passed in at construction time."""

    guild_ttl_minutes: int = 10080
    channel_ttl_minutes: int = 240
    thread_ttl_minutes: int = 240
    summary_max_chars: int = 4000
    serialize_writes: bool = True

    @classmethod
    def from_env(cls) -> "MemorySettings":
        return cls(
            guild_ttl_minutes=_env_int("MEMORY_GUILD_TTL_MINUTES", 10080),
            channel_ttl_minutes=_env_int("MEMORY_CHANNEL_TTL_MINUTES", 240),
            thread_ttl_minutes=_env_int("MEMORY_THREAD_TTL_MINUTES", 240),
            summary_max_chars=_env_int("MEMORY_SCOPE_SUMMARY_MAX_CHARS", 4000),
            serialize_writes=_env_bool("MEMORY_SERIALIZE_WRITES", True),
        )

    def ttl_minutes(self, scope_type: str) -> int:
        if scope_type == "guild":
            return self.guild_ttl_minutes
        if scope_type == "channel":
            return self.channel_ttl_minutes
        if scope_type == "thread":
            return self.thread_ttl_minutes
        raise ValueError(f"Unknown scope type: {scope_type!r}")

    def validate(self) -> None:
        if self.guild_ttl_minutes < 1:
            raise ValueError("MEMORY_GUILD_TTL_MINUTES must be >= 1")
        if self.channel_ttl_minutes < 1:
            raise ValueError("MEMORY_CHANNEL_TTL_MINUTES must be >= 1")
        if self.thread_ttl_minutes < 1:
            raise ValueError("MEMORY_THREAD_TTL_MINUTES must be >= 1")
        if self.summary_max_chars < 1:
            raise ValueError("MEMORY_SCOPE_SUMMARY_MAX_CHARS must be >= 1")


@dataclass(slots=True)
class Settings:
    discord_token: str
    command_prefix: str
    discord_message_content_intent: bool
    mention_only: bool
    auto_reply_channel_ids: Set[int]
    max_response_chars: int
    system_core_prompt: str

    ollama_base_url: str
    ollama_model: str
    ollama_timeout_seconds: int
    ollama_temperature: float

    memory_backend: str
    sqlite_path: Path
    postgres_dsn: str
    memory: MemorySettings = field(default_factory=MemorySettings)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            discord_token=_clean_token(_env_lookup("DISCORD_TOKEN", aliases=("DISCORD_BOT_TOKEN",)) or ""),
            command_prefix=_env_str("DISCORD_COMMAND_PREFIX", "!"),
            discord_message_content_intent=_env_bool("DISCORD_MESSAGE_CONTENT_INTENT", True),
            mention_only=_env_bool("BOT_MENTION_ONLY", True),
            auto_reply_channel_ids=_env_id_set("AUTO_REPLY_CHANNEL_IDS"),
            max_response_chars=_env_int("MAX_RESPONSE_CHARS", 6000),
            system_core_prompt=_env_str("SYSTEM_CORE_PROMPT", ""),
            ollama_base_url=_env_str("OLLAMA_BASE_URL", "http://127.0.0.1:11434"),
            ollama_model=_env_str("OLLAMA_MODEL", "llama3.1:latest"),
            ollama_timeout_seconds=_env_int("OLLAMA_TIMEOUT_SECONDS", 90),
            ollama_temperature=_env_float("OLLAMA_TEMPERATURE", 0.4),
            memory_backend=_env_str("MEMORY_BACKEND", "sqlite").lower(),
            sqlite_path=Path(_env_str("SQLITE_PATH", "./data/memory.db")).expanduser(),
            postgres_dsn=_env_str("MEMORY_POSTGRES_DSN", ""),
            memory=MemorySettings.from_env(),
        )

    def validate(self) -> None:
        if not self.discord_token:
            raise ValueError("DISCORD_TOKEN is required")
        if self.discord_token == "put_your_discord_bot_token_here":
            raise ValueError("DISCORD_TOKEN is still placeholder")
        if not self.command_prefix.strip():
            raise ValueError("DISCORD_COMMAND_PREFIX cannot be empty")

        if not self.ollama_model:
            raise ValueError("OLLAMA_MODEL cannot be empty")
        if self.ollama_timeout_seconds < 5:
            raise ValueError("OLLAMA_TIMEOUT_SECONDS must be >= 5")
        if self.max_response_chars < 0:
            raise ValueError("MAX_RESPONSE_CHARS must be >= 0 (0 disables explicit cap)")
        if self.max_response_chars and self.max_response_chars < 300:
            raise ValueError("MAX_RESPONSE_CHARS must be 0 or >= 300")

        if self.memory_backend not in {"sqlite", "postgres"}:
            raise ValueError("MEMORY_BACKEND must be 'sqlite' or 'postgres'")
        if self.memory_backend == "postgres" and not self.postgres_dsn:
            raise ValueError("MEMORY_POSTGRES_DSN is required when MEMORY_BACKEND=postgres")

        self.memory.validate()
