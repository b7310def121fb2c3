from __future__ import annotations

import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from layered_memory_bot.config import MemorySettings, Settings  # noqa: E402


_MANAGED_ENV = (
    "DISCORD_TOKEN",
    "DISCORD_BOT_TOKEN",
    "AUTO_REPLY_CHANNEL_IDS",
    "MEMORY_BACKEND",
    "MEMORY_POSTGRES_DSN",
    "MEMORY_GUILD_TTL_MINUTES",
    "MEMORY_CHANNEL_TTL_MINUTES",
    "MEMORY_THREAD_TTL_MINUTES",
    "MEMORY_SCOPE_SUMMARY_MAX_CHARS",
    "MEMORY_SERIALIZE_WRITES",
    "MAX_RESPONSE_CHARS",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _MANAGED_ENV:
        monkeypatch.delenv(name, raising=False)


def test_memory_settings_defaults() -> None:
    settings = MemorySettings.from_env()

    assert settings.ttl_minutes("guild") == 10080
    assert settings.ttl_minutes("channel") == 240
    assert settings.ttl_minutes("thread") == 240
    assert settings.summary_max_chars == 4000
    assert settings.serialize_writes is True


def test_memory_settings_read_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MEMORY_CHANNEL_TTL_MINUTES", "1")
    monkeypatch.setenv("MEMORY_SCOPE_SUMMARY_MAX_CHARS", " 50 ")
    monkeypatch.setenv("MEMORY_SERIALIZE_WRITES", "off")
    monkeypatch.setenv("MEMORY_GUILD_TTL_MINUTES", "not-a-number")

    settings = MemorySettings.from_env()

    assert settings.channel_ttl_minutes == 1
    assert settings.summary_max_chars == 50
    assert settings.serialize_writes is False
    assert settings.guild_ttl_minutes == 10080


def test_memory_settings_validation() -> None:
    with pytest.raises(ValueError, match="MEMORY_THREAD_TTL_MINUTES"):
        MemorySettings(thread_ttl_minutes=0).validate()
    with pytest.raises(ValueError, match="MEMORY_SCOPE_SUMMARY_MAX_CHARS"):
        MemorySettings(summary_max_chars=0).validate()
    with pytest.raises(ValueError):
        MemorySettings().ttl_minutes("user")


def test_settings_parse_token_and_channel_ids(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DISCORD_BOT_TOKEN", " Bot abc.def ")
    monkeypatch.setenv("AUTO_REPLY_CHANNEL_IDS", "111, 222,,oops")

    settings = Settings.from_env()

    assert settings.discord_token == "abc.def"
    assert settings.auto_reply_channel_ids == {111, 222}
    assert settings.memory_backend == "sqlite"
    settings.validate()


def test_settings_validation_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    with pytest.raises(ValueError, match="DISCORD_TOKEN"):
        Settings.from_env().validate()

    monkeypatch.setenv("DISCORD_TOKEN", "token")
    monkeypatch.setenv("MEMORY_BACKEND", "Postgres")
    with pytest.raises(ValueError, match="MEMORY_POSTGRES_DSN"):
        Settings.from_env().validate()

    monkeypatch.setenv("MEMORY_BACKEND", "sqlite")
    monkeypatch.setenv("MAX_RESPONSE_CHARS", "100")
    with pytest.raises(ValueError, match="MAX_RESPONSE_CHARS"):
        Settings.from_env().validate()

    monkeypatch.setenv("MAX_RESPONSE_CHARS", "0")
    monkeypatch.setenv("MEMORY_CHANNEL_TTL_MINUTES", "0")
    with pytest.raises(ValueError, match="MEMORY_CHANNEL_TTL_MINUTES"):
        Settings.from_env().validate()
