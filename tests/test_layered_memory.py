from __future__ import annotations

import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from layered_memory_bot.config import MemorySettings  # noqa: E402
from layered_memory_bot.memory.layered import LayeredMemory  # noqa: E402
from layered_memory_bot.memory.models import (  # noqa: E402
    UNSET,
    CharacterBinding,
    Resource,
    format_timestamp,
    parse_timestamp,
    utc_now,
)
from layered_memory_bot.memory.storage.utils import merge_metadata  # noqa: E402
from layered_memory_bot.memory.store import MemoryStore  # noqa: E402


class _FakeMessage:
    def __init__(
        self,
        *,
        user_id: str = "U123",
        guild_id: str | None = "G999",
        channel_id: str = "C777",
        thread: bool = False,
        content: str = "hello",
    ) -> None:
        self.content = content
        self.author = SimpleNamespace(id=user_id, display_name=f"name-{user_id}")
        self.guild = SimpleNamespace(id=guild_id) if guild_id else None
        self.channel = SimpleNamespace(id=channel_id, is_thread=lambda: thread)
        self.reference = None

    async def fetch_reference(self) -> Any:
        raise LookupError("no reference")


class _InMemoryStore:
    def __init__(self) -> None:
        self.rows: dict[str, Resource] = {}

    async def get_resource_by_id(self, resource_id: str) -> Resource | None:
        await asyncio.sleep(0)
        row = self.rows.get(resource_id)
        if row is None:
            return None
        return Resource(id=row.id, working_memory=row.working_memory, metadata=dict(row.metadata))

    async def update_resource(
        self,
        resource_id: str,
        *,
        working_memory: Any = UNSET,
        metadata: dict[str, Any] | None = None,
    ) -> Resource:
        await asyncio.sleep(0)
        existing = self.rows.get(resource_id)
        next_working = existing.working_memory if existing and working_memory is UNSET else working_memory
        if next_working is UNSET:
            next_working = None
        row = Resource(
            id=resource_id,
            working_memory=next_working,
            metadata=merge_metadata(existing.metadata if existing else {}, metadata),
        )
        self.rows[resource_id] = row
        return row


class _FailingReadStore(_InMemoryStore):
    async def get_resource_by_id(self, resource_id: str) -> Resource | None:
        raise RuntimeError("store offline")


class _GuildWriteFailingStore(_InMemoryStore):
    async def update_resource(self, resource_id: str, **kwargs: Any) -> Resource:
        if resource_id.startswith("discord:guild:"):
            raise RuntimeError("write rejected")
        return await super().update_resource(resource_id, **kwargs)


def _scope_doc(scope_type: str, summary: str, topics: list[str], expires_in: timedelta) -> dict[str, Any]:
    return {
        "type": scope_type,
        "rollingSummary": summary,
        "topics": topics,
        "expiresAt": format_timestamp(utc_now() + expires_in),
        "updatedAt": format_timestamp(utc_now()),
    }


async def _seed_example_user(store: Any, memory: LayeredMemory) -> None:
    await memory.profiles.add_alias("U123", "Bez", "G999")
    await memory.profiles.bind_character("U123", "G999", CharacterBinding("Bezvoker", "korgath", "US"))
    await store.update_resource(
        "discord:guild:G999",
        metadata=_scope_doc("guild", "Guild sum", ["raid"], timedelta(hours=1)),
    )
    await store.update_resource(
        "discord:channel:C777",
        metadata=_scope_doc("channel", "Channel sum", ["mythic+"], timedelta(hours=1)),
    )


def test_prepare_assembles_profile_guild_and_channel_context(tmp_path: Path) -> None:
    async def _run() -> Any:
        store = MemoryStore(tmp_path / "memory.db")
        await store.init()
        memory = LayeredMemory(store, MemorySettings())
        await _seed_example_user(store, memory)
        return await memory.prepare(_FakeMessage())

    prepared = asyncio.run(_run())

    assert prepared.resource_key == "discord:user:U123"
    for part in ("G999", "C777", "U123"):
        assert part in prepared.thread_key
    assert prepared.context[0]["role"] == "system"
    system_text = prepared.context[0]["content"]
    for expected in ("Bez", "WoW Characters", "Guild Context", "Channel Context", "mythic+", "raid"):
        assert expected in system_text
    assert "Thread Context" not in system_text


def test_remember_appends_turn_and_topics_to_guild_and_channel(tmp_path: Path) -> None:
    async def _run() -> tuple[Resource | None, Resource | None]:
        store = MemoryStore(tmp_path / "memory.db")
        await store.init()
        memory = LayeredMemory(store, MemorySettings())
        await _seed_example_user(store, memory)
        await memory.remember(
            _FakeMessage(),
            "I prefer Mythic+ and BiS for my rogue",
            "Sure, here are BiS pointers.",
        )
        return (
            await store.get_resource_by_id("discord:guild:G999"),
            await store.get_resource_by_id("discord:channel:C777"),
        )

    guild, channel = asyncio.run(_run())

    for resource in (guild, channel):
        assert resource is not None
        summary = resource.metadata["rollingSummary"]
        assert "User: I prefer Mythic+ and BiS for my rogue" in summary
        assert "Assistant: Sure, here are BiS pointers." in summary
        for topic in ("mythic+", "bis", "rogue"):
            assert topic in resource.metadata["topics"]
    assert guild.metadata["rollingSummary"].startswith("Guild sum\n")
    assert guild.metadata["topics"][0] == "raid"


def test_summary_cap_keeps_newest_tail(tmp_path: Path) -> None:
    async def _run() -> Resource | None:
        store = MemoryStore(tmp_path / "memory.db")
        await store.init()
        memory = LayeredMemory(store, MemorySettings(summary_max_chars=50))
        await memory.remember(_FakeMessage(), "u" * 200, "a" * 200)
        return await store.get_resource_by_id("discord:channel:C777")

    channel = asyncio.run(_run())

    assert channel is not None
    summary = channel.metadata["rollingSummary"]
    assert len(summary) <= 50
    assert summary == "a" * 50


def test_channel_ttl_sets_expiry_relative_to_now(tmp_path: Path) -> None:
    async def _run() -> Resource | None:
        store = MemoryStore(tmp_path / "memory.db")
        await store.init()
        memory = LayeredMemory(store, MemorySettings(channel_ttl_minutes=1))
        await memory.remember(_FakeMessage(), "hi", "hello")
        return await store.get_resource_by_id("discord:channel:C777")

    channel = asyncio.run(_run())

    assert channel is not None
    expires_at = parse_timestamp(channel.metadata["expiresAt"])
    assert expires_at is not None
    delta = (expires_at - utc_now()).total_seconds()
    assert 30 <= delta <= 180


def test_expired_scope_is_left_out_of_context_but_kept_in_store(tmp_path: Path) -> None:
    async def _run() -> tuple[Any, Resource | None]:
        store = MemoryStore(tmp_path / "memory.db")
        await store.init()
        await store.update_resource(
            "discord:channel:C777",
            metadata=_scope_doc("channel", "stale", ["raid"], timedelta(seconds=-10)),
        )
        memory = LayeredMemory(store, MemorySettings())
        prepared = await memory.prepare(_FakeMessage())
        return prepared, await store.get_resource_by_id("discord:channel:C777")

    prepared, row = asyncio.run(_run())

    assert all("stale" not in entry["content"] for entry in prepared.context)
    assert row is not None
    assert row.metadata["rollingSummary"] == "stale"


def test_expired_scope_restarts_summary_on_next_save() -> None:
    store = _InMemoryStore()
    store.rows["discord:channel:C777"] = Resource(
        id="discord:channel:C777",
        metadata=_scope_doc("channel", "stale", ["raid"], timedelta(seconds=-10)),
    )
    memory = LayeredMemory(store, MemorySettings())

    asyncio.run(memory.remember(_FakeMessage(guild_id=None), "fresh question", "fresh answer"))

    meta = store.rows["discord:channel:C777"].metadata
    assert meta["rollingSummary"] == "User: fresh question\nAssistant: fresh answer"
    assert meta["topics"] == []


def test_scope_document_with_wrong_tag_is_ignored() -> None:
    store = _InMemoryStore()
    store.rows["discord:channel:C777"] = Resource(
        id="discord:channel:C777",
        metadata=_scope_doc("guild", "wrong tag", [], timedelta(hours=1)),
    )
    memory = LayeredMemory(store, MemorySettings())

    prepared = asyncio.run(memory.prepare(_FakeMessage(guild_id=None)))

    assert prepared.context == []


def test_thread_messages_update_channel_and_thread_scopes() -> None:
    store = _InMemoryStore()
    memory = LayeredMemory(store, MemorySettings())
    message = _FakeMessage(channel_id="T55", thread=True)

    async def _run() -> Any:
        await memory.remember(message, "raid tonight?", "Yes, at 8.")
        return await memory.prepare(message)

    prepared = asyncio.run(_run())

    assert set(store.rows) == {"discord:guild:G999", "discord:channel:T55", "discord:thread:T55"}
    assert store.rows["discord:thread:T55"].metadata["type"] == "thread"
    assert "Thread Context:" in prepared.context[0]["content"]


def test_direct_messages_have_no_guild_scope() -> None:
    store = _InMemoryStore()
    memory = LayeredMemory(store, MemorySettings())
    message = _FakeMessage(guild_id=None, channel_id="D1")

    async def _run() -> Any:
        await memory.remember(message, "hello", "hi")
        return await memory.prepare(message)

    prepared = asyncio.run(_run())

    assert set(store.rows) == {"discord:channel:D1"}
    assert prepared.thread_key == "discord:dm:D1:u:U123"
    assert "Guild Context" not in prepared.context[0]["content"]


def test_think_blocks_never_reach_stored_summary() -> None:
    store = _InMemoryStore()
    memory = LayeredMemory(store, MemorySettings())

    asyncio.run(
        memory.remember(
            _FakeMessage(guild_id=None),
            "Which trinket?",
            "<think>internal reasoning about the priest</think>Use the on-use one.",
        )
    )

    meta = store.rows["discord:channel:C777"].metadata
    assert "internal reasoning" not in meta["rollingSummary"]
    assert meta["rollingSummary"].endswith("Assistant: Use the on-use one.")
    assert "priest" not in meta["topics"]


def test_failing_store_reads_degrade_to_empty_context() -> None:
    memory = LayeredMemory(_FailingReadStore(), MemorySettings())

    prepared = asyncio.run(memory.prepare(_FakeMessage()))

    assert prepared.resource_key == "discord:user:U123"
    assert prepared.context == []


def test_scope_write_failure_is_logged_and_other_scopes_still_saved(caplog: pytest.LogCaptureFixture) -> None:
    store = _GuildWriteFailingStore()
    memory = LayeredMemory(store, MemorySettings())

    with caplog.at_level(logging.ERROR, logger="layered_memory_bot"):
        asyncio.run(memory.remember(_FakeMessage(), "hi", "hello"))

    assert "discord:channel:C777" in store.rows
    assert "discord:guild:G999" not in store.rows
    assert any("guild memory" in record.getMessage() and "G999" in record.getMessage() for record in caplog.records)


def test_concurrent_turns_on_one_scope_keep_both_entries() -> None:
    store = _InMemoryStore()
    memory = LayeredMemory(store, MemorySettings())
    message = _FakeMessage(guild_id=None)

    async def _run() -> None:
        await asyncio.gather(
            memory.remember(message, "first question", "first answer"),
            memory.remember(message, "second question", "second answer"),
        )

    asyncio.run(_run())

    summary = store.rows["discord:channel:C777"].metadata["rollingSummary"]
    assert "first question" in summary
    assert "second question" in summary


def test_profile_context_only_shows_characters_for_current_guild() -> None:
    store = _InMemoryStore()
    memory = LayeredMemory(store, MemorySettings())

    async def _run() -> tuple[Any, Any]:
        await memory.profiles.bind_character("U123", "G1", CharacterBinding("Alpha", "area-52", "US"))
        await memory.profiles.bind_character("U123", "G2", CharacterBinding("Beta", "draenor", "EU"))
        first = await memory.prepare(_FakeMessage(guild_id="G1"))
        second = await memory.prepare(_FakeMessage(guild_id="G2"))
        return first, second

    first, second = asyncio.run(_run())

    assert "Alpha - US-area-52" in first.context[0]["content"]
    assert "Beta" not in first.context[0]["content"]
    assert "Beta - EU-draenor" in second.context[0]["content"]


def test_write_locks_are_released_after_each_turn() -> None:
    store = _InMemoryStore()
    memory = LayeredMemory(store, MemorySettings())

    async def _run() -> None:
        for index in range(300):
            await memory.remember(_FakeMessage(guild_id=None, channel_id=f"D{index}"), "hi", "hello")
        shared = _FakeMessage(guild_id=None, channel_id="busy")
        await asyncio.gather(*(memory.remember(shared, f"turn {n}", "ok") for n in range(5)))

    asyncio.run(_run())

    assert len(store.rows) == 301
    assert memory.adapter._locks == {}
    assert memory.adapter._lock_users == {}
    assert store.rows["discord:channel:busy"].metadata["rollingSummary"].count("User: turn") == 5


def test_each_scope_gets_its_own_ttl() -> None:
    store = _InMemoryStore()
    settings = MemorySettings(guild_ttl_minutes=60, channel_ttl_minutes=1, thread_ttl_minutes=10)
    memory = LayeredMemory(store, settings)

    asyncio.run(memory.remember(_FakeMessage(guild_id="G1", channel_id="T1", thread=True), "hi", "hello"))

    now = utc_now()
    expected = {"discord:guild:G1": 60, "discord:channel:T1": 1, "discord:thread:T1": 10}
    for resource_id, minutes in expected.items():
        expires_at = parse_timestamp(store.rows[resource_id].metadata["expiresAt"])
        assert expires_at is not None
        delta = (expires_at - now).total_seconds()
        assert minutes * 60 - 30 <= delta <= minutes * 60
