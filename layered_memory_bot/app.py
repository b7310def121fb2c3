from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from pathlib import Path

from .config import Settings
from .discord.client import LayeredMemoryDiscordBot
from .memory.factory import build_memory_store
from .services.ollama_chat_client import OllamaChatClient

logger = logging.getLogger("layered_memory_bot")


def configure_logging() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logging.getLogger("discord.gateway").setLevel(logging.WARNING)


def _is_process_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    return True


def _acquire_instance_lock(lock_path: Path) -> None:
    lock_path.parent.mkdir(parents=True, exist_ok=True)

    if lock_path.exists():
        stale_pid = 0
        with contextlib.suppress(ValueError, OSError):
            stale_pid = int(lock_path.read_text(encoding="utf-8").strip() or "0")
        if stale_pid > 0 and stale_pid != os.getpid() and _is_process_alive(stale_pid):
            raise RuntimeError(f"Bot is already running (pid={stale_pid}). Stop it before starting a new one.")
        with contextlib.suppress(OSError):
            lock_path.unlink()

    lock_path.write_text(str(os.getpid()), encoding="utf-8")


def _release_instance_lock(lock_path: Path) -> None:
    with contextlib.suppress(OSError):
        if lock_path.exists():
            lock_path.unlink()


def build_bot(settings: Settings) -> LayeredMemoryDiscordBot:
    store = build_memory_store(settings)
    llm = OllamaChatClient(
        base_url=settings.ollama_base_url,
        model=settings.ollama_model,
        timeout_seconds=settings.ollama_timeout_seconds,
        temperature=settings.ollama_temperature,
    )
    return LayeredMemoryDiscordBot(settings=settings, store=store, llm=llm)


async def _run_bot(settings: Settings) -> None:
    bot = build_bot(settings)
    try:
        async with bot:
            await bot.start(settings.discord_token)
    finally:
        if not bot.is_closed():
            with contextlib.suppress(Exception):
                await asyncio.wait_for(bot.close(), timeout=10.0)


def main() -> None:
    configure_logging()
    settings = Settings.from_env()
    settings.validate()
    lock_path = settings.sqlite_path.parent / "layered_memory_bot.pid"
    _acquire_instance_lock(lock_path)
    try:
        asyncio.run(_run_bot(settings))
    except KeyboardInterrupt:
        logger.info("Shutdown requested, exiting.")
    finally:
        _release_instance_lock(lock_path)
