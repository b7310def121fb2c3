from __future__ import annotations

from typing import Any

from .json_loader import load_prompt_json

_DEFAULTS: dict[str, Any] = {
    "system_core_prompt_lines": [
        "You are a helpful World of Warcraft character assistant for a Discord community.",
        "Help players with their characters, gear and Best-in-Slot (BiS) choices.",
        "Always ask for both character name and realm if they are not provided; default to the US region.",
        "Before recommending gear, make sure you know the player's primary game mode (mythic+, raid, pvp).",
        "Before discussing BiS gear, determine the role: tank, healing or dps.",
        "Only recommend items that are relevant to the current expansion and valid for the item slot.",
        "Present information in a clear, organized manner and keep Discord formatting readable.",
    ],
    "memory_usage_rule": (
        "Layered memory rule: the memory context describes this speaker, this server, this channel and this thread. "
        "Use it for continuity, but never treat facts from other people as facts about the current speaker."
    ),
    "fallback_reply": "Sorry, I encountered an error while processing your message.",
}


def _cfg() -> dict[str, Any]:
    return load_prompt_json("dialogue.json", _DEFAULTS)


def build_system_core_prompt(override: str = "") -> str:
    cfg = _cfg()
    text = override.strip()
    if not text:
        lines = cfg.get("system_core_prompt_lines") or _DEFAULTS["system_core_prompt_lines"]
        text = "\n".join(str(line).strip() for line in lines if str(line).strip())
    rule = str(cfg.get("memory_usage_rule", _DEFAULTS["memory_usage_rule"])).strip()
    return "\n\n".join(part for part in (text, rule) if part)


def fallback_reply() -> str:
    return str(_cfg().get("fallback_reply", _DEFAULTS["fallback_reply"]))
