from __future__ import annotations

from typing import Any, Iterable

from .json_loader import load_prompt_json

_DEFAULTS: dict[str, Any] = {
    "layered_context_header": "[Discord Layered Memory Context]",
    "user_profile_header": "User Profile:",
    "battle_tag_line_template": "- BattleTag: {battle_tag}",
    "aliases_line_template": "- Aliases: {aliases}",
    "characters_line_template": "- WoW Characters (this guild): {characters}",
    "scope_headers": {
        "guild": "Guild Context:",
        "channel": "Channel Context:",
        "thread": "Thread Context:",
    },
    "topics_line_template": "Topics: {topics}",
    "reply_context_template": "[Reply Context] {content}",
    "third_party_reply_context_template": (
        "[Third-party Reply Context from {author}]\n"
        "The current speaker is replying to a message written by {author}, not by themselves. "
        "Use it as topical context only. Character names, realms, classes or preferences in it belong to {author}; "
        "do not attribute them to the current speaker unless they confirm them explicitly.\n"
        "Quoted message: {content}"
    ),
}


def _cfg() -> dict[str, Any]:
    return load_prompt_json("memory.json", _DEFAULTS)


def _template(cfg: dict[str, Any], key: str) -> str:
    return str(cfg.get(key, _DEFAULTS[key]))


def format_character(name: str, realm: str, region: str, extras: Iterable[str | None]) -> str:
    details = ", ".join(item for item in extras if item)
    label = f"{name} ({details})" if details else name
    return f"{label} - {region}-{realm}"


def build_user_profile_lines(aliases: list[str], characters: list[str], battle_tag: str | None) -> list[str]:
    if not (aliases or characters or battle_tag):
        return []
    cfg = _cfg()
    lines = [_template(cfg, "user_profile_header")]
    if battle_tag:
        lines.append(_template(cfg, "battle_tag_line_template").format(battle_tag=battle_tag))
    if aliases:
        lines.append(_template(cfg, "aliases_line_template").format(aliases=", ".join(aliases)))
    if characters:
        lines.append(_template(cfg, "characters_line_template").format(characters="; ".join(characters)))
    return lines


def build_scope_lines(scope_type: str, rolling_summary: str, topics: list[str]) -> list[str]:
    if not (rolling_summary or topics):
        return []
    cfg = _cfg()
    raw_headers = cfg.get("scope_headers")
    headers = raw_headers if isinstance(raw_headers, dict) else _DEFAULTS["scope_headers"]
    lines = [str(headers.get(scope_type, _DEFAULTS["scope_headers"][scope_type]))]
    if rolling_summary:
        lines.append(rolling_summary)
    if topics:
        lines.append(_template(cfg, "topics_line_template").format(topics=", ".join(topics)))
    return lines


def build_layered_context(sections: list[list[str]]) -> str:
    body = [line for section in sections for line in section]
    if not body:
        return ""
    return "\n".join([_template(_cfg(), "layered_context_header"), *body]).strip()


def build_reply_context(content: str) -> str:
    return _template(_cfg(), "reply_context_template").format(content=content)


def build_third_party_reply_context(author: str, content: str) -> str:
    return _template(_cfg(), "third_party_reply_context_template").format(author=author, content=content)
