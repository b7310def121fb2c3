from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Literal

ScopeType = Literal["guild", "channel", "thread"]
SCOPE_TYPES: tuple[str, ...] = ("guild", "channel", "thread")
USER_TYPE = "user"

# Marks "leave the stored value untouched" for optional update arguments.
UNSET: Any = object()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: object) -> datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def dedupe(items: Iterable[Any], key=None) -> list[Any]:
    """Drop later duplicates, keeping first occurrences in their original order."""
    seen: set[Any] = set()
    out: list[Any] = []
    for item in items:
        marker = key(item) if key is not None else item
        if marker in seen:
            continue
        seen.add(marker)
        out.append(item)
    return out


def _string_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


@dataclass(slots=True)
class Resource:
    id: str
    working_memory: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CharacterBinding:
    name: str
    realm: str
    region: str
    character_class: str | None = None
    spec: str | None = None
    role: str | None = None

    @property
    def key(self) -> str:
        return f"{self.name}|{self.realm}|{self.region}"

    @classmethod
    def from_document(cls, doc: object) -> "CharacterBinding | None":
        if not isinstance(doc, dict):
            return None
        name = doc.get("name")
        realm = doc.get("realm")
        region = doc.get("region")
        if not all(isinstance(v, str) and v.strip() for v in (name, realm, region)):
            return None

        def _optional(key: str) -> str | None:
            value = doc.get(key)
            return value if isinstance(value, str) and value.strip() else None

        return cls(
            name=name,
            realm=realm,
            region=region,
            character_class=_optional("class"),
            spec=_optional("spec"),
            role=_optional("role"),
        )

    def to_document(self) -> dict[str, str]:
        doc = {"name": self.name, "realm": self.realm, "region": self.region}
        if self.character_class:
            doc["class"] = self.character_class
        if self.spec:
            doc["spec"] = self.spec
        if self.role:
            doc["role"] = self.role
        return doc


@dataclass(slots=True)
class UserProfileMetadata:
    aliases: list[str] = field(default_factory=list)
    aliases_by_guild: dict[str, list[str]] = field(default_factory=dict)
    characters_by_guild: dict[str, list[CharacterBinding]] = field(default_factory=dict)
    battle_tag: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_document(cls, doc: object) -> "UserProfileMetadata | None":
        if not isinstance(doc, dict) or doc.get("type") != USER_TYPE:
            return None

        aliases_by_guild: dict[str, list[str]] = {}
        raw_guild_aliases = doc.get("aliasesByGuild")
        if isinstance(raw_guild_aliases, dict):
            for guild_id, aliases in raw_guild_aliases.items():
                aliases_by_guild[str(guild_id)] = dedupe(_string_list(aliases))

        characters_by_guild: dict[str, list[CharacterBinding]] = {}
        raw_characters = doc.get("charactersByGuild")
        if isinstance(raw_characters, dict):
            for guild_id, bindings in raw_characters.items():
                if not isinstance(bindings, list):
                    continue
                parsed = [CharacterBinding.from_document(item) for item in bindings]
                characters_by_guild[str(guild_id)] = dedupe(
                    (item for item in parsed if item is not None),
                    key=lambda c: c.key,
                )

        battle_tag = doc.get("blizzardBattleTag")
        updated_at = doc.get("updatedAt")
        return cls(
            aliases=dedupe(_string_list(doc.get("aliases"))),
            aliases_by_guild=aliases_by_guild,
            characters_by_guild=characters_by_guild,
            battle_tag=battle_tag if isinstance(battle_tag, str) and battle_tag.strip() else None,
            updated_at=updated_at if isinstance(updated_at, str) else None,
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "type": USER_TYPE,
            "aliases": list(self.aliases),
            "aliasesByGuild": {gid: list(items) for gid, items in self.aliases_by_guild.items()},
            "charactersByGuild": {
                gid: [binding.to_document() for binding in items]
                for gid, items in self.characters_by_guild.items()
            },
            "blizzardBattleTag": self.battle_tag,
            "updatedAt": self.updated_at,
        }


@dataclass(slots=True)
class ScopeMemoryMetadata:
    type: str
    rolling_summary: str = ""
    topics: list[str] = field(default_factory=list)
    expires_at: datetime | None = None
    updated_at: str | None = None

    @classmethod
    def from_document(cls, doc: object, expected_type: str) -> "ScopeMemoryMetadata | None":
        """Parse a stored scope document, or return None when it does not describe `expected_type`."""
        if not isinstance(doc, dict) or doc.get("type") != expected_type:
            return None

        expires_at: datetime | None = None
        raw_expires = doc.get("expiresAt")
        if raw_expires is not None:
            expires_at = parse_timestamp(raw_expires)
            if expires_at is None:
                return None

        summary = doc.get("rollingSummary")
        updated_at = doc.get("updatedAt")
        return cls(
            type=expected_type,
            rolling_summary=summary if isinstance(summary, str) else "",
            topics=dedupe(_string_list(doc.get("topics"))),
            expires_at=expires_at,
            updated_at=updated_at if isinstance(updated_at, str) else None,
        )

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= now

    def to_document(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "rollingSummary": self.rolling_summary,
            "topics": list(self.topics),
            "expiresAt": format_timestamp(self.expires_at) if self.expires_at is not None else None,
            "updatedAt": self.updated_at,
        }


@dataclass(slots=True)
class UserProfile:
    aliases: list[str] = field(default_factory=list)
    characters: list[CharacterBinding] = field(default_factory=list)
    battle_tag: str | None = None

    def is_empty(self) -> bool:
        return not (self.aliases or self.characters or self.battle_tag)


@dataclass(slots=True)
class ScopeSnapshot:
    guild: ScopeMemoryMetadata | None = None
    channel: ScopeMemoryMetadata | None = None
    thread: ScopeMemoryMetadata | None = None


@dataclass(slots=True)
class PreparedMemory:
    resource_key: str
    thread_key: str
    context: list[dict[str, str]] = field(default_factory=list)


def user_resource_id(user_id: str) -> str:
    return f"discord:user:{user_id}"


def scope_resource_id(scope_type: str, scope_id: str) -> str:
    if scope_type not in SCOPE_TYPES:
        raise ValueError(f"Unknown scope type: {scope_type!r}")
    return f"discord:{scope_type}:{scope_id}"


def per_user_thread_id(guild_id: str | None, channel_id: str, user_id: str) -> str:
    return f"discord:{guild_id or 'dm'}:{channel_id}:u:{user_id}"
