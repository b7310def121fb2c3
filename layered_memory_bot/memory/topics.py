from __future__ import annotations

import re

CLASS_TOPICS: tuple[str, ...] = (
    "rogue",
    "mage",
    "warrior",
    "hunter",
    "priest",
    "warlock",
    "shaman",
    "druid",
    "paladin",
    "monk",
    "demon hunter",
    "evoker",
    "death knight",
)

MODE_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("mythic+", re.compile(r"(mythic\+|m\+)", re.IGNORECASE)),
    ("raid", re.compile(r"\braids?\b", re.IGNORECASE)),
    ("pvp", re.compile(r"\bpvp\b", re.IGNORECASE)),
    ("bis", re.compile(r"\bbis\b", re.IGNORECASE)),
)


def extract_topics(text: str) -> list[str]:
    """Return the vocabulary tags literally present in `text`, each once, in vocabulary order."""
    topics: list[str] = []
    lowered = (text or "").lower()
    for topic in CLASS_TOPICS:
        if topic in lowered and topic not in topics:
            topics.append(topic)
    for topic, pattern in MODE_PATTERNS:
        if pattern.search(text or "") and topic not in topics:
            topics.append(topic)
    return topics
