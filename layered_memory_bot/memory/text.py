from __future__ import annotations

import re

_THINK_BLOCK_RE = re.compile(r"<think>.*?</think>", re.IGNORECASE | re.DOTALL)
_BLANK_RUN_RE = re.compile(r"\n{3,}")


def strip_think_blocks(text: str) -> str:
    return _THINK_BLOCK_RE.sub("", str(text or "")).strip()


def append_summary(previous: str | None, user_text: str, assistant_text: str | None, max_chars: int) -> str:
    """Append one turn to a rolling summary and keep only the newest `max_chars` characters."""
    parts = [
        previous or "",
        f"User: {user_text}".strip(),
        f"Assistant: {assistant_text}" if assistant_text else "",
    ]
    combined = "\n".join(part for part in parts if part)
    collapsed = _BLANK_RUN_RE.sub("\n\n", combined)
    limit = max(1, int(max_chars))
    if len(collapsed) <= limit:
        return collapsed
    return collapsed[len(collapsed) - limit :]
