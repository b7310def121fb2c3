from __future__ import annotations

import re


def collapse_spaces(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:limit]

    window = text[:limit]
    cut = max(window.rfind(". "), window.rfind("! "), window.rfind("? "), window.rfind("; "))
    if cut >= int(limit * 0.62):
        return window[: cut + 1].strip()

    cut = window.rfind(" ")
    if cut >= int(limit * 0.7):
        return window[:cut].strip()

    return (window[: limit - 3].rstrip() + "...").strip()


def _split_long_line(line: str, limit: int) -> list[str]:
    pieces: list[str] = []
    rest = line
    while len(rest) > limit:
        cut = rest.rfind(" ", 0, limit)
        cut = cut + 1 if cut > 0 else limit
        pieces.append(rest[:cut])
        rest = rest[cut:]
    if rest:
        pieces.append(rest)
    return pieces


def chunk_text(text: str, limit: int = 1900) -> list[str]:
    """Split a reply into Discord-sized messages, breaking on lines, then spaces."""
    if len(text) <= limit:
        return [text]
    chunks: list[str] = []
    buffer = ""
    for line in text.splitlines(keepends=True):
        for piece in _split_long_line(line, limit):
            if buffer and len(buffer) + len(piece) > limit:
                chunks.append(buffer)
                buffer = ""
            buffer += piece
    if buffer:
        chunks.append(buffer)
    return chunks


def split_command_args(raw: str) -> list[str]:
    """Split command arguments on whitespace, keeping "double quoted" names together."""
    return [quoted or bare for quoted, bare in re.findall(r'"([^"]*)"|(\S+)', raw)]
