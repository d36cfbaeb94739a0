"""Plain-text helpers for fitting replies into Slack messages.

Pure functions with no Slack client calls, so the transport can stay focused
on events and the size rules can be tested on their own.
"""

from __future__ import annotations

# Slack rejects messages much longer than ~4000 chars
MAX_MESSAGE_LEN = 3900


def _cut_index(text: str, limit: int) -> int:
    """Where to break ``text`` so the head fits in ``limit`` characters.

    Prefers the last newline, then the last space, and only cuts mid-word
    when the head contains neither.
    """
    for sep in ("\n", " "):
        idx = text.rfind(sep, 0, limit)
        if idx > 0:
            return idx
    return limit


def split_message(text: str, max_len: int = MAX_MESSAGE_LEN) -> list[str]:
    """Split ``text`` into chunks of at most ``max_len`` characters.

    Chunks break on line or word boundaries where possible. The separator at
    each break is dropped, so a chunk never starts with whitespace.
    """
    chunks: list[str] = []
    rest = text
    while len(rest) > max_len:
        cut = _cut_index(rest, max_len)
        chunks.append(rest[:cut])
        rest = rest[cut:].lstrip()
    if rest or not chunks:
        chunks.append(rest)
    return chunks


def truncate_message(text: str, max_len: int = MAX_MESSAGE_LEN) -> str:
    """First chunk of ``text``, for in-place updates that cannot add messages."""
    return split_message(text, max_len)[0]
