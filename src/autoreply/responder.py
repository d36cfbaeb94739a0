"""Answer generation for the auto-responder.

``Responder`` is the narrow capability the dispatcher depends on. The bundled
implementation calls the Anthropic Messages API; ``ask_stream`` does not use a
streaming protocol -- it splits the finished answer into word chunks and hands
them to a callback, so the transport can reveal the reply progressively.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from autoreply.config import ResponderConfig

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str, str], None]


class Responder(Protocol):
    """Anything that can answer a prompt given prior turns."""

    def ask(self, prompt: str, history: Sequence[dict[str, str]]) -> str: ...

    def ask_stream(
        self,
        prompt: str,
        history: Sequence[dict[str, str]],
        on_chunk: ChunkCallback,
    ) -> str: ...


def deliver_in_chunks(
    answer: str,
    on_chunk: ChunkCallback,
    words_per_chunk: int = 8,
    delay_s: float = 0.05,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Feed ``answer`` to ``on_chunk`` every ``words_per_chunk`` words.

    ``on_chunk`` receives the new piece and everything delivered so far.
    Returns the full text.
    """
    if not answer:
        return answer

    words = answer.split(" ")
    step = max(1, words_per_chunk)
    delivered = ""
    for start in range(0, len(words), step):
        piece = " ".join(words[start : start + step])
        if start + step < len(words):
            piece += " "
        delivered += piece
        on_chunk(piece, delivered)
        if delay_s > 0:
            sleep(delay_s)
    return delivered


def _merge_consecutive_roles(
    messages: list[dict[str, str]],
) -> list[dict[str, str]]:
    """Merge consecutive messages with the same role.

    The Anthropic API requires alternating user/assistant roles.
    Consecutive same-role messages are joined with newlines.
    """
    if not messages:
        return []

    merged: list[dict[str, str]] = [messages[0].copy()]
    for msg in messages[1:]:
        if msg["role"] == merged[-1]["role"]:
            merged[-1]["content"] += "\n" + msg["content"]
        else:
            merged.append(msg.copy())
    return merged


def build_messages(
    prompt: str, history: Sequence[dict[str, str]]
) -> list[dict[str, str]]:
    """Turn prior turns plus the new prompt into an API message list."""
    messages = [
        {"role": m["role"], "content": m["content"]}
        for m in history
        if m.get("content")
    ]
    messages.append({"role": "user", "content": prompt})
    messages = _merge_consecutive_roles(messages)

    # Ensure conversation starts with user
    while messages and messages[0]["role"] != "user":
        messages = messages[1:]
    return messages


@dataclass
class AnthropicResponder:
    """Responder backed by the Anthropic Messages API.

    Args:
        api_key: Anthropic API key.
        config: Model, prompt, and chunking settings.
        client: Optional pre-built anthropic.Anthropic (for testing).
    """

    api_key: str
    config: ResponderConfig = field(default_factory=ResponderConfig)
    client: Any = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.client is None:
            import anthropic

            self.client = anthropic.Anthropic(api_key=self.api_key)

    def ask(self, prompt: str, history: Sequence[dict[str, str]]) -> str:
        """Return the model's answer. API errors propagate to the caller."""
        response = self.client.messages.create(
            model=self.config.model,
            max_tokens=self.config.max_response_tokens,
            system=self.config.system_prompt,
            messages=build_messages(prompt, history),
        )
        # Extract text from response content blocks
        parts = []
        for block in response.content:
            if hasattr(block, "text"):
                parts.append(block.text)
        if not parts:
            logger.warning("Model returned no text blocks")
        return "\n".join(parts)

    def ask_stream(
        self,
        prompt: str,
        history: Sequence[dict[str, str]],
        on_chunk: ChunkCallback,
    ) -> str:
        answer = self.ask(prompt, history)
        return deliver_in_chunks(
            answer,
            on_chunk,
            words_per_chunk=self.config.words_per_chunk,
            delay_s=self.config.chunk_delay_s,
        )
