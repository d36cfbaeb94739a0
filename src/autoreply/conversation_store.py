"""Bounded, time-boxed conversation memory per user.

Each user's record keeps at most ``2 * max_exchanges`` messages (oldest
dropped first) and is considered over once it has been idle longer than
``timeout_s``. Expiry is checked lazily on read and eagerly by ``cleanup()``;
both go through :meth:`ConversationStore.is_expired`.

Callers only ever receive copies -- records never leave the store.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import NamedTuple

from autoreply.config import ConversationPolicy

logger = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """One turn of a conversation."""

    role: str
    content: str
    timestamp: float


@dataclass
class ConversationRecord:
    """Ordered message log for a single user."""

    user_id: str
    last_updated: float
    messages: list[Message] = field(default_factory=list)


class ConversationStats(NamedTuple):
    total: int
    active: int
    total_messages: int


class ConversationStore:
    """Per-user conversation history used as generation context.

    Args:
        policy: Size and timeout bounds.
        clock: Time source in seconds (defaults to ``time.time``).
    """

    def __init__(
        self,
        policy: ConversationPolicy | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.policy = policy or ConversationPolicy()
        self._clock = clock
        self._records: dict[str, ConversationRecord] = {}
        self._lock = threading.Lock()

    def is_expired(self, record: ConversationRecord, now: float) -> bool:
        """True once the record has been idle longer than the timeout."""
        return now - record.last_updated > self.policy.timeout_s

    # -- Writes -------------------------------------------------------------

    def append_user(self, user_id: str, content: str) -> None:
        """Append a user turn, creating the record if needed."""
        with self._lock:
            now = self._clock()
            record = self._records.get(user_id)
            if record is None or self.is_expired(record, now):
                record = ConversationRecord(user_id=user_id, last_updated=now)
                self._records[user_id] = record
            self._append(record, ROLE_USER, content, now)

    def append_assistant(self, user_id: str, content: str) -> None:
        """Append an assistant turn to an existing record.

        Without a prior user turn this only logs -- a conversation is never
        started by the assistant.
        """
        with self._lock:
            now = self._clock()
            record = self._live_record(user_id, now)
            if record is None:
                logger.error("No conversation found for user %s", user_id)
                return
            self._append(record, ROLE_ASSISTANT, content, now)

    def _append(
        self, record: ConversationRecord, role: str, content: str, now: float
    ) -> None:
        record.messages.append(Message(role=role, content=content, timestamp=now))
        overflow = len(record.messages) - self.policy.max_messages
        if overflow > 0:
            del record.messages[:overflow]
        record.last_updated = now

    # -- Reads --------------------------------------------------------------

    def _live_record(self, user_id: str, now: float) -> ConversationRecord | None:
        """Return the record if still active, deleting it if expired."""
        record = self._records.get(user_id)
        if record is None:
            return None
        if self.is_expired(record, now):
            del self._records[user_id]
            return None
        return record

    def get_history(self, user_id: str) -> list[dict[str, str]]:
        """Return ``[{role, content}, ...]`` in insertion order.

        An expired conversation is deleted and reported as empty.
        """
        with self._lock:
            record = self._live_record(user_id, self._clock())
            if record is None:
                return []
            return [{"role": m.role, "content": m.content} for m in record.messages]

    def get_full_history(self, user_id: str) -> list[Message]:
        """Like :meth:`get_history` but keeps timestamps."""
        with self._lock:
            record = self._live_record(user_id, self._clock())
            return list(record.messages) if record else []

    def has_active_conversation(self, user_id: str) -> bool:
        with self._lock:
            record = self._records.get(user_id)
            return record is not None and not self.is_expired(record, self._clock())

    def last_message(self, user_id: str) -> Message | None:
        with self._lock:
            record = self._live_record(user_id, self._clock())
            if record is None or not record.messages:
                return None
            return record.messages[-1]

    def stats(self) -> ConversationStats:
        with self._lock:
            now = self._clock()
            active = sum(
                1 for r in self._records.values() if not self.is_expired(r, now)
            )
            total_messages = sum(len(r.messages) for r in self._records.values())
            return ConversationStats(
                total=len(self._records),
                active=active,
                total_messages=total_messages,
            )

    def summary(self, user_id: str) -> str:
        """Short multi-line description of one conversation, for monitoring."""
        with self._lock:
            record = self._records.get(user_id)
            if record is None:
                return "No conversation found"
            now = self._clock()
            idle_s = int(now - record.last_updated)
            status = "Expired" if self.is_expired(record, now) else "Active"
            return (
                f"User: {user_id}\n"
                f"Messages: {len(record.messages)}\n"
                f"Last Updated: {idle_s}s ago\n"
                f"Status: {status}"
            )

    # -- Eviction -----------------------------------------------------------

    def clear(self, user_id: str) -> bool:
        """Drop one user's conversation. Returns whether one existed."""
        with self._lock:
            return self._records.pop(user_id, None) is not None

    def clear_all(self) -> int:
        """Drop every conversation. Returns how many were removed."""
        with self._lock:
            count = len(self._records)
            self._records.clear()
        logger.info("All conversation histories cleared (%d)", count)
        return count

    def cleanup(self) -> int:
        """Delete every expired conversation. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [
                user_id
                for user_id, record in self._records.items()
                if self.is_expired(record, now)
            ]
            for user_id in expired:
                del self._records[user_id]

        if expired:
            logger.info("Cleaned up %d expired conversations", len(expired))
        return len(expired)
