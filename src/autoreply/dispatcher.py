"""Inbound message handling for the auto-responder.

Decides whether and how to answer a message:

    admin command? -> service enabled? -> spam check -> remember user turn
    -> ask responder -> remember assistant turn

Transport-agnostic: replies go out through the ``send`` (and optional ``edit``)
callables supplied by the caller. ``handle`` never raises.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, NamedTuple

from autoreply import notices
from autoreply.conversation_store import ConversationStore
from autoreply.durable_flag import DurableFlag
from autoreply.rate_limiter import RateLimiter
from autoreply.responder import Responder

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Outcome constants
# ---------------------------------------------------------------------------

OUTCOME_IGNORED = "ignored"
OUTCOME_ADMIN = "admin"
OUTCOME_DISABLED = "disabled"
OUTCOME_BLOCKED = "blocked"
OUTCOME_COOLDOWN = "cooldown"
OUTCOME_ANSWERED = "answered"
OUTCOME_ERROR = "error"

# Admin commands (matched case-insensitively on the trimmed text)
CMD_ON = "ai on"
CMD_OFF = "ai off"
CMD_STATUS = "ai status"
CMD_CLEAR = "clear history"
CMD_UNBLOCK = "unblock"


class InboundMessage(NamedTuple):
    """A text message from the transport."""

    user_id: str
    text: str


@dataclass
class Dispatcher:
    """Routes inbound messages through the flag, limiter, and memory.

    Args:
        limiter: Spam detector.
        conversations: Per-user context store.
        flag: Persisted enabled/disabled switch.
        responder: Answer generator.
        admin_ids: Identities allowed to issue control commands.
        signature: Optional footer appended to generated answers.
        stream: Deliver answers in chunks when the caller supports edits.
    """

    limiter: RateLimiter
    conversations: ConversationStore
    flag: DurableFlag
    responder: Responder
    admin_ids: tuple[str, ...] = ()
    signature: str = ""
    stream: bool = True
    _admins: set[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._admins = set(self.admin_ids)

    def is_admin(self, user_id: str) -> bool:
        return user_id in self._admins

    def handle(
        self,
        message: InboundMessage,
        send: Callable[[str], Any],
        edit: Callable[[str], Any] | None = None,
    ) -> str:
        """Process one message and return an ``OUTCOME_*`` constant.

        Args:
            message: Sender and text.
            send: Posts a new reply.
            edit: Replaces the text of the last reply posted by ``send``.
                When given (and streaming is on) answers are revealed in chunks.
        """
        user_id = message.user_id
        text = message.text.strip()
        if not text:
            return OUTCOME_IGNORED

        if self.is_admin(user_id):
            reply = self._admin_command(user_id, text)
            if reply is not None:
                send(reply)
                return OUTCOME_ADMIN

        if not self.flag.get():
            logger.info("Auto-reply is OFF. Ignoring message from %s", user_id)
            return OUTCOME_DISABLED

        check = self.limiter.check_and_track(user_id)
        if check.is_spam:
            if check.newly_blocked:
                send(notices.format_block_notice(self.limiter.block_remaining(user_id)))
            else:
                logger.debug("Dropping message from blocked user %s", user_id)
            return OUTCOME_BLOCKED

        if check.should_wait:
            logger.info(
                "User %s sending messages too fast (wait %.1fs). Ignoring message.",
                user_id,
                check.wait_s,
            )
            return OUTCOME_COOLDOWN

        return self._answer(user_id, text, send, edit)

    # -- Answering ----------------------------------------------------------

    def _answer(
        self,
        user_id: str,
        text: str,
        send: Callable[[str], Any],
        edit: Callable[[str], Any] | None,
    ) -> str:
        # History is captured before this turn is recorded; the prompt is passed separately
        history = self.conversations.get_history(user_id)
        self.conversations.append_user(user_id, text)

        try:
            if self.stream and edit is not None:
                answer = self._ask_streaming(text, history, send, edit)
            else:
                answer = self.responder.ask(text, history)
                if answer:
                    send(notices.with_signature(answer, self.signature))
        except Exception:
            logger.exception("Responder failed for user %s", user_id)
            try:
                send(notices.format_error())
            except Exception:
                logger.exception("Could not deliver error notice to %s", user_id)
            return OUTCOME_ERROR

        if not answer:
            logger.warning("Empty answer for user %s", user_id)
            return OUTCOME_ERROR

        self.conversations.append_assistant(user_id, answer)
        return OUTCOME_ANSWERED

    def _ask_streaming(
        self,
        text: str,
        history: list[dict[str, str]],
        send: Callable[[str], Any],
        edit: Callable[[str], Any],
    ) -> str:
        first = True

        def on_chunk(chunk: str, accumulated: str) -> None:
            nonlocal first
            body = notices.with_signature(accumulated, self.signature)
            if first:
                send(body)
                first = False
                return
            try:
                edit(body)
            except Exception:
                logger.warning("Failed to update streamed reply", exc_info=True)

        return self.responder.ask_stream(text, history, on_chunk)

    # -- Admin commands -----------------------------------------------------

    def _admin_command(self, admin_id: str, text: str) -> str | None:
        """Execute a control command. Returns None if ``text`` is not one."""
        normalized = text.lower()
        command, _, arg = text.partition(" ")
        if normalized == CMD_ON:
            saved = self.flag.set(True, admin_id)
            return notices.format_enabled_ack(saved)
        if normalized == CMD_OFF:
            saved = self.flag.set(False, admin_id)
            return notices.format_disabled_ack(saved)
        if normalized == CMD_STATUS:
            return notices.format_status(
                self.flag.describe(),
                self.limiter.stats(),
                self.conversations.stats(),
            )
        if normalized == CMD_CLEAR:
            return notices.format_history_cleared(self.conversations.clear_all())
        if normalized.startswith(CMD_CLEAR + " "):
            target = text[len(CMD_CLEAR) :].strip()
            # A user id is one token; anything longer is a question
            if len(target.split()) != 1:
                return None
            found = self.conversations.clear(target)
            return notices.format_user_history_cleared(target, found)
        if command.lower() == CMD_UNBLOCK:
            target = arg.strip()
            if not target:
                return notices.format_usage(CMD_UNBLOCK)
            if len(target.split()) != 1:
                return None
            return notices.format_unblock_ack(target, self.limiter.unblock(target))
        return None
