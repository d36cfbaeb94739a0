"""User- and admin-facing reply texts.

Pure functions; the transport decides how the text is delivered.
"""

from __future__ import annotations

from autoreply.conversation_store import ConversationStats
from autoreply.rate_limiter import LimiterStats


def format_enabled_ack(saved: bool) -> str:
    text = "Auto-reply is now ON. Every question will be answered."
    return text + _persistence_note(saved, "ON")


def format_disabled_ack(saved: bool) -> str:
    text = "Auto-reply is now OFF. No questions will be answered."
    return text + _persistence_note(saved, "OFF")


def _persistence_note(saved: bool, status: str) -> str:
    if saved:
        return f"\n\nStatus saved -- it stays {status} after a restart."
    return (
        "\n\nWarning: the status could not be saved to disk and will be "
        "lost on restart. Check the logs."
    )


def format_status(
    flag_info: str,
    limiter: LimiterStats,
    conversations: ConversationStats,
) -> str:
    """Format the ``ai status`` report.

    Args:
        flag_info: Output of ``DurableFlag.describe()``.
        limiter: Rate limiter snapshot.
        conversations: Conversation store snapshot.
    """
    return (
        "*Auto-reply status*\n\n"
        f"{flag_info}\n"
        f"Tracked users: {limiter.tracked_users}\n"
        f"Blocked users: {limiter.blocked_users}\n\n"
        "*Conversations*\n"
        f"Active: {conversations.active} of {conversations.total}\n"
        f"Total messages: {conversations.total_messages}"
    )


def format_history_cleared(count: int) -> str:
    return f"All conversation histories cleared ({count} removed)."


def format_user_history_cleared(user_id: str, found: bool) -> str:
    if found:
        return f"Conversation history for {user_id} cleared."
    return f"No conversation history found for {user_id}."


def format_unblock_ack(user_id: str, was_blocked: bool) -> str:
    if was_blocked:
        return f"User {user_id} has been unblocked."
    return f"User {user_id} is not blocked."


def format_usage(command: str) -> str:
    return f"Usage: {command} <user-id>"


def format_block_notice(minutes: int) -> str:
    """Notice sent once when a user is blocked for spamming."""
    unit = "minute" if minutes == 1 else "minutes"
    return (
        "You have been flagged for spam. "
        f"I will not reply for the next {minutes} {unit}.\n\n"
        "Please wait until the block is over."
    )


def format_error() -> str:
    return "Sorry, something went wrong while processing your message. Please try again."


def with_signature(text: str, signature: str) -> str:
    """Append the configured signature line, if any."""
    if not signature:
        return text
    return f"{text}\n\n> {signature}"
