"""Slack transport for the auto-responder.

Listens for DMs, @mentions, and messages in a configured channel via
Socket Mode and hands each one to the :class:`Dispatcher`. Long answers are
revealed progressively by posting the first chunk and editing that message
as more text arrives.

Event handlers never raise -- failures are logged and the user gets an apology.
Designed to be launched via the ``autoreply-slack`` console script.
"""

from __future__ import annotations

import contextlib
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from autoreply.config import AppConfig, load_config
from autoreply.conversation_store import ConversationStore
from autoreply.dispatcher import Dispatcher, InboundMessage
from autoreply.durable_flag import DurableFlag
from autoreply.maintenance import Maintenance
from autoreply.rate_limiter import RateLimiter
from autoreply.responder import AnthropicResponder, Responder
from autoreply.slack_format import split_message, truncate_message

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class SlackBotConfig:
    """Secrets and file locations for the Slack process."""

    slack_bot_token: str
    slack_app_token: str
    anthropic_api_key: str
    config_path: Path = Path("autoreply.yaml")
    bot_channel: str = ""

    @classmethod
    def from_env(cls) -> SlackBotConfig:
        """Create config from environment variables.

        Required env vars: SLACK_BOT_TOKEN, SLACK_APP_TOKEN, ANTHROPIC_API_KEY.
        Optional env vars: AUTOREPLY_CONFIG, SLACK_BOT_CHANNEL.

        Raises:
            ValueError: If required environment variables are missing.
        """
        missing = []
        bot_token = os.environ.get("SLACK_BOT_TOKEN", "")
        if not bot_token:
            missing.append("SLACK_BOT_TOKEN")
        app_token = os.environ.get("SLACK_APP_TOKEN", "")
        if not app_token:
            missing.append("SLACK_APP_TOKEN")
        api_key = os.environ.get("ANTHROPIC_API_KEY", "")
        if not api_key:
            missing.append("ANTHROPIC_API_KEY")

        if missing:
            raise ValueError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

        return cls(
            slack_bot_token=bot_token,
            slack_app_token=app_token,
            anthropic_api_key=api_key,
            config_path=Path(os.environ.get("AUTOREPLY_CONFIG", "autoreply.yaml")),
            bot_channel=os.environ.get("SLACK_BOT_CHANNEL", ""),
        )


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_dispatcher(
    app_config: AppConfig, responder: Responder
) -> tuple[Dispatcher, Maintenance]:
    """Construct the stores, the dispatcher, and their cleanup schedule."""
    limiter = RateLimiter(app_config.spam)
    conversations = ConversationStore(app_config.conversation)
    flag = DurableFlag(
        Path(app_config.flag.path), default_enabled=app_config.flag.default_enabled
    )
    dispatcher = Dispatcher(
        limiter=limiter,
        conversations=conversations,
        flag=flag,
        responder=responder,
        admin_ids=app_config.admin.admin_ids,
        signature=app_config.responder.signature,
        stream=app_config.responder.stream,
    )

    maintenance = Maintenance()
    maintenance.add(
        "rate-limiter-cleanup",
        app_config.maintenance.limiter_cleanup_interval_s,
        limiter.cleanup,
    )
    maintenance.add(
        "conversation-cleanup",
        app_config.maintenance.conversation_cleanup_interval_s,
        conversations.cleanup,
    )
    return dispatcher, maintenance


# ---------------------------------------------------------------------------
# SlackBot
# ---------------------------------------------------------------------------


@dataclass
class SlackBot:
    """Socket Mode front-end for a :class:`Dispatcher`.

    Args:
        config: Tokens and file locations.
        dispatcher: Message routing and state.
        maintenance: Cleanup timers started with the bot.
        app: Optional pre-built slack_bolt.App (for testing).
    """

    config: SlackBotConfig
    dispatcher: Dispatcher
    maintenance: Maintenance = field(default_factory=Maintenance)
    app: Any = field(default=None, repr=False)
    _bot_user_id: str = field(default="", init=False, repr=False)

    def __post_init__(self) -> None:
        if self.app is None:
            from slack_bolt import App

            self.app = App(token=self.config.slack_bot_token)

        # Register event handlers -- separate handlers to avoid routing conflicts
        self.app.event("app_mention")(self._handle_mention)
        self.app.event("message")(self._handle_message)

    def start(self) -> None:
        """Start the bot (blocking). Connects via Socket Mode."""
        from slack_bolt.adapter.socket_mode import SocketModeHandler

        # Resolve bot identity
        try:
            auth = self.app.client.auth_test()
            self._bot_user_id = auth.get("user_id", "")
            logger.info("Bot identity resolved: %s", self._bot_user_id)
        except Exception:
            logger.warning("Could not resolve bot identity via auth.test")

        self.maintenance.start()
        try:
            logger.info("Starting Slack bot via Socket Mode...")
            handler = SocketModeHandler(self.app, self.config.slack_app_token)
            handler.start()
        finally:
            self.maintenance.shutdown()

    # -- Event handling -----------------------------------------------------

    def _handle_mention(self, event: dict[str, Any], say: Any, client: Any) -> None:
        """Handle app_mention events. Delegates to the shared handler."""
        self._process_event(event, say, client)

    def _handle_message(self, event: dict[str, Any], say: Any, client: Any) -> None:
        """Handle message events (DMs, bot channel). Skips @mentions (handled above)."""
        text = event.get("text", "")
        if self._bot_user_id and f"<@{self._bot_user_id}>" in text:
            if event.get("channel_type", "") != "im":
                return
        self._process_event(event, say, client)

    def _should_respond(self, event: dict[str, Any]) -> bool:
        """Determine whether the bot should respond to this event.

        Responds to DMs, @mentions, and messages in the configured channel.
        Skips its own messages, other bots, and subtypes (joins, edits, ...).
        """
        user = event.get("user", "")
        if not user:
            return False
        if self._bot_user_id and user == self._bot_user_id:
            return False
        if event.get("bot_id") or event.get("subtype"):
            return False

        if event.get("channel_type", "") == "im":
            return True

        text = event.get("text", "")
        if self._bot_user_id and f"<@{self._bot_user_id}>" in text:
            return True

        channel = event.get("channel", "")
        return bool(self.config.bot_channel and channel == self.config.bot_channel)

    def _process_event(self, event: dict[str, Any], say: Any, client: Any) -> None:
        """Shared handler for message and app_mention events."""
        try:
            if not self._should_respond(event):
                return

            user_id = event.get("user", "")
            channel = event.get("channel", "")
            thread_ts = event.get("thread_ts") or event.get("ts", "")
            text = event.get("text", "")
            if self._bot_user_id:
                text = text.replace(f"<@{self._bot_user_id}>", "").strip()

            posted: dict[str, str] = {}

            def send(reply: str) -> None:
                for chunk in split_message(reply):
                    result = say(text=chunk, thread_ts=thread_ts)
                    with contextlib.suppress(Exception):
                        posted["ts"] = result["ts"]

            def edit(reply: str) -> None:
                ts = posted.get("ts")
                if not ts:
                    return
                client.chat_update(channel=channel, ts=ts, text=truncate_message(reply))

            # Thinking reaction stands in for a typing indicator
            with contextlib.suppress(Exception):
                client.reactions_add(
                    name="thinking_face", channel=channel, timestamp=event.get("ts", "")
                )

            outcome = self.dispatcher.handle(
                InboundMessage(user_id=user_id, text=text), send=send, edit=edit
            )
            logger.info("Handled message from user=%s: %s", user_id, outcome)

            with contextlib.suppress(Exception):
                client.reactions_remove(
                    name="thinking_face", channel=channel, timestamp=event.get("ts", "")
                )

        except Exception:
            logger.exception("Error handling message event")
            with contextlib.suppress(Exception):
                say(
                    text="Sorry, I encountered an error processing your message.",
                    thread_ts=event.get("thread_ts") or event.get("ts", ""),
                )


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    """CLI entrypoint for the Slack auto-responder."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    config = SlackBotConfig.from_env()
    app_config = load_config(config.config_path)
    if not config.bot_channel:
        config.bot_channel = app_config.bot_channel

    responder = AnthropicResponder(
        api_key=config.anthropic_api_key, config=app_config.responder
    )
    dispatcher, maintenance = build_dispatcher(app_config, responder)
    bot = SlackBot(config=config, dispatcher=dispatcher, maintenance=maintenance)
    bot.start()


if __name__ == "__main__":
    main()
