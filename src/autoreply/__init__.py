"""autoreply: spam-aware automated responder for chat channels."""

__version__ = "0.1.0"

from autoreply.config import AppConfig, load_config
from autoreply.conversation_store import ConversationStore, Message
from autoreply.dispatcher import Dispatcher, InboundMessage
from autoreply.durable_flag import DurableFlag, FlagState
from autoreply.maintenance import Maintenance
from autoreply.rate_limiter import RateLimiter, SpamCheck
from autoreply.responder import AnthropicResponder, Responder

__all__ = [
    # config
    "AppConfig",
    "load_config",
    # stores
    "ConversationStore",
    "Message",
    "DurableFlag",
    "FlagState",
    "RateLimiter",
    "SpamCheck",
    # runtime
    "Dispatcher",
    "InboundMessage",
    "Maintenance",
    "AnthropicResponder",
    "Responder",
]
