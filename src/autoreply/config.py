"""Configuration loader for the auto-responder.

Reads autoreply.yaml and provides typed access to all settings. Secrets
(tokens, API keys) are not part of the file -- see ``SlackBotConfig.from_env``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG_PATH = Path("autoreply.yaml")


@dataclass(frozen=True)
class SpamPolicy:
    """Anti-spam thresholds. All durations in seconds."""

    cooldown_s: float = 3.0  # min gap between accepted messages
    window_s: float = 60.0
    threshold: int = 5  # messages per window before a block
    block_duration_s: float = 3600.0
    retention_s: float = 0.0  # 0 = 24x block_duration_s

    @property
    def retention_horizon_s(self) -> float:
        """Idle time after which an unblocked tracker may be discarded."""
        if self.retention_s > 0:
            return self.retention_s
        return self.block_duration_s * 24


@dataclass(frozen=True)
class ConversationPolicy:
    """Bounds for per-user conversation memory."""

    max_exchanges: int = 10
    timeout_s: float = 1800.0

    @property
    def max_messages(self) -> int:
        return self.max_exchanges * 2


@dataclass(frozen=True)
class FlagConfig:
    """Location of the persisted enabled/disabled flag."""

    path: str = "data/app-state.json"
    default_enabled: bool = True


@dataclass(frozen=True)
class ResponderConfig:
    """Answer generation and chunked delivery."""

    model: str = "claude-sonnet-4-20250514"
    max_response_tokens: int = 1024
    system_prompt: str = (
        "You are a helpful customer support assistant. "
        "Answer concisely and politely."
    )
    stream: bool = True
    words_per_chunk: int = 8
    chunk_delay_s: float = 0.05
    signature: str = ""


@dataclass(frozen=True)
class AdminConfig:
    """Identities allowed to issue control commands."""

    admin_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class MaintenanceConfig:
    """Intervals for the periodic cleanup sweeps (seconds, 0 = disabled)."""

    limiter_cleanup_interval_s: float = 3600.0
    conversation_cleanup_interval_s: float = 600.0


@dataclass(frozen=True)
class AppConfig:
    """Top-level auto-responder configuration."""

    spam: SpamPolicy = field(default_factory=SpamPolicy)
    conversation: ConversationPolicy = field(default_factory=ConversationPolicy)
    flag: FlagConfig = field(default_factory=FlagConfig)
    responder: ResponderConfig = field(default_factory=ResponderConfig)
    admin: AdminConfig = field(default_factory=AdminConfig)
    maintenance: MaintenanceConfig = field(default_factory=MaintenanceConfig)
    bot_channel: str = ""


def _build_sub(cls: type, data: dict[str, Any] | None) -> Any:
    """Build a frozen dataclass from a dict, ignoring unknown keys."""
    if not isinstance(data, dict):
        return cls()
    valid = {f.name for f in cls.__dataclass_fields__.values()}
    filtered = {k: v for k, v in data.items() if k in valid}
    return cls(**filtered)


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    A missing file yields the defaults.

    Args:
        config_path: Path to autoreply.yaml.

    Returns:
        Populated AppConfig.

    Raises:
        yaml.YAMLError: If YAML is malformed.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        return AppConfig()

    raw = yaml.safe_load(path.read_text())
    if not isinstance(raw, dict):
        return AppConfig()

    # Convert lists to tuples for frozen dataclass
    admin_raw = raw.get("admin")
    if isinstance(admin_raw, dict):
        admin_data = dict(admin_raw)
        ids = admin_data.get("admin_ids")
        if isinstance(ids, list):
            admin_data["admin_ids"] = tuple(str(i) for i in ids)
        elif isinstance(ids, str):
            admin_data["admin_ids"] = (ids,)
        admin = _build_sub(AdminConfig, admin_data)
    else:
        admin = AdminConfig()

    return AppConfig(
        spam=_build_sub(SpamPolicy, raw.get("spam")),
        conversation=_build_sub(ConversationPolicy, raw.get("conversation")),
        flag=_build_sub(FlagConfig, raw.get("flag")),
        responder=_build_sub(ResponderConfig, raw.get("responder")),
        admin=admin,
        maintenance=_build_sub(MaintenanceConfig, raw.get("maintenance")),
        bot_channel=str(raw.get("bot_channel", "") or ""),
    )
