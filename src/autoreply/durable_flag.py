"""File-backed enabled/disabled switch that survives restarts.

Reads and writes a small JSON document::

    {"enabled": true, "lastUpdated": 1760000000000, "updatedBy": "admin"}

A missing or corrupt file is replaced by the default (enabled) -- the service
fails open rather than going silent. Writes are synchronous and atomic
(temp file + rename); a failed write is logged and the in-memory value is kept.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


# 9999-12-31T23:59:59.999Z, the last instant datetime can represent
_MAX_EPOCH_MS = 253_402_300_799_999


def _epoch_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class FlagState:
    """Current flag value plus who changed it and when (epoch millis)."""

    enabled: bool
    last_updated: int
    updated_by: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the on-disk JSON shape."""
        d: dict[str, Any] = {"enabled": self.enabled, "lastUpdated": self.last_updated}
        if self.updated_by is not None:
            d["updatedBy"] = self.updated_by
        return d

    @classmethod
    def from_dict(cls, data: Any) -> FlagState:
        """Parse the on-disk JSON shape.

        Raises:
            ValueError: If required fields are missing or have the wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError("flag state must be a JSON object")
        enabled = data.get("enabled")
        if not isinstance(enabled, bool):
            raise ValueError("'enabled' must be a boolean")
        last_updated = data.get("lastUpdated", 0)
        if isinstance(last_updated, bool) or not isinstance(last_updated, int | float):
            raise ValueError("'lastUpdated' must be a number")
        # Also rejects NaN and infinities
        if not 0 <= last_updated <= _MAX_EPOCH_MS:
            raise ValueError("'lastUpdated' is out of range")
        updated_by = data.get("updatedBy")
        if updated_by is not None and not isinstance(updated_by, str):
            raise ValueError("'updatedBy' must be a string")
        return cls(
            enabled=enabled, last_updated=int(last_updated), updated_by=updated_by
        )


class DurableFlag:
    """A single persisted boolean with last-modified metadata.

    The file is read once at construction; :meth:`get` never touches disk.

    Args:
        path: Location of the JSON state file.
        default_enabled: Value used when the file is missing or unreadable.
        clock: Wall-clock source in epoch milliseconds.
    """

    def __init__(
        self,
        path: Path,
        default_enabled: bool = True,
        clock: Callable[[], int] = _epoch_ms,
    ) -> None:
        self._path = Path(path)
        self._default_enabled = default_enabled
        self._clock = clock
        self._lock = threading.Lock()
        self._state = self.load()
        logger.info("Loaded flag state: %s", "ON" if self._state.enabled else "OFF")

    @property
    def path(self) -> Path:
        return self._path

    def _default(self) -> FlagState:
        return FlagState(enabled=self._default_enabled, last_updated=self._clock())

    def load(self) -> FlagState:
        """Read the state file, writing the default if it is missing or malformed."""
        state: FlagState | None = None
        if self._path.is_file():
            try:
                state = FlagState.from_dict(
                    json.loads(self._path.read_text(encoding="utf-8"))
                )
            except (json.JSONDecodeError, OSError, ValueError):
                logger.warning(
                    "Corrupt flag file at %s, using default", self._path, exc_info=True
                )
        else:
            logger.info("No flag file at %s, creating default", self._path)

        if state is None:
            state = self._default()
            self._write(state)

        with self._lock:
            self._state = state
        return state

    def _write(self, state: FlagState) -> bool:
        """Write state atomically. Returns False (and logs) on failure."""
        tmp = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(
                json.dumps(state.to_dict(), indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            tmp.replace(self._path)
        except OSError:
            logger.warning("Failed to write flag state to %s", self._path, exc_info=True)
            return False
        return True

    def set(self, enabled: bool, updated_by: str | None = None) -> bool:
        """Change the flag and persist it.

        The in-memory value changes even when the write fails.

        Returns:
            True if the new state reached disk.
        """
        state = FlagState(
            enabled=enabled, last_updated=self._clock(), updated_by=updated_by
        )
        with self._lock:
            self._state = state
            saved = self._write(state)
        logger.info(
            "Flag set to %s by %s (saved=%s)",
            "ON" if enabled else "OFF",
            updated_by or "-",
            saved,
        )
        return saved

    def get(self) -> bool:
        return self._state.enabled

    def state(self) -> FlagState:
        return self._state

    def reset(self) -> bool:
        """Restore the default state and persist it."""
        logger.info("Resetting flag to default state")
        state = self._default()
        with self._lock:
            self._state = state
            return self._write(state)

    def describe(self, now_ms: int | None = None) -> str:
        """Human-readable summary: status, last update, age, and who changed it."""
        state = self._state
        now_ms = self._clock() if now_ms is None else now_ms
        minutes_ago = max(0, (now_ms - state.last_updated) // 60000)
        try:
            updated = datetime.fromtimestamp(state.last_updated / 1000).strftime(
                "%Y-%m-%d %H:%M:%S"
            )
        except (OverflowError, OSError, ValueError):
            updated = f"{state.last_updated} ms"

        info = f"Status: {'ON' if state.enabled else 'OFF'}\n"
        info += f"Last Updated: {updated}"
        if minutes_ago < 60:
            info += f" ({minutes_ago} minutes ago)"
        else:
            info += f" ({minutes_ago // 60} hours ago)"
        if state.updated_by:
            info += f"\nUpdated By: {state.updated_by}"
        return info
