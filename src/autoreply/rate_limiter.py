"""Per-user spam detection with message cooldown and block escalation.

Each user gets a tracker counting accepted messages inside a fixed window.
Messages arriving faster than the cooldown are neither counted nor rejected --
the caller is told to wait. Exceeding the threshold inside one window blocks
the user for ``block_duration_s``; while blocked every message is spam.

All state lives in memory and is guarded by a single lock, so handlers on
worker threads and the maintenance timer can share one instance. No method
raises -- unknown users are treated as never seen.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import NamedTuple

from autoreply.config import SpamPolicy

logger = logging.getLogger(__name__)


class SpamCheck(NamedTuple):
    """Outcome of :meth:`RateLimiter.check_and_track`."""

    is_spam: bool
    should_wait: bool
    wait_s: float
    newly_blocked: bool = False


_ALLOWED = SpamCheck(is_spam=False, should_wait=False, wait_s=0.0)
_BLOCKED = SpamCheck(is_spam=True, should_wait=False, wait_s=0.0)


class LimiterStats(NamedTuple):
    """Snapshot of limiter state for the admin status report."""

    tracked_users: int
    blocked_users: int


@dataclass
class SpamTracker:
    """Counting state for one user. Times are clock seconds."""

    count: int
    window_start: float
    last_message_at: float
    blocked_until: float | None = None

    def blocked_at(self, now: float) -> bool:
        return self.blocked_until is not None and now < self.blocked_until


class RateLimiter:
    """Sliding-window spam detector with cooldown and block escalation.

    Args:
        policy: Cooldown, window, threshold and block settings.
        clock: Time source in seconds (defaults to ``time.monotonic``).
    """

    def __init__(
        self,
        policy: SpamPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.policy = policy or SpamPolicy()
        self._clock = clock
        self._trackers: dict[str, SpamTracker] = {}
        self._lock = threading.Lock()

    # -- Request path -------------------------------------------------------

    def check_and_track(self, user_id: str) -> SpamCheck:
        """Record a message from ``user_id`` and classify it.

        A block outranks the cooldown, and the cooldown outranks the
        window/threshold logic, so rapid-fire messages never advance the count.
        """
        policy = self.policy
        with self._lock:
            now = self._clock()
            tracker = self._trackers.get(user_id)

            if tracker is None:
                self._trackers[user_id] = SpamTracker(
                    count=1, window_start=now, last_message_at=now
                )
                return _ALLOWED

            if tracker.blocked_at(now):
                return _BLOCKED

            if tracker.blocked_until is not None:
                # Block has lapsed: this message opens a fresh window
                logger.info("Block expired for user=%s", user_id)
                tracker.blocked_until = None
                tracker.count = 1
                tracker.window_start = now
                tracker.last_message_at = now
                return _ALLOWED

            gap = now - tracker.last_message_at
            if gap < policy.cooldown_s:
                return SpamCheck(
                    is_spam=False,
                    should_wait=True,
                    wait_s=policy.cooldown_s - gap,
                )

            if now - tracker.window_start > policy.window_s:
                tracker.count = 1
                tracker.window_start = now
                tracker.last_message_at = now
                return _ALLOWED

            tracker.count += 1
            tracker.last_message_at = now

            if tracker.count > policy.threshold:
                tracker.blocked_until = now + policy.block_duration_s
                logger.warning(
                    "User %s detected as spam (%d messages in %ss). Blocked for %ss",
                    user_id,
                    tracker.count,
                    policy.window_s,
                    policy.block_duration_s,
                )
                return SpamCheck(
                    is_spam=True, should_wait=False, wait_s=0.0, newly_blocked=True
                )

            return _ALLOWED

    def is_blocked(self, user_id: str) -> bool:
        """Return True while the user is blocked. Clears an expired block."""
        with self._lock:
            tracker = self._trackers.get(user_id)
            if tracker is None or tracker.blocked_until is None:
                return False
            if tracker.blocked_at(self._clock()):
                return True
            tracker.blocked_until = None
            tracker.count = 0
            return False

    def block_remaining(self, user_id: str) -> int:
        """Whole minutes (rounded up) until the user's block lifts, else 0."""
        with self._lock:
            tracker = self._trackers.get(user_id)
            if tracker is None or tracker.blocked_until is None:
                return 0
            remaining = tracker.blocked_until - self._clock()
            if remaining <= 0:
                return 0
            return math.ceil(remaining / 60)

    # -- Administration -----------------------------------------------------

    def unblock(self, user_id: str) -> bool:
        """Lift an active block. Returns False if the user was not blocked."""
        with self._lock:
            tracker = self._trackers.get(user_id)
            if tracker is None or tracker.blocked_until is None:
                return False
            was_active = tracker.blocked_at(self._clock())
            tracker.blocked_until = None
            tracker.count = 0
        if was_active:
            logger.info("User %s manually unblocked", user_id)
        return was_active

    def stats(self) -> LimiterStats:
        with self._lock:
            now = self._clock()
            blocked = sum(1 for t in self._trackers.values() if t.blocked_at(now))
            return LimiterStats(
                tracked_users=len(self._trackers), blocked_users=blocked
            )

    def cleanup(self) -> int:
        """Drop trackers idle past the retention horizon. Returns the number removed.

        Blocked users are kept regardless of idle time.
        """
        horizon = self.policy.retention_horizon_s
        with self._lock:
            now = self._clock()
            stale = [
                user_id
                for user_id, tracker in self._trackers.items()
                if now - tracker.last_message_at > horizon
                and not tracker.blocked_at(now)
            ]
            for user_id in stale:
                del self._trackers[user_id]

        if stale:
            logger.info("Cleaned up %d old message trackers", len(stale))
        return len(stale)

    def reset(self, user_id: str) -> None:
        """Forget everything about a user."""
        with self._lock:
            self._trackers.pop(user_id, None)
