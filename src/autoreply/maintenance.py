"""Recurring background sweeps for the in-memory stores.

Each job runs on its own daemon ``threading.Timer`` that re-arms itself after
every run. Jobs take the owning store's lock internally, so a sweep never
interleaves with a request-path update of the same store.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class PeriodicJob:
    """A named callable run every ``interval_s`` seconds."""

    name: str
    interval_s: float
    fn: Callable[[], object]

    def run_once(self) -> None:
        """Run the job, logging (never raising) on failure."""
        try:
            result = self.fn()
            logger.debug("Maintenance job %s finished: %s", self.name, result)
        except Exception:
            logger.exception("Maintenance job %s failed", self.name)


@dataclass
class Maintenance:
    """Owns the cleanup timers. ``start()`` arms them, ``shutdown()`` cancels them."""

    jobs: list[PeriodicJob] = field(default_factory=list)
    _timers: dict[str, threading.Timer] = field(default_factory=dict, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _running: bool = field(default=False, init=False)

    def add(self, name: str, interval_s: float, fn: Callable[[], object]) -> None:
        self.jobs.append(PeriodicJob(name=name, interval_s=interval_s, fn=fn))

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Arm a timer for every job with a positive interval."""
        with self._lock:
            if self._running:
                return
            self._running = True
            for job in self.jobs:
                if job.interval_s <= 0:
                    logger.info("Maintenance job %s disabled", job.name)
                    continue
                self._arm(job)
        logger.info("Maintenance started with %d job(s)", len(self._timers))

    def _arm(self, job: PeriodicJob) -> None:
        def _tick() -> None:
            job.run_once()
            with self._lock:
                if self._running:
                    self._arm(job)

        timer = threading.Timer(job.interval_s, _tick)
        timer.daemon = True
        self._timers[job.name] = timer
        timer.start()

    def run_all(self) -> None:
        """Run every job immediately, regardless of schedule."""
        for job in self.jobs:
            job.run_once()

    def shutdown(self) -> None:
        """Cancel all pending timers. Safe to call more than once."""
        with self._lock:
            self._running = False
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        if timers:
            logger.info("Maintenance stopped")
