"""Tests for the recurring cleanup scheduler."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock, patch

from autoreply.maintenance import Maintenance, PeriodicJob


class TestPeriodicJob:
    def test_run_once_calls_fn(self) -> None:
        fn = MagicMock(return_value=3)
        PeriodicJob(name="x", interval_s=10, fn=fn).run_once()
        fn.assert_called_once()

    def test_run_once_swallows_errors(self) -> None:
        fn = MagicMock(side_effect=RuntimeError("boom"))
        PeriodicJob(name="x", interval_s=10, fn=fn).run_once()
        fn.assert_called_once()


class TestMaintenance:
    def test_start_arms_timers(self) -> None:
        m = Maintenance()
        m.add("a", 100, MagicMock())
        m.add("b", 200, MagicMock())
        with patch("autoreply.maintenance.threading.Timer") as timer_cls:
            m.start()
        assert m.running is True
        intervals = sorted(c.args[0] for c in timer_cls.call_args_list)
        assert intervals == [100, 200]
        assert timer_cls.return_value.start.call_count == 2
        assert timer_cls.return_value.daemon is True

    def test_zero_interval_disabled(self) -> None:
        m = Maintenance()
        m.add("off", 0, MagicMock())
        with patch("autoreply.maintenance.threading.Timer") as timer_cls:
            m.start()
        timer_cls.assert_not_called()

    def test_start_twice_is_noop(self) -> None:
        m = Maintenance()
        m.add("a", 100, MagicMock())
        with patch("autoreply.maintenance.threading.Timer") as timer_cls:
            m.start()
            m.start()
        assert timer_cls.call_count == 1

    def test_shutdown_cancels(self) -> None:
        m = Maintenance()
        m.add("a", 100, MagicMock())
        with patch("autoreply.maintenance.threading.Timer") as timer_cls:
            m.start()
            m.shutdown()
            m.shutdown()
        timer_cls.return_value.cancel.assert_called_once()
        assert m.running is False

    def test_tick_runs_job_and_rearms(self) -> None:
        fn = MagicMock()
        m = Maintenance()
        m.add("a", 100, fn)
        with patch("autoreply.maintenance.threading.Timer") as timer_cls:
            m.start()
            tick = timer_cls.call_args.args[1]
            tick()
        fn.assert_called_once()
        assert timer_cls.call_count == 2

    def test_tick_after_shutdown_does_not_rearm(self) -> None:
        m = Maintenance()
        m.add("a", 100, MagicMock())
        with patch("autoreply.maintenance.threading.Timer") as timer_cls:
            m.start()
            tick = timer_cls.call_args.args[1]
            m.shutdown()
            tick()
        assert timer_cls.call_count == 1

    def test_real_timer_fires(self) -> None:
        fired = threading.Event()
        m = Maintenance()
        m.add("fast", 0.01, fired.set)
        m.start()
        try:
            assert fired.wait(timeout=2.0)
        finally:
            m.shutdown()

    def test_run_all(self) -> None:
        a, b = MagicMock(), MagicMock()
        m = Maintenance()
        m.add("a", 100, a)
        m.add("b", 0, b)
        m.run_all()
        a.assert_called_once()
        b.assert_called_once()
