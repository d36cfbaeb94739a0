"""Tests for the persisted enabled/disabled flag."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from autoreply.durable_flag import DurableFlag, FlagState


class FakeClock:
    def __init__(self, start: int = 1_760_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now


@pytest.fixture()
def flag_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "app-state.json"


class TestLoad:
    def test_missing_file_writes_default(self, flag_path: Path) -> None:
        flag = DurableFlag(flag_path, clock=FakeClock())
        assert flag.get() is True
        assert flag_path.exists()
        data = json.loads(flag_path.read_text())
        assert data == {"enabled": True, "lastUpdated": 1_760_000_000_000}

    def test_reads_existing_file(self, flag_path: Path) -> None:
        flag_path.parent.mkdir(parents=True)
        flag_path.write_text(
            json.dumps({"enabled": False, "lastUpdated": 123, "updatedBy": "U_ADMIN"})
        )
        flag = DurableFlag(flag_path)
        assert flag.get() is False
        assert flag.state() == FlagState(
            enabled=False, last_updated=123, updated_by="U_ADMIN"
        )

    def test_corrupt_file_fails_open(self, flag_path: Path) -> None:
        flag_path.parent.mkdir(parents=True)
        flag_path.write_text("not json at all")
        flag = DurableFlag(flag_path)
        assert flag.get() is True
        # Default is written back over the corrupt content
        assert json.loads(flag_path.read_text())["enabled"] is True

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"lastUpdated": 1},
            {"enabled": "yes", "lastUpdated": 1},
            {"enabled": True, "lastUpdated": "soon"},
            {"enabled": True, "lastUpdated": 1, "updatedBy": 7},
        ],
    )
    def test_malformed_state_fails_open(self, flag_path: Path, payload) -> None:
        flag_path.parent.mkdir(parents=True)
        flag_path.write_text(json.dumps(payload))
        assert DurableFlag(flag_path).get() is True

    @pytest.mark.parametrize(
        "raw",
        [
            '{"enabled": true, "lastUpdated": Infinity}',
            '{"enabled": true, "lastUpdated": -Infinity}',
            '{"enabled": true, "lastUpdated": NaN}',
            '{"enabled": true, "lastUpdated": 1e400}',
            '{"enabled": true, "lastUpdated": 99999999999999999999}',
            '{"enabled": false, "lastUpdated": -1}',
        ],
    )
    def test_out_of_range_timestamp_fails_open(self, flag_path: Path, raw: str) -> None:
        flag_path.parent.mkdir(parents=True)
        flag_path.write_text(raw)
        flag = DurableFlag(flag_path, clock=FakeClock())
        assert flag.get() is True
        assert flag.state().last_updated == 1_760_000_000_000
        assert "Status: ON" in flag.describe()

    def test_default_can_be_disabled(self, flag_path: Path) -> None:
        assert DurableFlag(flag_path, default_enabled=False).get() is False


class TestSet:
    def test_set_survives_restart(self, flag_path: Path) -> None:
        DurableFlag(flag_path).set(False, "admin1")
        state = DurableFlag(flag_path).load()
        assert state.enabled is False
        assert state.updated_by == "admin1"

    def test_set_stamps_time(self, flag_path: Path) -> None:
        clock = FakeClock()
        flag = DurableFlag(flag_path, clock=clock)
        clock.now += 5000
        assert flag.set(False) is True
        assert flag.state().last_updated == clock.now
        data = json.loads(flag_path.read_text())
        assert data == {"enabled": False, "lastUpdated": clock.now}

    def test_get_does_not_read_disk(self, flag_path: Path) -> None:
        flag = DurableFlag(flag_path)
        flag_path.write_text(json.dumps({"enabled": False, "lastUpdated": 1}))
        assert flag.get() is True

    def test_failed_write_keeps_memory_value(self, flag_path: Path) -> None:
        flag = DurableFlag(flag_path)
        with patch.object(Path, "write_text", side_effect=OSError("disk full")):
            assert flag.set(False, "admin1") is False
        assert flag.get() is False
        # Disk still holds the previous value
        assert json.loads(flag_path.read_text())["enabled"] is True

    def test_no_temp_file_left_behind(self, flag_path: Path) -> None:
        DurableFlag(flag_path).set(False)
        assert [p.name for p in flag_path.parent.iterdir()] == ["app-state.json"]


class TestStateHelpers:
    def test_reset_restores_default(self, flag_path: Path) -> None:
        flag = DurableFlag(flag_path)
        flag.set(False, "admin1")
        assert flag.reset() is True
        assert flag.get() is True
        assert flag.state().updated_by is None
        assert DurableFlag(flag_path).get() is True

    def test_path_property(self, flag_path: Path) -> None:
        assert DurableFlag(flag_path).path == flag_path

    def test_describe_minutes(self, flag_path: Path) -> None:
        clock = FakeClock()
        flag = DurableFlag(flag_path, clock=clock)
        flag.set(False, "admin1")
        info = flag.describe(now_ms=clock.now + 5 * 60000)
        assert info.startswith("Status: OFF")
        assert "(5 minutes ago)" in info
        assert "Updated By: admin1" in info

    def test_describe_hours(self, flag_path: Path) -> None:
        clock = FakeClock()
        flag = DurableFlag(flag_path, clock=clock)
        info = flag.describe(now_ms=clock.now + 3 * 3600 * 1000)
        assert "Status: ON" in info
        assert "(3 hours ago)" in info
        assert "Updated By" not in info

    def test_describe_unrepresentable_time_shows_millis(self, flag_path: Path) -> None:
        flag = DurableFlag(flag_path, clock=FakeClock())
        flag._state = FlagState(enabled=True, last_updated=10**17)
        info = flag.describe(now_ms=0)
        assert info.startswith("Status: ON")
        assert f"Last Updated: {10**17} ms (0 minutes ago)" in info


class TestFlagState:
    def test_round_trip_without_updated_by(self) -> None:
        state = FlagState(enabled=True, last_updated=10)
        assert state.to_dict() == {"enabled": True, "lastUpdated": 10}
        assert FlagState.from_dict(state.to_dict()) == state

    def test_missing_last_updated_defaults_to_zero(self) -> None:
        assert FlagState.from_dict({"enabled": False}).last_updated == 0

    @pytest.mark.parametrize(
        "last_updated", [float("inf"), float("nan"), -5, 10**20, 253_402_300_800_000]
    )
    def test_out_of_range_timestamp_rejected(self, last_updated) -> None:
        with pytest.raises(ValueError, match="out of range"):
            FlagState.from_dict({"enabled": True, "lastUpdated": last_updated})

    def test_latest_representable_timestamp_accepted(self) -> None:
        data = {"enabled": True, "lastUpdated": 253_402_300_799_999}
        assert FlagState.from_dict(data).last_updated == 253_402_300_799_999
