"""Tests for the background update check (update_check.py)."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from taskgraph.update_check import UpdateChecker, UpdateInfo, fetch_latest_version


@pytest.mark.parametrize(
    "current, latest, available",
    [("0.4.0", "0.4.1", True), ("0.4.0", "0.4.0", False), ("0.10.0", "0.9.9", False), ("1.0", "1.0.1", True)],
)
def test_update_info_available(current: str, latest: str, available: bool) -> None:
    assert UpdateInfo(current, latest).available is available


class TestUpdateChecker:
    def test_runs_and_records_marker(self, tmp_path: Path) -> None:
        marker = tmp_path / "update-check.json"
        checker = UpdateChecker(marker, "0.4.0", fetch=lambda: "0.5.0", clock=lambda: 1000.0)
        assert checker.start() is True
        info = checker.wait(timeout=5)
        assert info == UpdateInfo("0.4.0", "0.5.0")
        assert json.loads(marker.read_text(encoding="utf-8"))["lastCheckEpoch"] == 1000.0

    def test_rate_limited_by_marker(self, tmp_path: Path) -> None:
        marker = tmp_path / "update-check.json"
        now = [1000.0]
        calls: list[int] = []

        def fetch() -> str:
            calls.append(1)
            return "0.4.0"

        first = UpdateChecker(marker, "0.4.0", fetch=fetch, clock=lambda: now[0])
        first.start()
        first.wait(timeout=5)
        now[0] += 3600
        assert UpdateChecker(marker, "0.4.0", fetch=fetch, clock=lambda: now[0]).start() is False
        now[0] += 86400
        later = UpdateChecker(marker, "0.4.0", fetch=fetch, clock=lambda: now[0])
        assert later.start() is True
        later.wait(timeout=5)
        assert len(calls) == 2

    def test_failure_is_swallowed(self, tmp_path: Path) -> None:
        def fetch() -> str:
            raise OSError("offline")

        checker = UpdateChecker(tmp_path / "m.json", "0.4.0", fetch=fetch)
        assert checker.start() is True
        assert checker.wait(timeout=5) is None

    def test_result_does_not_block(self, tmp_path: Path) -> None:
        release = threading.Event()

        def fetch() -> str:
            release.wait(timeout=5)
            return "9.9.9"

        checker = UpdateChecker(tmp_path / "m.json", "0.4.0", fetch=fetch)
        checker.start()
        assert checker.result() is None
        release.set()
        assert checker.wait(timeout=5).available is True

    def test_wait_without_start(self, tmp_path: Path) -> None:
        assert UpdateChecker(tmp_path / "m.json", "0.4.0", fetch=lambda: "1").wait(timeout=0.1) is None


def test_fetch_latest_version_reads_index_payload() -> None:
    response = MagicMock()
    response.read.return_value = json.dumps({"info": {"version": "1.2.3"}}).encode("utf-8")
    response.__enter__.return_value = response
    with patch("taskgraph.update_check.urllib.request.urlopen", return_value=response) as urlopen:
        assert fetch_latest_version("https://example.invalid/pypi/taskgraph/json", timeout=1.0) == "1.2.3"
    request = urlopen.call_args.args[0]
    assert request.full_url == "https://example.invalid/pypi/taskgraph/json"
    assert urlopen.call_args.kwargs["timeout"] == 1.0
