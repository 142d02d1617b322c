"""Best-effort check for a newer release.

The check runs in a daemon thread, at most once per rolling 24 hours (the
last attempt is recorded in a marker file), and never blocks or fails a task
operation: a check still running when the process exits is abandoned, and
any error is only logged.
"""

from __future__ import annotations

import json
import re
import threading
import time
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from .constants import (
    UPDATE_CHECK_INTERVAL_SECONDS,
    UPDATE_CHECK_TIMEOUT_SECONDS,
    UPDATE_CHECK_URL,
)
from .io_utils import _atomic_write, _load_data
from .utils import _now_iso


@dataclass(frozen=True)
class UpdateInfo:
    current: str
    latest: str

    @property
    def available(self) -> bool:
        return _version_key(self.latest) > _version_key(self.current)


def _version_key(version: str) -> tuple[int, ...]:
    nums = [int(n) for n in re.findall(r"\d+", version.split("+", 1)[0])[:4]]
    return tuple(nums + [0] * (4 - len(nums)))


def fetch_latest_version(url: str = UPDATE_CHECK_URL, timeout: float = UPDATE_CHECK_TIMEOUT_SECONDS) -> str:
    req = urllib.request.Request(url, headers={"Accept": "application/json"}, method="GET")
    with urllib.request.urlopen(req, timeout=timeout) as resp:
        payload = json.loads(resp.read().decode("utf-8"))
    return str(payload["info"]["version"])


class UpdateChecker:
    """Fire-and-forget update check rate-limited by a timestamp marker."""

    def __init__(
        self,
        marker_path: Path,
        current_version: str,
        *,
        fetch: Optional[Callable[[], str]] = None,
        interval_seconds: float = UPDATE_CHECK_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.marker_path = marker_path
        self.current_version = current_version
        self._fetch = fetch or fetch_latest_version
        self._interval = interval_seconds
        self._clock = clock
        self._thread: Optional[threading.Thread] = None
        self._done = threading.Event()
        self._result: Optional[UpdateInfo] = None

    def last_checked(self) -> Optional[float]:
        marker = _load_data(self.marker_path, {})
        value = marker.get("lastCheckEpoch")
        return float(value) if isinstance(value, (int, float)) else None

    def due(self) -> bool:
        last = self.last_checked()
        return last is None or self._clock() - last >= self._interval

    def start(self) -> bool:
        """Start a background check if one is due; returns whether it started."""
        if self._thread is not None or not self.due():
            return False
        try:
            _atomic_write(self.marker_path, {"lastCheck": _now_iso(), "lastCheckEpoch": self._clock()})
        except Exception as exc:
            logger.debug("Skipping update check; marker not writable: {}", exc)
            return False
        self._thread = threading.Thread(target=self._run, name="taskgraph-update-check", daemon=True)
        self._thread.start()
        return True

    def _run(self) -> None:
        try:
            latest = self._fetch()
            info = UpdateInfo(current=self.current_version, latest=latest)
            self._result = info
            if info.available:
                logger.info("taskgraph {} is available (installed {})", latest, self.current_version)
            else:
                logger.debug("taskgraph {} is up to date", self.current_version)
        except Exception as exc:
            logger.debug("Update check failed: {}", exc)
        finally:
            self._done.set()

    def result(self) -> Optional[UpdateInfo]:
        """The finished check's result, or None if not finished (never blocks)."""
        return self._result if self._done.is_set() else None

    def wait(self, timeout: float) -> Optional[UpdateInfo]:
        if self._thread is None:
            return None
        self._done.wait(timeout)
        return self.result()
