from __future__ import annotations

import json
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import yaml
from loguru import logger

from .errors import CorruptDocument, WriteFailure


class ReadWriteLock:
    """In-process reader/writer lock: many readers or one writer.

    Writers are preferred once waiting so a steady stream of readers cannot
    starve a mutation.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def _is_yaml(path: Path) -> bool:
    return path.suffix in {".yaml", ".yml"}


def _serialize(path: Path, data: dict[str, Any]) -> str:
    if _is_yaml(path):
        return yaml.safe_dump(
            data,
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def _fsync_dir(directory: Path) -> None:
    # Directory fsync persists the rename itself; not every platform allows it.
    if os.name == "nt":
        return
    try:
        fd = os.open(str(directory), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError as exc:
        logger.debug("Directory fsync skipped for {}: {}", directory, exc)
    finally:
        os.close(fd)


def _atomic_write(path: Path, data: dict[str, Any]) -> None:
    """Write *data* to *path* via temp file, fsync and rename.

    A reader never sees a partial document and a crash mid-write leaves the
    previous one in place. Any I/O failure raises :class:`WriteFailure`.
    """
    payload = _serialize(path, data)
    parent = path.parent
    stage = "mkdir"
    tmp_path: str | None = None
    try:
        parent.mkdir(parents=True, exist_ok=True)
        stage = "create temp file"
        fd, tmp_path = tempfile.mkstemp(dir=str(parent), prefix=f".{path.name}.", suffix=".tmp")
        stage = "write"
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
            stage = "flush"
            handle.flush()
            stage = "fsync"
            os.fsync(handle.fileno())
        stage = "rename"
        os.replace(tmp_path, path)
        tmp_path = None
    except OSError as exc:
        raise WriteFailure(path, stage, exc) from exc
    finally:
        if tmp_path is not None:
            Path(tmp_path).unlink(missing_ok=True)
    _fsync_dir(parent)


def _load_document(path: Path) -> dict[str, Any]:
    """Load a JSON/YAML object from *path*.

    Unlike the lenient loaders this never falls back to a default: parse and
    shape errors raise :class:`CorruptDocument` so a broken file is reported
    instead of being overwritten. A missing file raises ``FileNotFoundError``.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise
    except (OSError, UnicodeDecodeError) as exc:
        raise CorruptDocument(path, f"{exc.__class__.__name__}: {exc}") from exc
    try:
        data = yaml.safe_load(text) if _is_yaml(path) else json.loads(text)
    except json.JSONDecodeError as exc:
        raise CorruptDocument(path, f"JSONDecodeError: {exc}") from exc
    except yaml.YAMLError as exc:
        raise CorruptDocument(path, f"YAMLError: {exc}") from exc
    if not isinstance(data, dict):
        raise CorruptDocument(path, f"expected object, got {type(data).__name__}")
    return data


def _load_data(path: Path, default: dict[str, Any]) -> dict[str, Any]:
    """Lenient loader for side files (markers) where any failure means *default*."""
    try:
        return _load_document(path)
    except (FileNotFoundError, CorruptDocument):
        return default
