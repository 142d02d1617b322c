"""File-based task store, one document per tag.

Each tag's collection lives in ``<state_dir>/tasks/<tag>.json`` (or
``.yaml``). Writes go through a write-temp, fsync, rename sequence so a
reader never sees a torn document and a crash keeps the previous one. Inside
one process each tag has a reader/writer lock; across processes the last
writer wins.
"""

from __future__ import annotations

import re
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from loguru import logger

from ..constants import DEFAULT_DOC_FORMAT, DEFAULT_TAG, DOC_SUFFIXES, TASKS_DIR
from ..errors import CorruptDocument, InvalidTag, NotFound, WriteFailure
from ..io_utils import ReadWriteLock, _atomic_write, _load_document
from .graph import DependencyGraph
from .model import TaskCollection

_TAG_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def validate_tag(tag: str) -> str:
    if not isinstance(tag, str) or not tag:
        raise InvalidTag(tag, "tag must be a non-empty string")
    if not _TAG_RE.match(tag):
        raise InvalidTag(tag, "use letters, digits, '.', '_' or '-' and start with a letter or digit")
    return tag


# ---------------------------------------------------------------------------
# TaskStore
# ---------------------------------------------------------------------------

class TaskStore:
    """Per-tag, crash-safe store for :class:`TaskCollection` documents.

    Parameters
    ----------
    state_dir:
        Path to the project's ``.taskgraph/`` directory.
    doc_format:
        ``"json"`` (default) or ``"yaml"``.
    """

    def __init__(self, state_dir: Path, doc_format: str = DEFAULT_DOC_FORMAT) -> None:
        if doc_format not in DOC_SUFFIXES:
            raise ValueError(f"Unknown document format {doc_format!r}; expected one of {sorted(DOC_SUFFIXES)}")
        self._state_dir = state_dir
        self._tasks_dir = state_dir / TASKS_DIR
        self._suffix = DOC_SUFFIXES[doc_format]
        self._locks: dict[str, ReadWriteLock] = {}
        self._locks_guard = threading.Lock()

    @property
    def tasks_dir(self) -> Path:
        return self._tasks_dir

    def path_for(self, tag: str) -> Path:
        return self._tasks_dir / f"{validate_tag(tag)}{self._suffix}"

    def _lock_for(self, tag: str) -> ReadWriteLock:
        with self._locks_guard:
            lock = self._locks.get(tag)
            if lock is None:
                lock = self._locks[tag] = ReadWriteLock()
            return lock

    # -- internal helpers ---------------------------------------------------

    def _load(self, tag: str) -> TaskCollection:
        path = self.path_for(tag)
        try:
            raw = _load_document(path)
        except FileNotFoundError:
            raise NotFound("Tag", tag, f"no document at {path}") from None
        try:
            collection = TaskCollection.from_dict(tag, raw)
        except ValueError as exc:
            raise CorruptDocument(path, str(exc)) from exc
        mismatches = collection.position_mismatches()
        if mismatches:
            stored, expected = mismatches[0]
            raise CorruptDocument(
                path,
                f"task id {stored!r} does not match its position (expected {expected!r}); "
                f"{len(mismatches)} misplaced task(s)",
            )
        return collection

    def _save(self, tag: str, collection: TaskCollection) -> None:
        path = self.path_for(tag)
        _atomic_write(path, collection.to_dict())
        logger.debug("Saved {} top-level task(s) to {}", len(collection.tasks), path)

    # -- public API ---------------------------------------------------------

    def load(self, tag: str) -> TaskCollection:
        """Read the tag's document (``NotFound`` if absent, ``CorruptDocument`` if malformed)."""
        with self._lock_for(validate_tag(tag)).read():
            return self._load(tag)

    def save(self, tag: str, collection: TaskCollection) -> None:
        """Atomically replace the tag's document (``WriteFailure`` on I/O errors)."""
        with self._lock_for(validate_tag(tag)).write():
            self._save(tag, collection)

    def exists(self, tag: str) -> bool:
        return self.path_for(tag).exists()

    @contextmanager
    def transaction(self, tag: str, *, create: bool = False) -> Iterator["TaskTx"]:
        """Hold the tag's write lock, load, yield, and save on clean exit.

        Usage::

            with store.transaction("master") as tx:
                tx.graph.add_dependency("2", "1")
                tx.dirty = True

        An exception inside the block discards the in-memory collection and
        leaves the persisted document untouched.
        """
        with self._lock_for(validate_tag(tag)).write():
            try:
                collection = self._load(tag)
            except NotFound:
                if not create:
                    raise
                collection = TaskCollection(tag=tag)
                logger.info("Creating task document for tag {!r}", tag)
            tx = TaskTx(collection)
            yield tx
            if tx.dirty:
                self._save(tag, tx.collection)

    # -- tags -----------------------------------------------------------------

    def list_tags(self) -> list[str]:
        if not self._tasks_dir.is_dir():
            return []
        tags = [
            p.stem for p in self._tasks_dir.iterdir()
            if p.is_file() and p.suffix == self._suffix and _TAG_RE.match(p.stem)
        ]
        return sorted(tags)

    def create_tag(self, tag: str, *, copy_from: Optional[str] = None) -> TaskCollection:
        if self.exists(tag):
            raise InvalidTag(tag, "tag already exists")
        collection = self.load(copy_from).copy(tag=tag) if copy_from else TaskCollection(tag=tag)
        with self._lock_for(tag).write():
            if self.path_for(tag).exists():
                raise InvalidTag(tag, "tag already exists")
            self._save(tag, collection)
        logger.info("Created tag {!r}{}", tag, f" from {copy_from!r}" if copy_from else "")
        return collection

    def delete_tag(self, tag: str) -> None:
        if tag == DEFAULT_TAG:
            raise InvalidTag(tag, "the default tag cannot be deleted")
        path = self.path_for(tag)
        with self._lock_for(tag).write():
            try:
                path.unlink()
            except FileNotFoundError:
                raise NotFound("Tag", tag, f"no document at {path}") from None
            except OSError as exc:
                raise WriteFailure(path, "unlink", exc) from exc
        logger.info("Deleted tag {!r}", tag)

    def rename_tag(self, old: str, new: str) -> None:
        if old == DEFAULT_TAG:
            raise InvalidTag(old, "the default tag cannot be renamed")
        collection = self.create_tag(new, copy_from=old)
        try:
            self.delete_tag(old)
        except Exception:
            self.path_for(new).unlink(missing_ok=True)
            raise
        logger.info("Renamed tag {!r} to {!r} ({} tasks)", old, new, len(collection.tasks))


class TaskTx:
    """Mutable view of one tag's collection for the duration of a transaction."""

    def __init__(self, collection: TaskCollection) -> None:
        self.collection = collection
        self.dirty = False
        self._graph: Optional[DependencyGraph] = None

    @property
    def graph(self) -> DependencyGraph:
        if self._graph is None:
            self._graph = DependencyGraph(self.collection)
        else:
            self._graph.invalidate()
        return self._graph
