"""Operating policies and the session controller.

A session runs under one of two policies, chosen once from the config
document's ``mode`` (or passed explicitly) and consulted at three points:
loading config, constructing domains, and choosing the storage backend.
Both policies give the same results; they differ only in latency and in how
stale a cached config read may be.
"""

from __future__ import annotations

import copy
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from loguru import logger

from . import __version__
from .config import Config, config_path, load_config, save_config
from .constants import (
    CONFIG_CACHE_TTL_SECONDS,
    DEFAULT_DOC_FORMAT,
    DEFAULT_TAG,
    ENV_SKIP_UPDATE_CHECK,
    STATE_DIR_NAME,
    UPDATE_MARKER_FILE,
)
from .task_engine.engine import TaskEngine
from .task_engine.store import TaskStore
from .update_check import UpdateChecker


class Policy(str, Enum):
    ALWAYS_CONSISTENT = "standard"
    CACHED = "solo"

    @classmethod
    def from_mode(cls, mode: Any) -> "Policy":
        # Absent or unknown modes get the always-consistent policy.
        return cls.CACHED if mode == cls.CACHED.value else cls.ALWAYS_CONSISTENT


class StorageBackend(str, Enum):
    FILE = "file"
    REMOTE = "remote"


@dataclass
class CacheEntry:
    config: Config
    expires_at: float


@dataclass
class ConfigCache:
    """Config documents cached per project root with a fixed expiry."""

    ttl_seconds: float = CONFIG_CACHE_TTL_SECONDS
    clock: Callable[[], float] = time.monotonic
    entries: dict[Path, CacheEntry] = field(default_factory=dict)

    def get(self, root: Path) -> Optional[Config]:
        entry = self.entries.get(root)
        if entry is None:
            return None
        if self.clock() >= entry.expires_at:
            del self.entries[root]
            logger.debug("Config cache expired for {}", root)
            return None
        return copy.deepcopy(entry.config)

    def put(self, root: Path, config: Config) -> None:
        self.entries[root] = CacheEntry(copy.deepcopy(config), self.clock() + self.ttl_seconds)

    def invalidate(self, root: Optional[Path] = None) -> None:
        if root is None:
            self.entries.clear()
        else:
            self.entries.pop(root, None)


class ModeController:
    """Owns the store, the config cache and the domains of one session.

    Parameters
    ----------
    project_dir:
        Project root; state lives in ``<project_dir>/.taskgraph``.
    policy:
        Force a policy instead of reading ``mode`` from the config document.
    remote_session:
        Optional callable reporting whether a remote storage session is active.
    check_updates:
        Start the background update check (also disabled by
        ``TASKGRAPH_SKIP_UPDATE_CHECK``).
    """

    def __init__(
        self,
        project_dir: Path,
        *,
        policy: Optional[Policy] = None,
        doc_format: str = DEFAULT_DOC_FORMAT,
        remote_session: Optional[Callable[[], bool]] = None,
        check_updates: bool = False,
        update_checker: Optional[UpdateChecker] = None,
        cache: Optional[ConfigCache] = None,
    ) -> None:
        self.project_dir = Path(project_dir).expanduser().resolve()
        self.state_dir = self.project_dir / STATE_DIR_NAME
        self.store = TaskStore(self.state_dir, doc_format=doc_format)
        self.cache = cache or ConfigCache()
        self._remote_session = remote_session
        self._factories: dict[str, Callable[[], Any]] = {"tasks": lambda: TaskEngine(self)}
        self._domains: dict[str, Any] = {}

        if policy is None:
            initial = load_config(self.project_dir)
            policy = Policy.from_mode(initial.mode)
            if policy == Policy.CACHED:
                self.cache.put(self.project_dir, initial)
        self.policy = policy
        logger.debug("Session for {} uses the {} policy", self.project_dir, self.policy.name)

        if self.policy == Policy.ALWAYS_CONSISTENT:
            for name in self._factories:
                self.domain(name)

        self.update_checker = update_checker
        if check_updates and not os.environ.get(ENV_SKIP_UPDATE_CHECK):
            if self.update_checker is None:
                self.update_checker = UpdateChecker(self.state_dir / UPDATE_MARKER_FILE, __version__)
            self.update_checker.start()

    # -- config -------------------------------------------------------------

    def load_config(self) -> Config:
        if self.policy == Policy.CACHED:
            cached = self.cache.get(self.project_dir)
            if cached is not None:
                return cached
            config = load_config(self.project_dir)
            self.cache.put(self.project_dir, config)
            return copy.deepcopy(config)
        return load_config(self.project_dir)

    def save_config(self, config: Config) -> None:
        try:
            save_config(self.project_dir, config)
        finally:
            # Drop the cached copy even if the write failed; the next read
            # must reflect whatever is on disk.
            self.cache.invalidate(self.project_dir)
        logger.info("Saved config (current tag {!r}) to {}", config.current_tag, config_path(self.project_dir))

    # -- domains ------------------------------------------------------------

    def register_domain(self, name: str, factory: Callable[[], Any]) -> None:
        self._factories[name] = factory
        self._domains.pop(name, None)
        if self.policy == Policy.ALWAYS_CONSISTENT:
            self.domain(name)

    def is_initialized(self, name: str) -> bool:
        return name in self._domains

    def domain(self, name: str) -> Any:
        if name not in self._domains:
            try:
                factory = self._factories[name]
            except KeyError:
                raise KeyError(f"Unknown domain {name!r}; known: {sorted(self._factories)}") from None
            self._domains[name] = factory()
            logger.debug("Initialized domain {!r}", name)
        return self._domains[name]

    @property
    def tasks(self) -> TaskEngine:
        return self.domain("tasks")

    # -- storage backend ------------------------------------------------------

    def select_backend(self) -> StorageBackend:
        """``file`` when the default task document exists, else ``remote`` if a session is active."""
        has_local = self.store.exists(DEFAULT_TAG)
        if self.policy == Policy.CACHED and has_local:
            return StorageBackend.FILE
        remote_active = bool(self._remote_session and self._remote_session())
        if has_local or not remote_active:
            return StorageBackend.FILE
        return StorageBackend.REMOTE
