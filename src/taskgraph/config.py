"""Load and save the project configuration from `.taskgraph/config.json`."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from .constants import CONFIG_FILE, DEFAULT_TAG, STATE_DIR_NAME
from .errors import CorruptDocument
from .io_utils import _atomic_write, _load_document

# Valid mode values; anything else falls back to "standard".
VALID_MODES = {"solo", "standard"}
DEFAULT_MODE = "standard"

_KEYS = {
    "currentTag": "current_tag",
    "mode": "mode",
    "mainModel": "main_model",
    "researchModel": "research_model",
    "fallbackModel": "fallback_model",
}


@dataclass
class Config:
    """Process-wide settings. Model names are opaque and only passed through."""

    current_tag: str = DEFAULT_TAG
    mode: str = DEFAULT_MODE
    main_model: str = ""
    research_model: str = ""
    fallback_model: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = {key: getattr(self, attr) for key, attr in _KEYS.items()}
        for key, value in self.extra.items():
            data.setdefault(key, copy.deepcopy(value))
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        d = dict(data)
        mode = d.pop("mode", None)
        if mode not in VALID_MODES:
            if mode is not None:
                logger.warning("Unknown mode {!r} in config; using {!r}", mode, DEFAULT_MODE)
            mode = DEFAULT_MODE
        tag = d.pop("currentTag", None)
        return cls(
            current_tag=str(tag) if tag else DEFAULT_TAG,
            mode=mode,
            main_model=str(d.pop("mainModel", "") or ""),
            research_model=str(d.pop("researchModel", "") or ""),
            fallback_model=str(d.pop("fallbackModel", "") or ""),
            extra=d,
        )


def config_path(project_dir: Path) -> Path:
    return project_dir / STATE_DIR_NAME / CONFIG_FILE


def load_config(project_dir: Path) -> Config:
    """Read the config document, returning defaults when it does not exist.

    Args:
        project_dir: Repository root directory.

    Raises:
        CorruptDocument: The file exists but is not a valid config object.
    """
    path = config_path(project_dir)
    try:
        data = _load_document(path)
    except FileNotFoundError:
        return Config()
    try:
        return Config.from_dict(data)
    except (TypeError, ValueError) as exc:
        raise CorruptDocument(path, str(exc)) from exc


def save_config(project_dir: Path, config: Config) -> Path:
    """Atomically write *config*; returns the path written."""
    path = config_path(project_dir)
    _atomic_write(path, config.to_dict())
    logger.debug("Saved config to {}", path)
    return path
