"""Tests for config.py."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from taskgraph.config import Config, config_path, load_config, save_config
from taskgraph.errors import CorruptDocument


def test_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path)
    assert config == Config()
    assert config.current_tag == "master"
    assert config.mode == "standard"
    assert not config_path(tmp_path).exists()


def test_round_trip_keeps_unknown_keys(tmp_path: Path) -> None:
    path = config_path(tmp_path)
    path.parent.mkdir(parents=True)
    path.write_text(
        json.dumps({"currentTag": "feature", "mode": "solo", "mainModel": "m", "telemetry": {"enabled": False}}),
        encoding="utf-8",
    )
    config = load_config(tmp_path)
    assert config.current_tag == "feature"
    assert config.mode == "solo"
    assert config.main_model == "m"
    assert config.extra == {"telemetry": {"enabled": False}}

    save_config(tmp_path, config)
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["telemetry"] == {"enabled": False}
    assert raw["currentTag"] == "feature"


def test_unknown_mode_falls_back(tmp_path: Path) -> None:
    assert Config.from_dict({"mode": "team"}).mode == "standard"


@pytest.mark.parametrize("text", ["{oops", "[]", "null"])
def test_corrupt_config(tmp_path: Path, text: str) -> None:
    path = config_path(tmp_path)
    path.parent.mkdir(parents=True)
    path.write_text(text, encoding="utf-8")
    with pytest.raises(CorruptDocument):
        load_config(tmp_path)
