from __future__ import annotations

from pathlib import Path

import pytest

from night.config import ConfigError, Options, Settings, load, validate
from night.paths import default_config_path


def test_all_disabled_rejected() -> None:
    with pytest.raises(ConfigError, match="Nothing to do"):
        Options(display=False, keyboard=False, caffeinate=False).validate()


@pytest.mark.parametrize(
    "options",
    [
        Options(display=False, keyboard=False),
        Options(keyboard=False, caffeinate=False),
        Options(display=False, caffeinate=False),
    ],
)
def test_any_enabled_subsystem_is_enough(options: Options) -> None:
    options.validate()


def test_defaults_when_no_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    assert load() == Settings()
    assert default_config_path() == tmp_path / "night" / "config.yaml"


def test_load_default_location(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    p = tmp_path / "night" / "config.yaml"
    p.parent.mkdir()
    p.write_text(
        "helper:\n"
        "  command: [swift, /opt/night/macos_brightness.swift]\n"
        "caffeinate:\n"
        "  command: [caffeinate, -d, -i]\n"
        "  kill_after_seconds: 1\n"
        "display:\n"
        "  pin_interval_seconds: 0.5\n"
        "logging:\n"
        "  level: debug\n",
        encoding="utf-8",
    )
    s = load()
    assert s.helper_command == ["swift", "/opt/night/macos_brightness.swift"]
    assert s.caffeinate_command == ["caffeinate", "-d", "-i"]
    assert s.kill_after_seconds == 1.0
    assert s.give_up_after_seconds == 2.5
    assert s.pin_interval_seconds == 0.5
    assert s.log_level == "DEBUG"


def test_explicit_missing_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load(tmp_path / "nope.yaml")


def test_empty_file_means_defaults(tmp_path: Path) -> None:
    p = tmp_path / "night.yaml"
    p.write_text("", encoding="utf-8")
    assert load(p) == Settings()


@pytest.mark.parametrize(
    "cfg",
    [
        {"helper": {"command": []}},
        {"helper": {"command": "swift helper.swift"}},
        {"helper": ["swift"]},
        {"display": {"pin_interval_seconds": 0}},
        {"display": {"pin_interval_seconds": "soon"}},
        {"caffeinate": {"kill_after_seconds": 3, "give_up_after_seconds": 2}},
    ],
)
def test_invalid_config(cfg: dict) -> None:
    with pytest.raises(ConfigError):
        validate(cfg)


def test_top_level_must_be_mapping(tmp_path: Path) -> None:
    p = tmp_path / "night.yaml"
    p.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load(p)
