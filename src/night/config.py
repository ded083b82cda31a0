from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from night.paths import default_config_path

DEFAULT_HELPER_COMMAND = ["night-brightness"]
DEFAULT_CAFFEINATE_COMMAND = ["caffeinate", "-i"]


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Options:
    """Which resources a session is allowed to touch."""

    display: bool = True
    keyboard: bool = True
    caffeinate: bool = True

    def validate(self) -> None:
        if not (self.display or self.keyboard or self.caffeinate):
            raise ConfigError("Nothing to do: all actions are disabled.")


@dataclass(frozen=True)
class Settings:
    helper_command: list[str] = field(default_factory=lambda: list(DEFAULT_HELPER_COMMAND))
    caffeinate_command: list[str] = field(
        default_factory=lambda: list(DEFAULT_CAFFEINATE_COMMAND)
    )
    kill_after_seconds: float = 1.5
    give_up_after_seconds: float = 2.5
    startup_probe_seconds: float = 0.1
    pin_interval_seconds: float = 2.0
    log_level: str = "WARNING"
    log_file: str | None = None


def _section(cfg: dict[str, Any], key: str) -> dict[str, Any]:
    value = cfg.get(key, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{key} must be a mapping")
    return value


def _command(section: dict[str, Any], name: str, default: list[str]) -> list[str]:
    if "command" not in section:
        return list(default)
    raw = section["command"]
    if not isinstance(raw, list) or not raw:
        raise ConfigError(f"{name}.command must be a non-empty list")
    return [str(x) for x in raw]


def _positive(section: dict[str, Any], name: str, key: str, default: float) -> float:
    if key not in section:
        return default
    try:
        value = float(section[key])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name}.{key} must be a number") from e
    if value <= 0:
        raise ConfigError(f"{name}.{key} must be > 0")
    return value


def validate(cfg: dict[str, Any]) -> Settings:
    helper = _section(cfg, "helper")
    caffeinate = _section(cfg, "caffeinate")
    display = _section(cfg, "display")
    logging_cfg = _section(cfg, "logging")

    kill_after = _positive(caffeinate, "caffeinate", "kill_after_seconds", 1.5)
    give_up_after = _positive(caffeinate, "caffeinate", "give_up_after_seconds", 2.5)
    if give_up_after < kill_after:
        raise ConfigError(
            "caffeinate.give_up_after_seconds must be >= caffeinate.kill_after_seconds"
        )

    log_file = logging_cfg.get("file")
    return Settings(
        helper_command=_command(helper, "helper", DEFAULT_HELPER_COMMAND),
        caffeinate_command=_command(caffeinate, "caffeinate", DEFAULT_CAFFEINATE_COMMAND),
        kill_after_seconds=kill_after,
        give_up_after_seconds=give_up_after,
        startup_probe_seconds=_positive(caffeinate, "caffeinate", "startup_probe_seconds", 0.1),
        pin_interval_seconds=_positive(display, "display", "pin_interval_seconds", 2.0),
        log_level=str(logging_cfg.get("level", "WARNING")).upper(),
        log_file=str(log_file) if log_file else None,
    )


def load(path: str | Path | None = None) -> Settings:
    """Read settings from ``path``, or from the default location if it exists."""

    if path is None:
        p = default_config_path()
        if not p.exists():
            return Settings()
    else:
        p = Path(path)
        if not p.exists():
            raise ConfigError(f"Config file not found: {p}")

    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {p}: {e}".replace("\n", " ")) from e
    except OSError as e:
        raise ConfigError(f"Could not read {p}: {e}") from e
    if data is None:
        return Settings()
    if not isinstance(data, dict):
        raise ConfigError("Top-level config must be a mapping")
    return validate(data)
