"""Configuration loading: ~/.kamui/config.json plus KAMUI_* environment overrides."""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

from .errors import ConfigInvalid

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".kamui" / "config.json"
DEFAULT_PROJECTS_ROOT = Path.home() / ".claude" / "projects"
DEFAULT_SENTINEL = "KAMUI_INIT_MESSAGE"
ENV_PREFIX = "KAMUI_"

# Nested config-file keys accepted as aliases for the flat setting names.
_NESTED_KEYS = {
    ("claude", "path"): "claude_path",
    ("claude", "projectsRoot"): "projects_root",
    ("claude", "sentinelText"): "sentinel_text",
    ("discovery", "settleInterval"): "settle_interval",
    ("discovery", "pollInterval"): "poll_interval",
    ("discovery", "timeout"): "discovery_timeout",
    ("discovery", "monitorCeiling"): "monitor_ceiling",
    ("ui", "verboseLogging"): "verbose",
}


@dataclass
class Settings:
    claude_path: str = "claude"
    projects_root: Path = field(default_factory=lambda: DEFAULT_PROJECTS_ROOT)
    sentinel_text: str = DEFAULT_SENTINEL
    settle_interval: float = 1.0
    poll_interval: float = 0.5
    discovery_timeout: float = 300.0
    monitor_ceiling: float = 5.0
    verbose: bool = False


def _coerce(name: str, value, source: str):
    """Convert a raw config value to the type of the named setting."""
    try:
        if name == "projects_root":
            return Path(os.path.expanduser(str(value)))
        if name in ("settle_interval", "poll_interval", "discovery_timeout", "monitor_ceiling"):
            number = float(value)
            if number < 0:
                raise ValueError("must not be negative")
            return number
        if name == "verbose":
            if isinstance(value, bool):
                return value
            return str(value).strip().lower() in ("1", "true", "yes", "on")
        return str(value)
    except (TypeError, ValueError) as e:
        raise ConfigInvalid(
            f"invalid value for {name!r}",
            context={"source": source, "value": value},
            cause=e,
        ) from e


def _flatten(data: dict) -> dict:
    flat = {}
    for key, value in data.items():
        if isinstance(value, dict):
            for sub_key, sub_value in value.items():
                name = _NESTED_KEYS.get((key, sub_key))
                if name:
                    flat[name] = sub_value
        else:
            flat[key] = value
    return flat


def load_settings(config_path: Optional[Path] = None, environ: Optional[dict] = None) -> Settings:
    """Load settings from the config file and environment.

    A missing file yields defaults; unreadable or malformed JSON raises
    ConfigInvalid. Environment variables (KAMUI_CLAUDE_PATH, KAMUI_VERBOSE,
    ...) win over file values.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    environ = os.environ if environ is None else environ
    known = {f.name for f in fields(Settings)}
    values: dict = {}

    if path.exists():
        try:
            with open(path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise ConfigInvalid("failed to read config file", context={"path": str(path)}, cause=e) from e
        if not isinstance(data, dict):
            raise ConfigInvalid("config file must contain a JSON object", context={"path": str(path)})

        for name, value in _flatten(data).items():
            if name not in known:
                logger.debug(f"Ignoring unknown config key {name!r} in {path}")
                continue
            values[name] = _coerce(name, value, str(path))
    else:
        logger.debug(f"No config file at {path}, using defaults")

    for name in known:
        env_name = ENV_PREFIX + name.upper()
        if env_name in environ:
            values[name] = _coerce(name, environ[env_name], env_name)

    return Settings(**values)
