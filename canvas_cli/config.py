"""CLI configuration and on-disk layout.

Everything the client persists lives under ``<user home>/config``, where
the user home is ``$CANVAS_USER_HOME`` or ``~/.canvas``.
"""

import copy
import logging
import math
import os
from pathlib import Path
from typing import Any

from canvas_cli.remote.store import JsonMapFile

logger = logging.getLogger(__name__)

CONFIG_FILE = "canvas-cli.json"

DEFAULT_CONFIG: dict[str, Any] = {
    "sync": {
        "enabled": True,
        # Minutes before a remote's cached contexts/workspaces are stale.
        "stale_threshold": 15,
    },
    "http": {
        "timeout": 30,
        "ping_timeout": 5,
    },
}

FLAG_WORDS = {
    "true": True,
    "yes": True,
    "on": True,
    "1": True,
    "false": False,
    "no": False,
    "off": False,
    "0": False,
}


def get_user_home() -> Path:
    override = os.environ.get("CANVAS_USER_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".canvas"


def get_config_dir() -> Path:
    return get_user_home() / "config"


def _merge_defaults(defaults: dict, overrides: dict) -> dict:
    merged = copy.deepcopy(defaults)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_defaults(merged[key], value)
        else:
            merged[key] = value
    return merged


class CliConfig:
    """Dotted-key access to ``canvas-cli.json`` layered over defaults.

    A missing or corrupt file yields the defaults. Only explicitly set
    keys are written back.
    """

    def __init__(self, config_dir: Path | None = None):
        self.config_dir = Path(config_dir) if config_dir else get_config_dir()
        self.file = JsonMapFile(self.config_dir / CONFIG_FILE)

    @property
    def path(self) -> Path:
        return self.file.path

    def as_dict(self) -> dict:
        return _merge_defaults(DEFAULT_CONFIG, self.file.read())

    def get(self, key: str, default: Any = None) -> Any:
        value: Any = self.as_dict()
        for part in key.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        parts = key.split(".")

        def _set(data: dict) -> None:
            node = data
            for part in parts[:-1]:
                if not isinstance(node.get(part), dict):
                    node[part] = {}
                node = node[part]
            node[parts[-1]] = value

        self.file.update(_set)
        logger.debug(f"Config {key} = {value!r}")

    def delete(self, key: str) -> bool:
        parts = key.split(".")

        def _delete(data: dict) -> bool:
            node = data
            for part in parts[:-1]:
                node = node.get(part)
                if not isinstance(node, dict):
                    return False
            return node.pop(parts[-1], None) is not None

        return self.file.update(_delete)

    def reset(self) -> None:
        self.file.replace({})

    def _default(self, key: str) -> Any:
        value: Any = DEFAULT_CONFIG
        for part in key.split("."):
            value = value[part]
        return value

    def _flag(self, key: str) -> bool:
        value = self.get(key)
        flag = _as_bool(value)
        if flag is None:
            default = self._default(key)
            logger.warning(f"Invalid value for {key}: {value!r}, using {default!r}")
            return default
        return flag

    def _number(self, key: str, allow_zero: bool) -> float:
        value = self.get(key)
        if not _is_number(value) or value < 0 or (value == 0 and not allow_zero):
            default = self._default(key)
            logger.warning(f"Invalid value for {key}: {value!r}, using {default!r}")
            return float(default)
        return float(value)

    @property
    def sync_enabled(self) -> bool:
        return self._flag("sync.enabled")

    @property
    def stale_threshold_minutes(self) -> float:
        return self._number("sync.stale_threshold", allow_zero=True)

    @property
    def request_timeout(self) -> float:
        return self._number("http.timeout", allow_zero=False)

    @property
    def ping_timeout(self) -> float:
        return self._number("http.ping_timeout", allow_zero=False)

    def validate(self) -> tuple[bool, list[str]]:
        errors = []

        if _as_bool(self.get("sync.enabled")) is None:
            errors.append("sync.enabled must be true or false")

        threshold = self.get("sync.stale_threshold")
        if not _is_number(threshold) or threshold < 0:
            errors.append("sync.stale_threshold must be a non-negative number")

        for key in ("http.timeout", "http.ping_timeout"):
            value = self.get(key)
            if not _is_number(value) or value <= 0:
                errors.append(f"{key} must be a positive number")

        return not errors, errors


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _as_bool(value: Any) -> bool | None:
    """Interpret a config flag, or None if it is not recognisably one."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return FLAG_WORDS.get(value.strip().lower())
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    return None
