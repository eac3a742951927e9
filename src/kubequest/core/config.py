"""kubequest configuration and logging."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path

import structlog

try:
    import tomllib
except ImportError:
    import tomli as tomllib

USER_CONFIG = Path.home() / ".kubequest" / "config.toml"
PROJECT_CONFIG_NAME = ".kubequest.toml"
ENV_CONFIG = "KUBEQUEST_CONFIG"

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
}


@dataclass(frozen=True)
class Config:
    """Parsed configuration."""

    seed: int | None = None
    """Seeds synthetic names, UIDs and IPs. None = nondeterministic."""

    history_limit: int = 1000
    home: str = "/home/user"
    log: Path | None = None  # None = no logging
    log_full: bool = False  # log full command text (requires log path)
    log_level: str = "info"


_DEFAULTS = Config()

# table -> {toml key: Config field}
_KEYS = {
    "simulator": {"seed": "seed", "history_limit": "history_limit", "home": "home"},
    "logging": {"path": "log", "full_commands": "log_full", "level": "log_level"},
}


# === Config Loading ===


def _find_project_config(cwd: Path) -> Path | None:
    """Walk up from cwd to find .kubequest.toml."""
    current = cwd.resolve()
    while True:
        candidate = current / PROJECT_CONFIG_NAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:  # reached root
            return None
        current = parent


def _merge_configs(base: Config, overlay: Config) -> Config:
    """Merge overlay config into base. Settings the overlay changed from the default win."""
    changes = {}
    for f in fields(Config):
        value = getattr(overlay, f.name)
        if value != getattr(_DEFAULTS, f.name):
            changes[f.name] = value
    return replace(base, **changes)


def _load_file(path: Path) -> Config:
    with open(path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"{path}: {e}") from None
    try:
        return parse_config(data)
    except ValueError as e:
        raise ValueError(f"{path}: {e}") from None


def load_config(cwd: Path) -> Config:
    """Load config from ~/.kubequest/config.toml, .kubequest.toml, and $KUBEQUEST_CONFIG. Last wins."""
    config = Config()

    # 1. User config (lowest priority)
    if USER_CONFIG.is_file():
        config = _merge_configs(config, _load_file(USER_CONFIG))

    # 2. Project config (walk up from cwd)
    project_path = _find_project_config(cwd)
    if project_path is not None:
        config = _merge_configs(config, _load_file(project_path))

    # 3. Env override (highest priority)
    env_path = os.environ.get(ENV_CONFIG)
    if env_path:
        env_config_path = Path(env_path).expanduser()
        if env_config_path.is_file():
            config = _merge_configs(config, _load_file(env_config_path))

    return config


def parse_config(data: dict) -> Config:
    """Build a Config from decoded TOML. Raises ValueError on unknown or invalid keys."""
    settings: dict[str, object] = {}

    for table, values in data.items():
        if table not in _KEYS:
            raise ValueError(f"unknown table [{table}]")
        if not isinstance(values, dict):
            raise ValueError(f"'{table}' must be a table")
        for key, value in values.items():
            if key not in _KEYS[table]:
                raise ValueError(f"unknown setting '{table}.{key}'")
            _apply_setting(settings, _KEYS[table][key], key, value)

    return replace(_DEFAULTS, **settings)


def _apply_setting(settings: dict[str, object], name: str, key: str, value: object) -> None:
    """Validate and store one setting. Raises ValueError on a bad value."""
    # Integer settings (bool is an int subclass, reject it)
    if name in ("seed", "history_limit"):
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValueError(f"'{key}' requires an integer, got {value!r}")
        if name == "history_limit" and value < 0:
            raise ValueError(f"'{key}' must not be negative")
        settings[name] = value

    elif name == "log_full":
        if not isinstance(value, bool):
            raise ValueError(f"'{key}' requires true or false, got {value!r}")
        settings[name] = value

    elif name == "log_level":
        if value not in LOG_LEVELS:
            raise ValueError(
                f"'{key}' must be one of {', '.join(LOG_LEVELS)}, got {value!r}"
            )
        settings[name] = value

    # Path settings
    elif name == "log":
        if not isinstance(value, str) or not value:
            raise ValueError(f"'{key}' requires a path")
        settings[name] = Path(value).expanduser()

    elif name == "home":
        if not isinstance(value, str) or not value.startswith("/"):
            raise ValueError(f"'{key}' must be an absolute path, got {value!r}")
        settings[name] = value.rstrip("/") or "/"


# === Logging ===

_log_file = None
_logger: structlog.typing.FilteringBoundLogger | None = None
_log_full = False


def configure_logging(config: Config) -> None:
    """Configure structlog for JSON lines. Call once at startup; no-op without a log path."""
    global _log_file, _logger, _log_full
    if _log_file is not None:
        _log_file.close()
        _log_file = None
    _logger = None
    _log_full = config.log_full

    if config.log is None:
        return

    # Ensure log directory exists
    config.log.parent.mkdir(parents=True, exist_ok=True)
    _log_file = open(config.log, "a")

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVELS[config.log_level]),
        logger_factory=structlog.PrintLoggerFactory(file=_log_file),
        cache_logger_on_first_use=False,
    )
    _logger = structlog.get_logger()


def log(level: str, event: str, **kwargs) -> None:
    """Emit one log event. No-op if logging not configured.

    A `command` keyword is cut down to its leading token unless full
    command logging is enabled.
    """
    if _logger is None:
        return
    command = kwargs.get("command")
    if isinstance(command, str) and not _log_full:
        kwargs["command"] = command.split(None, 1)[0] if command.strip() else ""
    getattr(_logger, level)(event, **kwargs)
