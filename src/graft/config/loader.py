"""
Configuration loader for graft.

Settings live in a JSON file, ``~/.config/graft/config.json`` by default.
The location can be changed with the ``GRAFT_CONFIG`` environment variable
(or the CLI's ``--config`` option). A missing file simply means "use the
defaults"; a file that is not valid JSON, or whose values have the wrong
type, raises :class:`ConfigError`.

Selected environment variables override the file, see :data:`ENV_OVERRIDES`.
"""

from __future__ import annotations

import json
import logging
import math
import os
from pathlib import Path
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())
    logger.propagate = False


CONFIG_ENV_VAR = "GRAFT_CONFIG"

DEFAULTS: Dict[str, Any] = {
    "provider": "ollama",
    "model": "",
    "anthropic_api_key": "",
    "ollama_base_url": "http://localhost",
    "ollama_port": 11434,
    "request_timeout": 120,
    "max_tokens": None,
    "delta_path": "",
    "cache_max_age_days": 7,
}

# Expected type(s) per key; ``None`` is always accepted for optional keys
_TYPES: Dict[str, Any] = {
    "provider": str,
    "model": str,
    "anthropic_api_key": str,
    "ollama_base_url": str,
    "ollama_port": int,
    "request_timeout": (int, float),
    "max_tokens": int,
    "delta_path": str,
    "cache_max_age_days": (int, float),
}

_OPTIONAL = {"max_tokens"}

ENV_OVERRIDES: Dict[str, str] = {
    "GRAFT_PROVIDER": "provider",
    "GRAFT_MODEL": "model",
    "ANTHROPIC_API_KEY": "anthropic_api_key",
    "OLLAMA_BASE_URL": "ollama_base_url",
    "OLLAMA_PORT": "ollama_port",
    "GRAFT_DELTA_PATH": "delta_path",
}

SECRET_KEYS = {"anthropic_api_key"}

MAX_CACHE_AGE_DAYS = 36500


class ConfigError(Exception):
    """Raised when the configuration file or a configuration value is invalid."""

    pass


def get_config_path(path: Optional[Path] = None) -> Path:
    """Return the configuration file location.

    An explicit ``path`` wins, then ``$GRAFT_CONFIG``, then
    ``~/.config/graft/config.json``.
    """
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return Path.home() / ".config" / "graft" / "config.json"


def _coerce(key: str, value: str) -> Any:
    """Convert a string from the command line or environment to ``key``'s type."""
    if key not in _TYPES:
        raise ConfigError(f"Unknown configuration key: {key}")
    expected = _TYPES[key]
    if expected is str:
        return value
    if key in _OPTIONAL and value.strip().lower() in ("", "none", "null"):
        return None
    try:
        if expected is int:
            return int(value)
        return float(value) if "." in value else int(value)
    except ValueError as exc:
        raise ConfigError(f"'{key}' must be a number, got {value!r}") from exc


def _validate(data: Dict[str, Any]) -> None:
    for key, value in data.items():
        expected = _TYPES.get(key)
        if expected is None:
            logger.debug("Ignoring unknown configuration key: %s", key)
            continue
        if value is None and key in _OPTIONAL:
            continue
        # bool is an int subclass; reject it explicitly
        if isinstance(value, bool) or not isinstance(value, expected):
            kind = "a string" if expected is str else ("an integer" if expected is int else "a number")
            raise ConfigError(f"'{key}' must be {kind}")
    if data.get("request_timeout") is not None:
        _check_positive("request_timeout", data["request_timeout"])
    if data.get("max_tokens") is not None and data["max_tokens"] <= 0:
        raise ConfigError("'max_tokens' must be positive")
    if data.get("cache_max_age_days") is not None:
        _check_positive("cache_max_age_days", data["cache_max_age_days"], MAX_CACHE_AGE_DAYS)


def _check_positive(key: str, value: float, upper: Optional[float] = None) -> None:
    if (isinstance(value, float) and not math.isfinite(value)) or value <= 0:
        raise ConfigError(f"'{key}' must be a positive number")
    if upper is not None and value > upper:
        raise ConfigError(f"'{key}' must be at most {upper}")


def read_config_file(path: Optional[Path] = None) -> Dict[str, Any]:
    """Return the raw contents of the configuration file (``{}`` if absent)."""
    config_path = get_config_path(path)
    if not config_path.exists():
        logger.debug("No configuration file at %s; using defaults", config_path)
        return {}
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.error("Failed to read or parse configuration file: %s", exc)
        raise ConfigError(f"Invalid JSON in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a JSON object")
    return data


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the configuration, apply environment overrides and validate it.

    Returns
    -------
    dict
        Every key of :data:`DEFAULTS`, plus any unknown keys found in the
        file.

    Raises
    ------
    ConfigError
        If the file is malformed or a value has the wrong type.
    """
    data = read_config_file(path)
    _validate(data)

    config = dict(DEFAULTS)
    config.update(data)
    for env_var, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            config[key] = _coerce(key, value)
            logger.debug("Configuration key %s overridden by $%s", key, env_var)
    _validate(config)
    return config


def save_config(data: Dict[str, Any], path: Optional[Path] = None) -> Path:
    """Write ``data`` to the configuration file and return its path."""
    _validate(data)
    config_path = get_config_path(path)
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Could not write {config_path}: {exc}") from exc
    if any(data.get(k) for k in SECRET_KEYS):
        try:
            config_path.chmod(0o600)
        except OSError:
            logger.debug("Could not restrict permissions on %s", config_path)
    logger.debug("Saved configuration to %s", config_path)
    return config_path


def mask_secret(value: str) -> str:
    """Shorten a secret for display.

    >>> mask_secret("sk-ant-0123456789abcdef")
    'sk-a...cdef'
    >>> mask_secret("short")
    '****'
    """
    if len(value) <= 8:
        return "****" if value else ""
    return f"{value[:4]}...{value[-4:]}"


def set_config_value(key: str, value: str, path: Optional[Path] = None) -> Any:
    """Persist a single key in the configuration file and return the stored value."""
    data = read_config_file(path)
    data[key] = _coerce(key, value)
    save_config(data, path)
    return data[key]


def get_config_value(key: str, path: Optional[Path] = None, reveal: bool = False) -> str:
    """Return the effective value of ``key`` formatted for display."""
    if key not in DEFAULTS:
        raise ConfigError(f"Unknown configuration key: {key}")
    value = load_config(path).get(key)
    if value is None:
        return ""
    if key in SECRET_KEYS and not reveal:
        return mask_secret(str(value))
    return str(value)
