"""
Runtime configuration for zk-groups.

Values resolve in precedence order: environment variables, then an
optional YAML file, then built-in defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Final, Optional

import yaml

from .constants import (
    DEFAULT_PUBLISH_DELAY,
    DEFAULT_TREE_DEPTH,
    MAX_TREE_DEPTH,
    MIN_TREE_DEPTH,
    PUBLISH_TASK_NAME,
    SNARK_SCALAR_FIELD,
    is_valid_tree_depth,
)
from .exceptions import ConfigurationError

_ENV_PREFIX: Final[str] = "ZK_GROUPS_"
_VALID_LOG_LEVELS: Final[tuple[str, ...]] = (
    "DEBUG",
    "INFO",
    "WARNING",
    "ERROR",
    "CRITICAL",
)


@dataclass(frozen=True)
class GroupsConfig:
    publish_delay: float = DEFAULT_PUBLISH_DELAY
    store_path: str = "zk_groups.cbor"
    invites_path: str = "zk_groups_invites.cbor"
    ledger_path: str = "zk_groups_ledger.cbor"
    default_tree_depth: int = DEFAULT_TREE_DEPTH
    log_level: str = "INFO"


_FIELD_TYPES: Final[Dict[str, type]] = {
    "publish_delay": float,
    "store_path": str,
    "invites_path": str,
    "ledger_path": str,
    "default_tree_depth": int,
    "log_level": str,
}


def _coerce(key: str, value: Any) -> Any:
    expected = _FIELD_TYPES[key]
    try:
        if expected is int and isinstance(value, float):
            raise ValueError("expected an integer")
        coerced = expected(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Invalid value for {key}: {value!r}"
        ) from None
    if key == "log_level":
        coerced = coerced.upper()
    return coerced


def _validate(config: GroupsConfig) -> GroupsConfig:
    if config.publish_delay < 0:
        raise ConfigurationError("publish_delay must be >= 0")
    if not is_valid_tree_depth(config.default_tree_depth):
        raise ConfigurationError(
            f"default_tree_depth must be between {MIN_TREE_DEPTH} and {MAX_TREE_DEPTH}"
        )
    if config.log_level not in _VALID_LOG_LEVELS:
        raise ConfigurationError(
            f"Invalid log level: {config.log_level!r}. "
            f"Valid options: {', '.join(_VALID_LOG_LEVELS)}"
        )
    return config


def _read_yaml(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            payload = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    unknown = set(payload) - set(_FIELD_TYPES)
    if unknown:
        raise ConfigurationError(
            f"Unknown config keys in {path}: {', '.join(sorted(unknown))}"
        )
    return payload


def load_config(
    path: Optional[str] = None, environ: Optional[Dict[str, str]] = None
) -> GroupsConfig:
    """
    Build a GroupsConfig.

    Args:
        path: Optional YAML file with any GroupsConfig keys.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If any value is invalid
    """
    env = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}

    if path is not None:
        for key, value in _read_yaml(path).items():
            overrides[key] = _coerce(key, value)

    for item in fields(GroupsConfig):
        env_value = env.get(_ENV_PREFIX + item.name.upper())
        if env_value is not None and env_value != "":
            overrides[item.name] = _coerce(item.name, env_value)

    return _validate(replace(GroupsConfig(), **overrides))


def validate_config() -> bool:
    """
    Validate module-level constants.

    Raises:
        AssertionError: If configuration is invalid
    """
    assert MIN_TREE_DEPTH >= 1, "Tree depth must allow at least two leaves"
    assert 2 ** MAX_TREE_DEPTH < SNARK_SCALAR_FIELD, "Tree capacity exceeds field"
    assert is_valid_tree_depth(DEFAULT_TREE_DEPTH), "Invalid default tree depth"
    assert DEFAULT_PUBLISH_DELAY >= 0, "Publish delay must be non-negative"
    assert PUBLISH_TASK_NAME, "Publish task needs a name"
    return True


# Auto-validate on import
validate_config()
