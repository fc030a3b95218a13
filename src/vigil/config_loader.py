"""Load VigilConfig from vigil.yaml / vigil.toml, the environment, and CLI kwargs.

Precedence, lowest first: config file, environment, explicit overrides.
Overrides whose value is None are ignored so CLI flags left at their
defaults don't mask file or environment settings.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from dataclasses import fields
from pathlib import Path

import yaml

from vigil._errors import ConfigError
from vigil.config import VigilConfig

# Environment variable -> (config field, converter name)
_ENV_FIELDS: dict[str, tuple[str, str]] = {
    "VIGIL_HOST": ("host", "str"),
    "VIGIL_PORT": ("port", "int"),
    "VIGIL_WORKERS": ("workers", "int"),
    "VIGIL_DEBUG": ("debug", "bool"),
    "VIGIL_LOG_LEVEL": ("log_level", "str"),
    "PG_HOST": ("pg_host", "str"),
    "PG_PORT": ("pg_port", "int"),
    "PG_USER": ("pg_user", "str"),
    "PG_PASSWORD": ("pg_password", "str"),
    "PG_DATABASE": ("pg_database", "str"),
    "PG_SSL_CA_PATH": ("pg_ssl_ca_path", "str"),
    "PG_CHANNEL_LOGS": ("channel_logs", "str"),
    "PG_CHANNEL_ALERTS": ("channel_alerts", "str"),
}

_CONFIG_KEYS = frozenset(f.name for f in fields(VigilConfig)) - {"root"}

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def load_config(
    root: Path,
    env: Mapping[str, str] | None = None,
    **overrides: object,
) -> VigilConfig:
    """Build a VigilConfig for ``root``.

    Args:
        root: Directory holding the optional vigil.yaml / vigil.toml.
        env: Environment to read; defaults to ``os.environ``.
        **overrides: Explicit field values (CLI flags). None values are skipped.

    Raises:
        ConfigError: If the config file is malformed or a value has the wrong type.

    """
    file_config = _read_vigil_config(root)
    env_config = _read_env(os.environ if env is None else env)
    explicit = {k: v for k, v in overrides.items() if v is not None}
    merged = {**file_config, **env_config, **explicit}
    try:
        return VigilConfig(root=root, **merged)  # type: ignore[arg-type]
    except TypeError as exc:
        msg = f"Invalid configuration: {exc}"
        raise ConfigError(msg) from exc


def _read_vigil_config(root: Path) -> dict[str, object]:
    """Read vigil config from yaml/toml if present. Returns empty dict otherwise."""
    for name in ("vigil.yaml", "vigil.yml"):
        path = root / name
        if path.is_file():
            return _parse_yaml(path)
    toml_path = root / "vigil.toml"
    if toml_path.is_file():
        return _parse_toml(toml_path)
    return {}


def _parse_yaml(path: Path) -> dict[str, object]:
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:
        msg = f"Malformed config file {path}: {exc}"
        raise ConfigError(msg) from exc
    if not isinstance(data, dict):
        msg = f"Config file {path} must contain a mapping"
        raise ConfigError(msg)
    return _flatten_vigil_section(data)


def _parse_toml(path: Path) -> dict[str, object]:
    try:
        data = tomllib.loads(path.read_text())
    except tomllib.TOMLDecodeError as exc:
        msg = f"Malformed config file {path}: {exc}"
        raise ConfigError(msg) from exc
    return _flatten_vigil_section(data)


def _flatten_vigil_section(data: dict[str, object]) -> dict[str, object]:
    """Extract vigil.* keys and known top-level keys into one flat dict."""
    result: dict[str, object] = {}
    for k, v in data.items():
        if k in _CONFIG_KEYS:
            result[k] = v
    section = data.get("vigil")
    if isinstance(section, dict):
        for k, v in section.items():
            if k in _CONFIG_KEYS:
                result[k] = v
    return result


def _read_env(env: Mapping[str, str]) -> dict[str, object]:
    result: dict[str, object] = {}
    for var, (attr, kind) in _ENV_FIELDS.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        if kind == "int":
            try:
                result[attr] = int(raw)
            except ValueError as exc:
                msg = f"{var} must be an integer, got {raw!r}"
                raise ConfigError(msg) from exc
        elif kind == "bool":
            result[attr] = raw.strip().lower() in _TRUTHY
        else:
            result[attr] = raw
    return result
