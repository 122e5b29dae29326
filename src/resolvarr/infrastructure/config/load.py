"""Layered configuration loading for the resolver.

Layers, lowest to highest: built-in defaults, YAML file, RESOLVARR_*
environment (``.env`` included), explicit overrides from the caller.
"""

from __future__ import annotations

import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Iterator, Mapping

import yaml
from dotenv import load_dotenv

from .defaults import DEFAULT_CONFIG
from .schema import AppConfig, EnvOverrides

CONFIG_PATH_ENV = "RESOLVARR_CONFIG"

_SECTIONS = ("http", "solver", "challenge", "extraction", "cache", "logging")
_TOP_LEVEL = ("app_name", "environment")

# Flat key (ENV / overrides) -> (section, key)
_FLAT_MAP: dict[str, tuple[str, str]] = {
    "http_timeout_seconds": ("http", "timeout_seconds"),
    "http_max_retries": ("http", "max_retries"),
    "proxy_url": ("http", "proxy_url"),
    "solver_url": ("solver", "url"),
    "solver_timeout_seconds": ("solver", "timeout_seconds"),
    "solver_proxy_url": ("solver", "proxy_url"),
    "lock_dir": ("challenge", "lock_dir"),
    "credential_ttl_seconds": ("challenge", "credential_ttl_seconds"),
    "log_level": ("logging", "level"),
    "log_format": ("logging", "format"),
    "cache_enabled": ("cache", "enabled"),
    "cache_backend": ("cache", "backend"),
    "cache_dir": ("cache", "dir"),
    "cache_redis_url": ("cache", "redis_url"),
}


def _merge_into(target: dict[str, Any], layer: Mapping[str, Any]) -> None:
    for key, value in layer.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            _merge_into(current, value)
        else:
            target[key] = value


def _sectioned(layer: Mapping[str, Any]) -> dict[str, Any]:
    """Bring a layer into sectioned shape; flat keys land in their section.

    Unknown top-level keys are dropped so a stray YAML key never reaches
    validation.
    """
    out: dict[str, Any] = {
        name: dict(layer[name])
        for name in _SECTIONS
        if isinstance(layer.get(name), Mapping)
    }
    out.update({name: layer[name] for name in _TOP_LEVEL if name in layer})
    for flat_key, (section, key) in _FLAT_MAP.items():
        if flat_key in layer:
            out.setdefault(section, {})[key] = layer[flat_key]
    return out


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError(f"Config YAML must be a mapping, got: {type(parsed)!r}")
    return parsed


def _resolve_config_path(config_path: Path | None) -> Path | None:
    if config_path is not None:
        return config_path
    from_env = os.environ.get(CONFIG_PATH_ENV)
    return Path(from_env).expanduser() if from_env else None


def _layers(
    config_path: Path | None, overrides: Mapping[str, Any]
) -> Iterator[Mapping[str, Any]]:
    yield deepcopy(DEFAULT_CONFIG)
    if config_path is not None:
        yield _read_yaml(config_path)
    yield EnvOverrides().to_update_dict()
    yield overrides


def load_config(
    *,
    config_path: Path | None = None,
    dotenv_path: Path | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> AppConfig:
    """
    Build the validated AppConfig from all layers.

    Without ``config_path`` the YAML file named by ``RESOLVARR_CONFIG`` is
    used, if set. The ``.env`` file is loaded before anything else so its
    values count as environment, and never replaces variables already set.
    Nothing is written to disk; lock and cache directories are created by
    the components that use them.
    """
    if dotenv_path is not None:
        if not dotenv_path.exists():
            raise FileNotFoundError(dotenv_path)
        load_dotenv(dotenv_path, override=False)

    merged: dict[str, Any] = {}
    for layer in _layers(_resolve_config_path(config_path), cli_overrides or {}):
        _merge_into(merged, _sectioned(layer))

    return AppConfig.model_validate(merged)
