"""Validated settings for the resolver (defaults, YAML, env, overrides)."""

from .load import CONFIG_PATH_ENV, load_config
from .schema import AppConfig, EnvOverrides

__all__ = ["AppConfig", "CONFIG_PATH_ENV", "EnvOverrides", "load_config"]
