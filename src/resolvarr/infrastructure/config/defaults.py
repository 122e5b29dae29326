"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "resolvarr",
    "environment": "dev",
    "http": {
        "timeout_seconds": 8.0,
        "max_retries": 1,
        "retry_delay_seconds": 0.8,
        "max_response_bytes": 2 * 1024 * 1024,
        "max_redirects": 10,
        "proxy_url": None,
        "proxy_by_default": False,
    },
    "solver": {
        "url": None,
        "timeout_seconds": 45.0,
        "proxy_url": None,
        "session_ttl_seconds": 600,
        "max_concurrent": 2,
        "queue_max_depth": 10,
        "failure_threshold": 3,
        "reset_seconds": 120.0,
    },
    "challenge": {
        "lock_dir": "/tmp/resolvarr-challenge",
        "lock_ttl_seconds": 120.0,
        "lock_wait_seconds": 20.0,
        "credential_ttl_seconds": 0,
    },
    "extraction": {
        "max_buttons": 15,
        "max_validations": 10,
        "validation_timeout_seconds": 3.0,
        "cache_ttl_seconds": 300,
        "max_recursion_depth": 3,
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
    "cache": {
        "enabled": False,
        "backend": "diskcache",
        "dir": "./.cache/resolvarr",
    },
}
