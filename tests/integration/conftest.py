"""Shared fixtures for integration tests.

These tests use real infrastructure components (DiskcacheAdapter,
RangeProbeValidator, ChallengeBypass, extractors) with mocked HTTP via
respx.
"""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest
import respx

from resolvarr.infrastructure.cache.diskcache_adapter import DiskcacheAdapter
from resolvarr.infrastructure.config.schema import AppConfig


@pytest.fixture()
async def http_client() -> httpx.AsyncClient:
    """Real httpx.AsyncClient for use with respx mocking."""
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture()
async def diskcache(tmp_path: Path) -> DiskcacheAdapter:
    """Real DiskcacheAdapter backed by tmp_path (auto-cleaned)."""
    adapter = DiskcacheAdapter(
        directory=tmp_path / "cache",
        ttl_seconds=3600,
        max_concurrent=5,
    )
    async with adapter:
        yield adapter


@pytest.fixture()
def respx_mock() -> respx.MockRouter:
    """Explicit respx mock router for request interception."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture()
def app_config(tmp_path: Path) -> AppConfig:
    """Fast config: no retry delay, short lock waits, solver enabled."""
    return AppConfig.model_validate(
        {
            "http": {"retry_delay_seconds": 0.0, "max_retries": 0},
            "solver": {"url": "http://solver.test:8191"},
            "challenge": {
                "lock_dir": str(tmp_path / "locks"),
                "lock_wait_seconds": 2.0,
                "lock_poll_seconds": 0.02,
            },
        }
    )
