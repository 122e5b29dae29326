"""Shared test fixtures for the resolvarr test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from resolvarr.domain.entities.challenge import SolveResult, SolveStatus

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _solved(body: str = "<html><body>ok</body></html>", **kwargs: Any) -> SolveResult:
    defaults: dict[str, Any] = {
        "status": SolveStatus.SOLVED,
        "url": "https://hubcloud.example/drive/abc",
        "body": body,
        "status_code": 200,
        "cookies": (("cf_clearance", "ok"),),
        "user_agent": "SolverAgent/1.0",
    }
    defaults.update(kwargs)
    return SolveResult(**defaults)


# ---------------------------------------------------------------------------
# Port mocks
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_cache() -> AsyncMock:
    """Mock CachePort (get returns None by default)."""
    cache = AsyncMock()
    cache.get = AsyncMock(return_value=None)
    cache.set = AsyncMock()
    cache.delete = AsyncMock(return_value=True)
    cache.exists = AsyncMock(return_value=False)
    cache.clear = AsyncMock()
    cache.aclose = AsyncMock()
    return cache


@pytest.fixture()
def mock_solver() -> AsyncMock:
    """Mock ChallengeSolverPort that solves on the first attempt."""
    solver = AsyncMock()
    solver.list_sessions = AsyncMock(return_value=[])
    solver.create_session = AsyncMock(return_value=True)
    solver.solve = AsyncMock(return_value=_solved())
    return solver


@pytest.fixture()
def passthrough_validator() -> AsyncMock:
    """Validator that accepts every candidate."""
    validator = AsyncMock()
    validator.validate = AsyncMock(return_value=True)
    validator.validate_candidates = AsyncMock(side_effect=lambda cands: list(cands))
    return validator


@pytest.fixture()
def lock_dir(tmp_path: Path) -> Path:
    return tmp_path / "locks"
