"""Tests for the cross-process DomainLock."""

from __future__ import annotations

import asyncio
import json
import os
import time
from pathlib import Path

import pytest

from resolvarr.domain.exceptions import LockContention
from resolvarr.infrastructure.challenge.domain_lock import DomainLock, safe_domain


def _make_lock(lock_dir: Path, **kwargs) -> DomainLock:
    defaults = {"ttl_seconds": 120.0, "wait_seconds": 1.0, "poll_seconds": 0.01}
    defaults.update(kwargs)
    return DomainLock(lock_dir, **defaults)


def _backdate(path: Path, seconds: float) -> None:
    past = time.time() - seconds
    os.utime(path, (past, past))


class TestSafeDomain:
    def test_keeps_allowed_chars(self) -> None:
        assert safe_domain("hub-cloud_1.example") == "hub-cloud_1.example"

    def test_replaces_others(self) -> None:
        assert safe_domain("Evil/../Host:443") == "evil_.._host_443"


class TestTryAcquire:
    async def test_first_acquirer_wins(self, lock_dir: Path) -> None:
        lock = _make_lock(lock_dir)
        first = await lock.try_acquire("hubcloud.example")
        second = await lock.try_acquire("hubcloud.example")

        assert first.acquired is True
        assert second.acquired is False
        first.release()

    async def test_marker_records_domain_and_time(self, lock_dir: Path) -> None:
        lock = _make_lock(lock_dir)
        lease = await lock.try_acquire("hubcloud.example")

        data = json.loads(lock.marker_path("hubcloud.example").read_text())
        assert data["domain"] == "hubcloud.example"
        assert data["created_at"] == pytest.approx(time.time(), abs=5)
        marker = lock.read_marker("hubcloud.example")
        assert marker is not None and marker.domain == "hubcloud.example"
        lease.release()

    async def test_release_allows_reacquire(self, lock_dir: Path) -> None:
        lock = _make_lock(lock_dir)
        lease = await lock.try_acquire("a.example")
        lease.release()
        assert not lock.marker_path("a.example").exists()
        assert (await lock.try_acquire("a.example")).acquired is True

    async def test_release_is_idempotent(self, lock_dir: Path) -> None:
        lock = _make_lock(lock_dir)
        lease = await lock.try_acquire("a.example")
        lease.release()
        lease.release()

    async def test_domains_are_independent(self, lock_dir: Path) -> None:
        lock = _make_lock(lock_dir)
        assert (await lock.try_acquire("a.example")).acquired is True
        assert (await lock.try_acquire("b.example")).acquired is True

    async def test_separate_instances_share_directory(self, lock_dir: Path) -> None:
        process_a = _make_lock(lock_dir)
        process_b = _make_lock(lock_dir)
        lease = await process_a.try_acquire("a.example")
        assert (await process_b.try_acquire("a.example")).acquired is False
        lease.release()
        assert (await process_b.try_acquire("a.example")).acquired is True

    async def test_stale_marker_is_reclaimed(self, lock_dir: Path) -> None:
        lock = _make_lock(lock_dir, ttl_seconds=120.0)
        abandoned = await lock.try_acquire("a.example")
        assert abandoned.acquired is True
        _backdate(lock.marker_path("a.example"), 300)

        reclaimed = await lock.try_acquire("a.example")
        assert reclaimed.acquired is True
        reclaimed.release()

    async def test_fresh_marker_is_not_reclaimed(self, lock_dir: Path) -> None:
        lock = _make_lock(lock_dir, ttl_seconds=120.0)
        await lock.try_acquire("a.example")
        _backdate(lock.marker_path("a.example"), 60)
        assert (await lock.try_acquire("a.example")).acquired is False


class TestWaitForRelease:
    async def test_returns_immediately_without_marker(self, lock_dir: Path) -> None:
        lock = _make_lock(lock_dir)
        assert await lock.wait_for_release("a.example") is False

    async def test_returns_when_holder_releases(self, lock_dir: Path) -> None:
        lock = _make_lock(lock_dir, wait_seconds=2.0)
        lease = await lock.try_acquire("a.example")

        async def release_later() -> None:
            await asyncio.sleep(0.05)
            lease.release()

        task = asyncio.create_task(release_later())
        timed_out = await lock.wait_for_release("a.example")
        await task
        assert timed_out is False

    async def test_times_out_while_held(self, lock_dir: Path) -> None:
        lock = _make_lock(lock_dir)
        await lock.try_acquire("a.example")
        assert await lock.wait_for_release("a.example", max_wait_seconds=0.05) is True

    async def test_stale_marker_ends_wait_without_acquiring(self, lock_dir: Path) -> None:
        lock = _make_lock(lock_dir, ttl_seconds=120.0)
        await lock.try_acquire("a.example")
        path = lock.marker_path("a.example")
        _backdate(path, 500)

        timed_out = await lock.wait_for_release("a.example", max_wait_seconds=5)
        assert timed_out is False
        assert not path.exists()


class TestHold:
    async def test_hold_releases_on_exit(self, lock_dir: Path) -> None:
        lock = _make_lock(lock_dir)
        async with lock.hold("a.example"):
            assert lock.marker_path("a.example").exists()
        assert not lock.marker_path("a.example").exists()

    async def test_hold_releases_on_error(self, lock_dir: Path) -> None:
        lock = _make_lock(lock_dir)
        with pytest.raises(RuntimeError):
            async with lock.hold("a.example"):
                raise RuntimeError("boom")
        assert not lock.marker_path("a.example").exists()

    async def test_hold_raises_on_contention(self, lock_dir: Path) -> None:
        lock = _make_lock(lock_dir)
        await lock.try_acquire("a.example")
        with pytest.raises(LockContention) as exc_info:
            async with lock.hold("a.example"):
                pass
        assert exc_info.value.domain == "a.example"
