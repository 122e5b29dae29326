"""Cross-process challenge lock backed by exclusive-create marker files.

One marker ``flare_<domain>.lock`` per domain lives in a shared directory.
Creation uses ``O_CREAT | O_EXCL`` so exactly one process wins; the marker
carries the holder's domain and creation time.  Staleness is judged by the
marker's mtime so a crashed holder can never block a domain for longer
than the TTL.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import structlog

from resolvarr.domain.entities.challenge import DomainLockMarker
from resolvarr.domain.exceptions import LockContention
from resolvarr.infrastructure.config.schema import ChallengeConfig

log = structlog.get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-z0-9_.-]")


def safe_domain(domain: str) -> str:
    """File-name-safe form of *domain*."""
    return _UNSAFE_CHARS.sub("_", domain.lower())


@dataclass(frozen=True)
class LockLease:
    """Result of ``try_acquire``; call ``release`` on every exit path."""

    acquired: bool
    release: Callable[[], None]


def _noop() -> None:
    return None


class DomainLock:
    """File-based mutual exclusion for challenge solving, per domain.

    Args:
        lock_dir: Shared directory for markers (created on demand).
        ttl_seconds: Marker age after which it is considered abandoned.
        wait_seconds: Default bound for ``wait_for_release``.
        poll_seconds: Poll interval while waiting.
    """

    def __init__(
        self,
        lock_dir: Path,
        *,
        ttl_seconds: float = 120.0,
        wait_seconds: float = 20.0,
        poll_seconds: float = 0.5,
    ) -> None:
        self._dir = Path(lock_dir)
        self._ttl = ttl_seconds
        self._wait = wait_seconds
        self._poll = poll_seconds

    @classmethod
    def from_config(cls, config: ChallengeConfig) -> DomainLock:
        return cls(
            config.lock_dir,
            ttl_seconds=config.lock_ttl_seconds,
            wait_seconds=config.lock_wait_seconds,
            poll_seconds=config.lock_poll_seconds,
        )

    def marker_path(self, domain: str) -> Path:
        return self._dir / f"flare_{safe_domain(domain)}.lock"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def try_acquire(self, domain: str) -> LockLease:
        """Create the marker if absent. Never blocks on another holder."""
        path = self.marker_path(domain)
        acquired = await asyncio.to_thread(self._create_marker, path, domain)
        if not acquired:
            log.debug("challenge_lock_busy", domain=domain)
            return LockLease(acquired=False, release=_noop)

        log.debug("challenge_lock_acquired", domain=domain)

        def release() -> None:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                log.warning("challenge_lock_release_failed", domain=domain, error=str(e))
            else:
                log.debug("challenge_lock_released", domain=domain)

        return LockLease(acquired=True, release=release)

    async def wait_for_release(
        self, domain: str, max_wait_seconds: float | None = None
    ) -> bool:
        """Wait until the marker disappears. Returns ``True`` on timeout.

        A marker older than the TTL is removed and the wait ends early;
        the caller does not hold the lock afterwards.
        """
        path = self.marker_path(domain)
        limit = self._wait if max_wait_seconds is None else max_wait_seconds
        deadline = time.monotonic() + limit

        while True:
            age = await asyncio.to_thread(self._marker_age, path)
            if age is None:
                return False
            if age > self._ttl:
                log.warning("challenge_lock_stale", domain=domain, age_seconds=round(age, 1))
                await asyncio.to_thread(self._remove_marker, path)
                return False
            if time.monotonic() >= deadline:
                log.info("challenge_lock_wait_timeout", domain=domain, waited=limit)
                return True
            await asyncio.sleep(self._poll)

    @asynccontextmanager
    async def hold(self, domain: str) -> AsyncIterator[None]:
        """Hold the lock for the block, raising ``LockContention`` if taken."""
        lease = await self.try_acquire(domain)
        if not lease.acquired:
            raise LockContention(domain)
        try:
            yield
        finally:
            lease.release()

    def read_marker(self, domain: str) -> DomainLockMarker | None:
        try:
            data = json.loads(self.marker_path(domain).read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        return DomainLockMarker(
            domain=str(data.get("domain", domain)),
            created_at=float(data.get("created_at", 0.0)),
        )

    # ------------------------------------------------------------------
    # Blocking helpers (run in a worker thread)
    # ------------------------------------------------------------------

    def _create_marker(self, path: Path, domain: str) -> bool:
        self._dir.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            age = self._marker_age(path)
            if age is None or age <= self._ttl:
                return False
            # Abandoned by a crashed holder: reclaim once.
            log.warning("challenge_lock_reclaimed", domain=domain, age_seconds=round(age, 1))
            self._remove_marker(path)
            try:
                fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                return False
        payload = json.dumps({"domain": domain, "created_at": time.time()})
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(payload)
        return True

    @staticmethod
    def _marker_age(path: Path) -> float | None:
        try:
            return time.time() - path.stat().st_mtime
        except FileNotFoundError:
            return None

    @staticmethod
    def _remove_marker(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
