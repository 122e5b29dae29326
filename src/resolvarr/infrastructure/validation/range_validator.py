"""Seekability validation via HTTP range probes."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from typing import TYPE_CHECKING

import structlog
from httpx import HTTPError, TimeoutException

from resolvarr.domain.entities.links import LinkCandidate
from resolvarr.domain.exceptions import ValidationFailed

if TYPE_CHECKING:
    from httpx import AsyncClient

log = structlog.get_logger(__name__)

# Server types known to honour range requests; never probed.
TRUSTED_SERVER_TYPES: frozenset[str] = frozenset(
    {"Pixeldrain", "FSL V2", "FSL", "R2", "FastDl", "Cf Worker", "HubCloud"}
)

_CACHE_TTL_VALID = 3600
_CACHE_TTL_INVALID = 300


class _ProbeCacheEntry:
    """Time-bounded cache entry for probe results."""

    __slots__ = ("is_valid", "expires_at")

    def __init__(self, is_valid: bool, ttl: int) -> None:
        self.is_valid = is_valid
        self.expires_at = time.monotonic() + ttl

    @property
    def is_expired(self) -> bool:
        return time.monotonic() >= self.expires_at


def supports_ranges(status_code: int, headers: Mapping[str, str]) -> bool:
    """Partial-content semantics: 206, a Content-Range, or Accept-Ranges: bytes."""
    if status_code == 206:
        return True
    if headers.get("content-range"):
        return True
    return (headers.get("accept-ranges") or "").strip().lower() == "bytes"


def ensure_seekable(url: str, status_code: int, headers: Mapping[str, str]) -> None:
    """Raise ``ValidationFailed`` unless the probe response allows seeking."""
    if status_code >= 400:
        raise ValidationFailed(f"HTTP {status_code} from {url}")
    if not supports_ranges(status_code, headers):
        raise ValidationFailed(f"no range support at {url}")


class RangeProbeValidator:
    """Validates candidates with a ``Range: bytes=0-1`` GET.

    The body is never read: only status and headers decide.  Candidates
    whose server type is trusted skip the probe entirely.

    Args:
        http_client: Shared httpx.AsyncClient (injected).
        timeout_seconds: Max time per probe.
        max_concurrent: Max parallel probes.
        trusted_types: Server types exempt from probing.
    """

    def __init__(
        self,
        http_client: AsyncClient,
        *,
        timeout_seconds: float = 3.0,
        max_concurrent: int = 10,
        trusted_types: frozenset[str] = TRUSTED_SERVER_TYPES,
    ) -> None:
        self.http_client = http_client
        self.timeout = timeout_seconds
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._trusted = trusted_types
        self._cache: dict[str, _ProbeCacheEntry] = {}

    async def validate(self, url: str) -> bool:
        cached = self._cache.get(url)
        if cached is not None and not cached.is_expired:
            return cached.is_valid

        async with self._semaphore:
            is_valid = await self._probe(url)
        self._cache[url] = _ProbeCacheEntry(
            is_valid, _CACHE_TTL_VALID if is_valid else _CACHE_TTL_INVALID
        )
        return is_valid

    async def _probe(self, url: str) -> bool:
        try:
            async with self.http_client.stream(
                "GET",
                url,
                headers={"Range": "bytes=0-1"},
                timeout=self.timeout,
                follow_redirects=True,
            ) as response:
                ensure_seekable(url, response.status_code, response.headers)
                log.debug("range_probe_ok", url=url, status_code=response.status_code)
                return True
        except ValidationFailed as e:
            log.debug("range_probe_rejected", url=url, reason=str(e))
            return False
        except TimeoutException:
            log.debug("range_probe_timeout", url=url, timeout=self.timeout)
            return False
        except HTTPError as e:
            log.debug("range_probe_http_error", url=url, error=str(e))
            return False
        except Exception as e:  # noqa: BLE001
            log.warning("range_probe_unexpected_error", url=url, error=str(e))
            return False

    def is_trusted(self, candidate: LinkCandidate) -> bool:
        return candidate.server_type in self._trusted

    async def validate_candidates(
        self, candidates: list[LinkCandidate]
    ) -> list[LinkCandidate]:
        """Probe untrusted candidates concurrently; keep input order."""
        to_probe = sorted({c.url for c in candidates if not self.is_trusted(c)})
        results = await asyncio.gather(*(self.validate(url) for url in to_probe))
        verdict = dict(zip(to_probe, results))

        kept = [c for c in candidates if self.is_trusted(c) or verdict.get(c.url, False)]
        log.info(
            "range_validation_complete",
            total=len(candidates),
            probed=len(to_probe),
            kept=len(kept),
        )
        return kept
