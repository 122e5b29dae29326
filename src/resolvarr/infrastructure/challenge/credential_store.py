"""Per-domain cache of won challenge credentials.

Tiers, read in order:

1. in-process dict (authoritative for this process)
2. persistent ``CachePort`` (shared across processes, last writer wins)
3. local JSON file ``cf_<domain>.json`` in the lock directory, used only
   when no persistent store is configured

Replication to tiers 2/3 is best-effort: failures are logged and the
in-memory value stays authoritative.
"""

from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path
from typing import Any

import structlog

from resolvarr.domain.entities.challenge import ChallengeCredential
from resolvarr.domain.ports.cache import CachePort, cache_key
from resolvarr.infrastructure.challenge.domain_lock import safe_domain

log = structlog.get_logger(__name__)


class CredentialStore:
    """get / put / invalidate for ``ChallengeCredential`` by domain.

    Args:
        cache: Persistent store, or ``None`` for the local-file fallback.
        local_dir: Directory for the local-file fallback.
        ttl_seconds: Credential lifetime; ``0`` = valid until invalidated.
        service: Service name used to build persistent keys.
    """

    def __init__(
        self,
        *,
        cache: CachePort | None = None,
        local_dir: Path | None = None,
        ttl_seconds: int = 0,
        service: str = "challenge_credential",
    ) -> None:
        self._cache = cache
        self._local_dir = Path(local_dir) if local_dir is not None else None
        self._ttl = ttl_seconds
        self._service = service
        self._memory: dict[str, ChallengeCredential] = {}

    def _key(self, domain: str) -> str:
        return cache_key(self._service, f"cf_cookie:{domain}")

    def _local_path(self, domain: str) -> Path | None:
        if self._local_dir is None:
            return None
        return self._local_dir / f"cf_{safe_domain(domain)}.json"

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def get(self, domain: str) -> ChallengeCredential | None:
        now = time.time()
        cached = self._memory.get(domain)
        if cached is not None:
            if not cached.is_expired(self._ttl, now):
                return cached
            self._memory.pop(domain, None)

        record = await self._read_shared(domain)
        if record is None:
            return None
        credential = ChallengeCredential.from_record(record)
        if credential is None or credential.is_expired(self._ttl, now):
            return None

        self._memory[domain] = credential
        log.debug("credential_hydrated", domain=domain)
        return credential

    async def _read_shared(self, domain: str) -> dict[str, Any] | None:
        if self._cache is not None:
            try:
                record = await self._cache.get(self._key(domain))
            except Exception as e:  # noqa: BLE001
                log.warning("credential_cache_read_failed", domain=domain, error=str(e))
                return None
            return record if isinstance(record, dict) else None

        path = self._local_path(domain)
        if path is None:
            return None
        return await asyncio.to_thread(_read_json, path)

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def put(self, domain: str, credential: ChallengeCredential) -> None:
        self._memory[domain] = credential
        record = credential.to_record()

        if self._cache is not None:
            try:
                await self._cache.set(self._key(domain), record, ttl=self._ttl)
            except Exception as e:  # noqa: BLE001
                log.warning("credential_cache_write_failed", domain=domain, error=str(e))
            return

        path = self._local_path(domain)
        if path is None:
            return
        try:
            await asyncio.to_thread(_write_json, path, record)
        except OSError as e:
            log.warning("credential_file_write_failed", domain=domain, error=str(e))

    async def invalidate(self, domain: str) -> None:
        """Remove *domain* from every tier. Idempotent."""
        self._memory.pop(domain, None)

        if self._cache is not None:
            try:
                await self._cache.delete(self._key(domain))
            except Exception as e:  # noqa: BLE001
                log.warning("credential_cache_delete_failed", domain=domain, error=str(e))

        path = self._local_path(domain)
        if path is not None:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        log.info("credential_invalidated", domain=domain)


def _read_json(path: Path) -> dict[str, Any] | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        log.warning("credential_file_read_failed", path=str(path), error=str(e))
        return None
    return data if isinstance(data, dict) else None


def _write_json(path: Path, record: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(record), encoding="utf-8")
    tmp.replace(path)
