"""Composition root: wires the resolution pipeline from ``AppConfig``."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from functools import partial
from typing import AsyncIterator

import httpx
import structlog

from resolvarr.application.use_cases.resolve_links import ResolveLinksUseCase
from resolvarr.domain.ports.cache import CachePort
from resolvarr.infrastructure.cache.cache_factory import create_cache_from_config
from resolvarr.infrastructure.challenge.bypass import ChallengeBypass
from resolvarr.infrastructure.challenge.credential_store import CredentialStore
from resolvarr.infrastructure.challenge.domain_lock import DomainLock
from resolvarr.infrastructure.challenge.session_store import SolverSessionStore
from resolvarr.infrastructure.challenge.solver_client import FlareSolverrClient
from resolvarr.infrastructure.challenge.solver_gate import SolverGate
from resolvarr.infrastructure.config.schema import AppConfig
from resolvarr.infrastructure.dispatch.dispatcher import RecursiveDispatcher
from resolvarr.infrastructure.dispatch.visited import VisitedUrls
from resolvarr.infrastructure.extraction.button_hosts import ButtonHostExtractor
from resolvarr.infrastructure.extraction.follow_through import FollowThrough
from resolvarr.infrastructure.extraction.hubdrive import HubDriveExtractor
from resolvarr.infrastructure.extraction.mirror_page import MirrorPageExtractor
from resolvarr.infrastructure.http.fetcher import RetryingFetcher
from resolvarr.infrastructure.http.policy import HostPolicy
from resolvarr.infrastructure.http.transport import HttpTransport
from resolvarr.infrastructure.persistence.extraction_cache import ExtractionCache
from resolvarr.infrastructure.validation.range_validator import RangeProbeValidator

log = structlog.get_logger(__name__)


@dataclass
class ResolverState:
    """Every wired component; the use case is the public entry point."""

    config: AppConfig
    resolve_links: ResolveLinksUseCase
    dispatcher: RecursiveDispatcher
    bypass: ChallengeBypass
    gate: SolverGate
    credentials: CredentialStore
    lock: DomainLock
    fetcher: RetryingFetcher


def wire_resolver(
    config: AppConfig,
    *,
    http_client: httpx.AsyncClient,
    proxy_client: httpx.AsyncClient | None = None,
    cache: CachePort | None = None,
) -> ResolverState:
    """Build the component graph on top of already-open clients.

    Order matters:
        1. Transport + fetcher (everything fetches through them)
        2. Challenge stack (lock, credentials, solver, gate, bypass)
        3. Validation + extraction cache
        4. Dispatcher, then extractors registered in routing order
    """
    # 1) Transport
    policy = HostPolicy.from_config(config.http)
    transport = HttpTransport(http_client, proxy_client=proxy_client, policy=policy)
    fetcher = RetryingFetcher.from_config(transport, config.http)

    # 2) Challenge bypass
    lock = DomainLock.from_config(config.challenge)
    credentials = CredentialStore(
        cache=cache,
        local_dir=config.challenge.lock_dir,
        ttl_seconds=config.challenge.credential_ttl_seconds,
        service=config.challenge.credential_service,
    )
    solver = (
        FlareSolverrClient.from_config(http_client, config.solver)
        if config.solver.enabled
        else None
    )
    gate = SolverGate.from_config(config.solver)
    bypass = ChallengeBypass(
        fetcher=fetcher,
        policy=policy,
        credentials=credentials,
        lock=lock,
        solver=solver,
        gate=gate,
        sessions=SolverSessionStore(
            prefix=config.solver.session_prefix,
            ttl_seconds=config.solver.session_ttl_seconds,
        ),
        solver_proxy_url=config.solver.proxy_url,
        slot_timeout=config.solver.slot_timeout_seconds,
    )
    log.info("challenge_bypass_initialized", solver_enabled=solver is not None)

    # 3) Validation + caching
    extraction = config.extraction
    validator = RangeProbeValidator(
        http_client,
        timeout_seconds=extraction.validation_timeout_seconds,
        max_concurrent=extraction.validation_concurrency,
    )
    extraction_cache = ExtractionCache(cache=cache, ttl_seconds=extraction.cache_ttl_seconds)

    # 4) Dispatcher + extractors (first match wins)
    dispatcher = RecursiveDispatcher(
        new_visited=partial(VisitedUrls, ttl_seconds=extraction.visited_ttl_seconds),
        max_depth=extraction.max_recursion_depth,
    )
    mirror = MirrorPageExtractor(
        bypass=bypass,
        follow_through=FollowThrough(fetcher, max_redirect_hops=extraction.max_redirect_hops),
        validator=validator,
        cache=extraction_cache,
        max_buttons=extraction.max_buttons,
        max_validations=extraction.max_validations,
    )
    dispatcher.register(("hubcloud",), mirror)
    dispatcher.register(("vcloud", "gdflix"), mirror)
    dispatcher.register(
        ("filebee",), ButtonHostExtractor(name="filebee", bypass=bypass, validator=validator)
    )
    dispatcher.register(
        ("dgdrive", "dropgalaxy"),
        ButtonHostExtractor(name="dropgalaxy", bypass=bypass, validator=validator),
    )
    dispatcher.register(
        ("hubdrive",), HubDriveExtractor(bypass=bypass, dispatch=dispatcher.dispatch)
    )
    log.info("dispatcher_initialized", routes=len(dispatcher.routes))

    return ResolverState(
        config=config,
        resolve_links=ResolveLinksUseCase(dispatcher),
        dispatcher=dispatcher,
        bypass=bypass,
        gate=gate,
        credentials=credentials,
        lock=lock,
        fetcher=fetcher,
    )


@asynccontextmanager
async def build_resolver(config: AppConfig) -> AsyncIterator[ResolverState]:
    """Open clients and caches, wire the pipeline, close everything on exit."""
    cache = create_cache_from_config(config.cache)
    if cache is not None:
        await cache.__aenter__()
        log.info("cache_initialized", backend=config.cache.backend)

    http_client = httpx.AsyncClient(timeout=httpx.Timeout(config.http.timeout_seconds))
    proxy_client = None
    if config.http.proxy_url:
        proxy_client = httpx.AsyncClient(
            proxy=config.http.proxy_url,
            timeout=httpx.Timeout(config.http.timeout_seconds),
        )
    log.info("http_client_initialized", proxy=proxy_client is not None)

    try:
        yield wire_resolver(
            config, http_client=http_client, proxy_client=proxy_client, cache=cache
        )
    finally:
        if proxy_client is not None:
            await proxy_client.aclose()
        await http_client.aclose()
        if cache is not None:
            await cache.aclose()
        log.info("resolver_shutdown_complete")
