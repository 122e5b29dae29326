"""Challenge bypass orchestrator.

Escalation order for a challenged page::

    DIRECT -> PROXY_RETRY -> (lock) -> CREDENTIAL_RETRY
           -> SOLVER_WITH_SESSION -> SOLVER_NO_SESSION -> SOLVER_WITH_PROXY
           -> FAILED

``advance`` is the pure transition table; ``ChallengeBypass`` performs the
side effect belonging to each state (HTTP fetch, lock handling, solver
call) and feeds the outcome back into ``advance``.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import AsyncExitStack
from dataclasses import dataclass
from enum import Enum

import httpx
import structlog

from resolvarr.domain.entities.challenge import (
    ChallengeCredential,
    SolveResult,
    SolveStatus,
)
from resolvarr.domain.exceptions import (
    ChallengeUnresolved,
    LockContention,
    RequestTimeout,
    SolverUnavailable,
    TransportError,
)
from resolvarr.domain.ports.challenge_solver import ChallengeSolverPort
from resolvarr.infrastructure.challenge.credential_store import CredentialStore
from resolvarr.infrastructure.challenge.domain_lock import DomainLock
from resolvarr.infrastructure.challenge.markers import challenge_markers
from resolvarr.infrastructure.challenge.session_store import SolverSessionStore
from resolvarr.infrastructure.challenge.solver_gate import SolverGate
from resolvarr.infrastructure.common.html_selectors import parse_html
from resolvarr.infrastructure.http.fetcher import RetryingFetcher
from resolvarr.infrastructure.http.policy import HostPolicy, hostname
from resolvarr.infrastructure.http.transport import FetchResult

log = structlog.get_logger(__name__)


class BypassState(Enum):
    DIRECT = "direct"
    PROXY_RETRY = "proxy_retry"
    LOCK = "lock"
    CREDENTIAL_RETRY = "credential_retry"
    SOLVER_WITH_SESSION = "solver_with_session"
    SOLVER_NO_SESSION = "solver_no_session"
    SOLVER_WITH_PROXY = "solver_with_proxy"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Outcome(Enum):
    CLEAR = "clear"
    CHALLENGED = "challenged"
    ERROR = "error"
    LOCK_ACQUIRED = "lock_acquired"
    LOCK_BUSY = "lock_busy"


@dataclass(frozen=True)
class BypassContext:
    """Facts the transition table needs besides the last outcome."""

    proxy_retry_available: bool = False
    credential_available: bool = False
    lock_held: bool = False
    lock_attempts: int = 0
    solver_enabled: bool = True
    solver_proxy_available: bool = False


_MAX_LOCK_ATTEMPTS = 2


def _after_lock_held(ctx: BypassContext) -> BypassState:
    if ctx.credential_available:
        return BypassState.CREDENTIAL_RETRY
    return BypassState.SOLVER_WITH_SESSION


def advance(state: BypassState, outcome: Outcome, ctx: BypassContext) -> BypassState:
    """Next bypass state for *outcome* observed in *state*."""
    if outcome is Outcome.CLEAR:
        return BypassState.SUCCEEDED

    if state is BypassState.DIRECT:
        if ctx.proxy_retry_available:
            return BypassState.PROXY_RETRY
        return BypassState.LOCK if ctx.solver_enabled else BypassState.FAILED

    if state is BypassState.PROXY_RETRY:
        return BypassState.LOCK if ctx.solver_enabled else BypassState.FAILED

    if state is BypassState.LOCK:
        if outcome is Outcome.LOCK_ACQUIRED:
            return _after_lock_held(ctx)
        if ctx.credential_available:
            return BypassState.CREDENTIAL_RETRY
        if ctx.lock_attempts < _MAX_LOCK_ATTEMPTS:
            return BypassState.LOCK
        return BypassState.FAILED

    if state is BypassState.CREDENTIAL_RETRY:
        # Only the lock holder may go on to solve.
        return BypassState.SOLVER_WITH_SESSION if ctx.lock_held else BypassState.FAILED

    if state is BypassState.SOLVER_WITH_SESSION:
        return BypassState.SOLVER_NO_SESSION

    if state is BypassState.SOLVER_NO_SESSION:
        if outcome is Outcome.CHALLENGED and ctx.solver_proxy_available:
            return BypassState.SOLVER_WITH_PROXY
        return BypassState.FAILED

    return BypassState.FAILED


def is_challenged(result: FetchResult) -> bool:
    """True if *result* is an anti-bot interstitial."""
    if result.headers.get("cf-mitigated"):
        return True
    return bool(challenge_markers(result.body))


def lock_domain(url: str) -> str:
    host = hostname(url)
    return host[4:] if host.startswith("www.") else host


class ChallengeBypass:
    """Fetches pages, defeating anti-bot challenges when they appear.

    Args:
        fetcher: Retry/redirect wrapper for plain requests.
        policy: Proxy routing and User-Agent decisions.
        credentials: Per-domain credential cache.
        lock: Cross-process challenge lock.
        solver: External solver, or ``None`` when not configured.
        gate: Solver concurrency/circuit state.
        sessions: Solver session cache.
        solver_proxy_url: Proxy the solver may use for the last attempt.
        slot_timeout: Max wait for a solver slot.
    """

    def __init__(
        self,
        *,
        fetcher: RetryingFetcher,
        policy: HostPolicy,
        credentials: CredentialStore,
        lock: DomainLock,
        solver: ChallengeSolverPort | None,
        gate: SolverGate,
        sessions: SolverSessionStore,
        solver_proxy_url: str | None = None,
        slot_timeout: float = 30.0,
    ) -> None:
        self._fetcher = fetcher
        self._policy = policy
        self._credentials = credentials
        self._lock = lock
        self._solver = solver
        self._gate = gate
        self._sessions = sessions
        self._solver_proxy_url = solver_proxy_url
        self._slot_timeout = slot_timeout

    @property
    def credentials(self) -> CredentialStore:
        return self._credentials

    async def fetch_page(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        cancel: asyncio.Event | None = None,
        use_solver: bool = True,
    ) -> FetchResult:
        """Fetch *url*, escalating through bypass states on a challenge.

        Raises:
            ChallengeUnresolved: every strategy was exhausted.
            SolverUnavailable: the solver is disabled, overloaded or its
                circuit is open.
            TransportError: the plain request itself failed.
        """
        run = _BypassRun(self, url, headers or {}, cancel, use_solver)
        return await run.execute()

    # ------------------------------------------------------------------
    # Helpers used by _BypassRun
    # ------------------------------------------------------------------

    async def _http(
        self,
        url: str,
        headers: dict[str, str],
        credential: ChallengeCredential | None,
        cancel: asyncio.Event | None,
        *,
        force_proxy: bool = False,
    ) -> FetchResult:
        merged = dict(headers)
        force = force_proxy
        if credential is not None:
            merged.update(credential.headers())
            force = force or credential.requires_proxy
        return await self._fetcher.fetch(
            url,
            headers=merged,
            cancel=cancel,
            use_proxy=self._policy.use_proxy(url, force=force),
        )

    def _solved_result(self, url: str, solved: SolveResult) -> FetchResult:
        return FetchResult(
            status_code=solved.status_code or 200,
            headers=httpx.Headers({"content-type": "text/html"}),
            body=solved.body,
            url=solved.url or url,
            document=parse_html(solved.body),
        )


class _BypassRun:
    """State for one ``fetch_page`` call."""

    def __init__(
        self,
        owner: ChallengeBypass,
        url: str,
        headers: dict[str, str],
        cancel: asyncio.Event | None,
        use_solver: bool,
    ) -> None:
        self.o = owner
        self.url = url
        self.headers = headers
        self.cancel = cancel
        self.domain = lock_domain(url)
        self.use_solver = use_solver
        self.credential: ChallengeCredential | None = None
        self.held = AsyncExitStack()
        self.lock_held = False
        self.lock_attempts = 0
        self.slot_release = None
        self.solver_attempted = False
        # Errors are reported to the gate per attempt; a run that was only
        # ever blocked reports one failure when it gives up.
        self.solver_outcome_reported = False
        self.result: FetchResult | None = None

    def context(self, *, direct_used_proxy: bool = False) -> BypassContext:
        o = self.o
        return BypassContext(
            proxy_retry_available=o._policy.proxy_configured and not direct_used_proxy,
            credential_available=self.credential is not None,
            lock_held=self.lock_held,
            lock_attempts=self.lock_attempts,
            solver_enabled=self.use_solver and o._solver is not None,
            solver_proxy_available=bool(o._solver_proxy_url),
        )

    async def execute(self) -> FetchResult:
        state = BypassState.DIRECT
        try:
            while True:
                if state is BypassState.SUCCEEDED:
                    assert self.result is not None
                    if self.solver_attempted:
                        log.info("challenge_bypassed", url=self.url, domain=self.domain)
                    return self.result
                if state is BypassState.FAILED:
                    if self.solver_attempted and not self.solver_outcome_reported:
                        self.o._gate.record_failure()
                    log.warning("challenge_unresolved", url=self.url, domain=self.domain)
                    raise ChallengeUnresolved(f"challenge not bypassed for {self.url}")

                outcome, ctx = await self.step(state)
                next_state = advance(state, outcome, ctx)
                if next_state is not BypassState.SUCCEEDED:
                    log.debug(
                        "bypass_transition",
                        domain=self.domain,
                        state=state.value,
                        outcome=outcome.value,
                        next=next_state.value,
                    )
                state = next_state
        finally:
            if self.slot_release is not None:
                self.slot_release()
            await self.held.aclose()

    async def step(self, state: BypassState) -> tuple[Outcome, BypassContext]:
        if state is BypassState.DIRECT:
            return await self.direct()
        if state is BypassState.PROXY_RETRY:
            outcome = await self.fetch(force_proxy=True)
            return outcome, self.context()
        if state is BypassState.LOCK:
            return await self.lock()
        if state is BypassState.CREDENTIAL_RETRY:
            return await self.credential_retry()
        return await self.solve(state)

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    async def fetch(self, *, force_proxy: bool = False) -> Outcome:
        result = await self.o._http(
            self.url, self.headers, self.credential, self.cancel, force_proxy=force_proxy
        )
        if is_challenged(result):
            return Outcome.CHALLENGED
        self.result = result
        return Outcome.CLEAR

    async def direct(self) -> tuple[Outcome, BypassContext]:
        self.credential = await self.o._credentials.get(self.domain)
        force = self.credential.requires_proxy if self.credential else False
        used_proxy = self.o._policy.use_proxy(self.url, force=force)

        outcome = await self.fetch()
        if outcome is Outcome.CHALLENGED:
            log.info(
                "challenge_detected",
                url=self.url,
                domain=self.domain,
                with_credential=self.credential is not None,
            )
            await self.drop_credential()
        return outcome, self.context(direct_used_proxy=used_proxy)

    async def drop_credential(self) -> None:
        if self.credential is not None:
            await self.o._credentials.invalidate(self.domain)
            self.credential = None

    def unavailable(self, reason: str) -> SolverUnavailable:
        response = self.o._gate.overloaded_response(reason)
        log.warning("solver_unavailable", domain=self.domain, reason=reason, **response)
        return SolverUnavailable(reason, retry_after=response["retry_after"])

    async def lock(self) -> tuple[Outcome, BypassContext]:
        gate = self.o._gate
        if not gate.is_available():
            raise self.unavailable(gate.unavailable_reason())

        self.lock_attempts += 1
        try:
            await self.held.enter_async_context(self.o._lock.hold(self.domain))
        except LockContention:
            return await self.wait_for_holder()

        self.lock_held = True
        # Another process may have finished between our fetch and the lock.
        self.credential = await self.o._credentials.get(self.domain)
        return Outcome.LOCK_ACQUIRED, self.context()

    async def wait_for_holder(self) -> tuple[Outcome, BypassContext]:
        timed_out = await self.o._lock.wait_for_release(self.domain)
        self.credential = await self.o._credentials.get(self.domain)
        log.info(
            "challenge_lock_waited",
            domain=self.domain,
            timed_out=timed_out,
            credential_found=self.credential is not None,
        )
        return Outcome.LOCK_BUSY, self.context()

    async def credential_retry(self) -> tuple[Outcome, BypassContext]:
        outcome = await self.fetch()
        if outcome is Outcome.CHALLENGED:
            await self.drop_credential()
        return outcome, self.context()

    async def solve(self, state: BypassState) -> tuple[Outcome, BypassContext]:
        o = self.o
        assert o._solver is not None
        if self.slot_release is None:
            lease = await o._gate.acquire_slot(o._slot_timeout)
            if not lease.acquired:
                raise self.unavailable(lease.reason)
            self.slot_release = lease.release

        use_proxy = state is BypassState.SOLVER_WITH_PROXY
        proxy_url = o._solver_proxy_url if use_proxy else None
        self.solver_attempted = True
        started = time.monotonic()
        try:
            session_id = None
            if state is BypassState.SOLVER_WITH_SESSION:
                session_id = await o._sessions.ensure_session(
                    self.domain, o._solver, proxy_url=o._solver_proxy_url
                )
            solved = await o._solver.solve(
                self.url,
                session_id=session_id,
                proxy_url=proxy_url,
                user_agent=o._policy.user_agent_for(self.url),
            )
        except TransportError as e:
            if isinstance(e, RequestTimeout):
                o._gate.record_timeout()
            else:
                o._gate.record_failure()
            self.solver_outcome_reported = True
            o._sessions.forget(self.domain)
            log.warning("solver_error", domain=self.domain, state=state.value, error=str(e))
            return Outcome.ERROR, self.context()

        elapsed = time.monotonic() - started
        if solved.status is not SolveStatus.SOLVED:
            log.info("solver_blocked", domain=self.domain, state=state.value, status=solved.status.value)
            return Outcome.CHALLENGED, self.context()

        o._gate.record_success(elapsed)
        await self.store_credential(solved, requires_proxy=use_proxy)
        self.result = o._solved_result(self.url, solved)
        return Outcome.CLEAR, self.context()

    async def store_credential(self, solved: SolveResult, *, requires_proxy: bool) -> None:
        if not solved.cookies:
            log.debug("solver_no_cookies", domain=self.domain)
            return
        credential = ChallengeCredential(
            domain=self.domain,
            cookie_header=solved.cookie_header,
            user_agent=solved.user_agent or self.o._policy.user_agent_for(self.url),
            won_at=time.time(),
            requires_proxy=requires_proxy,
        )
        await self.o._credentials.put(self.domain, credential)
