"""Admission control for the challenge-solving service.

Combines a bounded concurrency gate (slots + waiting queue) with a
circuit breaker.  After ``failure_threshold`` failures or timeouts
(net of successes) the circuit opens and every caller is told the solver is
unavailable for ``reset_seconds``.  After the cooldown a single trial is
admitted (half-open) and every other caller is refused until the trial
reports back.  A successful trial closes the circuit; a failed one
restarts the cooldown.  A trial whose slot is released without a verdict
hands the trial to the next caller.

A success decrements the failure count.  Solves slower than
``slow_threshold_seconds`` count as slow; ``failure_threshold`` slow
solves in a row open the circuit as well.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from resolvarr.infrastructure.config.schema import SolverConfig

log = structlog.get_logger(__name__)


class _State(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


def _noop() -> None:
    return None


@dataclass(frozen=True)
class SlotLease:
    """Outcome of ``acquire_slot``; ``release`` is idempotent."""

    acquired: bool
    reason: str = ""
    release: Callable[[], None] = _noop


class SolverGate:
    """Concurrency + circuit state for the shared solver.

    Safe for single-threaded asyncio; not thread-safe.
    """

    def __init__(
        self,
        *,
        enabled: bool = True,
        max_concurrent: int = 2,
        queue_max_depth: int = 10,
        failure_threshold: int = 3,
        reset_seconds: float = 120.0,
        slow_threshold_seconds: float = 30.0,
        retry_after_seconds: int = 30,
    ) -> None:
        self._enabled = enabled
        self._max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._queue_max = queue_max_depth
        self._threshold = failure_threshold
        self._reset = reset_seconds
        self._slow = slow_threshold_seconds
        self.retry_after_seconds = retry_after_seconds

        self._state = _State.CLOSED
        self._failures = 0
        self._slow_streak = 0
        self._opened_at = 0.0
        self._trial: object | None = None
        self._active = 0
        self._waiting = 0
        self._totals = {"success": 0, "failure": 0, "timeout": 0, "slow": 0}

    @classmethod
    def from_config(cls, config: SolverConfig) -> SolverGate:
        return cls(
            enabled=config.enabled,
            max_concurrent=config.max_concurrent,
            queue_max_depth=config.queue_max_depth,
            failure_threshold=config.failure_threshold,
            reset_seconds=config.reset_seconds,
            slow_threshold_seconds=config.slow_threshold_seconds,
        )

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def is_available(self) -> bool:
        """Return ``True`` if a solve may be attempted right now.

        - disabled solver or full queue: never.
        - **OPEN**: only once the cooldown expired (moves to HALF_OPEN).
        - **HALF_OPEN**: only while no trial is in flight.
        """
        if not self._enabled:
            return False
        if self._state == _State.OPEN:
            if time.monotonic() - self._opened_at >= self._reset:
                self._state = _State.HALF_OPEN
                log.info("solver_circuit_half_open")
            else:
                return False
        if self._state == _State.HALF_OPEN and self._trial is not None:
            return False
        return self._waiting < self._queue_max or self._active < self._max_concurrent

    def unavailable_reason(self) -> str:
        if not self._enabled:
            return "disabled"
        if self._state == _State.OPEN:
            return "circuit_open"
        if self._state == _State.HALF_OPEN and self._trial is not None:
            return "circuit_half_open"
        return "overloaded"

    async def acquire_slot(self, timeout: float = 30.0) -> SlotLease:
        """Wait up to *timeout* for a solve slot.

        In HALF_OPEN the granted slot is the trial.
        """
        if not self.is_available():
            return SlotLease(acquired=False, reason=self.unavailable_reason())
        if self._active >= self._max_concurrent and self._waiting >= self._queue_max:
            return SlotLease(acquired=False, reason="queue_full")

        trial = object() if self._state == _State.HALF_OPEN else None
        if trial is not None:
            self._trial = trial
        self._waiting += 1
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            log.warning("solver_slot_timeout", waited=timeout, active=self._active)
            self._end_trial(trial)
            return SlotLease(acquired=False, reason="timeout")
        finally:
            self._waiting -= 1

        if trial is not None:
            log.info("solver_circuit_trial")
        self._active += 1
        released = False

        def release() -> None:
            nonlocal released
            if released:
                return
            released = True
            self._active -= 1
            self._semaphore.release()
            self._end_trial(trial)

        return SlotLease(acquired=True, release=release)

    def _end_trial(self, trial: object | None) -> None:
        if trial is not None and self._trial is trial:
            self._trial = None

    # ------------------------------------------------------------------
    # Outcome reporting
    # ------------------------------------------------------------------

    def record_success(self, elapsed_seconds: float = 0.0) -> None:
        self._totals["success"] += 1
        self._trial = None
        if self._state == _State.HALF_OPEN:
            log.info("solver_circuit_closed")
            self._state = _State.CLOSED
            self._failures = 0
            self._slow_streak = 0
            return

        self._failures = max(0, self._failures - 1)
        if elapsed_seconds <= self._slow:
            self._slow_streak = 0
            return

        self._totals["slow"] += 1
        self._slow_streak += 1
        log.warning(
            "solver_slow",
            elapsed_seconds=round(elapsed_seconds, 1),
            streak=self._slow_streak,
        )
        if self._slow_streak >= self._threshold:
            self._open()

    def record_failure(self) -> None:
        self._totals["failure"] += 1
        self._register_failure()

    def record_timeout(self) -> None:
        self._totals["timeout"] += 1
        self._register_failure()

    def _register_failure(self) -> None:
        self._trial = None
        if self._state == _State.HALF_OPEN:
            self._open()
            return
        self._failures += 1
        if self._failures >= self._threshold:
            self._open()

    def _open(self) -> None:
        self._state = _State.OPEN
        self._opened_at = time.monotonic()
        log.warning("solver_circuit_open", failures=self._failures, cooldown=self._reset)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    @property
    def state(self) -> str:
        return self._state.value

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "failures": self._failures,
            "trial_in_flight": self._trial is not None,
            "active": self._active,
            "waiting": self._waiting,
            **self._totals,
        }

    def overloaded_response(self, reason: str | None = None) -> dict[str, Any]:
        """Payload describing why no solve is attempted right now."""
        return {
            "overloaded": True,
            "message": f"challenge solver unavailable: {reason or self.unavailable_reason()}",
            "retry_after": self.retry_after_seconds,
        }
