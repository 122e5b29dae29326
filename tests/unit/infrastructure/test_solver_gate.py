"""Tests for SolverGate (slots, queue and circuit breaker)."""

from __future__ import annotations

import asyncio
import time
from unittest.mock import patch

from resolvarr.infrastructure.challenge.solver_gate import SolverGate
from resolvarr.infrastructure.config.schema import SolverConfig


class TestInitialState:
    def test_enabled_gate_is_available(self) -> None:
        gate = SolverGate()
        assert gate.is_available() is True
        assert gate.state == "closed"

    def test_disabled_gate(self) -> None:
        gate = SolverGate(enabled=False)
        assert gate.is_available() is False
        assert gate.unavailable_reason() == "disabled"

    def test_from_config_without_url_is_disabled(self) -> None:
        gate = SolverGate.from_config(SolverConfig())
        assert gate.is_available() is False


class TestClosedState:
    def test_failures_below_threshold_stay_closed(self) -> None:
        gate = SolverGate(failure_threshold=3)
        gate.record_failure()
        gate.record_timeout()
        assert gate.state == "closed"
        assert gate.is_available() is True

    def test_success_decrements_failures(self) -> None:
        gate = SolverGate(failure_threshold=3)
        gate.record_failure()
        gate.record_failure()
        gate.record_success(1.0)
        gate.record_failure()
        # Net two failures: still closed
        assert gate.state == "closed"
        assert gate.snapshot()["failures"] == 2


class TestOpenState:
    def test_opens_at_threshold(self) -> None:
        gate = SolverGate(failure_threshold=3)
        for _ in range(3):
            gate.record_failure()
        assert gate.state == "open"
        assert gate.is_available() is False
        assert gate.unavailable_reason() == "circuit_open"

    def test_timeouts_count_as_failures(self) -> None:
        gate = SolverGate(failure_threshold=2)
        gate.record_timeout()
        gate.record_timeout()
        assert gate.state == "open"

    def test_slow_streak_opens(self) -> None:
        gate = SolverGate(failure_threshold=3, slow_threshold_seconds=30)
        for _ in range(3):
            gate.record_success(45.0)
        assert gate.state == "open"
        assert gate.snapshot()["slow"] == 3

    def test_fast_solve_breaks_slow_streak(self) -> None:
        gate = SolverGate(failure_threshold=3, slow_threshold_seconds=30)
        gate.record_success(45.0)
        gate.record_success(45.0)
        gate.record_success(2.0)
        gate.record_success(45.0)
        assert gate.state == "closed"

    def test_transitions_to_half_open_after_cooldown(self) -> None:
        gate = SolverGate(failure_threshold=2, reset_seconds=10)
        gate.record_failure()
        gate.record_failure()

        with patch.object(time, "monotonic", return_value=time.monotonic() + 11):
            assert gate.is_available() is True
            assert gate.state == "half_open"


class TestHalfOpenState:
    def test_success_closes(self) -> None:
        gate = SolverGate(failure_threshold=2, reset_seconds=0)
        gate.record_failure()
        gate.record_failure()
        assert gate.is_available() is True
        gate.record_success(1.0)
        assert gate.state == "closed"
        assert gate.snapshot()["failures"] == 0

    def test_failure_reopens(self) -> None:
        gate = SolverGate(failure_threshold=2, reset_seconds=60)
        gate.record_failure()
        gate.record_failure()
        with patch.object(time, "monotonic", return_value=time.monotonic() + 61):
            assert gate.is_available() is True
        gate.record_failure()
        assert gate.state == "open"
        assert gate.is_available() is False

    async def test_single_trial_admitted(self) -> None:
        gate = SolverGate(failure_threshold=1, reset_seconds=0)
        gate.record_failure()

        trial = await gate.acquire_slot(timeout=1)
        second = await gate.acquire_slot(timeout=1)

        assert trial.acquired is True
        assert gate.state == "half_open"
        assert second.acquired is False
        assert second.reason == "circuit_half_open"
        assert gate.snapshot()["trial_in_flight"] is True

    async def test_trial_success_readmits_everyone(self) -> None:
        gate = SolverGate(failure_threshold=1, reset_seconds=0)
        gate.record_failure()
        trial = await gate.acquire_slot(timeout=1)

        gate.record_success(1.0)
        trial.release()

        first = await gate.acquire_slot(timeout=1)
        second = await gate.acquire_slot(timeout=1)
        assert gate.state == "closed"
        assert first.acquired is True and second.acquired is True

    async def test_trial_released_without_verdict(self) -> None:
        gate = SolverGate(failure_threshold=1, reset_seconds=0)
        gate.record_failure()
        trial = await gate.acquire_slot(timeout=1)
        trial.release()

        next_trial = await gate.acquire_slot(timeout=1)
        assert next_trial.acquired is True
        assert gate.state == "half_open"

    async def test_stale_release_keeps_new_trial(self) -> None:
        gate = SolverGate(failure_threshold=1, reset_seconds=0)
        gate.record_failure()
        old = await gate.acquire_slot(timeout=1)
        gate.record_failure()
        new = await gate.acquire_slot(timeout=1)

        old.release()

        assert new.acquired is True
        assert gate.snapshot()["trial_in_flight"] is True
        assert (await gate.acquire_slot(timeout=1)).acquired is False


class TestSlots:
    async def test_acquire_and_release(self) -> None:
        gate = SolverGate(max_concurrent=2)
        lease = await gate.acquire_slot(timeout=1)
        assert lease.acquired is True
        assert gate.snapshot()["active"] == 1
        lease.release()
        lease.release()
        assert gate.snapshot()["active"] == 0

    async def test_waits_for_free_slot(self) -> None:
        gate = SolverGate(max_concurrent=1, queue_max_depth=5)
        first = await gate.acquire_slot(timeout=1)

        async def release_later() -> None:
            await asyncio.sleep(0.02)
            first.release()

        task = asyncio.create_task(release_later())
        second = await gate.acquire_slot(timeout=1)
        await task
        assert second.acquired is True
        second.release()

    async def test_slot_timeout(self) -> None:
        gate = SolverGate(max_concurrent=1, queue_max_depth=5)
        await gate.acquire_slot(timeout=1)

        lease = await gate.acquire_slot(timeout=0.02)
        assert lease.acquired is False
        assert lease.reason == "timeout"
        assert gate.snapshot()["waiting"] == 0

    async def test_overloaded_when_queue_full(self) -> None:
        gate = SolverGate(max_concurrent=1, queue_max_depth=0)
        await gate.acquire_slot(timeout=1)

        assert gate.is_available() is False
        lease = await gate.acquire_slot(timeout=1)
        assert lease.acquired is False
        assert lease.reason == "overloaded"

    async def test_open_circuit_refuses_slot(self) -> None:
        gate = SolverGate(failure_threshold=1)
        gate.record_failure()
        lease = await gate.acquire_slot(timeout=1)
        assert lease.acquired is False
        assert lease.reason == "circuit_open"


class TestOverloadedResponse:
    def test_shape(self) -> None:
        gate = SolverGate(enabled=False, retry_after_seconds=30)
        response = gate.overloaded_response()
        assert response["overloaded"] is True
        assert response["retry_after"] == 30
        assert "disabled" in response["message"]

    def test_explicit_reason(self) -> None:
        response = SolverGate().overloaded_response("queue_full")
        assert response["message"] == "challenge solver unavailable: queue_full"
