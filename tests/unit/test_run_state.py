"""Tests for run counters, snapshots and the run summary."""

from __future__ import annotations

import json

import pytest

from loadpace.engine.results import IterationResult, Outcome
from loadpace.engine.run_state import EventKind, RunState, RunSummary


class TestIterationResult:
    """Tests for the IterationResult constructors."""

    def test_success(self) -> None:
        result = IterationResult.success()
        assert result.outcome is Outcome.SUCCESS
        assert result.reason is None
        assert result.ok

    def test_failures(self) -> None:
        assert IterationResult.check_failure("status is 200").outcome is Outcome.CHECK_FAILURE
        assert not IterationResult.transport_error("boom").ok


class TestRunState:
    """Tests for RunState counters."""

    def test_record_result_by_outcome(self) -> None:
        state = RunState()
        for _ in range(3):
            state.next_iteration_id()
        state.record_result(IterationResult.success())
        state.record_result(IterationResult.check_failure("status is 200"))
        state.record_result(IterationResult.transport_error("ClientConnectorError: refused"))

        assert state.successes == 1
        assert state.check_failures == 1
        assert state.transport_errors == 1
        assert state.error_count == 2
        assert state.in_flight == 0
        assert state.failures_by_reason == {
            "status is 200": 1,
            "ClientConnectorError: refused": 1,
        }

    def test_reason_defaults_to_outcome(self) -> None:
        state = RunState()
        state.record_result(IterationResult(Outcome.TRANSPORT_ERROR))
        assert state.failures_by_reason == {"transport_error": 1}

    def test_iteration_ids_are_sequential(self) -> None:
        state = RunState()
        assert [state.next_iteration_id() for _ in range(3)] == [1, 2, 3]
        assert state.dispatched == 3
        assert state.in_flight == 3

    def test_abandoned_iterations_leave_in_flight(self) -> None:
        state = RunState()
        state.next_iteration_id()
        state.next_iteration_id()
        state.abandoned_iterations = 1
        assert state.in_flight == 1

    def test_peak_workers(self) -> None:
        state = RunState()
        state.set_workers(3)
        state.set_workers(5)
        state.set_workers(2)
        assert state.worker_count == 2
        assert state.peak_workers == 5

    def test_record_shortfall(self) -> None:
        state = RunState()
        state.record_shortfall(4, 0.4, 7, "all 5 workers busy")
        state.record_shortfall(5, 0.5, 3)
        assert state.shortfall_events == 2
        assert state.dropped_iterations == 10
        event = state.events[0]
        assert event.kind is EventKind.ARRIVAL_RATE_SHORTFALL
        assert (event.tick, event.count, event.detail) == (4, 7, "all 5 workers busy")

    def test_record_pool_exhausted(self) -> None:
        state = RunState()
        state.record_pool_exhausted(2, 0.2, 8, 5)
        assert state.pool_exhausted_events == 1
        event = state.events[0]
        assert event.kind is EventKind.POOL_EXHAUSTED
        assert event.count == 3
        assert event.detail == "requested 8 workers, pool capped at 5"

    def test_events_are_bounded(self) -> None:
        state = RunState()
        for tick in range(1500):
            state.record_shortfall(tick, tick * 0.1, 1)
        assert len(state.events) == 1000
        assert state.events[0].tick == 500
        assert state.shortfall_events == 1500

    def test_elapsed_before_start(self) -> None:
        assert RunState().elapsed == 0.0

    def test_elapsed_frozen_after_finish(self) -> None:
        state = RunState()
        state.mark_started()
        state.mark_finished()
        first = state.snapshot().elapsed_seconds
        assert state.snapshot().elapsed_seconds == first

    def test_snapshot_is_a_copy(self) -> None:
        state = RunState()
        state.record_result(IterationResult.check_failure("x"))
        snapshot = state.snapshot()
        state.record_result(IterationResult.check_failure("x"))
        assert snapshot.check_failures == 1
        assert snapshot.failures_by_reason == {"x": 1}
        with pytest.raises(AttributeError):
            snapshot.dispatched = 10  # type: ignore[misc]


class TestRunSummary:
    """Tests for RunSummary."""

    def _summary(self, successes: int, failures: int) -> RunSummary:
        state = RunState()
        for _ in range(successes):
            state.record_result(IterationResult.success())
        for _ in range(failures):
            state.record_result(IterationResult.check_failure("status is 200"))
        state.record_shortfall(1, 0.1, 2, "all 1 workers busy")
        return RunSummary(
            profile_description="test",
            final_state="COMPLETED",
            stopped_early=False,
            snapshot=state.snapshot(),
            events=tuple(state.events),
        )

    def test_error_rate(self) -> None:
        assert self._summary(3, 1).error_rate == pytest.approx(0.25)

    def test_error_rate_without_iterations(self) -> None:
        assert self._summary(0, 0).error_rate == 0.0

    def test_to_dict_is_json_serialisable(self) -> None:
        data = self._summary(1, 1).to_dict()
        decoded = json.loads(json.dumps(data))
        assert decoded["state"] == "COMPLETED"
        assert decoded["error_rate"] == 0.5
        assert decoded["failures_by_reason"] == {"status is 200": 1}
        assert decoded["events"][0]["kind"] == "arrival_rate_shortfall"
        assert decoded["dropped_iterations"] == 2
