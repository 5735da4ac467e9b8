"""Integration tests for the worker pool."""

from __future__ import annotations

import asyncio
import random
from typing import Any

import pytest

from loadpace._internal.errors import EngineError, NoIdleWorker
from loadpace.engine.pool import PoolMode, WorkerPool, WorkerState
from loadpace.engine.results import IterationContext, IterationResult
from loadpace.engine.run_state import RunState


def _pool(runner: Any, max_workers: int, mode: PoolMode = PoolMode.LOOP) -> WorkerPool:
    return WorkerPool(runner, RunState(), max_workers, mode=mode)


@pytest.mark.timeout(10)
class TestLoopPool:
    """Workers running iterations back-to-back."""

    async def test_resize_is_clamped_to_bounds(self, make_runner: Any) -> None:
        runner = make_runner(delay=0.01)
        pool = _pool(runner, max_workers=5)
        assert pool.resize(3) == 3
        assert pool.resize(10) == 5
        assert pool.resize(-1) == 0
        await pool.drain_and_stop()
        assert runner.max_in_flight <= 5

    async def test_workers_run_iterations(self, make_runner: Any) -> None:
        runner = make_runner(delay=0.01)
        pool = _pool(runner, max_workers=3)
        pool.resize(3)
        await asyncio.sleep(0.1)
        await pool.drain_and_stop()

        assert runner.max_in_flight == 3
        assert {c.worker_id for c in runner.contexts} == {1, 2, 3}
        ids = [c.iteration_id for c in runner.contexts]
        assert sorted(ids) == list(range(1, len(ids) + 1))

    async def test_scale_down_lets_iterations_finish(self, make_runner: Any) -> None:
        runner = make_runner(delay=0.2)
        state = RunState()
        pool = WorkerPool(runner, state, 2)
        pool.resize(2)
        await asyncio.sleep(0.05)

        assert pool.resize(0) == 0
        assert pool.live_count == 2
        assert all(w.state is WorkerState.TERMINATING for w in pool.workers)

        await asyncio.sleep(0.3)
        assert all(w.state is WorkerState.TERMINATED for w in pool.workers)
        assert state.dispatched == 2
        assert state.successes == 2
        assert state.in_flight == 0
        await pool.drain_and_stop()

    async def test_terminating_workers_count_against_cap(self, make_runner: Any) -> None:
        runner = make_runner(delay=0.2)
        pool = _pool(runner, max_workers=2)
        pool.resize(2)
        await asyncio.sleep(0.05)
        pool.resize(0)

        assert pool.resize(2) == 2
        assert sorted(w.worker_id for w in pool.workers) == [1, 2]
        await pool.drain_and_stop()
        assert runner.max_in_flight <= 2

    async def test_runner_exception_is_a_transport_error(self) -> None:
        async def _failing(context: IterationContext) -> IterationResult:
            await asyncio.sleep(0.01)
            raise ValueError("bad payload")

        state = RunState()
        pool = WorkerPool(_failing, state, 1)
        pool.resize(1)
        await asyncio.sleep(0.05)
        await pool.drain_and_stop()

        assert state.transport_errors >= 1
        assert state.successes == 0
        assert state.failures_by_reason["ValueError: bad payload"] == state.transport_errors

    async def test_result_normalisation(self) -> None:
        results: list[Any] = [None, "ok"]

        async def _runner(context: IterationContext) -> Any:
            await asyncio.sleep(0)
            return results[(context.iteration_id - 1) % 2]

        state = RunState()
        pool = WorkerPool(_runner, state, 1)
        pool.resize(1)
        await asyncio.sleep(0.02)
        await pool.drain_and_stop()

        assert state.successes >= 1
        assert state.transport_errors >= 1
        assert "runner returned str, expected IterationResult" in state.failures_by_reason

    async def test_dispatch_requires_dispatch_mode(self, make_runner: Any) -> None:
        pool = _pool(make_runner(), max_workers=1)
        with pytest.raises(EngineError, match="DISPATCH"):
            pool.dispatch_one(0.0)

    def test_negative_cap(self, make_runner: Any) -> None:
        with pytest.raises(ValueError, match="max_workers"):
            _pool(make_runner(), max_workers=-1)


@pytest.mark.timeout(10)
class TestDispatchPool:
    """Workers waiting for dispatched iterations."""

    async def test_dispatch_to_idle_workers(self, make_runner: Any) -> None:
        runner = make_runner(delay=0.05)
        pool = _pool(runner, max_workers=2, mode=PoolMode.DISPATCH)
        pool.resize(2)

        first = pool.dispatch_one(0.0)
        second = pool.dispatch_one(0.0)
        assert {first.worker_id, second.worker_id} == {1, 2}
        assert (first.iteration_id, second.iteration_id) == (1, 2)
        assert pool.idle_count == 0

        with pytest.raises(NoIdleWorker, match="all 2 active workers are busy"):
            pool.dispatch_one(0.0)

        await asyncio.sleep(0.1)
        assert pool.idle_count == 2
        pool.dispatch_one(0.1)
        await pool.drain_and_stop()
        assert runner.calls == 3

    async def test_idle_workers_are_removed_first(self, make_runner: Any) -> None:
        runner = make_runner(delay=0.1)
        pool = _pool(runner, max_workers=3, mode=PoolMode.DISPATCH)
        pool.resize(3)
        busy = pool.dispatch_one(0.0)

        assert pool.resize(1) == 1
        active = [w for w in pool.workers if w.state in (WorkerState.IDLE, WorkerState.RUNNING)]
        assert [w.worker_id for w in active] == [busy.worker_id]
        await pool.drain_and_stop()

    async def test_drain_waits_for_in_flight(self, make_runner: Any) -> None:
        runner = make_runner(delay=0.1)
        state = RunState()
        pool = WorkerPool(runner, state, 1, mode=PoolMode.DISPATCH)
        pool.resize(1)
        pool.dispatch_one(0.0)

        await pool.drain_and_stop()
        assert state.successes == 1
        assert pool.workers == ()
        with pytest.raises(EngineError, match="drained"):
            pool.resize(1)

    async def test_drain_timeout_abandons_iterations(self, make_runner: Any) -> None:
        runner = make_runner(delay=5.0)
        state = RunState()
        pool = WorkerPool(runner, state, 2, mode=PoolMode.DISPATCH)
        pool.resize(2)
        pool.dispatch_one(0.0)
        await asyncio.sleep(0.01)

        await pool.drain_and_stop(timeout=0.1)
        assert state.abandoned_iterations == 1
        assert state.in_flight == 0
        assert state.successes == 0


@pytest.mark.timeout(15)
class TestResizeBounds:
    """Live worker count stays within the cap for arbitrary resize sequences."""

    @pytest.mark.parametrize("mode", [PoolMode.LOOP, PoolMode.DISPATCH])
    @pytest.mark.parametrize("seed", [1, 7, 42])
    async def test_random_resize_sequence(
        self, make_runner: Any, mode: PoolMode, seed: int
    ) -> None:
        rng = random.Random(seed)
        max_workers = 4
        runner = make_runner(delay=0.02)
        pool = _pool(runner, max_workers=max_workers, mode=mode)

        for _ in range(40):
            target = rng.randint(-2, max_workers + 3)
            active = pool.resize(target)

            assert 0 <= active <= max_workers
            assert active <= max(target, 0)
            assert pool.live_count <= max_workers

            if mode is PoolMode.DISPATCH:
                while pool.idle_count:
                    pool.dispatch_one(0.0)
            await asyncio.sleep(rng.choice([0, 0.005, 0.01]))
            assert pool.live_count <= max_workers

        await pool.drain_and_stop()
        assert runner.max_in_flight <= max_workers
