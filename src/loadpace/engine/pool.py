"""Bounded, resizable pool of virtual-user workers running on asyncio."""

from __future__ import annotations

import asyncio
from collections import deque
from enum import Enum, auto
from typing import TYPE_CHECKING

from loadpace._internal.errors import EngineError, NoIdleWorker
from loadpace._internal.logging import get_logger
from loadpace.engine.results import IterationContext, IterationResult

if TYPE_CHECKING:
    from loadpace._internal.types import IterationRunner
    from loadpace.engine.run_state import RunState

logger = get_logger("engine.pool")


class WorkerState(Enum):
    """Lifecycle of a worker."""

    IDLE = auto()
    RUNNING = auto()
    TERMINATING = auto()
    TERMINATED = auto()


class PoolMode(Enum):
    """How workers obtain iterations.

    LOOP: each worker runs iterations back-to-back (stage ramps).
    DISPATCH: each worker waits for ``dispatch_one()`` (arrival rate).
    """

    LOOP = auto()
    DISPATCH = auto()


class Worker:
    """One virtual user owned by a :class:`WorkerPool`.

    The pool sets and clears the termination flag; the worker only reads
    it. A worker never runs two iterations at once.

    Attributes:
        worker_id: Identifier, unique within the pool.
        iterations: Iterations this worker has finished.
    """

    def __init__(self, worker_id: int) -> None:
        self.worker_id = worker_id
        self.iterations = 0
        self.task: asyncio.Task[None] | None = None
        self._inbox: asyncio.Queue[IterationContext | None] = asyncio.Queue()
        self._busy = False
        self._terminating = False
        self._terminated = False

    @property
    def state(self) -> WorkerState:
        """Return the current lifecycle state."""
        if self._terminated:
            return WorkerState.TERMINATED
        if self._terminating:
            return WorkerState.TERMINATING
        if self._busy:
            return WorkerState.RUNNING
        return WorkerState.IDLE

    @property
    def busy(self) -> bool:
        """Return True while an iteration is in flight."""
        return self._busy

    def __repr__(self) -> str:
        return f"Worker(id={self.worker_id}, state={self.state.name})"


class WorkerPool:
    """A bounded set of workers that repeatedly run an iteration runner.

    The live worker set is changed only through :meth:`resize`,
    :meth:`dispatch_one` and :meth:`drain_and_stop`, all called from the
    scheduler's tick loop. Scaling down never preempts an iteration: an
    excess worker is marked TERMINATING, finishes what it is doing and
    then exits. Workers marked TERMINATING are counted against
    ``max_workers`` until they exit, so the number of live workers never
    exceeds the cap.

    Iteration failures are contained: a runner that raises is recorded as
    a transport error and the worker carries on.

    Args:
        runner: Async callable run once per iteration.
        run_state: Counters updated with every dispatch and result.
        max_workers: Upper bound on live workers (>= 0).
        mode: LOOP or DISPATCH.
    """

    def __init__(
        self,
        runner: IterationRunner,
        run_state: RunState,
        max_workers: int,
        *,
        mode: PoolMode = PoolMode.LOOP,
    ) -> None:
        if max_workers < 0:
            msg = f"max_workers must be >= 0, got {max_workers}"
            raise ValueError(msg)
        self._runner = runner
        self._run_state = run_state
        self._max_workers = max_workers
        self._mode = mode
        self._workers: list[Worker] = []
        self._idle: deque[Worker] = deque()
        self._next_worker_id = 1
        self._closed = False

    @property
    def max_workers(self) -> int:
        """Return the worker cap."""
        return self._max_workers

    @property
    def mode(self) -> PoolMode:
        """Return the pool mode."""
        return self._mode

    @property
    def workers(self) -> tuple[Worker, ...]:
        """Return the workers that have not yet been removed."""
        return tuple(self._workers)

    @property
    def active_count(self) -> int:
        """Return the number of live workers not marked for termination."""
        return sum(1 for w in self._workers if w.state in (WorkerState.IDLE, WorkerState.RUNNING))

    @property
    def live_count(self) -> int:
        """Return the number of workers that have not terminated."""
        return sum(1 for w in self._workers if w.state is not WorkerState.TERMINATED)

    @property
    def idle_count(self) -> int:
        """Return the number of workers waiting for work."""
        return sum(1 for w in self._workers if w.state is WorkerState.IDLE)

    def resize(self, target: int) -> int:
        """Move the active worker count toward *target*.

        Args:
            target: Desired number of active workers. Clamped to
                ``[0, max_workers]``.

        Returns:
            The active worker count after the adjustment. It is lower than
            *target* when the cap was the binding constraint; the caller
            decides whether to record that as pool exhaustion.

        Raises:
            EngineError: If the pool has been drained.
        """
        self._ensure_open()
        self._prune()
        target = max(0, min(target, self._max_workers))

        active = [w for w in self._workers if w.state in (WorkerState.IDLE, WorkerState.RUNNING)]
        if target > len(active):
            needed = target - len(active)
            # Reuse workers still finishing their last iteration before spawning.
            for worker in reversed(self._workers):
                if needed == 0:
                    break
                if worker.state is WorkerState.TERMINATING:
                    self._revive(worker)
                    needed -= 1
            while needed > 0 and self.live_count < self._max_workers:
                self._spawn()
                needed -= 1
        elif target < len(active):
            # Idle workers go first, then the most recently created.
            victims = sorted(
                active,
                key=lambda w: (w.state is WorkerState.IDLE, w.worker_id),
                reverse=True,
            )[: len(active) - target]
            for worker in victims:
                self._request_termination(worker)

        return self.active_count

    def dispatch_one(self, scheduled_at: float) -> IterationContext:
        """Hand one iteration to an idle worker.

        Args:
            scheduled_at: Elapsed run time recorded in the context.

        Returns:
            The context handed to the worker.

        Raises:
            NoIdleWorker: If no worker is idle.
            EngineError: If the pool is not in DISPATCH mode or is drained.
        """
        self._ensure_open()
        if self._mode is not PoolMode.DISPATCH:
            msg = "dispatch_one() requires a pool in DISPATCH mode"
            raise EngineError(msg)

        while self._idle:
            worker = self._idle.popleft()
            if worker.state is not WorkerState.IDLE:
                continue
            worker._busy = True
            context = IterationContext(
                iteration_id=self._run_state.next_iteration_id(),
                worker_id=worker.worker_id,
                scheduled_at=scheduled_at,
            )
            worker._inbox.put_nowait(context)
            return context

        msg = f"all {self.active_count} active workers are busy"
        raise NoIdleWorker(msg)

    async def drain_and_stop(self, timeout: float | None = None) -> None:
        """Terminate every worker and wait for all of them to exit.

        In-flight iterations are allowed to finish. If *timeout* elapses
        first, the remaining workers are cancelled and their iterations are
        counted as abandoned.

        Args:
            timeout: Seconds to wait, or None to wait indefinitely.
        """
        if self._closed:
            return
        self._closed = True

        workers = list(self._workers)
        for worker in workers:
            self._request_termination(worker)

        tasks = [w.task for w in workers if w.task is not None]
        if tasks:
            _done, pending = await asyncio.wait(tasks, timeout=timeout)
            if pending:
                abandoned = sum(1 for w in workers if w.task in pending and w.busy)
                logger.warning(
                    "%d workers still running after %.1fs drain timeout; cancelling %d in-flight iterations",
                    len(pending),
                    timeout or 0.0,
                    abandoned,
                )
                self._run_state.abandoned_iterations += abandoned
                for task in pending:
                    task.cancel()
                await asyncio.wait(pending)
            for task in tasks:
                self._log_task_failure(task)

        self._workers.clear()
        self._idle.clear()
        logger.debug("All workers stopped")

    # ------------------------------------------------------------------
    # Worker lifecycle
    # ------------------------------------------------------------------

    def _spawn(self) -> Worker:
        worker = Worker(self._next_worker_id)
        self._next_worker_id += 1
        if self._mode is PoolMode.LOOP:
            coro = self._loop_worker(worker)
        else:
            coro = self._dispatch_worker(worker)
            self._idle.append(worker)
        worker.task = asyncio.create_task(coro, name=f"worker-{worker.worker_id}")
        self._workers.append(worker)
        return worker

    def _request_termination(self, worker: Worker) -> None:
        if worker.state is WorkerState.TERMINATED:
            return
        worker._terminating = True
        if self._mode is PoolMode.DISPATCH and not worker.busy:
            worker._inbox.put_nowait(None)

    def _revive(self, worker: Worker) -> None:
        worker._terminating = False
        if self._mode is PoolMode.DISPATCH and not worker.busy:
            self._idle.append(worker)

    def _prune(self) -> None:
        finished = [w for w in self._workers if w.state is WorkerState.TERMINATED]
        for worker in finished:
            if worker.task is not None and worker.task.done():
                self._log_task_failure(worker.task)
        self._workers = [w for w in self._workers if w.state is not WorkerState.TERMINATED]

    def _ensure_open(self) -> None:
        if self._closed:
            msg = "worker pool has been drained"
            raise EngineError(msg)

    async def _loop_worker(self, worker: Worker) -> None:
        try:
            while not worker._terminating:
                context = IterationContext(
                    iteration_id=self._run_state.next_iteration_id(),
                    worker_id=worker.worker_id,
                    scheduled_at=self._run_state.elapsed,
                )
                await self._execute(worker, context)
                # Yield even if the runner never suspended.
                await asyncio.sleep(0)
        finally:
            worker._terminated = True

    async def _dispatch_worker(self, worker: Worker) -> None:
        try:
            while True:
                context = await worker._inbox.get()
                if context is None:
                    if worker._terminating:
                        break
                    continue
                await self._execute(worker, context)
                if worker._terminating:
                    break
                self._idle.append(worker)
        finally:
            worker._terminated = True

    async def _execute(self, worker: Worker, context: IterationContext) -> None:
        worker._busy = True
        try:
            result = await self._runner(context)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            result = IterationResult.transport_error(f"{type(exc).__name__}: {exc}")
            logger.debug(
                "Iteration %d raised on worker %d",
                context.iteration_id,
                worker.worker_id,
                exc_info=True,
            )
        worker._busy = False

        if result is None:
            result = IterationResult.success()
        elif not isinstance(result, IterationResult):
            result = IterationResult.transport_error(
                f"runner returned {type(result).__name__}, expected IterationResult"
            )
        if not result.ok:
            logger.debug(
                "Iteration %d on worker %d: %s (%s)",
                context.iteration_id,
                worker.worker_id,
                result.outcome.value,
                result.reason,
            )
        worker.iterations += 1
        self._run_state.record_result(result)

    @staticmethod
    def _log_task_failure(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Worker task %s failed", task.get_name(), exc_info=exc)
