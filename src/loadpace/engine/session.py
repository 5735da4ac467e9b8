"""Load test session: the scheduling state machine and its tick loop."""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

from loadpace._internal.config import LoadPaceConfig, TickOverrunPolicy
from loadpace._internal.errors import ConfigError, EngineError, InvalidProfile, NoIdleWorker
from loadpace._internal.logging import get_logger
from loadpace.engine.pool import PoolMode, WorkerPool
from loadpace.engine.run_state import RunState, RunSummary
from loadpace.engine.scheduler import ScaleDirection, Scheduler
from loadpace.profiles.arrival_rate import ArrivalRate
from loadpace.profiles.base import LoadProfile
from loadpace.profiles.stages import StageRamp

if TYPE_CHECKING:
    from loadpace._internal.types import IterationRunner
    from loadpace.engine.run_state import RunSnapshot

logger = get_logger("engine.session")


class SessionState(Enum):
    """State machine for a load test session."""

    NOT_STARTED = auto()
    RUNNING = auto()
    DRAINING = auto()
    COMPLETED = auto()


@dataclass(frozen=True)
class SessionStatus:
    """Current state and counters of a session.

    Attributes:
        state: Session state.
        snapshot: Point-in-time copy of the run counters.
    """

    state: SessionState
    snapshot: RunSnapshot


class LoadTestSession:
    """Runs one profile against one iteration runner.

    State machine: NOT_STARTED -> RUNNING -> DRAINING -> COMPLETED

    While RUNNING, a single tick loop wakes every ``tick_interval``
    seconds. For a stage ramp it resizes the worker pool to the stage
    target; for an arrival rate it dispatches the iterations that
    accrued since the previous tick, growing the pool up to its cap and
    recording a shortfall when that is not enough. Ticks never overlap.
    When a tick ends after the next one was due, the configured
    :class:`TickOverrunPolicy` decides what happens to the missed ticks.

    The run moves to DRAINING when the profile's duration has elapsed or
    :meth:`stop` is called, and to COMPLETED once every worker has
    finished its in-flight iteration.

    Args:
        profile: Validated load profile.
        runner: Async callable run once per iteration.
        config: Engine configuration. Defaults to ``LoadPaceConfig()``.

    Raises:
        InvalidProfile: If *profile* is not a LoadProfile.
        ConfigError: If *runner* is not callable.
    """

    def __init__(
        self,
        profile: LoadProfile,
        runner: IterationRunner,
        *,
        config: LoadPaceConfig | None = None,
    ) -> None:
        if not isinstance(profile, LoadProfile):
            msg = f"profile must be a LoadProfile, got {type(profile).__name__}"
            raise InvalidProfile(msg)
        if not callable(runner):
            msg = f"iteration runner must be callable, got {type(runner).__name__}"
            raise ConfigError(msg)

        self._profile = profile
        self._config = config or LoadPaceConfig()
        self._run_state = RunState()
        self._scheduler = Scheduler(profile, self._config.tick_interval)
        mode = PoolMode.LOOP if isinstance(profile, StageRamp) else PoolMode.DISPATCH
        self._pool = WorkerPool(runner, self._run_state, profile.max_workers, mode=mode)

        self._state = SessionState.NOT_STARTED
        self._stop_event = asyncio.Event()
        self._stopped_early = False
        self._task: asyncio.Task[None] | None = None
        self._summary: RunSummary | None = None
        self._signals_installed = False
        self._warned: set[str] = set()
        self._current_stage = -1

    @property
    def state(self) -> SessionState:
        """Return the current session state."""
        return self._state

    @property
    def profile(self) -> LoadProfile:
        """Return the profile being executed."""
        return self._profile

    @property
    def pool(self) -> WorkerPool:
        """Return the worker pool owned by this session."""
        return self._pool

    @property
    def summary(self) -> RunSummary | None:
        """Return the run summary once COMPLETED, else None."""
        return self._summary

    def status(self) -> SessionStatus:
        """Return the current state and a snapshot of the run counters."""
        return SessionStatus(state=self._state, snapshot=self._run_state.snapshot())

    async def start(self) -> None:
        """Start the run and return immediately.

        Raises:
            EngineError: If the session was already started or stopped.
        """
        if self._state is not SessionState.NOT_STARTED:
            msg = f"session cannot be started from state {self._state.name}"
            raise EngineError(msg)

        logger.info("Starting load test: profile=%s", self._profile.describe())
        self._state = SessionState.RUNNING
        self._run_state.mark_started()

        if self._config.handle_signals:
            self._install_signal_handlers()

        if isinstance(self._profile, ArrivalRate):
            allocated = self._pool.resize(self._profile.pre_allocated)
            self._run_state.set_workers(allocated)
            logger.debug("Pre-allocated %d workers", allocated)

        self._task = asyncio.create_task(self._run_loop(), name="loadpace-scheduler")

    async def wait(self) -> RunSummary:
        """Wait for the run to complete.

        Returns:
            The run summary.

        Raises:
            EngineError: If the session was never started, or the tick loop
                failed.
        """
        if self._task is None:
            if self._summary is not None:
                return self._summary
            msg = "session has not been started"
            raise EngineError(msg)
        await self._task
        if self._summary is None:
            msg = "session finished without a summary"
            raise EngineError(msg)
        return self._summary

    async def run(self) -> RunSummary:
        """Start the run and wait for it to complete.

        Returns:
            The run summary.
        """
        await self.start()
        return await self.wait()

    def stop(self) -> None:
        """Cancel the run.

        A running session moves straight to DRAINING, skipping any
        remaining stages; in-flight iterations still finish. A session that
        never started completes immediately with an empty summary. Calling
        this on a draining or completed session does nothing.
        """
        if self._state is SessionState.NOT_STARTED:
            logger.info("Stop requested before start")
            self._stopped_early = True
            self._state = SessionState.COMPLETED
            self._run_state.mark_finished()
            self._summary = self._build_summary()
            return

        if self._state is SessionState.RUNNING:
            logger.info("Stop requested, draining workers")
            self._stopped_early = True
            self._state = SessionState.DRAINING
            self._stop_event.set()

    # ------------------------------------------------------------------
    # Tick loop
    # ------------------------------------------------------------------

    async def _run_loop(self) -> None:
        started_at = self._run_state.started_at or time.monotonic()
        interval = self._config.tick_interval
        tick = 0

        try:
            while not self._stop_event.is_set():
                elapsed = time.monotonic() - started_at
                if self._scheduler.is_finished(elapsed):
                    tick = self._handle_overrun(
                        tick, elapsed, interval, last_tick=self._scheduler.total_ticks
                    )
                    if isinstance(self._profile, ArrivalRate):
                        # Release iterations that fell due between the last tick and the end.
                        self._dispatch_tick(tick, elapsed)
                    logger.debug("Profile duration reached at %.3fs", elapsed)
                    break

                tick = self._handle_overrun(tick, elapsed, interval)
                self._process_tick(tick, elapsed)
                self._run_state.ticks += 1

                tick += 1
                await self._sleep_until(started_at + tick * interval)
        except Exception as exc:
            logger.exception("Tick loop failed")
            raise EngineError("Tick loop failed") from exc
        finally:
            await self._finish()

    def _process_tick(self, tick: int, elapsed: float) -> None:
        if isinstance(self._profile, StageRamp):
            self._scale_tick(self._profile, tick, elapsed)
        else:
            self._dispatch_tick(tick, elapsed)
        self._run_state.set_workers(self._pool.active_count)

    def _scale_tick(self, ramp: StageRamp, tick: int, elapsed: float) -> None:
        command = self._scheduler.scale_at(tick, elapsed)
        target = command.target_concurrency
        granted = self._pool.resize(target)
        self._run_state.target_concurrency = target

        stage = ramp.stage_index_at(elapsed)
        if stage != self._current_stage:
            self._current_stage = stage
            logger.info(
                "Stage %d/%d: target %d workers at %.1fs",
                stage + 1,
                len(ramp.stages),
                target,
                elapsed,
                extra={"tick": tick, "elapsed": round(elapsed, 3)},
            )
        elif command.direction is not ScaleDirection.HOLD:
            logger.debug("Scaling %s to %d workers", command.direction.name.lower(), target)
        if granted < target:
            self._run_state.record_pool_exhausted(tick, elapsed, target, granted)
            self._warn_once(
                "pool_exhausted",
                "Pool exhausted: requested %d workers, capped at %d",
                target,
                granted,
                extra={"tick": tick},
            )

    def _dispatch_tick(self, tick: int, elapsed: float) -> None:
        command = self._scheduler.dispatch_at(tick, elapsed)
        remaining = command.due
        while remaining > 0:
            try:
                self._pool.dispatch_one(elapsed)
            except NoIdleWorker:
                active = self._pool.active_count
                if active < self._pool.max_workers and self._pool.resize(active + 1) > active:
                    continue
                self._run_state.record_pool_exhausted(tick, elapsed, active + 1, active)
                self._record_shortfall(tick, elapsed, remaining, f"all {active} workers busy")
                break
            remaining -= 1

    def _record_shortfall(self, tick: int, elapsed: float, missed: int, detail: str) -> None:
        self._run_state.record_shortfall(tick, elapsed, missed, detail)
        self._warn_once(
            "shortfall",
            "Arrival rate shortfall: %d iterations not started at %.1fs (%s)",
            missed,
            elapsed,
            detail,
            extra={"tick": tick},
        )

    def _warn_once(self, key: str, msg: str, *args: object, extra: dict[str, object]) -> None:
        # Recurring conditions are logged at WARNING once, then at DEBUG.
        if key in self._warned:
            logger.debug(msg, *args, extra=extra)
            return
        self._warned.add(key)
        logger.warning(msg, *args, extra=extra)

    def _handle_overrun(
        self, tick: int, elapsed: float, interval: float, *, last_tick: int | None = None
    ) -> int:
        """Return the tick to run now, applying the overrun policy.

        A tick that starts after the following tick was already due has
        overrun. The ticks whose start time has passed are either coalesced
        into the current one or skipped along with their arrival budget.
        *last_tick* caps the count when the loop wakes after the profile ended.
        """
        due_tick = int(elapsed / interval)
        resume_at = due_tick * interval
        if last_tick is not None and due_tick >= last_tick:
            due_tick = last_tick
            resume_at = elapsed
        missed = due_tick - tick
        if missed <= 0:
            return tick

        if self._config.overrun_policy is TickOverrunPolicy.COALESCE:
            self._run_state.coalesced_ticks += missed
            detail = f"coalesced {missed} ticks into tick {due_tick}"
        else:
            self._run_state.skipped_ticks += missed
            dropped = self._scheduler.discard_until(resume_at)
            if dropped:
                self._record_shortfall(due_tick, elapsed, dropped, f"skipped {missed} ticks")
            detail = f"skipped {missed} ticks, resuming at tick {due_tick}"
        self._run_state.record_overrun(tick, elapsed, missed, detail)
        self._warn_once(
            "overrun",
            "Tick %d started %.3fs late: %s",
            tick,
            elapsed - tick * interval,
            detail,
            extra={"tick": tick, "elapsed": round(elapsed, 3)},
        )
        return due_tick

    async def _sleep_until(self, deadline: float) -> None:
        delay = deadline - time.monotonic()
        if delay <= 0:
            # Let workers run even when the loop is behind.
            await asyncio.sleep(0)
            return
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)

    async def _finish(self) -> None:
        self._state = SessionState.DRAINING
        try:
            await self._pool.drain_and_stop(self._config.drain_timeout)
        finally:
            self._remove_signal_handlers()
            self._run_state.set_workers(0)
            self._run_state.mark_finished()
            self._state = SessionState.COMPLETED
            self._summary = self._build_summary()

        snapshot = self._summary.snapshot
        logger.info(
            "Load test completed: duration=%.1fs, dispatched=%d, succeeded=%d, errors=%d, "
            "shortfall_events=%d, dropped=%d, pool_exhausted=%d",
            snapshot.elapsed_seconds,
            snapshot.dispatched,
            snapshot.successes,
            snapshot.error_count,
            snapshot.shortfall_events,
            snapshot.dropped_iterations,
            snapshot.pool_exhausted_events,
        )

    def _build_summary(self) -> RunSummary:
        return RunSummary(
            profile_description=self._profile.describe(),
            final_state=self._state.name,
            stopped_early=self._stopped_early,
            snapshot=self._run_state.snapshot(),
            events=tuple(self._run_state.events),
        )

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        """Install SIGINT and SIGTERM handlers that call :meth:`stop`."""
        loop = asyncio.get_running_loop()

        def _signal_handler() -> None:
            logger.info("Signal received, initiating graceful shutdown")
            self.stop()

        if sys.platform != "win32":
            loop.add_signal_handler(signal.SIGINT, _signal_handler)
            loop.add_signal_handler(signal.SIGTERM, _signal_handler)
        else:
            signal.signal(signal.SIGINT, lambda _s, _f: _signal_handler())
            signal.signal(signal.SIGTERM, lambda _s, _f: _signal_handler())
        self._signals_installed = True

    def _remove_signal_handlers(self) -> None:
        """Remove the handlers installed by :meth:`_install_signal_handlers`."""
        if not self._signals_installed:
            return
        if sys.platform != "win32":
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
        else:
            signal.signal(signal.SIGINT, signal.default_int_handler)
            signal.signal(signal.SIGTERM, signal.SIG_DFL)
        self._signals_installed = False
