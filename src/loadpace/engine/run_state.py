"""Run-scoped counters, events and the snapshots read by reporting."""

from __future__ import annotations

import time
from collections import Counter, deque
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from loadpace.engine.results import Outcome

if TYPE_CHECKING:
    from loadpace.engine.results import IterationResult

# Oldest events are dropped past this many; counters keep the full totals.
_MAX_EVENTS = 1000


class EventKind(Enum):
    """Recoverable conditions recorded during a run."""

    ARRIVAL_RATE_SHORTFALL = "arrival_rate_shortfall"
    POOL_EXHAUSTED = "pool_exhausted"
    TICK_OVERRUN = "tick_overrun"


@dataclass(frozen=True)
class RunEvent:
    """A recorded non-fatal condition.

    Attributes:
        kind: What happened.
        tick: Scheduler tick sequence number.
        elapsed_seconds: Run time at which it was recorded.
        count: Iterations not started (shortfall), workers not granted
            (pool exhausted) or ticks missed (overrun).
        detail: Short human-readable description.
    """

    kind: EventKind
    tick: int
    elapsed_seconds: float
    count: int
    detail: str = ""


@dataclass(frozen=True)
class RunSnapshot:
    """Immutable point-in-time copy of the run counters.

    Attributes:
        elapsed_seconds: Seconds since the run started.
        ticks: Scheduler ticks processed.
        target_concurrency: Most recent ramp target (0 in arrival-rate mode
            unless the pool was grown).
        worker_count: Active (non-terminating) workers.
        peak_workers: Highest active worker count seen.
        dispatched: Iterations started.
        in_flight: Iterations started but not yet finished.
        successes: Iterations classified as success.
        check_failures: Iterations that failed a check.
        transport_errors: Iterations whose call failed or raised.
        error_count: ``check_failures + transport_errors``.
        shortfall_events: Ticks on which scheduled iterations could not start.
        dropped_iterations: Iterations that could not start on schedule.
        pool_exhausted_events: Times the pool was asked to exceed its cap.
        coalesced_ticks: Ticks folded into a later tick after an overrun.
        skipped_ticks: Ticks dropped after an overrun.
        abandoned_iterations: In-flight iterations cancelled at drain timeout.
        failures_by_reason: Failure count keyed by reason.
    """

    elapsed_seconds: float
    ticks: int
    target_concurrency: int
    worker_count: int
    peak_workers: int
    dispatched: int
    in_flight: int
    successes: int
    check_failures: int
    transport_errors: int
    error_count: int
    shortfall_events: int
    dropped_iterations: int
    pool_exhausted_events: int
    coalesced_ticks: int
    skipped_ticks: int
    abandoned_iterations: int
    failures_by_reason: dict[str, int] = field(default_factory=dict)


class RunState:
    """Mutable counters for one load-test run.

    All mutation happens on the event-loop thread between suspension
    points, so every increment is applied whole and no lock is needed.
    Readers get a :class:`RunSnapshot` via :meth:`snapshot`.
    """

    def __init__(self) -> None:
        self.started_at: float | None = None
        self.ticks = 0
        self.target_concurrency = 0
        self.worker_count = 0
        self.peak_workers = 0
        self.dispatched = 0
        self.completed = 0
        self.successes = 0
        self.check_failures = 0
        self.transport_errors = 0
        self.shortfall_events = 0
        self.dropped_iterations = 0
        self.pool_exhausted_events = 0
        self.coalesced_ticks = 0
        self.skipped_ticks = 0
        self.abandoned_iterations = 0
        self.failures_by_reason: Counter[str] = Counter()
        self.events: deque[RunEvent] = deque(maxlen=_MAX_EVENTS)
        self._frozen_elapsed: float | None = None

    @property
    def error_count(self) -> int:
        """Return the number of failed iterations."""
        return self.check_failures + self.transport_errors

    @property
    def in_flight(self) -> int:
        """Return the number of iterations started but not finished."""
        return self.dispatched - self.completed - self.abandoned_iterations

    @property
    def elapsed(self) -> float:
        """Return seconds since :meth:`mark_started`, frozen by :meth:`mark_finished`."""
        if self._frozen_elapsed is not None:
            return self._frozen_elapsed
        if self.started_at is None:
            return 0.0
        return time.monotonic() - self.started_at

    def mark_started(self) -> None:
        """Record the run start time."""
        self.started_at = time.monotonic()

    def mark_finished(self) -> None:
        """Freeze the elapsed time at its current value."""
        self._frozen_elapsed = self.elapsed

    def next_iteration_id(self) -> int:
        """Count a dispatch and return its iteration id (1-based)."""
        self.dispatched += 1
        return self.dispatched

    def record_result(self, result: IterationResult) -> None:
        """Count a finished iteration by outcome.

        Args:
            result: The classified iteration result.
        """
        self.completed += 1
        if result.outcome is Outcome.SUCCESS:
            self.successes += 1
            return
        if result.outcome is Outcome.CHECK_FAILURE:
            self.check_failures += 1
        else:
            self.transport_errors += 1
        self.failures_by_reason[result.reason or result.outcome.value] += 1

    def set_workers(self, count: int) -> None:
        """Record the current active worker count."""
        self.worker_count = count
        self.peak_workers = max(self.peak_workers, count)

    def record_shortfall(self, tick: int, elapsed: float, missed: int, detail: str = "") -> None:
        """Record iterations that could not be started on schedule."""
        self.shortfall_events += 1
        self.dropped_iterations += missed
        self.events.append(
            RunEvent(EventKind.ARRIVAL_RATE_SHORTFALL, tick, elapsed, missed, detail)
        )

    def record_pool_exhausted(self, tick: int, elapsed: float, requested: int, granted: int) -> None:
        """Record a resize request that the worker cap refused in part."""
        self.pool_exhausted_events += 1
        self.events.append(
            RunEvent(
                EventKind.POOL_EXHAUSTED,
                tick,
                elapsed,
                requested - granted,
                f"requested {requested} workers, pool capped at {granted}",
            )
        )

    def record_overrun(self, tick: int, elapsed: float, missed_ticks: int, detail: str) -> None:
        """Record ticks that were coalesced or skipped after an overrun."""
        self.events.append(RunEvent(EventKind.TICK_OVERRUN, tick, elapsed, missed_ticks, detail))

    def snapshot(self) -> RunSnapshot:
        """Return an immutable copy of the current counters."""
        return RunSnapshot(
            elapsed_seconds=self.elapsed,
            ticks=self.ticks,
            target_concurrency=self.target_concurrency,
            worker_count=self.worker_count,
            peak_workers=self.peak_workers,
            dispatched=self.dispatched,
            in_flight=self.in_flight,
            successes=self.successes,
            check_failures=self.check_failures,
            transport_errors=self.transport_errors,
            error_count=self.error_count,
            shortfall_events=self.shortfall_events,
            dropped_iterations=self.dropped_iterations,
            pool_exhausted_events=self.pool_exhausted_events,
            coalesced_ticks=self.coalesced_ticks,
            skipped_ticks=self.skipped_ticks,
            abandoned_iterations=self.abandoned_iterations,
            failures_by_reason=dict(self.failures_by_reason),
        )


@dataclass(frozen=True)
class RunSummary:
    """Final result of a run, exposed once the session has completed.

    Attributes:
        profile_description: Human-readable description of the profile.
        final_state: Name of the session state when the summary was built.
        stopped_early: True if ``stop()`` cut the run short.
        snapshot: Final counters.
        events: Recorded shortfall, pool-exhausted and overrun events.
    """

    profile_description: str
    final_state: str
    stopped_early: bool
    snapshot: RunSnapshot
    events: tuple[RunEvent, ...] = ()

    @property
    def error_rate(self) -> float:
        """Return the fraction of finished iterations that failed (0.0 to 1.0)."""
        finished = self.snapshot.successes + self.snapshot.error_count
        if finished == 0:
            return 0.0
        return self.snapshot.error_count / finished

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serialisable representation."""
        return {
            "profile": self.profile_description,
            "state": self.final_state,
            "stopped_early": self.stopped_early,
            "error_rate": self.error_rate,
            **asdict(self.snapshot),
            "events": [
                {
                    "kind": event.kind.value,
                    "tick": event.tick,
                    "elapsed_seconds": event.elapsed_seconds,
                    "count": event.count,
                    "detail": event.detail,
                }
                for event in self.events
            ],
        }
