"""Tick planner that turns a LoadProfile into scale and dispatch commands."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING

from loadpace.profiles.arrival_rate import ArrivalRate
from loadpace.profiles.base import _validate_positive
from loadpace.profiles.stages import StageRamp

if TYPE_CHECKING:
    from collections.abc import Iterator

    from loadpace.profiles.base import LoadProfile


class ScaleDirection(Enum):
    """Direction of a concurrency scale event."""

    UP = auto()
    DOWN = auto()
    HOLD = auto()


@dataclass(frozen=True)
class ScaleCommand:
    """Resize the pool to a target worker count (stage ramps).

    Attributes:
        tick: Tick sequence number, starting at 0.
        elapsed_seconds: Time offset from run start.
        target_concurrency: Desired number of active workers.
        direction: Whether this is scaling up, down, or holding steady.
        delta: Absolute change from the previous tick (always >= 0).
    """

    tick: int
    elapsed_seconds: float
    target_concurrency: int
    direction: ScaleDirection
    delta: int


@dataclass(frozen=True)
class DispatchCommand:
    """Start a number of iterations (arrival rate).

    Attributes:
        tick: Tick sequence number, starting at 0.
        elapsed_seconds: Time offset from run start.
        due: Iterations that became due since the previous tick.
    """

    tick: int
    elapsed_seconds: float
    due: int


class Scheduler:
    """Plans the work of each tick for a profile.

    For a :class:`StageRamp` each tick yields a :class:`ScaleCommand`
    carrying the stepwise target and the change from the previous tick.
    For an :class:`ArrivalRate` each tick yields a :class:`DispatchCommand`
    carrying the iterations that accrued since the previous tick. The
    planner is stateful in the same way for both: commands must be
    requested in tick order.

    Args:
        profile: The profile to follow.
        tick_interval: Seconds between ticks.
    """

    def __init__(self, profile: LoadProfile, tick_interval: float = 1.0) -> None:
        _validate_positive(tick_interval, "tick_interval")
        self._profile = profile
        self._tick_interval = tick_interval
        self._prev_target = 0
        self._last_tick = -1
        self._accrual = profile.new_accrual() if isinstance(profile, ArrivalRate) else None

    @property
    def profile(self) -> LoadProfile:
        """Return the profile being planned."""
        return self._profile

    @property
    def tick_interval(self) -> float:
        """Return the tick interval in seconds."""
        return self._tick_interval

    @property
    def total_ticks(self) -> int:
        """Return the number of ticks that start before the profile ends."""
        return math.ceil(self._profile.total_duration / self._tick_interval)

    def is_finished(self, elapsed: float) -> bool:
        """Return True once *elapsed* has reached the profile's total duration."""
        return elapsed >= self._profile.total_duration

    def scale_at(self, tick: int, elapsed: float) -> ScaleCommand:
        """Build the scale command for a live ramp tick.

        Args:
            tick: Tick sequence number; must increase between calls.
            elapsed: Seconds since the run started.

        Returns:
            The command for this tick.
        """
        if not isinstance(self._profile, StageRamp):
            msg = "scale_at() requires a StageRamp profile"
            raise TypeError(msg)
        self._advance(tick)
        target = self._profile.target_at(elapsed)
        delta = target - self._prev_target
        if delta > 0:
            direction = ScaleDirection.UP
        elif delta < 0:
            direction = ScaleDirection.DOWN
        else:
            direction = ScaleDirection.HOLD
        self._prev_target = target
        return ScaleCommand(
            tick=tick,
            elapsed_seconds=elapsed,
            target_concurrency=target,
            direction=direction,
            delta=abs(delta),
        )

    def dispatch_at(self, tick: int, elapsed: float) -> DispatchCommand:
        """Build the dispatch command for a live arrival-rate tick.

        Args:
            tick: Tick sequence number; must increase between calls.
            elapsed: Seconds since the run started.

        Returns:
            The command for this tick.
        """
        if self._accrual is None:
            msg = "dispatch_at() requires an ArrivalRate profile"
            raise TypeError(msg)
        self._advance(tick)
        return DispatchCommand(tick=tick, elapsed_seconds=elapsed, due=self._accrual.take(elapsed))

    def discard_until(self, elapsed: float) -> int:
        """Drop the arrival budget that accrued up to *elapsed*.

        Returns:
            Iterations dropped; always 0 for stage ramps.
        """
        if self._accrual is None:
            return 0
        return self._accrual.discard(elapsed)

    def iter_commands(self) -> Iterator[ScaleCommand | DispatchCommand]:
        """Yield the command for every nominal tick of the profile.

        Ticks fall at ``0, tick_interval, 2 * tick_interval, ...`` while
        elapsed is below the total duration. This is the plan an
        on-time run follows; the live session uses :meth:`scale_at` and
        :meth:`dispatch_at` with measured elapsed times.

        Yields:
            One command per tick.
        """
        for tick in range(self.total_ticks):
            elapsed = tick * self._tick_interval
            if isinstance(self._profile, StageRamp):
                yield self.scale_at(tick, elapsed)
            else:
                yield self.dispatch_at(tick, elapsed)

    def _advance(self, tick: int) -> None:
        if tick <= self._last_tick:
            msg = f"ticks must increase: got {tick} after {self._last_tick}"
            raise ValueError(msg)
        self._last_tick = tick
