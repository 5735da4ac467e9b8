"""Constant-arrival-rate profile: start iterations at a fixed rate."""

from __future__ import annotations

import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Any

from loadpace._internal.errors import InvalidProfile
from loadpace.profiles.base import LoadProfile, ProfileKind, _validate_count, _validate_positive
from loadpace.profiles.duration import format_duration, parse_duration


def _exact(value: float) -> Fraction:
    # Go through the shortest decimal repr so 0.1 becomes exactly 1/10.
    return Fraction(repr(float(value)))


@dataclass(frozen=True)
class ArrivalRateSpec:
    """Parameters of a constant-arrival-rate executor.

    Attributes:
        rate: Iterations to start per ``time_unit``. Must be > 0.
        time_unit: Length of the rate's time unit in seconds. Duration
            strings are accepted. Must be > 0.
        duration: How long to keep starting iterations, in seconds.
            Duration strings are accepted. Must be > 0.
        pre_allocated: Workers created before the first tick.
            Must satisfy ``0 <= pre_allocated <= max_workers``.
        max_workers: Upper bound on live workers. Must be >= 1.
    """

    rate: float
    time_unit: float
    duration: float
    pre_allocated: int
    max_workers: int

    def __post_init__(self) -> None:
        _validate_positive(self.rate, "rate")
        time_unit = parse_duration(self.time_unit, "time_unit")
        duration = parse_duration(self.duration, "duration")
        _validate_positive(time_unit, "time_unit")
        _validate_positive(duration, "duration")
        _validate_count(self.pre_allocated, "pre_allocated")
        _validate_count(self.max_workers, "max_workers", minimum=1)
        if self.pre_allocated > self.max_workers:
            msg = (
                f"pre_allocated ({self.pre_allocated}) must not exceed "
                f"max_workers ({self.max_workers})"
            )
            raise InvalidProfile(msg)
        object.__setattr__(self, "time_unit", time_unit)
        object.__setattr__(self, "duration", duration)


class ArrivalRate(LoadProfile):
    """Start ``rate`` iterations per ``time_unit`` for ``duration`` seconds.

    The number of iterations due by an instant is
    ``floor(rate * elapsed / time_unit)``, evaluated with exact rational
    arithmetic. Over any whole number of time units the count is exact,
    and rates below one iteration per tick carry their fractional part
    forward instead of being lost.

    Args:
        spec: Validated executor parameters.

    Example::

        profile = ArrivalRate(ArrivalRateSpec(rate=10, time_unit=1, duration=60,
                                              pre_allocated=2, max_workers=20))
        profile.due_at(2.5)  # 25
    """

    kind = ProfileKind.ARRIVAL_RATE

    def __init__(self, spec: ArrivalRateSpec) -> None:
        if not isinstance(spec, ArrivalRateSpec):
            msg = f"spec must be an ArrivalRateSpec, got {type(spec).__name__}"
            raise InvalidProfile(msg)
        self._spec = spec
        self._rate_per_second = _exact(spec.rate) / _exact(spec.time_unit)
        self._duration = _exact(spec.duration)

    @property
    def spec(self) -> ArrivalRateSpec:
        """Return the executor parameters."""
        return self._spec

    @property
    def total_duration(self) -> float:
        """Return the executor duration in seconds."""
        return self._spec.duration

    @property
    def max_workers(self) -> int:
        """Return the worker cap."""
        return self._spec.max_workers

    @property
    def pre_allocated(self) -> int:
        """Return the number of workers created before the first tick."""
        return self._spec.pre_allocated

    @property
    def rate_per_second(self) -> Fraction:
        """Return the exact iteration rate per second."""
        return self._rate_per_second

    @property
    def total_iterations(self) -> int:
        """Return the number of iterations due over the whole run."""
        return math.floor(self._rate_per_second * self._duration)

    def due_at(self, elapsed: float) -> int:
        """Return how many iterations should have started by *elapsed* seconds.

        Args:
            elapsed: Seconds since the run started. Clamped to
                ``[0, duration]``.

        Returns:
            A non-decreasing integer count.
        """
        if elapsed <= 0:
            return 0
        clamped = min(_exact(elapsed), self._duration)
        return math.floor(self._rate_per_second * clamped)

    def new_accrual(self) -> ArrivalAccrual:
        """Return a fresh per-run accrual tracker for this profile."""
        return ArrivalAccrual(self)

    def describe(self) -> str:
        """Return a human-readable description.

        Returns:
            Description string.
        """
        spec = self._spec
        return (
            f"Constant arrival rate: {spec.rate:g} per {format_duration(spec.time_unit)} "
            f"for {format_duration(spec.duration)} "
            f"(pre-allocated {spec.pre_allocated}, max {spec.max_workers} workers)"
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the profile as a configuration mapping."""
        spec = self._spec
        return {
            "executor": self.kind.value,
            "rate": spec.rate,
            "timeUnit": format_duration(spec.time_unit),
            "duration": format_duration(spec.duration),
            "preAllocated": spec.pre_allocated,
            "maxWorkers": spec.max_workers,
        }

    def __repr__(self) -> str:
        return f"ArrivalRate({self._spec!r})"


class ArrivalAccrual:
    """Per-run bookkeeping of how many iterations have been released.

    Each call converts the cumulative schedule into the number of
    iterations that became due since the previous call. Because every
    call works from the cumulative count, the fractional remainder of
    each tick is carried into the next one and there is no drift.

    Args:
        profile: The arrival-rate profile being executed.
    """

    def __init__(self, profile: ArrivalRate) -> None:
        self._profile = profile
        self._released = 0

    @property
    def released(self) -> int:
        """Return the number of iterations handed out so far (dispatched or dropped)."""
        return self._released

    def take(self, elapsed: float) -> int:
        """Return the iterations newly due at *elapsed* seconds.

        Args:
            elapsed: Seconds since the run started.

        Returns:
            The number of iterations to dispatch on this tick (>= 0).
        """
        due = self._profile.due_at(elapsed)
        budget = max(due - self._released, 0)
        self._released += budget
        return budget

    def discard(self, elapsed: float) -> int:
        """Advance to *elapsed* without dispatching.

        Args:
            elapsed: Seconds since the run started.

        Returns:
            The number of iterations that became due and are dropped.
        """
        return self.take(elapsed)
