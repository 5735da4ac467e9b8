"""Stage ramp profile: an ordered list of fixed-duration concurrency targets."""

from __future__ import annotations

import bisect
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from loadpace._internal.errors import InvalidProfile
from loadpace.profiles.base import LoadProfile, ProfileKind, _validate_count, _validate_positive
from loadpace.profiles.duration import format_duration, parse_duration

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from loadpace._internal.types import DurationLike

Interpolation = Literal["step", "linear"]

_INTERPOLATIONS = ("step", "linear")


@dataclass(frozen=True)
class Stage:
    """A fixed-duration segment of a ramp.

    Attributes:
        duration: Stage length in seconds. Strings such as ``"30s"`` are
            accepted and converted on construction. Must be > 0.
        target: Number of workers to keep alive during the stage. Must be >= 0.
    """

    duration: float
    target: int

    def __post_init__(self) -> None:
        duration: DurationLike = self.duration
        seconds = parse_duration(duration, "stage duration")
        _validate_positive(seconds, "stage duration")
        _validate_count(self.target, "stage target")
        object.__setattr__(self, "duration", seconds)


class StageRamp(LoadProfile):
    """Drive the worker count through an ordered list of stages.

    Each stage covers the half-open interval ``[start, start + duration)``.
    With the default ``"step"`` interpolation the stage target applies for
    the whole stage, so an elapsed time exactly on a boundary already gets
    the later stage's target. With ``"linear"`` interpolation the target
    moves from the previous stage's target (0 before the first stage) to
    the stage's own target across the stage, rounded down.

    Args:
        stages: Non-empty ordered sequence of stages.
        interpolation: ``"step"`` (default) or ``"linear"``.
        max_workers: Cap on live workers. Defaults to the peak stage target.

    Raises:
        InvalidProfile: If the stage list is empty or any argument is out
            of range.

    Example::

        ramp = StageRamp([Stage("5s", 5), Stage("10s", 5), Stage("5s", 0)])
        ramp.target_at(0.0)   # 5
        ramp.target_at(15.0)  # 0
    """

    kind = ProfileKind.STAGE_RAMP

    def __init__(
        self,
        stages: Sequence[Stage],
        *,
        interpolation: Interpolation = "step",
        max_workers: int | None = None,
    ) -> None:
        if not stages:
            msg = "stage ramp must contain at least one stage"
            raise InvalidProfile(msg)
        for i, stage in enumerate(stages):
            if not isinstance(stage, Stage):
                msg = f"stages[{i}] must be a Stage, got {type(stage).__name__}"
                raise InvalidProfile(msg)
        if interpolation not in _INTERPOLATIONS:
            msg = f"interpolation must be one of {', '.join(_INTERPOLATIONS)}, got {interpolation!r}"
            raise InvalidProfile(msg)

        self._stages = tuple(stages)
        self._interpolation: Interpolation = interpolation

        self._starts: list[float] = []
        offset = 0.0
        for stage in self._stages:
            self._starts.append(offset)
            offset += stage.duration
        self._total_duration = offset

        peak = max(stage.target for stage in self._stages)
        if max_workers is None:
            max_workers = peak
        _validate_count(max_workers, "max_workers")
        self._max_workers = max_workers

    @property
    def stages(self) -> tuple[Stage, ...]:
        """Return the stages in traversal order."""
        return self._stages

    @property
    def interpolation(self) -> Interpolation:
        """Return the interpolation mode."""
        return self._interpolation

    @property
    def total_duration(self) -> float:
        """Return the sum of all stage durations."""
        return self._total_duration

    @property
    def max_workers(self) -> int:
        """Return the worker cap."""
        return self._max_workers

    @property
    def peak_target(self) -> int:
        """Return the highest stage target."""
        return max(stage.target for stage in self._stages)

    def stage_index_at(self, elapsed: float) -> int:
        """Return the index of the stage active at *elapsed* seconds.

        Elapsed times past the end map to the last stage.
        """
        elapsed = max(elapsed, 0.0)
        index = bisect.bisect_right(self._starts, elapsed) - 1
        return min(index, len(self._stages) - 1)

    def target_at(self, elapsed: float) -> int:
        """Return the target worker count at *elapsed* seconds.

        Args:
            elapsed: Seconds since the run started. Negative values are
                treated as 0.

        Returns:
            The target concurrency. At or after the end of the ramp this is
            the final stage's target.
        """
        if elapsed >= self._total_duration:
            return self._stages[-1].target

        index = self.stage_index_at(elapsed)
        stage = self._stages[index]
        if self._interpolation == "step":
            return stage.target

        previous = self._stages[index - 1].target if index > 0 else 0
        progress = (max(elapsed, 0.0) - self._starts[index]) / stage.duration
        return math.floor(previous + (stage.target - previous) * progress)

    def iter_concurrency(self, tick_interval: float = 1.0) -> Iterator[tuple[float, int]]:
        """Yield ``(elapsed, target)`` for every tick before the ramp ends.

        Args:
            tick_interval: Seconds between ticks.

        Yields:
            ``(elapsed_seconds, target_concurrency)`` tuples at
            ``0, tick_interval, 2 * tick_interval, ...`` while elapsed is
            below the total duration.
        """
        _validate_positive(tick_interval, "tick_interval")
        tick = 0
        while (elapsed := tick * tick_interval) < self._total_duration:
            yield (elapsed, self.target_at(elapsed))
            tick += 1

    def describe(self) -> str:
        """Return a human-readable description.

        Returns:
            Description string.
        """
        steps = ", ".join(f"{format_duration(s.duration)}->{s.target}" for s in self._stages)
        return (
            f"Stages ({self._interpolation}): {steps} "
            f"[{format_duration(self._total_duration)}, max {self._max_workers} workers]"
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the profile as a configuration mapping."""
        data: dict[str, Any] = {
            "stages": [
                {"duration": format_duration(s.duration), "target": s.target} for s in self._stages
            ],
        }
        if self._interpolation != "step":
            data["interpolation"] = self._interpolation
        if self._max_workers != self.peak_target:
            data["maxWorkers"] = self._max_workers
        return data

    def __repr__(self) -> str:
        return f"StageRamp(stages={list(self._stages)!r}, interpolation={self._interpolation!r})"
