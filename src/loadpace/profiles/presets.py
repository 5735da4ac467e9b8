"""Named profile presets.

Each preset is a ready-made, validated profile that can be selected by
name (``{"preset": "smoke-ramp"}`` in a profile file, or
``loadpace run smoke-ramp``).
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from loadpace._internal.errors import InvalidProfile
from loadpace.profiles.arrival_rate import ArrivalRate, ArrivalRateSpec
from loadpace.profiles.base import _validate_count, _validate_positive
from loadpace.profiles.duration import parse_duration
from loadpace.profiles.stages import Stage, StageRamp

if TYPE_CHECKING:
    from loadpace._internal.types import DurationLike
    from loadpace.profiles.base import LoadProfile


class Preset(Enum):
    """Enumerated preset names."""

    SMOKE_RAMP = "smoke-ramp"
    STEP_INCREMENT = "step-increment"
    STEADY = "steady"
    CONSTANT_ARRIVAL_RATE = "constant-arrival-rate"


def step_increment(duration: DurationLike, step_size: int, count: int) -> list[Stage]:
    """Build a staircase of *count* stages, each *step_size* workers higher.

    Args:
        duration: Length of every stage.
        step_size: Workers added per stage. Must be >= 1.
        count: Number of stages. Must be >= 1.

    Returns:
        Stages with targets ``step_size, 2 * step_size, ..., count * step_size``.

    Raises:
        InvalidProfile: If any argument is out of range.
    """
    seconds = parse_duration(duration, "duration")
    _validate_positive(seconds, "duration")
    _validate_count(step_size, "step_size", minimum=1)
    _validate_count(count, "count", minimum=1)
    return [Stage(seconds, step_size * (i + 1)) for i in range(count)]


def get_preset(name: str | Preset) -> LoadProfile:
    """Build the profile registered under *name*.

    Args:
        name: A :class:`Preset` or its string value.

    Returns:
        A new profile instance.

    Raises:
        InvalidProfile: If *name* is not a known preset.
    """
    try:
        preset = Preset(name)
    except ValueError:
        choices = ", ".join(p.value for p in Preset)
        msg = f"Unknown preset: {name!r}. Choose from: {choices}"
        raise InvalidProfile(msg) from None

    if preset is Preset.SMOKE_RAMP:
        return StageRamp([Stage(5, 5), Stage(10, 5), Stage(5, 0)])
    if preset is Preset.STEP_INCREMENT:
        return StageRamp(step_increment(30.0, 100, 10))
    if preset is Preset.STEADY:
        return StageRamp([Stage(300, 3)])
    return ArrivalRate(
        ArrivalRateSpec(
            rate=100_000,
            time_unit=1.0,
            duration=300.0,
            pre_allocated=3,
            max_workers=5,
        )
    )


def list_presets() -> dict[str, LoadProfile]:
    """Return every preset keyed by name, in declaration order."""
    return {preset.value: get_preset(preset) for preset in Preset}
