"""Abstract base class for all load profiles."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from loadpace._internal.errors import InvalidProfile


class ProfileKind(Enum):
    """Which executor a profile drives."""

    STAGE_RAMP = "stage-ramp"
    ARRIVAL_RATE = "constant-arrival-rate"


class LoadProfile(ABC):
    """Abstract base for load profiles.

    A profile is validated once, at construction, and is immutable
    afterwards. Exactly one profile drives a run. Stage ramps control how
    many workers are alive; arrival-rate profiles control how many
    iterations are started, independently of concurrency.

    Example::

        profile = StageRamp([Stage(5, 5), Stage(10, 5), Stage(5, 0)])
        profile.total_duration  # 20.0
        profile.target_at(14.0)  # 5
    """

    kind: ProfileKind

    @property
    @abstractmethod
    def total_duration(self) -> float:
        """Return the declared run duration in seconds."""

    @property
    @abstractmethod
    def max_workers(self) -> int:
        """Return the upper bound on concurrently live workers."""

    @abstractmethod
    def describe(self) -> str:
        """Return a human-readable description of this profile.

        Returns:
            A short string summarising the profile, suitable for logs and
            the run summary.
        """

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """Return the profile in the configuration form accepted by ``load_profile``."""


def _validate_positive(value: float, name: str) -> None:
    """Raise :class:`InvalidProfile` if *value* is not strictly positive and finite.

    Args:
        value: The numeric value to validate.
        name: Parameter name used in the error message.

    Raises:
        InvalidProfile: If *value* is not > 0.
    """
    if isinstance(value, bool) or not isinstance(value, int | float):
        msg = f"{name} must be a number, got {value!r}"
        raise InvalidProfile(msg)
    if not math.isfinite(value) or value <= 0:
        msg = f"{name} must be positive, got {value}"
        raise InvalidProfile(msg)


def _validate_count(value: int, name: str, *, minimum: int = 0) -> None:
    """Raise :class:`InvalidProfile` unless *value* is an integer >= *minimum*.

    Args:
        value: The count to validate.
        name: Parameter name used in the error message.
        minimum: Smallest accepted value.

    Raises:
        InvalidProfile: If *value* is not an int or is below *minimum*.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"{name} must be an integer, got {value!r}"
        raise InvalidProfile(msg)
    if value < minimum:
        msg = f"{name} must be >= {minimum}, got {value}"
        raise InvalidProfile(msg)
