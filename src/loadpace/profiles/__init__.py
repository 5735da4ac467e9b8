"""Load profiles for LoadPace.

A profile describes how load evolves over a run. Two executors are
supported: :class:`StageRamp` keeps a stepwise (or, explicitly, linear)
number of workers alive per stage, and :class:`ArrivalRate` starts a fixed
number of iterations per time unit from a bounded worker pool.

Profiles validate on construction and raise
:class:`~loadpace._internal.errors.InvalidProfile` on any violation.
"""

from __future__ import annotations

from loadpace.profiles.arrival_rate import ArrivalAccrual, ArrivalRate, ArrivalRateSpec
from loadpace.profiles.base import LoadProfile, ProfileKind
from loadpace.profiles.duration import format_duration, parse_duration
from loadpace.profiles.loader import load_profile, profile_from_dict
from loadpace.profiles.presets import Preset, get_preset, list_presets, step_increment
from loadpace.profiles.stages import Stage, StageRamp

__all__ = [
    "ArrivalAccrual",
    "ArrivalRate",
    "ArrivalRateSpec",
    "LoadProfile",
    "Preset",
    "ProfileKind",
    "Stage",
    "StageRamp",
    "format_duration",
    "get_preset",
    "list_presets",
    "load_profile",
    "parse_duration",
    "profile_from_dict",
    "step_increment",
]
