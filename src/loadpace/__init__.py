"""LoadPace: paced HTTP load generation with stage ramps and arrival rates."""

from __future__ import annotations

from loadpace._internal.config import LoadPaceConfig, TickOverrunPolicy, load_config
from loadpace._internal.errors import (
    ConfigError,
    EngineError,
    InvalidProfile,
    LoadPaceError,
    NoIdleWorker,
)
from loadpace.engine.results import IterationContext, IterationResult, Outcome
from loadpace.engine.run_state import RunSnapshot, RunSummary
from loadpace.engine.runner import run_load_test, start
from loadpace.engine.session import LoadTestSession, SessionState, SessionStatus
from loadpace.http.runner import HttpPostRunner
from loadpace.profiles import (
    ArrivalRate,
    ArrivalRateSpec,
    LoadProfile,
    Preset,
    Stage,
    StageRamp,
    get_preset,
    load_profile,
    profile_from_dict,
)

__version__ = "0.1.0"

__all__ = [
    "ArrivalRate",
    "ArrivalRateSpec",
    "ConfigError",
    "EngineError",
    "HttpPostRunner",
    "InvalidProfile",
    "IterationContext",
    "IterationResult",
    "LoadPaceConfig",
    "LoadPaceError",
    "LoadProfile",
    "LoadTestSession",
    "NoIdleWorker",
    "Outcome",
    "Preset",
    "RunSnapshot",
    "RunSummary",
    "SessionState",
    "SessionStatus",
    "Stage",
    "StageRamp",
    "TickOverrunPolicy",
    "get_preset",
    "load_config",
    "load_profile",
    "profile_from_dict",
    "run_load_test",
    "start",
]
