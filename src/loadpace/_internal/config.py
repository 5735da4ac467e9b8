"""Engine configuration for LoadPace."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum

from loadpace._internal.errors import ConfigError

_MAX_TICK_INTERVAL = 1.0


class TickOverrunPolicy(Enum):
    """What the scheduler does when a tick finishes after the next one was due.

    COALESCE folds the missed ticks into a single late tick. Arrival-rate
    budgets are cumulative, so the late tick dispatches everything that
    accrued in the meantime.

    SKIP drops the missed ticks. Iterations that accrued during the skipped
    time are recorded as shortfall instead of being dispatched late.
    """

    COALESCE = "coalesce"
    SKIP = "skip"


@dataclass(frozen=True)
class LoadPaceConfig:
    """Engine configuration for one run.

    Passed explicitly into a ``LoadTestSession``; there is no process-wide
    mutable default.

    Attributes:
        tick_interval: Seconds between scheduler ticks, within ``(0, 1]``.
        drain_timeout: Seconds to wait for in-flight iterations at run end
            before cancelling them. None waits indefinitely.
        overrun_policy: Behaviour when a tick overruns the next one.
        request_timeout: Total timeout in seconds for the default HTTP runner.
        handle_signals: Install SIGINT/SIGTERM handlers that stop the run.
    """

    tick_interval: float = 0.1
    drain_timeout: float | None = None
    overrun_policy: TickOverrunPolicy = TickOverrunPolicy.COALESCE
    request_timeout: float = 30.0
    handle_signals: bool = False

    def __post_init__(self) -> None:
        if not 0 < self.tick_interval <= _MAX_TICK_INTERVAL:
            msg = f"tick_interval must be in (0, {_MAX_TICK_INTERVAL}], got: {self.tick_interval}"
            raise ConfigError(msg)
        if self.drain_timeout is not None and self.drain_timeout <= 0:
            msg = f"drain_timeout must be positive, got: {self.drain_timeout}"
            raise ConfigError(msg)
        if self.request_timeout <= 0:
            msg = f"request_timeout must be positive, got: {self.request_timeout}"
            raise ConfigError(msg)


def _read_float(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw)
    except ValueError:
        msg = f"{name} must be a number, got: {raw!r}"
        raise ConfigError(msg) from None


def load_config(*, handle_signals: bool = False) -> LoadPaceConfig:
    """Load configuration from environment variables with defaults.

    Environment variables:
        LOADPACE_TICK_INTERVAL: Scheduler tick in seconds (default: 0.1).
        LOADPACE_DRAIN_TIMEOUT: Drain timeout in seconds; empty or unset
            waits indefinitely.
        LOADPACE_OVERRUN_POLICY: ``coalesce`` (default) or ``skip``.
        LOADPACE_REQUEST_TIMEOUT: HTTP runner timeout (default: 30.0).

    Args:
        handle_signals: Value for ``LoadPaceConfig.handle_signals``.

    Returns:
        Populated LoadPaceConfig instance.

    Raises:
        ConfigError: If an environment variable has an invalid value.
    """
    tick_interval = _read_float("LOADPACE_TICK_INTERVAL", "0.1")
    request_timeout = _read_float("LOADPACE_REQUEST_TIMEOUT", "30.0")

    drain_timeout: float | None = None
    if os.environ.get("LOADPACE_DRAIN_TIMEOUT", "").strip():
        drain_timeout = _read_float("LOADPACE_DRAIN_TIMEOUT", "")

    policy_str = os.environ.get("LOADPACE_OVERRUN_POLICY", "coalesce").strip().lower()
    try:
        policy = TickOverrunPolicy(policy_str)
    except ValueError:
        choices = ", ".join(p.value for p in TickOverrunPolicy)
        msg = f"LOADPACE_OVERRUN_POLICY must be one of: {choices}, got: {policy_str!r}"
        raise ConfigError(msg) from None

    return LoadPaceConfig(
        tick_interval=tick_interval,
        drain_timeout=drain_timeout,
        overrun_policy=policy,
        request_timeout=request_timeout,
        handle_signals=handle_signals,
    )
