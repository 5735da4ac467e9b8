"""Custom exception hierarchy for LoadPace."""

from __future__ import annotations


class LoadPaceError(Exception):
    """Base exception for all LoadPace errors.

    All custom exceptions in LoadPace inherit from this class, so any
    LoadPace-specific failure can be caught with a single except clause.
    """


class ConfigError(LoadPaceError):
    """Raised when configuration is invalid or missing.

    Examples:
        - An environment variable has an invalid value.
        - A configuration value is out of its acceptable range.
    """


class InvalidProfile(ConfigError):  # noqa: N818
    """Raised when a load profile violates its invariants.

    Raised before a run begins; no part of an invalid profile is executed.

    Examples:
        - A stage ramp with no stages, or a stage with a zero duration.
        - An arrival-rate spec with ``pre_allocated > max_workers``.
        - A profile file with an unknown executor or a malformed duration.
    """


class EngineError(LoadPaceError):
    """Raised when the engine cannot execute a run.

    Examples:
        - ``start()`` called on a session that already started.
        - The tick loop failed with an unexpected exception.
    """


class NoIdleWorker(LoadPaceError):  # noqa: N818
    """Raised by ``WorkerPool.dispatch_one()`` when every worker is busy.

    This is a recoverable condition: the arrival-rate scheduler reacts by
    growing the pool or recording a shortfall.
    """
