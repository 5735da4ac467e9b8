"""Iteration contract between workers and the pluggable iteration runner."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Outcome(Enum):
    """Classification of one iteration."""

    SUCCESS = "success"
    CHECK_FAILURE = "check_failure"
    TRANSPORT_ERROR = "transport_error"


@dataclass(frozen=True)
class IterationContext:
    """Iteration-scoped context passed to the runner.

    Attributes:
        iteration_id: Unique, monotonically increasing id within the run.
        worker_id: Id of the worker executing the iteration.
        scheduled_at: Elapsed run time in seconds at which the iteration
            was handed out.
    """

    iteration_id: int
    worker_id: int
    scheduled_at: float


@dataclass(frozen=True)
class IterationResult:
    """Classified result of one iteration.

    The engine never inspects payloads; it only counts outcomes.

    Attributes:
        outcome: Success, check failure or transport error.
        reason: Human-readable reason for a failure, None on success.
    """

    outcome: Outcome
    reason: str | None = None

    @classmethod
    def success(cls) -> IterationResult:
        """Return a successful result."""
        return cls(Outcome.SUCCESS)

    @classmethod
    def check_failure(cls, reason: str) -> IterationResult:
        """Return a result for a response that failed a check.

        Args:
            reason: The check that failed, e.g. ``"status is 200"``.
        """
        return cls(Outcome.CHECK_FAILURE, reason)

    @classmethod
    def transport_error(cls, reason: str) -> IterationResult:
        """Return a result for an iteration that could not complete its call.

        Args:
            reason: Error description, e.g. ``"ClientConnectorError: ..."``.
        """
        return cls(Outcome.TRANSPORT_ERROR, reason)

    @property
    def ok(self) -> bool:
        """Return True for a successful iteration."""
        return self.outcome is Outcome.SUCCESS
