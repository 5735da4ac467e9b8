"""Shared type aliases for LoadPace."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from loadpace.engine.results import IterationContext, IterationResult

# HTTP headers dictionary.
Headers = dict[str, str]

# Raw, not yet validated, profile configuration.
ProfileConfig = Mapping[str, Any]

# Duration as accepted from configuration: seconds or a string like "1m30s".
DurationLike = float | int | str

# The unit of work run by each worker on each iteration.
IterationRunner = Callable[["IterationContext"], Awaitable["IterationResult | None"]]
