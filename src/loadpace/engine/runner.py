"""Entry points for running a profile: async ``start`` and blocking ``run_load_test``."""

from __future__ import annotations

import asyncio
import contextlib
import sys
from typing import TYPE_CHECKING

from loadpace._internal.config import load_config
from loadpace._internal.logging import get_logger, setup_logging
from loadpace.engine.session import LoadTestSession

if TYPE_CHECKING:
    from collections.abc import Callable

    from loadpace._internal.config import LoadPaceConfig
    from loadpace._internal.types import IterationRunner
    from loadpace.engine.run_state import RunSummary
    from loadpace.profiles.base import LoadProfile

logger = get_logger("engine.runner")


def event_loop_factory() -> Callable[[], asyncio.AbstractEventLoop] | None:
    """Return uvloop's event loop factory if available.

    Returns None on Windows or when uvloop is not installed, in which case
    the default asyncio event loop is used.
    """
    if sys.platform == "win32":
        return None

    try:
        import uvloop
    except ImportError:
        logger.debug("uvloop not available, using default asyncio event loop")
        return None

    logger.debug("Using uvloop event loop")
    return uvloop.new_event_loop


async def start(
    profile: LoadProfile,
    runner: IterationRunner,
    *,
    config: LoadPaceConfig | None = None,
) -> LoadTestSession:
    """Start a run in the current event loop and return its session.

    The caller controls the run through the returned session:
    ``session.status()``, ``session.stop()`` and ``await session.wait()``.

    Args:
        profile: Validated load profile.
        runner: Async callable run once per iteration.
        config: Engine configuration.

    Returns:
        The running session.
    """
    session = LoadTestSession(profile, runner, config=config)
    await session.start()
    return session


def run_load_test(
    profile: LoadProfile,
    runner: IterationRunner,
    *,
    config: LoadPaceConfig | None = None,
    log_level: int = 20,
    json_logs: bool = False,
) -> RunSummary:
    """Run a profile to completion in a new event loop.

    Uses uvloop when available, sets up logging, and blocks until the
    session completes or is stopped by SIGINT/SIGTERM (when
    ``config.handle_signals`` is set).

    Runners that are async context managers are entered inside the new
    loop for the duration of the run.

    Args:
        profile: Validated load profile.
        runner: Async callable run once per iteration.
        config: Engine configuration. Defaults to ``load_config(handle_signals=True)``,
            i.e. the ``LOADPACE_*`` environment with SIGINT/SIGTERM handling.
        log_level: Logging level (default: logging.INFO = 20).
        json_logs: Emit structured JSON log lines.

    Returns:
        The run summary.

    Raises:
        EngineError: If the run fails to execute.
    """
    setup_logging(level=log_level, json_format=json_logs)
    if config is None:
        config = load_config(handle_signals=True)

    async def _run() -> RunSummary:
        async with contextlib.AsyncExitStack() as stack:
            # Runners that own resources (e.g. an HTTP session) are opened in this loop.
            if isinstance(runner, contextlib.AbstractAsyncContextManager):
                await stack.enter_async_context(runner)
            session = LoadTestSession(profile, runner, config=config)
            return await session.run()

    with asyncio.Runner(loop_factory=event_loop_factory()) as loop_runner:
        return loop_runner.run(_run())
