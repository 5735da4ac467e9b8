"""Shared test fixtures for the LoadPace test suite."""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING

import pytest
from aiohttp import web

from loadpace.engine.results import IterationResult

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

    from loadpace.engine.results import IterationContext


# =============================================================================
# Pytest configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    for item in items:
        test_path = str(item.fspath)
        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)


# =============================================================================
# Iteration runners
# =============================================================================


class RecordingRunner:
    """Iteration runner that records every context and sleeps for *delay*.

    Tracks the highest number of iterations that were in flight at once.
    """

    def __init__(self, delay: float = 0.0, result: IterationResult | None = None) -> None:
        self.delay = delay
        self.result = result or IterationResult.success()
        self.contexts: list[IterationContext] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def __call__(self, context: IterationContext) -> IterationResult:
        self.contexts.append(context)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        return self.result

    @property
    def calls(self) -> int:
        return len(self.contexts)


@pytest.fixture
def make_runner() -> type[RecordingRunner]:
    """Return the RecordingRunner class so tests can pick delay and result."""
    return RecordingRunner


# =============================================================================
# Test HTTP server
# =============================================================================


async def _add_data_handler(request: web.Request) -> web.Response:
    """Store the JSON body; ``?status=`` overrides the reply status."""
    request.app["bodies"].append(await request.json())
    status = int(request.query.get("status", "200"))
    return web.json_response({"status": "Ok"}, status=status)


async def _delay_handler(request: web.Request) -> web.Response:
    """Reply after ``?delay=`` seconds (default 0.1)."""
    delay = float(request.query.get("delay", "0.1"))
    await asyncio.sleep(delay)
    return web.json_response({"delayed_by": delay})


def _create_app() -> web.Application:
    app = web.Application()
    app["bodies"] = []
    app.router.add_post("/data/add", _add_data_handler)
    app.router.add_post("/delay", _delay_handler)
    return app


async def _start(app: web.Application) -> tuple[web.AppRunner, str]:
    """Serve *app* on an ephemeral localhost port and return its base URL."""
    runner = web.AppRunner(app)
    await runner.setup()
    await web.TCPSite(runner, "127.0.0.1", 0).start()
    host, port = runner.addresses[0][:2]
    return runner, f"http://{host}:{port}"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def http_server() -> AsyncIterator[tuple[str, web.Application]]:
    """In-loop server: yields the base URL and the app.

    ``app["bodies"]`` collects every body posted to ``/data/add``.
    """
    app = _create_app()
    runner, base_url = await _start(app)
    yield base_url, app
    await runner.cleanup()


@pytest.fixture
def sync_http_server() -> Iterator[str]:
    """Server on a background thread, for tests whose code owns the event loop.

    ``loadpace run`` starts its own loop, so CLI tests use this one.
    """
    loop = asyncio.new_event_loop()
    ready = threading.Event()
    base_url: list[str] = []

    def _serve() -> None:
        asyncio.set_event_loop(loop)
        runner, url = loop.run_until_complete(_start(_create_app()))
        base_url.append(url)
        ready.set()
        loop.run_forever()
        loop.run_until_complete(runner.cleanup())
        loop.close()

    thread = threading.Thread(target=_serve, name="test-http-server", daemon=True)
    thread.start()
    if not ready.wait(timeout=5.0):
        pytest.fail("test HTTP server did not start")

    yield base_url[0]

    loop.call_soon_threadsafe(loop.stop)
    thread.join(timeout=5.0)
