"""Default iteration runner: POST a JSON body and check the response status."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

import aiohttp

from loadpace._internal.logging import get_logger
from loadpace.engine.results import IterationResult

if TYPE_CHECKING:
    from loadpace._internal.types import Headers
    from loadpace.engine.results import IterationContext

logger = get_logger("http.runner")

# A fixed JSON body, or a function building one per iteration.
Payload = Mapping[str, Any] | Callable[["IterationContext"], Mapping[str, Any]]


class HttpPostRunner:
    """Iteration runner that POSTs a JSON payload to one URL.

    Each iteration sends one request and classifies it: the expected
    status is a success, any other status is a check failure named after
    the check (``"status is 200"``), and a client error or timeout is a
    transport error. The payload is opaque to the engine; it can be a
    fixed mapping (e.g. a pre-encrypted JWE envelope) or a callable that
    builds a fresh body from the iteration context.

    Must be used as an async context manager so the underlying
    ``aiohttp.ClientSession`` is opened in the running event loop.

    Args:
        url: Absolute URL to POST to.
        payload: JSON body, or a callable returning one per iteration.
        expected_status: Status code the check expects. Defaults to 200.
        headers: Extra request headers. ``Content-Type: application/json``
            is always sent.
        timeout: Total request timeout in seconds.

    Example::

        async with HttpPostRunner("http://locker_server:8080/data/add", body) as runner:
            summary = await LoadTestSession(profile, runner).run()
    """

    def __init__(
        self,
        url: str,
        payload: Payload,
        *,
        expected_status: int = 200,
        headers: Headers | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.url = url
        self.expected_status = expected_status
        self.headers: Headers = {"Content-Type": "application/json", **(headers or {})}
        self._payload = payload
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    @property
    def check_name(self) -> str:
        """Return the name of the status check, used as the failure reason."""
        return f"status is {self.expected_status}"

    async def __aenter__(self) -> HttpPostRunner:
        """Open the underlying aiohttp session."""
        self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        """Close the underlying aiohttp session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    def build_body(self, context: IterationContext) -> str:
        """Serialise the payload for one iteration.

        Args:
            context: The iteration context passed to payload callables.

        Returns:
            The JSON request body.
        """
        payload = self._payload(context) if callable(self._payload) else self._payload
        return json.dumps(payload)

    async def __call__(self, context: IterationContext) -> IterationResult:
        """Run one iteration.

        Args:
            context: Iteration-scoped context.

        Returns:
            The classified result.

        Raises:
            RuntimeError: If the runner is used outside of an async context
                manager.
        """
        if self._session is None:
            msg = "HttpPostRunner must be used as an async context manager"
            raise RuntimeError(msg)

        body = self.build_body(context)
        try:
            async with self._session.post(self.url, data=body, headers=self.headers) as resp:
                status = resp.status
                await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            return IterationResult.transport_error(f"{type(exc).__name__}: {exc}")

        if status != self.expected_status:
            logger.debug(
                "Iteration %d: POST %s returned %d",
                context.iteration_id,
                self.url,
                status,
            )
            return IterationResult.check_failure(self.check_name)
        return IterationResult.success()
