"""``loadpace run``: execute a load profile against an HTTP endpoint."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from loadpace._internal.config import TickOverrunPolicy, load_config
from loadpace._internal.errors import LoadPaceError
from loadpace._internal.logging import setup_logging
from loadpace.engine.runner import event_loop_factory
from loadpace.engine.session import LoadTestSession, SessionState
from loadpace.http.runner import HttpPostRunner
from loadpace.profiles.loader import load_profile

if TYPE_CHECKING:
    from loadpace._internal.config import LoadPaceConfig
    from loadpace.engine.run_state import RunSummary
    from loadpace.engine.session import SessionStatus
    from loadpace.profiles.base import LoadProfile

console = Console(stderr=True)

_REFRESH_SECONDS = 0.5


# ---------------------------------------------------------------------------
# Rich display
# ---------------------------------------------------------------------------


def _make_live_table(status: SessionStatus | None) -> Table:
    """Build a Rich table summarising the running session.

    Args:
        status: Latest session status, or None before the run starts.

    Returns:
        Formatted Rich Table.
    """
    table = Table(show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    if status is None:
        table.add_row("Status", "Starting...")
        return table

    snap = status.snapshot
    table.add_row("State", status.state.name)
    table.add_row("Elapsed", f"{snap.elapsed_seconds:.0f}s")
    table.add_row("Workers", str(snap.worker_count))
    table.add_row("Dispatched", str(snap.dispatched))
    table.add_row("In Flight", str(snap.in_flight))
    table.add_row("Errors", str(snap.error_count))
    table.add_row("Dropped", str(snap.dropped_iterations))
    return table


def _print_summary(summary: RunSummary) -> None:
    """Print the final summary table.

    Args:
        summary: Completed run summary.
    """
    snap = summary.snapshot
    table = Table(
        title="Run Complete" if not summary.stopped_early else "Run Stopped",
        show_header=True,
        header_style="bold green",
        expand=True,
    )
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Profile", summary.profile_description)
    table.add_row("Duration", f"{snap.elapsed_seconds:.1f}s")
    table.add_row("Peak Workers", str(snap.peak_workers))
    table.add_row("Dispatched", str(snap.dispatched))
    table.add_row("Succeeded", str(snap.successes))
    table.add_row("Check Failures", str(snap.check_failures))
    table.add_row("Transport Errors", str(snap.transport_errors))
    table.add_row("Error Rate", f"{summary.error_rate * 100:.2f}%")
    table.add_row("Shortfall Events", str(snap.shortfall_events))
    table.add_row("Dropped Iterations", str(snap.dropped_iterations))
    table.add_row("Pool Exhausted", str(snap.pool_exhausted_events))
    if snap.coalesced_ticks or snap.skipped_ticks:
        table.add_row("Coalesced / Skipped Ticks", f"{snap.coalesced_ticks} / {snap.skipped_ticks}")
    if snap.abandoned_iterations:
        table.add_row("Abandoned Iterations", str(snap.abandoned_iterations))
    console.print(table)

    if snap.failures_by_reason:
        reasons = Table(title="Failures by Reason", header_style="bold red", expand=True)
        reasons.add_column("Reason")
        reasons.add_column("Count", justify="right")
        for reason, count in sorted(snap.failures_by_reason.items(), key=lambda kv: -kv[1]):
            reasons.add_row(reason, str(count))
        console.print(reasons)


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def _read_body(body_file: Path | None) -> dict[str, Any]:
    """Load the JSON request body, defaulting to an empty object."""
    if body_file is None:
        return {}
    try:
        data = json.loads(body_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        msg = f"Could not read JSON body from {body_file}: {exc}"
        raise typer.BadParameter(msg) from exc
    if not isinstance(data, dict):
        msg = f"JSON body in {body_file} must be an object"
        raise typer.BadParameter(msg)
    return data


async def _execute(
    profile: LoadProfile,
    runner: HttpPostRunner,
    config: LoadPaceConfig,
    live: Live | None,
) -> RunSummary:
    async with runner:
        session = LoadTestSession(profile, runner, config=config)
        await session.start()
        waiter = asyncio.ensure_future(session.wait())
        while not waiter.done():
            await asyncio.wait({waiter}, timeout=_REFRESH_SECONDS)
            if live is not None and session.state is not SessionState.COMPLETED:
                live.update(_make_live_table(session.status()))
        return waiter.result()


def run_cmd(
    profile_source: str = typer.Argument(
        ...,
        metavar="PROFILE",
        help="Profile .json file or preset name (see `loadpace presets`).",
    ),
    url: str = typer.Option(
        ...,
        "--url",
        "-u",
        help="Endpoint each iteration POSTs to.",
    ),
    body: Path | None = typer.Option(
        None,
        "--body",
        "-b",
        help="JSON file with the request body.",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    expected_status: int = typer.Option(
        200,
        "--expected-status",
        help="Status code counted as success.",
    ),
    tick_interval: float | None = typer.Option(
        None,
        "--tick-interval",
        help="Scheduler tick in seconds, in (0, 1]. Default: LOADPACE_TICK_INTERVAL or 0.1.",
    ),
    drain_timeout: float | None = typer.Option(
        None,
        "--drain-timeout",
        help="Seconds to wait for in-flight iterations at the end of the run.",
    ),
    overrun_policy: TickOverrunPolicy | None = typer.Option(
        None,
        "--overrun-policy",
        help="What to do with ticks missed after an overrun: coalesce or skip.",
        case_sensitive=False,
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Print the summary as JSON on stdout instead of a table.",
    ),
    fail_on_error_rate: float | None = typer.Option(
        None,
        "--fail-on-error-rate",
        help="Exit non-zero if the error rate exceeds this threshold (e.g., 0.05).",
    ),
    fail_on_shortfall: bool = typer.Option(
        False,
        "--fail-on-shortfall",
        help="Exit non-zero if any scheduled iteration could not start.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
    log_json: bool = typer.Option(
        False,
        "--log-json",
        help="Write log lines to stderr as JSON.",
    ),
) -> None:
    """Run a load profile against an HTTP endpoint."""
    setup_logging(level=logging.DEBUG if verbose else logging.INFO, json_format=log_json)

    try:
        profile = load_profile(profile_source)
        config = load_config(handle_signals=True)
        overrides: dict[str, Any] = {}
        if tick_interval is not None:
            overrides["tick_interval"] = tick_interval
        if drain_timeout is not None:
            overrides["drain_timeout"] = drain_timeout
        if overrun_policy is not None:
            overrides["overrun_policy"] = overrun_policy
        if overrides:
            config = dataclasses.replace(config, **overrides)
    except LoadPaceError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    runner = HttpPostRunner(
        url,
        _read_body(body),
        expected_status=expected_status,
        timeout=config.request_timeout,
    )

    console.print(
        Panel(
            f"[bold]Profile:[/bold]  {profile.describe()}\n"
            f"[bold]Target:[/bold]   POST {url}\n"
            f"[bold]Check:[/bold]    {runner.check_name}\n"
            f"[bold]Tick:[/bold]     {config.tick_interval}s ({config.overrun_policy.value})",
            title="LoadPace",
            border_style="cyan",
        )
    )

    try:
        with asyncio.Runner(loop_factory=event_loop_factory()) as loop_runner:
            if json_output:
                summary = loop_runner.run(_execute(profile, runner, config, None))
            else:
                with Live(
                    _make_live_table(None),
                    console=console,
                    refresh_per_second=2,
                    transient=True,
                ) as live:
                    summary = loop_runner.run(_execute(profile, runner, config, live))
    except LoadPaceError as exc:
        console.print(f"[red]Load test failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    if json_output:
        typer.echo(json.dumps(summary.to_dict(), indent=2))
    else:
        _print_summary(summary)

    if fail_on_error_rate is not None and summary.error_rate > fail_on_error_rate:
        console.print(
            f"[red]FAIL:[/red] Error rate {summary.error_rate * 100:.2f}% "
            f"exceeds threshold {fail_on_error_rate * 100:.2f}%"
        )
        raise typer.Exit(code=1)

    if fail_on_shortfall and summary.snapshot.dropped_iterations > 0:
        console.print(
            f"[red]FAIL:[/red] {summary.snapshot.dropped_iterations} iterations "
            "could not be started on schedule"
        )
        raise typer.Exit(code=1)

    console.print("[green]Load test completed.[/green]")
