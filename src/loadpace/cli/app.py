"""Main Typer application, entry point for the ``loadpace`` CLI."""

from __future__ import annotations

import typer

from loadpace import __version__
from loadpace.cli.inspect_cmd import presets_cmd, validate_cmd
from loadpace.cli.run import run_cmd

app = typer.Typer(
    name="loadpace",
    help="Drive an HTTP endpoint with stage ramps or a constant arrival rate.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("run", help="Run a load profile against an endpoint.")(run_cmd)
app.command("validate", help="Check a profile file without running it.")(validate_cmd)
app.command("presets", help="List the built-in presets.")(presets_cmd)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"loadpace {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """LoadPace: paced HTTP load generation."""
