"""``loadpace validate`` and ``loadpace presets``: inspect profiles without running them."""

from __future__ import annotations

import json

import typer
from rich.console import Console
from rich.table import Table

from loadpace._internal.errors import InvalidProfile
from loadpace.profiles.duration import format_duration
from loadpace.profiles.loader import load_profile
from loadpace.profiles.presets import list_presets
from loadpace.profiles.stages import StageRamp

console = Console(stderr=True)


def validate_cmd(
    profile_source: str = typer.Argument(
        ...,
        metavar="PROFILE",
        help="Profile .json file or preset name.",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Print the normalised profile as JSON on stdout.",
    ),
) -> None:
    """Validate a profile and print what it would do."""
    try:
        profile = load_profile(profile_source)
    except InvalidProfile as exc:
        console.print(f"[red]Invalid profile:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    if json_output:
        typer.echo(json.dumps(profile.to_dict(), indent=2))
        return

    console.print(f"[green]Valid:[/green] {profile.describe()}")
    if isinstance(profile, StageRamp):
        table = Table(header_style="bold cyan")
        table.add_column("#", justify="right")
        table.add_column("Duration", justify="right")
        table.add_column("Target", justify="right")
        for i, stage in enumerate(profile.stages, start=1):
            table.add_row(str(i), format_duration(stage.duration), str(stage.target))
        console.print(table)


def presets_cmd() -> None:
    """List the built-in profile presets."""
    table = Table(title="Presets", header_style="bold cyan", expand=True)
    table.add_column("Name", style="bold")
    table.add_column("Profile")
    for name, profile in list_presets().items():
        table.add_row(name, profile.describe())
    console.print(table)
