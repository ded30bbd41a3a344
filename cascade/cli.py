"""CLI entry point for cascade."""

from __future__ import annotations

import json
from pathlib import Path

import click

from .changelog import EmptyChangelogError
from .config import ConfigError
from .host import ReleaseHostError
from .pipeline import preview_release, run_release
from .rollback import RollbackError
from .shell import CommandError

# Failures that end a run with a message instead of a traceback
RELEASE_ERRORS = (
    CommandError,
    ConfigError,
    EmptyChangelogError,
    ReleaseHostError,
    RollbackError,
)


def _write_output(output_path: str, name: str, value: str) -> None:
    with open(output_path, "a") as fh:
        fh.write(f"{name}={value}\n")


@click.group()
@click.version_option(package_name="cascade-release")
def cli() -> None:
    """Release npm workspace packages together, with rollback on failure."""


@cli.command()
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory inside the workspace. (default: current directory)",
)
def release(root: Path | None) -> None:
    """Run the release pipeline (usually called from CI)."""
    try:
        run_release(root=root)
    except RollbackError as exc:
        cause = f"\nCaused by: {exc.__cause__}" if exc.__cause__ else ""
        raise click.ClickException(f"{exc}{cause}") from exc
    except RELEASE_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command()
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory inside the workspace. (default: current directory)",
)
@click.option(
    "--github-output",
    type=click.Path(dir_okay=False),
    default=None,
    help="Append packages/triggered step outputs to this file.",
)
def plan(root: Path | None, github_output: str | None) -> None:
    """Show which packages a release would bump."""
    try:
        direct, rewrites = preview_release(root=root)
    except RELEASE_ERRORS as exc:
        raise click.ClickException(str(exc)) from exc

    direct_names = [t.name for t in direct]
    triggered = [name for name in rewrites if name not in direct_names]

    click.echo()
    if not direct:
        click.echo("Nothing to release.")
    for t in direct:
        click.echo(f"{t.name}: {t.current} → {t.next}")
    for name in triggered:
        deps = ", ".join(f"{dep}@{v}" for dep, v in rewrites[name].items())
        click.echo(f"{name}: dependency update ({deps})")

    if github_output:
        _write_output(github_output, "packages", json.dumps(direct_names))
        _write_output(github_output, "triggered", json.dumps(triggered))
