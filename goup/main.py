"""
goup — CLI entrypoint.

Usage:
    goup --help
    goup list
    goup update
    goup install 1.21.3
    goup enable go1.20.7
    goup clean
    goup history
"""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from goup import __version__
from goup.core.config.loader import ConfigError, load_config
from goup.core.errors import GoupError, InvalidVersionError
from goup.core.models.version import VersionId
from goup.core.observability.logging_config import setup_from_flags
from goup.core.services.toolkit import Orchestrator
from goup.ui.cli.render import ConsoleProgress, status_line


class VersionParam(click.ParamType):
    """Click parameter that parses a Go version."""

    name = "version"

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> VersionId:
        if isinstance(value, VersionId):
            return value
        try:
            return VersionId.parse(value)
        except InvalidVersionError as e:
            self.fail(str(e), param, ctx)


VERSION = VersionParam()


@click.group()
@click.version_option(version=__version__, prog_name="goup")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--root",
    "root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Managed directory (default: $GOPATH/goup or ~/.go/goup).",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool, debug: bool, root: Path | None) -> None:
    """goup — install Go toolkits and switch between them."""
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    ctx.obj["root"] = root
    setup_from_flags(debug=debug, verbose=verbose, quiet=quiet)


def _orchestrator(ctx: click.Context, *, startup: bool = True) -> Orchestrator:
    """Build the orchestrator for this invocation, sweeping leftovers first."""
    config = load_config(root=ctx.obj.get("root"))
    orch = Orchestrator.from_config(
        config,
        listener=ConsoleProgress(enabled=not ctx.obj.get("quiet")),
    )
    if startup:
        orch.startup()
    return orch


def _run(
    ctx: click.Context,
    action: Callable[[Orchestrator], Any],
    *,
    startup: bool = True,
) -> Any:
    """Run an action, mapping goup errors to a message and exit code."""
    try:
        return action(_orchestrator(ctx, startup=startup))
    except (GoupError, ConfigError) as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(e.exit_code)


# ── Inspect ─────────────────────────────────────────────────────


@cli.command("list")
@click.option("--offline", is_flag=True, help="Only show installed versions (no network).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_versions(ctx: click.Context, offline: bool, as_json: bool) -> None:
    """List available Go versions, as well as those that are installed."""
    rows = _run(ctx, lambda orch: orch.list_versions(offline=offline))

    if as_json:
        click.echo(json.dumps([
            {
                "version": str(r.version),
                "installed": r.installed,
                "available": r.available,
                "active": r.active,
                "pinned": r.pinned,
            }
            for r in rows
        ], indent=2))
        return

    for row in rows:
        text, color = status_line(row)
        click.secho(text, fg=color)


@cli.command()
@click.pass_context
def current(ctx: click.Context) -> None:
    """Show the enabled Go version."""
    version = _run(ctx, lambda orch: orch.current())
    if version is None:
        click.echo("No version enabled. Use 'goup update' or 'goup enable VERSION'.")
        return
    click.echo(str(version))


# ── Install / switch ────────────────────────────────────────────


@cli.command()
@click.pass_context
def update(ctx: click.Context) -> None:
    """Install and enable the latest version of Go."""
    result = _run(ctx, lambda orch: orch.update())

    if not result.downloaded:
        click.echo(f"The latest version is {result.version}")
        click.secho("Already up to date!", fg="green")
        return

    click.secho(f"Installed and enabled version {result.version}", fg="green")
    if result.previous is not None:
        click.echo(
            f"Use 'goup clean' to remove old versions, "
            f"or 'goup enable {result.previous}' to roll back"
        )


@cli.command()
@click.argument("version", type=VERSION)
@click.pass_context
def install(ctx: click.Context, version: VersionId) -> None:
    """Install a version of Go (without enabling it)."""
    result = _run(ctx, lambda orch: orch.install(version))
    if result.downloaded:
        click.secho(f"{version} installed successfully", fg="green")
    else:
        click.echo(f"{version} is already installed")


@cli.command()
@click.argument("version", type=VERSION)
@click.pass_context
def enable(ctx: click.Context, version: VersionId) -> None:
    """Enable a version of Go, e.g. to roll back an update."""
    result = _run(ctx, lambda orch: orch.enable(version))
    suffix = " (downloaded)" if result.downloaded else ""
    click.secho(f"Enabled {version}{suffix}", fg="green")


# ── Remove / maintain ───────────────────────────────────────────


@cli.command()
@click.argument("version", type=VERSION)
@click.pass_context
def remove(ctx: click.Context, version: VersionId) -> None:
    """Remove an installed version of Go."""
    _run(ctx, lambda orch: orch.remove(version))
    click.echo(f"{version} uninstalled successfully")


@cli.command()
@click.argument("version", type=VERSION)
@click.pass_context
def pin(ctx: click.Context, version: VersionId) -> None:
    """Pin a version to keep it from being removed."""
    _run(ctx, lambda orch: orch.pin(version))
    click.echo(f"{version} pinned")


@cli.command()
@click.argument("version", type=VERSION)
@click.pass_context
def unpin(ctx: click.Context, version: VersionId) -> None:
    """Unpin a version, allowing it to be removed."""
    _run(ctx, lambda orch: orch.unpin(version))
    click.echo(f"{version} unpinned")


@cli.command()
@click.option(
    "--outdated",
    is_flag=True,
    help="Only remove versions that are no longer available upstream.",
)
@click.pass_context
def clean(ctx: click.Context, outdated: bool) -> None:
    """Remove every installed version except the enabled and pinned ones."""
    result = _run(ctx, lambda orch: orch.clean(outdated_only=outdated))
    if not result.removed:
        click.echo("Nothing to clean")
        return
    for version in result.removed:
        click.echo(f"Removed {version}")


@cli.command()
@click.option("--limit", "-n", type=click.IntRange(min=1), default=20, show_default=True,
              help="Number of entries to show.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, limit: int, as_json: bool) -> None:
    """Show recent goup operations."""
    entries = _run(ctx, lambda orch: orch.history(limit), startup=False)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return
    if not entries:
        click.echo("No operations recorded")
        return

    for entry in entries:
        color = "green" if entry.status == "ok" else "red"
        subject = entry.version or ", ".join(entry.removed) or ""
        click.echo(f"{entry.timestamp[:19]}  {entry.operation:<8} ", nl=False)
        click.secho(f"{entry.status:<11}", fg=color, nl=False)
        click.echo(f" {subject}".rstrip())
        if entry.error:
            click.echo(f"    {entry.error}")


@cli.command()
@click.pass_context
def sweep(ctx: click.Context) -> None:
    """Reclaim space left by interrupted installs."""
    removed = _run(ctx, lambda orch: orch.sweep(), startup=False)
    click.echo(f"Reclaimed {len(removed)} stale path(s)")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
