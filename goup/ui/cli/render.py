"""
Console rendering for the goup CLI.

Presentation only: the orchestrator never depends on anything here.
"""

from __future__ import annotations

import click

from goup.core.models.operation import VersionStatus
from goup.core.models.version import VersionId


class ConsoleProgress:
    """Progress listener that draws a click progress bar per download."""

    def __init__(self, *, enabled: bool = True):
        self.enabled = enabled
        self._bar = None
        self._shown = 0

    def started(self, version: VersionId) -> None:
        if self.enabled:
            click.echo(f"Downloading {version}", err=True)

    def progress(self, done: int, total: int | None) -> None:
        if not self.enabled:
            return
        if self._bar is None:
            self._bar = click.progressbar(length=total or 0, file=click.get_text_stream("stderr"))
            self._bar.__enter__()
        self._bar.update(done - self._shown)
        self._shown = done

    def completed(self, version: VersionId) -> None:
        self._close()

    def failed(self, reason: str) -> None:
        self._close()

    def _close(self) -> None:
        if self._bar is not None:
            self._bar.__exit__(None, None, None)
            self._bar = None
            self._shown = 0


def status_line(row: VersionStatus) -> tuple[str, str | None]:
    """Text and color for one ``goup list`` row.

    ``*`` marks the active version, ``i`` other installed ones.
    Green: installed and still offered. Red: active but no longer
    offered. Yellow: installed but no longer offered.
    """
    if row.active:
        bullet = "*"
    elif row.installed:
        bullet = "i"
    else:
        bullet = " "
    text = f"{bullet} {row.version}{' (PINNED)' if row.pinned else ''}"

    if row.installed and row.available:
        color = "green"
    elif row.installed and row.active:
        color = "red"
    elif row.installed:
        color = "yellow"
    else:
        color = None
    return text, color
