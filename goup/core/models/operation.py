"""
Operation types — install state machine, results, progress events.

States per operation::

    RESOLVING → DOWNLOADING → EXTRACTING → VERIFYING → ACTIVATING → DONE
         └──────────────┴─────────────┴────────────┴──────────→ FAILED
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

from goup.core.models.version import VersionId


class InstallState(StrEnum):
    """Phases of a single install / activate operation."""

    RESOLVING = "resolving"
    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    VERIFYING = "verifying"
    ACTIVATING = "activating"
    DONE = "done"
    FAILED = "failed"


@dataclass
class OperationResult:
    """Outcome of an orchestrator operation that reached DONE."""

    operation: str
    version: VersionId | None = None
    downloaded: bool = False
    activated: bool = False
    previous: VersionId | None = None
    removed: list[VersionId] = field(default_factory=list)


@dataclass(frozen=True)
class VersionStatus:
    """One row of the installed ∪ available listing."""

    version: VersionId
    installed: bool = False
    available: bool = False
    active: bool = False
    pinned: bool = False


class ProgressListener(Protocol):
    """Receives coarse-grained events during downloading and extracting.

    Purely observational: exceptions raised by a listener are logged
    and ignored by the orchestrator.
    """

    def started(self, version: VersionId) -> None: ...

    def progress(self, done: int, total: int | None) -> None: ...

    def completed(self, version: VersionId) -> None: ...

    def failed(self, reason: str) -> None: ...


class NullListener:
    """Listener that ignores every event."""

    def started(self, version: VersionId) -> None:
        pass

    def progress(self, done: int, total: int | None) -> None:
        pass

    def completed(self, version: VersionId) -> None:
        pass

    def failed(self, reason: str) -> None:
        pass
