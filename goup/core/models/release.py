"""
Release catalog types — targets and downloadable artifacts.

Immutable once built by the release index client.
"""

from __future__ import annotations

from dataclasses import dataclass

from goup.core.models.version import VersionId


@dataclass(frozen=True)
class TargetTriple:
    """An OS + architecture pair in the upstream catalog's naming."""

    os: str
    arch: str

    def __str__(self) -> str:
        return f"{self.os}-{self.arch}"


@dataclass(frozen=True)
class ReleaseDescriptor:
    """One downloadable archive for one version on one target."""

    version: VersionId
    target: TargetTriple
    filename: str
    url: str
    size: int | None = None
    sha256: str | None = None
    kind: str = "archive"
    stable: bool = True
