"""
Installation types — on-disk releases and in-flight installs.

``Installation`` and ``InstallHandle`` are runtime values re-derived
from the managed directory on every query. ``InstallMarker`` is the
JSON document written as the completeness marker inside each
installation directory.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from goup.core.models.version import VersionId


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


@dataclass(frozen=True)
class Installation:
    """A release directory inside the managed root.

    ``complete`` is False for stale directories (no marker), which are
    never reported as installed.
    """

    version: VersionId
    path: Path
    complete: bool = True

    @property
    def toolkit_root(self) -> Path:
        """The extracted ``go/`` tree exposed through the active pointer."""
        return self.path / "go"


@dataclass(frozen=True)
class InstallHandle:
    """A uniquely named staging directory for one install attempt."""

    version: VersionId
    staging: Path
    owner_pid: int

    @property
    def toolkit_root(self) -> Path:
        return self.staging / "go"


class InstallMarker(BaseModel):
    """Completeness marker content — written before the atomic publish."""

    version: str
    target: str = ""
    filename: str = ""
    sha256: str | None = None
    installed_at: str = Field(default_factory=_now_iso)
