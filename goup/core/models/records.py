"""
VersionRecords — persisted user choices about installations.

Only data that cannot be re-derived from the directory tree lives here.
Which versions are installed, and which one is active, always come from
the filesystem itself.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class VersionRecords(BaseModel):
    """Root document of ``versions.json``."""

    schema_version: int = 1
    pinned: list[str] = Field(default_factory=list)
    updated_at: str = Field(default_factory=_now_iso)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()
