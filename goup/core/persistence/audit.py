"""
Operation ledger — append-only history of goup operations.

Each orchestrator operation (install, update, enable, remove, clean,
sweep) appends one NDJSON line to ``<root>/audit.ndjson``. The ledger is
informational: failing to write it is logged, never raised.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

AUDIT_FILE = "audit.ndjson"


class AuditEntry(BaseModel):
    """A single ledger entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation: str = ""            # install, update, enable, remove, clean, sweep
    version: str | None = None
    target: str | None = None
    status: str = ""               # ok, failed
    state: str | None = None       # install state reached (or failed in)
    duration_ms: int = 0
    error: str | None = None
    removed: list[str] = Field(default_factory=list)


class AuditWriter:
    """Append-only ledger writer for one managed root."""

    def __init__(self, path: Path):
        self._path = path

    @classmethod
    def for_root(cls, root: Path) -> AuditWriter:
        return cls(root / AUDIT_FILE)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append an entry to the ledger."""
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            logger.error("Failed to write audit entry: %s", e)

    def read_all(self) -> list[AuditEntry]:
        """Read all entries, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        entries: list[AuditEntry] = []
        with self._path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(AuditEntry.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValidationError) as e:
                    logger.warning("Skipping corrupt audit entry at line %d: %s", line_num, e)
        return entries
