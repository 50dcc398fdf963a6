"""
Records file persistence — atomic read/write for VersionRecords.

Stored as JSON in ``<root>/versions.json``. Writes go to a temp file in
the same directory and are renamed over the target, so a crash mid-write
leaves either the old document or the new one.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from goup.core.models.records import VersionRecords

logger = logging.getLogger(__name__)

RECORDS_FILE = "versions.json"


def records_path(root: Path) -> Path:
    """Location of the records file inside a managed root."""
    return root / RECORDS_FILE


def load_records(path: Path) -> VersionRecords:
    """Load records; a missing or unreadable file yields empty records.

    Pins are advisory, so a corrupt file must not block installs.
    """
    if not path.is_file():
        return VersionRecords()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return VersionRecords.model_validate(data)
    except (json.JSONDecodeError, ValidationError, OSError) as e:
        logger.warning("Ignoring unreadable records file %s: %s", path, e)
        return VersionRecords()


def save_records(records: VersionRecords, path: Path) -> None:
    """Write records atomically (temp file + rename)."""
    records.touch()
    path.parent.mkdir(parents=True, exist_ok=True)

    content = json.dumps(records.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".versions_", suffix=".tmp")
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    logger.debug("Records saved to %s", path)
