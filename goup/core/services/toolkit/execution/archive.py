"""
L4 Execution — Archive extraction and extracted-tree verification.

The orchestrator treats extraction as a capability: "unpack these bytes
into that directory, or fail with ArchiveError". Supports ``.tar.gz`` /
``.tgz`` (the Unix release format) and ``.zip``. Members that would land
outside the destination are rejected.
"""

from __future__ import annotations

import gzip
import logging
import tarfile
import zipfile
import zlib
from pathlib import Path

from goup.core.errors import ArchiveError, CorruptInstallError

logger = logging.getLogger(__name__)

# Relative path, inside an extracted release, that proves it is a toolkit.
TOOLKIT_MARKER = Path("go") / "bin" / "go"


def extract_archive(archive: Path, dest: Path) -> None:
    """Unpack ``archive`` into ``dest``.

    Raises:
        ArchiveError: Corrupt, truncated, unsupported, or unsafe archive.
    """
    dest.mkdir(parents=True, exist_ok=True)
    name = archive.name.lower()

    if name.endswith((".tar.gz", ".tgz")) or (not name.endswith(".zip") and tarfile.is_tarfile(archive)):
        _extract_tar(archive, dest)
    elif name.endswith(".zip") or zipfile.is_zipfile(archive):
        _extract_zip(archive, dest)
    else:
        raise ArchiveError(f"Unsupported archive format: {archive.name}")

    logger.debug("Extracted %s into %s", archive.name, dest)


def _extract_tar(archive: Path, dest: Path) -> None:
    try:
        with tarfile.open(archive, "r:*") as tf:
            tf.extractall(dest, filter="data")
    except tarfile.FilterError as e:
        raise ArchiveError(f"Unsafe member in {archive.name}: {e}") from e
    except (tarfile.TarError, gzip.BadGzipFile, zlib.error, EOFError) as e:
        raise ArchiveError(f"Failed to unpack {archive.name}: {e}") from e


def _extract_zip(archive: Path, dest: Path) -> None:
    root = dest.resolve()
    try:
        with zipfile.ZipFile(archive, "r") as zf:
            for member in zf.namelist():
                target = (root / member).resolve()
                if not target.is_relative_to(root):
                    raise ArchiveError(f"Unsafe member in {archive.name}: {member}")
            zf.extractall(root)
    except (zipfile.BadZipFile, zlib.error, EOFError) as e:
        raise ArchiveError(f"Failed to unpack {archive.name}: {e}") from e


def verify_toolkit(tree: Path) -> None:
    """Check that an extracted tree has the Go toolkit layout.

    Raises:
        CorruptInstallError: If ``go/bin/go`` is missing.
    """
    marker = tree / TOOLKIT_MARKER
    if not marker.is_file():
        raise CorruptInstallError(f"Extracted release has no {TOOLKIT_MARKER} (in {tree})")
