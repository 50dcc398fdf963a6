"""
L4 Execution — Artifact download and integrity checking.

Streams an archive into a file inside the install's staging tree,
hashing as it goes. Nothing is resumed: a failed transfer leaves a
partial file in a staging directory that is abandoned and later swept.
"""

from __future__ import annotations

import hashlib
import http.client
import logging
import urllib.error
import urllib.request
from collections.abc import Callable
from pathlib import Path
from typing import Any

from goup import __version__
from goup.core.errors import DownloadError
from goup.core.models.release import ReleaseDescriptor

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

ProgressCallback = Callable[[int, int | None], None]


def _fmt_size(n: int | float) -> str:
    """Format byte count to human-readable string."""
    for unit in ("B", "KB", "MB", "GB"):
        if n < 1024:
            return f"{n:.1f} {unit}"
        n /= 1024
    return f"{n:.1f} TB"


def sha256_file(path: Path) -> str:
    """Hex sha256 of a file on disk."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def download_artifact(
    release: ReleaseDescriptor,
    dest: Path,
    *,
    timeout: float = 60.0,
    urlopen: Callable[..., Any] | None = None,
    on_progress: ProgressCallback | None = None,
) -> str:
    """Download ``release`` to ``dest`` and verify it.

    Args:
        release: The descriptor to fetch.
        dest: Target file (its directory must exist).
        timeout: Socket timeout in seconds.
        urlopen: Injected ``urllib.request.urlopen``-compatible callable.
        on_progress: Called with ``(bytes_done, total_or_None)`` per chunk.

    Returns:
        Hex sha256 of the downloaded bytes.

    Raises:
        DownloadError: Transport failure, size mismatch, or checksum mismatch.
        OSError: Local write failure (disk full, permissions).
    """
    opener = urlopen or urllib.request.urlopen
    req = urllib.request.Request(release.url, headers={"User-Agent": f"goup/{__version__}"})

    logger.info("Downloading %s", release.url)
    try:
        resp = opener(req, timeout=timeout)
    except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
        raise DownloadError(f"Failed to get {release.version} from {release.url}: {e}") from e

    h = hashlib.sha256()
    done = 0
    with resp, open(dest, "wb") as out:
        total = release.size or _content_length(resp)
        while True:
            try:
                chunk = resp.read(CHUNK_SIZE)
            except (http.client.HTTPException, OSError) as e:
                raise DownloadError(
                    f"Transfer of {release.filename} interrupted after {_fmt_size(done)}: {e}"
                ) from e
            if not chunk:
                break
            out.write(chunk)
            h.update(chunk)
            done += len(chunk)
            if on_progress is not None:
                on_progress(done, total)

    if release.size is not None and done != release.size:
        raise DownloadError(
            f"Truncated download of {release.filename}: got {done} of {release.size} bytes"
        )

    digest = h.hexdigest()
    if release.sha256 and digest != release.sha256.lower():
        raise DownloadError(
            f"Checksum mismatch for {release.filename}: expected {release.sha256}, got {digest}"
        )

    logger.info("Downloaded %s (%s)", release.filename, _fmt_size(done))
    return digest


def _content_length(resp: Any) -> int | None:
    """Content-Length of a response, if it reports one."""
    headers = getattr(resp, "headers", None)
    if headers is None:
        return None
    value = headers.get("Content-Length")
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None
