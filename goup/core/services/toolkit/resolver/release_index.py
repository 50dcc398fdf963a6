"""
L2 Resolver — Release index client.

Fetches the go.dev JSON catalog and normalizes it into a flat list of
``ReleaseDescriptor``.  Catalog shape::

    [
      {"version": "go1.21.0", "stable": true,
       "files": [{"filename": "go1.21.0.linux-amd64.tar.gz", "os": "linux",
                  "arch": "amd64", "sha256": "...", "size": 66, "kind": "archive"},
                 ...]},
      ...
    ]

Unknown or malformed entries are skipped, not escalated: the catalog is
append-mostly and a new entry we can't read must not break installs of
the ones we can.
"""

from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.request
from collections.abc import Callable
from typing import Any

from goup import __version__
from goup.core.errors import InvalidVersionError, NetworkError, ParseError
from goup.core.models.release import ReleaseDescriptor, TargetTriple
from goup.core.models.version import VersionId

logger = logging.getLogger(__name__)

USER_AGENT = f"goup/{__version__}"

UrlOpener = Callable[..., Any]


def parse_index(
    payload: Any,
    *,
    base_url: str,
    target: TargetTriple | None = None,
) -> list[ReleaseDescriptor]:
    """Normalize a decoded catalog document.

    Args:
        payload: Decoded JSON (must be a list of release groups).
        base_url: Prefix joined with each file name to form the URL.
        target: If given, only archives for this target are kept.

    Returns:
        Descriptors in catalog order.

    Raises:
        ParseError: If the document itself is not a list.
    """
    if not isinstance(payload, list):
        raise ParseError(f"Expected a JSON list of releases, got {type(payload).__name__}")

    descriptors: list[ReleaseDescriptor] = []
    skipped = 0

    for group in payload:
        try:
            version = VersionId.parse(group["version"])
            stable = bool(group.get("stable", True))
            files = group["files"]
            if not isinstance(files, list):
                raise TypeError("files is not a list")
        except (KeyError, TypeError, AttributeError, InvalidVersionError) as e:
            skipped += 1
            logger.debug("Skipping unreadable catalog entry %.80r: %s", group, e)
            continue

        for f in files:
            desc = _parse_file(f, version, stable, base_url)
            if desc is None:
                skipped += 1
                continue
            if desc.kind != "archive":
                continue
            if target is not None and desc.target != target:
                continue
            descriptors.append(desc)

    if skipped:
        logger.debug("Skipped %d unreadable catalog item(s)", skipped)
    return descriptors


def _parse_file(
    f: Any,
    version: VersionId,
    stable: bool,
    base_url: str,
) -> ReleaseDescriptor | None:
    """One file entry → descriptor, or None if it can't be read."""
    try:
        filename = f["filename"]
        os_name = f["os"]
        arch = f["arch"]
        kind = f.get("kind", "archive")
        size = f.get("size")
        sha256 = f.get("sha256") or None
        if not isinstance(filename, str) or not filename or "/" in filename:
            raise ValueError(f"bad filename {filename!r}")
        if not isinstance(os_name, str) or not isinstance(arch, str):
            raise ValueError("os/arch must be strings")
        if size is not None:
            size = int(size)
    except (KeyError, TypeError, AttributeError, ValueError) as e:
        logger.debug("Skipping unreadable file entry for %s: %s", version, e)
        return None

    return ReleaseDescriptor(
        version=version,
        target=TargetTriple(os=os_name, arch=arch),
        filename=filename,
        url=base_url + filename,
        size=size,
        sha256=sha256,
        kind=kind,
        stable=stable,
    )


class ReleaseIndexClient:
    """Fetches and parses the upstream release catalog.

    Args:
        index_url: Catalog endpoint.
        download_base_url: Prefix for artifact URLs.
        timeout: HTTP timeout in seconds.
        urlopen: Injected ``urllib.request.urlopen``-compatible callable.
    """

    def __init__(
        self,
        index_url: str,
        download_base_url: str,
        *,
        timeout: float = 30.0,
        urlopen: UrlOpener | None = None,
    ) -> None:
        self.index_url = index_url
        self.download_base_url = download_base_url
        self.timeout = timeout
        self._urlopen = urlopen or urllib.request.urlopen

    def fetch_index(self, target: TargetTriple | None = None) -> list[ReleaseDescriptor]:
        """Fetch the catalog and return descriptors for ``target``.

        Raises:
            NetworkError: Transport failure.
            ParseError: The document is not a JSON list.
        """
        logger.info("Fetching release index from %s", self.index_url)
        req = urllib.request.Request(
            self.index_url,
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
        )
        try:
            with self._urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read()
        except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
            raise NetworkError(f"Unable to query {self.index_url} for Go versions: {e}") from e

        try:
            payload = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ParseError(f"Unable to parse version info from {self.index_url}: {e}") from e

        descriptors = parse_index(payload, base_url=self.download_base_url, target=target)
        logger.info(
            "Release index: %d archive(s)%s",
            len(descriptors),
            f" for {target}" if target else "",
        )
        return descriptors
