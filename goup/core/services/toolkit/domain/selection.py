"""
L1 Domain — Release selection and reconciliation (pure).

Diffs the catalog against local installations.
No I/O, no network.
"""

from __future__ import annotations

from collections.abc import Iterable

from goup.core.models.installation import Installation
from goup.core.models.operation import VersionStatus
from goup.core.models.release import ReleaseDescriptor, TargetTriple
from goup.core.models.version import VersionId


def find_release(
    releases: Iterable[ReleaseDescriptor],
    version: VersionId,
    target: TargetTriple,
) -> ReleaseDescriptor | None:
    """First descriptor matching ``version`` + ``target``.

    Duplicates (e.g. mirrors with differing checksums) resolve to the
    first one in catalog order.
    """
    for desc in releases:
        if desc.version == version and desc.target == target:
            return desc
    return None


def select_latest(
    releases: Iterable[ReleaseDescriptor],
    target: TargetTriple,
    *,
    include_unstable: bool = False,
) -> ReleaseDescriptor | None:
    """Descriptor with the greatest VersionId for ``target``.

    Pre-releases are ignored unless ``include_unstable``. Ties keep the
    first descriptor encountered.
    """
    best: ReleaseDescriptor | None = None
    for desc in releases:
        if desc.target != target:
            continue
        if not include_unstable and (not desc.stable or desc.version.is_prerelease):
            continue
        if best is None or desc.version > best.version:
            best = desc
    return best


def available_versions(
    releases: Iterable[ReleaseDescriptor],
    target: TargetTriple,
) -> set[VersionId]:
    """Distinct versions the catalog offers for ``target``."""
    return {d.version for d in releases if d.target == target}


def removable_versions(
    installed: Iterable[Installation],
    active: VersionId | None,
    pinned: Iterable[VersionId] = (),
    keep: Iterable[VersionId] = (),
) -> list[VersionId]:
    """{installed} − {active} − {pinned} − {keep}, oldest first."""
    protected = set(pinned) | set(keep)
    if active is not None:
        protected.add(active)
    return sorted({i.version for i in installed if i.complete} - protected)


def version_statuses(
    installed: Iterable[VersionId],
    available: Iterable[VersionId],
    active: VersionId | None,
    pinned: Iterable[VersionId] = (),
) -> list[VersionStatus]:
    """Rows for installed ∪ available, newest first."""
    installed_set = set(installed)
    available_set = set(available)
    pinned_set = set(pinned)

    rows = [
        VersionStatus(
            version=v,
            installed=v in installed_set,
            available=v in available_set,
            active=v == active,
            pinned=v in pinned_set,
        )
        for v in installed_set | available_set
    ]
    rows.sort(key=lambda r: r.version, reverse=True)
    return rows
