"""
Domain models — value types and persisted documents for goup.

All models are re-exported here for convenient access:

    from goup.core.models import VersionId, Installation, ReleaseDescriptor
"""

from goup.core.models.installation import InstallHandle, InstallMarker, Installation
from goup.core.models.operation import (
    InstallState,
    NullListener,
    OperationResult,
    ProgressListener,
    VersionStatus,
)
from goup.core.models.records import VersionRecords
from goup.core.models.release import ReleaseDescriptor, TargetTriple
from goup.core.models.version import VersionId, compare, parse_version

__all__ = [
    # installation.py
    "InstallHandle",
    "InstallMarker",
    "Installation",
    # operation.py
    "InstallState",
    "NullListener",
    "OperationResult",
    "ProgressListener",
    "VersionStatus",
    # records.py
    "VersionRecords",
    # release.py
    "ReleaseDescriptor",
    "TargetTriple",
    # version.py
    "VersionId",
    "compare",
    "parse_version",
]
