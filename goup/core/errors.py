"""
Error taxonomy — typed failures for every layer.

Component-level code (store, index client, target resolver) raises these
directly. The orchestrator stamps ``state`` with the phase it was in and
re-raises the same object, so the cause is never masked.

Exit codes are grouped by failure class so the CLI can map any error to a
process status without inspecting messages.
"""

from __future__ import annotations


class GoupError(Exception):
    """Base class for all goup failures."""

    exit_code: int = 1

    def __init__(self, message: str = "", *, state: str | None = None) -> None:
        super().__init__(message)
        self.state = state

    def __str__(self) -> str:
        base = super().__str__()
        if self.state:
            return f"{base} (while {self.state})"
        return base


# ── Remote / catalog ────────────────────────────────────────────


class NetworkError(GoupError):
    """The release catalog or an artifact could not be fetched."""

    exit_code = 3


class DownloadError(NetworkError):
    """Transfer of an artifact failed or produced the wrong bytes.

    Transient: the caller may retry the whole install. Partial bytes are
    never resumed.
    """


class ParseError(GoupError):
    """The catalog document as a whole could not be understood."""

    exit_code = 4


# ── Platform / lookup ───────────────────────────────────────────


class UnsupportedPlatformError(GoupError):
    """The running OS/architecture has no upstream equivalent."""

    exit_code = 5


class InvalidVersionError(GoupError, ValueError):
    """A version string could not be parsed."""

    exit_code = 2


class NotFoundError(GoupError):
    """The requested version is not offered for the local target."""

    exit_code = 2


class NotInstalledError(GoupError):
    """The requested version has no complete installation on disk."""

    exit_code = 2


# ── Filesystem / install ────────────────────────────────────────


class FilesystemError(GoupError):
    """Permissions, disk full, or another OS-level failure."""

    exit_code = 6


class ArchiveError(GoupError):
    """The downloaded archive is corrupt, truncated, or unsafe."""

    exit_code = 6


class CorruptInstallError(GoupError):
    """An extracted tree lacks the expected toolkit layout."""

    exit_code = 6


class CannotRemoveActiveError(GoupError):
    """Attempted to remove the installation the active pointer names."""

    exit_code = 7


class PinnedError(GoupError):
    """Attempted to remove a pinned installation."""

    exit_code = 7
