"""
L4 Execution — Local installation store.

Owns the managed directory::

    <root>/
      go -> go1.21.0/go              active pointer (relative symlink)
      go1.21.0/
        .goup-complete               completeness marker (JSON)
        go/                          extracted toolkit
      .staging/<version>.<pid>.<token>/  in-flight installs (+ .owner pid)
      versions.json                  pins

Nothing is cached in memory: every query re-reads the directory so that
separate invocations (or a concurrent one) always agree with the disk.

Transitions are built from single atomic filesystem operations:
    publish   — marker written inside staging, then one ``rename`` into place
    activate  — temp symlink ``.go.<pid>.<token>.tmp``, then one ``replace``
    remove    — marker unlinked first, then the tree
Any interruption therefore leaves either the previous state or a *stale*
directory (no marker) that ``sweep_stale`` reclaims.
"""

from __future__ import annotations

import contextlib
import errno
import logging
import os
import secrets
import shutil
import signal
import threading
from collections.abc import Iterator
from pathlib import Path

from goup.core.errors import (
    CannotRemoveActiveError,
    FilesystemError,
    InvalidVersionError,
    NotInstalledError,
)
from goup.core.models.installation import InstallHandle, InstallMarker, Installation
from goup.core.models.version import VersionId
from goup.core.persistence.records_file import load_records, records_path, save_records

logger = logging.getLogger(__name__)

POINTER_NAME = "go"
MARKER_NAME = ".goup-complete"
STAGING_DIR = ".staging"
OWNER_FILE = ".owner"
_POINTER_TMP_GLOB = ".go.*.tmp"


@contextlib.contextmanager
def _fs_errors(action: str) -> Iterator[None]:
    """Surface OSError as FilesystemError, keeping the cause."""
    try:
        yield
    except OSError as e:
        raise FilesystemError(f"{action}: {e}") from e


@contextlib.contextmanager
def deferred_interrupts() -> Iterator[None]:
    """Hold SIGINT until the enclosed block finishes.

    Only possible on the main thread; elsewhere the block runs as is.
    A SIGINT received inside the block is delivered right after it.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    received: list[int] = []

    def _record(signum: int, frame: object) -> None:
        received.append(signum)

    previous = signal.signal(signal.SIGINT, _record)
    if previous is None:
        previous = signal.SIG_DFL
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)
        if received:
            if callable(previous):
                previous(signal.SIGINT, None)
            elif previous == signal.SIG_DFL:
                raise KeyboardInterrupt


def _rmtree(path: Path) -> None:
    """Remove a tree; entries vanishing underneath us are fine."""

    def _ignore_missing(func, p, exc):
        if isinstance(exc, FileNotFoundError):
            return
        raise exc

    if path.is_symlink() or path.is_file():
        path.unlink(missing_ok=True)
        return
    shutil.rmtree(path, onexc=_ignore_missing)


def _owned_name(prefix: str, suffix: str = "") -> str:
    """A unique entry name carrying the creating process id."""
    return f"{prefix}.{os.getpid()}.{secrets.token_hex(4)}{suffix}"


def _name_pid(name: str, suffix: str = "") -> int:
    """The pid embedded by ``_owned_name``, or 0 if there is none."""
    if suffix and name.endswith(suffix):
        name = name[: -len(suffix)]
    parts = name.rsplit(".", 2)
    try:
        return int(parts[-2]) if len(parts) == 3 else 0
    except ValueError:
        return 0


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class InstallationStore:
    """Filesystem-backed set of installations under one managed root."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def __repr__(self) -> str:
        return f"<InstallationStore root={str(self.root)!r}>"

    # ── Paths ──────────────────────────────────────────────────

    @property
    def pointer_path(self) -> Path:
        return self.root / POINTER_NAME

    @property
    def staging_root(self) -> Path:
        return self.root / STAGING_DIR

    def install_dir(self, version: VersionId) -> Path:
        return self.root / str(version)

    # ── Queries ────────────────────────────────────────────────

    def scan(self) -> list[Installation]:
        """Every version directory, complete or stale, oldest first."""
        if not self.root.is_dir():
            return []

        found: list[Installation] = []
        for entry in self.root.iterdir():
            if entry.is_symlink() or not entry.is_dir():
                continue
            try:
                version = VersionId.parse(entry.name)
            except InvalidVersionError:
                continue
            if str(version) != entry.name:
                logger.debug("Ignoring non-canonical directory %s", entry)
                continue
            found.append(
                Installation(
                    version=version,
                    path=entry,
                    complete=(entry / MARKER_NAME).is_file(),
                )
            )
        found.sort(key=lambda i: i.version)
        return found

    def list_installed(self) -> set[Installation]:
        """Complete installations only."""
        return {i for i in self.scan() if i.complete}

    def list_stale(self) -> list[Installation]:
        """Version directories lacking the completeness marker."""
        return [i for i in self.scan() if not i.complete]

    def get(self, version: VersionId) -> Installation | None:
        """The complete installation of ``version``, if any."""
        path = self.install_dir(version)
        if path.is_dir() and not path.is_symlink() and (path / MARKER_NAME).is_file():
            return Installation(version=version, path=path, complete=True)
        return None

    def read_marker(self, installation: Installation) -> InstallMarker | None:
        """Parsed marker of an installation, or None if unreadable."""
        try:
            raw = (installation.path / MARKER_NAME).read_text(encoding="utf-8")
            return InstallMarker.model_validate_json(raw)
        except (OSError, ValueError) as e:
            logger.debug("Unreadable marker in %s: %s", installation.path, e)
            return None

    def active(self) -> Installation | None:
        """The installation the active pointer names.

        A pointer that dangles or names an incomplete directory reads as
        no active installation.
        """
        pointer = self.pointer_path
        if not pointer.is_symlink():
            return None
        try:
            target = Path(os.readlink(pointer))
        except OSError:
            return None
        try:
            version = VersionId.parse(target.parent.name)
        except InvalidVersionError:
            logger.warning("Active pointer %s names an unknown target %s", pointer, target)
            return None
        return self.get(version)

    # ── Install transaction ────────────────────────────────────

    def begin_install(self, version: VersionId) -> InstallHandle:
        """Allocate a fresh staging directory for ``version``.

        The directory lives under ``.staging/`` and never collides with a
        name ``list_installed`` reports. Its name carries our pid, so a
        sweep running before ``.owner`` is written still sees it as live.
        """
        with _fs_errors(f"Cannot create staging directory for {version}"):
            self.staging_root.mkdir(parents=True, exist_ok=True)
            staging = self.staging_root / _owned_name(str(version))
            staging.mkdir(mode=0o700)
            pid = os.getpid()
            (staging / OWNER_FILE).write_text(str(pid), encoding="utf-8")

        logger.debug("Staging %s in %s", version, staging)
        return InstallHandle(version=version, staging=staging, owner_pid=pid)

    def commit_install(self, handle: InstallHandle, marker: InstallMarker) -> Installation:
        """Publish a staged tree as a complete installation.

        The marker is written inside the staging tree first, then the
        whole tree is moved into place with one ``rename``. If another
        process already published the same version, our staging tree is
        discarded and theirs is returned.
        """
        version = handle.version
        dest = self.install_dir(version)

        existing = self.get(version)
        if existing is not None:
            logger.info("%s already installed; discarding staged copy", version)
            self.abandon(handle)
            return existing

        with _fs_errors(f"Cannot publish {version}"):
            (handle.staging / MARKER_NAME).write_text(
                marker.model_dump_json(indent=2) + "\n", encoding="utf-8"
            )
            (handle.staging / OWNER_FILE).unlink(missing_ok=True)

            if (dest.exists() or dest.is_symlink()) and not self._retire_stale(dest):
                return self._yield_to_winner(handle)

            try:
                os.rename(handle.staging, dest)
            except OSError as e:
                if e.errno not in (errno.ENOTEMPTY, errno.EEXIST):
                    raise
                if self.get(version) is None:
                    raise
                return self._yield_to_winner(handle)

        logger.info("Installed %s at %s", version, dest)
        return Installation(version=version, path=dest, complete=True)

    def _yield_to_winner(self, handle: InstallHandle) -> Installation:
        winner = self.get(handle.version)
        if winner is None:
            raise FilesystemError(f"Cannot publish {handle.version}: destination vanished")
        logger.info("%s was published concurrently; discarding staged copy", handle.version)
        self.abandon(handle)
        return winner

    def _retire_stale(self, dest: Path) -> bool:
        """Move a marker-less directory out of ``dest`` and delete it.

        The tree is renamed into ``.staging/`` under our pid before any
        deletion, so a complete installation is never removed in place.
        If what was moved turns out to carry the marker, it is put back.

        Returns:
            False if ``dest`` holds (or held) a complete installation.
        """
        if (dest / MARKER_NAME).is_file():
            return False
        if dest.is_symlink():
            dest.unlink(missing_ok=True)
            return True

        logger.info("Replacing stale directory %s", dest)
        graveyard = self.staging_root / _owned_name(dest.name)
        try:
            os.rename(dest, graveyard)
        except FileNotFoundError:
            return True

        if (graveyard / MARKER_NAME).is_file():
            # Published between the check and the rename.
            try:
                os.rename(graveyard, dest)
            except OSError as e:
                logger.warning("Could not restore %s from %s: %s", dest, graveyard, e)
            return False

        _rmtree(graveyard)
        return True

    def abandon(self, handle: InstallHandle) -> None:
        """Best-effort removal of a staging tree.

        Whatever cannot be removed now is reclaimed by ``sweep_stale``.
        """
        try:
            _rmtree(handle.staging)
        except OSError as e:
            logger.warning("Could not remove staging %s (left for sweep): %s", handle.staging, e)

    # ── Active pointer ─────────────────────────────────────────

    def activate(self, installation: Installation) -> None:
        """Atomically repoint the active pointer at ``installation``.

        Raises:
            NotInstalledError: The installation is not complete on disk.
        """
        current = self.get(installation.version)
        if current is None or not current.toolkit_root.is_dir():
            raise NotInstalledError(f"Version {installation.version} is not installed")

        link_target = f"{current.path.name}/go"
        tmp = self.root / _owned_name(".go", ".tmp")

        with _fs_errors(f"Cannot activate {installation.version}"), deferred_interrupts():
            os.symlink(link_target, tmp)
            try:
                os.replace(tmp, self.pointer_path)
            except OSError:
                tmp.unlink(missing_ok=True)
                raise

        logger.info("Activated %s", installation.version)

    def deactivate(self) -> None:
        """Remove the active pointer, if any."""
        pointer = self.pointer_path
        if not pointer.is_symlink():
            return
        with _fs_errors("Cannot remove active pointer"), deferred_interrupts():
            pointer.unlink(missing_ok=True)
        logger.info("Deactivated %s", pointer)

    # ── Removal / sweeping ─────────────────────────────────────

    def remove(self, installation: Installation) -> None:
        """Delete an installation: marker first, then the tree.

        Raises:
            CannotRemoveActiveError: ``installation`` is the active one.
        """
        active = self.active()
        if active is not None and active.version == installation.version:
            raise CannotRemoveActiveError(
                f"Version {installation.version} is active; enable another version first"
            )

        path = self.install_dir(installation.version)
        with _fs_errors(f"Cannot remove {installation.version}"):
            (path / MARKER_NAME).unlink(missing_ok=True)
            if path.exists():
                _rmtree(path)

        logger.info("Removed %s", installation.version)

    def sweep_stale(self) -> list[Path]:
        """Reclaim leftovers of interrupted operations.

        Removes version directories without a marker, plus staging trees
        and pointer temp links whose owning process is gone.

        Returns:
            Paths that were removed.
        """
        removed: list[Path] = []
        if not self.root.is_dir():
            return removed

        with _fs_errors("Cannot sweep stale installations"):
            for inst in self.list_stale():
                _rmtree(inst.path)
                removed.append(inst.path)

            if self.staging_root.is_dir():
                for staging in self.staging_root.iterdir():
                    if _pid_alive(self._staging_owner(staging)):
                        logger.debug("Keeping live staging %s", staging)
                        continue
                    _rmtree(staging)
                    removed.append(staging)

            for tmp in self.root.glob(_POINTER_TMP_GLOB):
                if not tmp.is_symlink() or _pid_alive(_name_pid(tmp.name, ".tmp")):
                    continue
                tmp.unlink(missing_ok=True)
                removed.append(tmp)

        for path in removed:
            logger.info("Swept %s", path)
        return removed

    @staticmethod
    def _staging_owner(staging: Path) -> int:
        """Pid in ``.owner``, else the one in the directory name."""
        try:
            return int((staging / OWNER_FILE).read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return _name_pid(staging.name)

    # ── Pins ───────────────────────────────────────────────────

    def pinned(self) -> set[VersionId]:
        """Versions protected from ``remove`` / ``clean``."""
        result: set[VersionId] = set()
        for raw in load_records(records_path(self.root)).pinned:
            try:
                result.add(VersionId.parse(raw))
            except InvalidVersionError:
                logger.warning("Ignoring unreadable pin %r", raw)
        return result

    def pin(self, version: VersionId) -> None:
        """Pin an installed version.

        Raises:
            NotInstalledError: ``version`` is not installed.
        """
        if self.get(version) is None:
            raise NotInstalledError(f"Version {version} is not installed")
        path = records_path(self.root)
        records = load_records(path)
        if str(version) not in records.pinned:
            records.pinned.append(str(version))
        with _fs_errors("Cannot write version records"):
            save_records(records, path)

    def unpin(self, version: VersionId) -> None:
        """Unpin a version; unknown versions are ignored."""
        path = records_path(self.root)
        records = load_records(path)
        records.pinned = [p for p in records.pinned if p != str(version)]
        with _fs_errors("Cannot write version records"):
            save_records(records, path)
