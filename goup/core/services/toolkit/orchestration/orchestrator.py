"""
L5 Orchestration — Installation state machine.

Composes the target resolver, release index, download/extract helpers
and the installation store into the user-level operations::

    install  RESOLVING → DOWNLOADING → EXTRACTING → VERIFYING → ACTIVATING → DONE
    update   fetch index, pick newest stable, install + activate
    enable   activate an installed version, or install + activate it
    remove   deactivate if needed, then delete
    clean    delete everything except active and pinned versions

Any failure ends in FAILED: the error keeps its type, gets the state it
happened in stamped on it, and is re-raised. The managed directory is
never worse than before the operation (staging leftovers aside, which
``sweep`` reclaims).
"""

from __future__ import annotations

import contextlib
import logging
import time
import urllib.request
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from goup.core.config.loader import GoupConfig
from goup.core.errors import (
    CannotRemoveActiveError,
    FilesystemError,
    GoupError,
    NotFoundError,
    NotInstalledError,
    PinnedError,
)
from goup.core.models.installation import InstallMarker
from goup.core.models.operation import (
    InstallState,
    NullListener,
    OperationResult,
    ProgressListener,
    VersionStatus,
)
from goup.core.models.release import ReleaseDescriptor, TargetTriple
from goup.core.models.version import VersionId
from goup.core.persistence.audit import AuditEntry, AuditWriter
from goup.core.services.toolkit.detection.platform import parse_target, resolve_local_target
from goup.core.services.toolkit.domain.selection import (
    available_versions,
    find_release,
    removable_versions,
    select_latest,
    version_statuses,
)
from goup.core.services.toolkit.execution.archive import extract_archive, verify_toolkit
from goup.core.services.toolkit.execution.download import download_artifact
from goup.core.services.toolkit.execution.store import InstallationStore
from goup.core.services.toolkit.resolver.release_index import ReleaseIndexClient

logger = logging.getLogger(__name__)

# States in which the listener has seen "started" and expects an outcome.
_TRANSFER_STATES = frozenset({
    InstallState.DOWNLOADING,
    InstallState.EXTRACTING,
    InstallState.VERIFYING,
    InstallState.ACTIVATING,
})


@dataclass
class _Run:
    """Mutable bookkeeping for one operation in flight."""

    operation: str
    version: VersionId | None = None
    state: str = InstallState.RESOLVING
    removed: list[VersionId] = field(default_factory=list)


class Orchestrator:
    """Drives install / activate / remove transitions for one managed root.

    Args:
        store: The installation store.
        index: Release index client.
        target: Fixed target; resolved from the running platform if None.
        listener: Receives download/extract progress events.
        audit: Ledger for operation history (optional).
        urlopen: Injected ``urlopen`` used for artifact downloads.
        timeout: Download socket timeout in seconds.
        extract: Archive extraction capability.
    """

    def __init__(
        self,
        store: InstallationStore,
        index: ReleaseIndexClient,
        *,
        target: TargetTriple | None = None,
        listener: ProgressListener | None = None,
        audit: AuditWriter | None = None,
        urlopen: Callable[..., Any] | None = None,
        timeout: float = 60.0,
        extract: Callable[[Path, Path], None] = extract_archive,
    ) -> None:
        self.store = store
        self.index = index
        self.listener = listener or NullListener()
        self.audit = audit
        self._target = target
        self._urlopen = urlopen or urllib.request.urlopen
        self._timeout = timeout
        self._extract = extract

    @classmethod
    def from_config(
        cls,
        config: GoupConfig,
        *,
        listener: ProgressListener | None = None,
    ) -> Orchestrator:
        """Wire up an orchestrator from loaded configuration."""
        target = parse_target(config.target) if config.target else None
        return cls(
            InstallationStore(config.root),
            ReleaseIndexClient(
                config.catalog_url,
                config.download_base_url,
                timeout=config.timeout,
            ),
            target=target,
            listener=listener,
            audit=AuditWriter.for_root(config.root),
            timeout=config.timeout,
        )

    @property
    def target(self) -> TargetTriple:
        """Local target, resolved on first use."""
        if self._target is None:
            self._target = resolve_local_target()
        return self._target

    # ── Startup ────────────────────────────────────────────────

    def startup(self) -> list[Path]:
        """Opportunistically reclaim leftovers of interrupted runs.

        Failures are logged, never raised: a sweep must not block the
        operation the user actually asked for.
        """
        try:
            removed = self.store.sweep_stale()
        except FilesystemError as e:
            logger.warning("Startup sweep failed: %s", e)
            return []
        if removed:
            logger.info("Reclaimed %d stale path(s) from interrupted runs", len(removed))
        return removed

    # ── Operations ─────────────────────────────────────────────

    def install(self, version: VersionId, *, activate: bool = False) -> OperationResult:
        """Install ``version`` for the local target.

        Already-installed versions are not downloaded again.

        Raises:
            NotFoundError: The catalog has no such version for this target.
            DownloadError, ArchiveError, CorruptInstallError, FilesystemError
        """
        with self._operation("install", version) as run:
            return self._install(run, version, activate=activate)

    def update(self) -> OperationResult:
        """Install (if needed) and activate the newest stable release."""
        with self._operation("update") as run:
            releases = self.index.fetch_index(self.target)
            latest = select_latest(releases, self.target)
            if latest is None:
                raise NotFoundError(f"Found no available Go versions for {self.target}")
            run.version = latest.version

            active = self.store.active()
            result = self._install(run, latest.version, activate=True, releases=releases)
            result.operation = "update"
            if active is not None and active.version != latest.version:
                result.previous = active.version
            return result

    def enable(self, version: VersionId) -> OperationResult:
        """Make ``version`` active, installing it first if necessary.

        Rolling back to an installed version never touches the network.
        """
        with self._operation("enable", version) as run:
            existing = self.store.get(version)
            if existing is not None:
                run.state = InstallState.ACTIVATING
                previous = self.store.active()
                self.store.activate(existing)
                run.state = InstallState.DONE
                return OperationResult(
                    "enable",
                    version,
                    activated=True,
                    previous=previous.version if previous else None,
                )

            result = self._install(run, version, activate=True)
            result.operation = "enable"
            return result

    def remove(self, version: VersionId) -> OperationResult:
        """Delete an installed version.

        Removing the active version deactivates it first; pinned versions
        are refused.

        Raises:
            NotInstalledError: ``version`` is not installed.
            PinnedError: ``version`` is pinned.
        """
        with self._operation("remove", version) as run:
            run.state = "removing"
            installation = self.store.get(version)
            if installation is None:
                raise NotInstalledError(f"Version {version} is not installed")
            if version in self.store.pinned():
                raise PinnedError(f"Version {version} is pinned; unpin it first")

            active = self.store.active()
            if active is not None and active.version == version:
                logger.warning(
                    "Version %s was enabled. Use 'goup enable' to select another.", version
                )
                self.store.deactivate()

            self.store.remove(installation)
            run.removed.append(version)
            return OperationResult("remove", version, removed=[version])

    def clean(self, *, outdated_only: bool = False) -> OperationResult:
        """Remove every installation except the active and pinned ones.

        Args:
            outdated_only: Also keep versions the catalog still offers.
        """
        with self._operation("clean") as run:
            keep: set[VersionId] = set()
            if outdated_only:
                run.state = InstallState.RESOLVING
                keep = available_versions(self.index.fetch_index(self.target), self.target)

            run.state = "cleaning"
            active = self.store.active()
            doomed = removable_versions(
                self.store.list_installed(),
                active.version if active else None,
                pinned=self.store.pinned(),
                keep=keep,
            )

            for version in doomed:
                installation = self.store.get(version)
                if installation is None:
                    continue
                try:
                    self.store.remove(installation)
                except CannotRemoveActiveError:
                    # Pointer moved under us (concurrent enable); leave it.
                    logger.warning("Skipping %s: it became active during clean", version)
                    continue
                run.removed.append(version)

            return OperationResult("clean", removed=list(run.removed))

    def sweep(self) -> list[Path]:
        """Explicit stale sweep (recorded in the ledger)."""
        with self._operation("sweep") as run:
            run.state = "sweeping"
            return self.store.sweep_stale()

    def list_versions(self, *, offline: bool = False) -> list[VersionStatus]:
        """Installed ∪ available versions, newest first."""
        available: set[VersionId] = set()
        if not offline:
            available = available_versions(self.index.fetch_index(self.target), self.target)

        installed = {i.version for i in self.store.list_installed()}
        active = self.store.active()
        return version_statuses(
            installed,
            available,
            active.version if active else None,
            self.store.pinned(),
        )

    def current(self) -> VersionId | None:
        """The active version, if any."""
        active = self.store.active()
        return active.version if active else None

    def history(self, limit: int = 20) -> list[AuditEntry]:
        """The most recent ledger entries, oldest first."""
        if self.audit is None or limit <= 0:
            return []
        return self.audit.read_all()[-limit:]

    def pin(self, version: VersionId) -> None:
        self.store.pin(version)

    def unpin(self, version: VersionId) -> None:
        self.store.unpin(version)

    # ── Install transaction ────────────────────────────────────

    def _install(
        self,
        run: _Run,
        version: VersionId,
        *,
        activate: bool,
        releases: list[ReleaseDescriptor] | None = None,
    ) -> OperationResult:
        run.state = InstallState.RESOLVING
        existing = self.store.get(version)
        if existing is not None:
            logger.info("%s is already installed", version)
            result = OperationResult("install", version)
            if activate:
                run.state = InstallState.ACTIVATING
                self.store.activate(existing)
                result.activated = True
            run.state = InstallState.DONE
            return result

        if releases is None:
            releases = self.index.fetch_index(self.target)
        release = find_release(releases, version, self.target)
        if release is None:
            raise NotFoundError(f"Version {version} not available for download for {self.target}")

        handle = self.store.begin_install(version)
        try:
            run.state = InstallState.DOWNLOADING
            self._notify("started", version)
            archive = handle.staging / release.filename
            digest = download_artifact(
                release,
                archive,
                timeout=self._timeout,
                urlopen=self._urlopen,
                on_progress=lambda done, total: self._notify("progress", done, total),
            )

            run.state = InstallState.EXTRACTING
            self._extract(archive, handle.staging)
            archive.unlink()

            run.state = InstallState.VERIFYING
            verify_toolkit(handle.staging)

            run.state = InstallState.ACTIVATING
            marker = InstallMarker(
                version=str(version),
                target=str(self.target),
                filename=release.filename,
                sha256=digest,
            )
            installation = self.store.commit_install(handle, marker)
        except Exception:
            # KeyboardInterrupt skips this: the staging tree stays for sweep.
            self.store.abandon(handle)
            raise

        self._notify("completed", version)
        result = OperationResult("install", version, downloaded=True)
        if activate:
            self.store.activate(installation)
            result.activated = True
        run.state = InstallState.DONE
        return result

    # ── Plumbing ───────────────────────────────────────────────

    @contextlib.contextmanager
    def _operation(self, name: str, version: VersionId | None = None) -> Iterator[_Run]:
        """Track state, stamp failures, and write one ledger entry."""
        run = _Run(operation=name, version=version)
        started = time.monotonic()
        logger.debug("Operation %s %s started", name, version or "")
        try:
            yield run
        except GoupError as e:
            if e.state is None:
                e.state = str(run.state)
            self._fail(run, started, e)
            raise
        except OSError as e:
            err = FilesystemError(f"{name} failed: {e}", state=str(run.state))
            self._fail(run, started, err)
            raise err from e
        except KeyboardInterrupt:
            self._record(run, started, status="interrupted")
            raise
        else:
            self._record(run, started, status="ok", state=InstallState.DONE)

    def _fail(self, run: _Run, started: float, error: GoupError) -> None:
        logger.debug("Operation %s failed in state %s: %s", run.operation, run.state, error)
        if run.state in _TRANSFER_STATES:
            self._notify("failed", str(error))
        self._record(run, started, status="failed", error=str(error))

    def _record(
        self,
        run: _Run,
        started: float,
        *,
        status: str,
        state: str | None = None,
        error: str | None = None,
    ) -> None:
        if self.audit is None:
            return
        self.audit.write(
            AuditEntry(
                operation=run.operation,
                version=str(run.version) if run.version else None,
                target=str(self._target) if self._target else None,
                status=status,
                state=str(state or run.state),
                duration_ms=int((time.monotonic() - started) * 1000),
                error=error,
                removed=[str(v) for v in run.removed],
            )
        )

    def _notify(self, event: str, *args: Any) -> None:
        """Forward an event to the listener; listener errors never propagate."""
        try:
            getattr(self.listener, event)(*args)
        except Exception:
            logger.debug("Progress listener failed on %s", event, exc_info=True)
