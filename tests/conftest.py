"""
Shared test fixtures and configuration.
"""

import logging
from pathlib import Path

import pytest

from goup.core.models.release import TargetTriple
from goup.core.persistence.audit import AuditWriter
from goup.core.services.toolkit.execution.store import InstallationStore
from goup.core.services.toolkit.orchestration.orchestrator import Orchestrator
from goup.core.services.toolkit.resolver.release_index import ReleaseIndexClient
from tests.fakes import DOWNLOAD_URL, INDEX_URL, FakeUpstream, RecordingListener

LINUX_AMD64 = TargetTriple(os="linux", arch="amd64")


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch):
    """Keep the developer's own goup settings out of every test."""
    for var in (
        "GOUP_ROOT",
        "GOUP_CONFIG",
        "GOUP_INDEX_URL",
        "GOUP_DOWNLOAD_URL",
        "GOUP_TARGET",
        "GOUP_LOG_LEVEL",
        "GOUP_LOG_FILE",
        "GOUP_LOG_FILE_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)

    root_logger = logging.getLogger()
    handlers, level = root_logger.handlers[:], root_logger.level
    yield
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


@pytest.fixture
def root(tmp_path: Path) -> Path:
    """Return a fresh managed directory."""
    path = tmp_path / "goup"
    path.mkdir()
    return path


@pytest.fixture
def store(root: Path) -> InstallationStore:
    return InstallationStore(root)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def orchestrator(
    store: InstallationStore,
    upstream: FakeUpstream,
    listener: RecordingListener,
) -> Orchestrator:
    """Orchestrator for linux-amd64 wired to the fake upstream."""
    return Orchestrator(
        store,
        ReleaseIndexClient(INDEX_URL, DOWNLOAD_URL, urlopen=upstream.opener),
        target=LINUX_AMD64,
        listener=listener,
        audit=AuditWriter.for_root(store.root),
        urlopen=upstream.opener,
    )
