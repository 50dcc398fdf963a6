"""
Tests for the installation store — staging, publish, activation, removal.
"""

import errno
import json
import os
from pathlib import Path

import pytest

from goup.core.errors import CannotRemoveActiveError, FilesystemError, NotInstalledError
from goup.core.models.installation import Installation, InstallMarker
from goup.core.models.version import VersionId
from goup.core.services.toolkit.execution import store as store_mod
from goup.core.services.toolkit.execution.store import (
    MARKER_NAME,
    OWNER_FILE,
    InstallationStore,
    deferred_interrupts,
)
from tests.fakes import install_fake


def v(raw: str) -> VersionId:
    return VersionId.parse(raw)


def _stage(store: InstallationStore, version: str):
    handle = store.begin_install(v(version))
    (handle.toolkit_root / "bin").mkdir(parents=True)
    (handle.toolkit_root / "bin" / "go").write_text("")
    return handle


def _dead_pid() -> int:
    """A pid no process is using."""
    pid = 2 ** 22 - 1
    while pid > 1:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return pid
        except PermissionError:
            pass
        pid -= 1
    pytest.skip("no free pid found")


class TestQueries:
    """Tests for scan / list_installed / get / active on simple trees."""

    def test_empty_root(self, store: InstallationStore):
        assert store.list_installed() == set()
        assert store.active() is None

    def test_missing_root(self, tmp_path: Path):
        s = InstallationStore(tmp_path / "nope")
        assert s.scan() == []
        assert s.sweep_stale() == []

    def test_ignores_foreign_entries(self, store: InstallationStore, root: Path):
        install_fake(store, "1.20")
        (root / "notes").mkdir()
        (root / "go1.20").mkdir()            # non-canonical spelling
        (root / "config.yml").write_text("")
        assert [str(i.version) for i in store.scan()] == ["go1.20.0"]

    def test_scan_sorted(self, store: InstallationStore):
        for raw in ("1.21", "1.9", "1.10"):
            install_fake(store, raw)
        assert [str(i.version) for i in store.scan()] == ["go1.9.0", "go1.10.0", "go1.21.0"]


class TestInstallTransaction:
    """Tests for begin_install / commit_install / abandon."""

    def test_staging_is_invisible(self, store: InstallationStore):
        handle = _stage(store, "1.21")
        assert handle.owner_pid == os.getpid()
        assert (handle.staging / OWNER_FILE).read_text() == str(os.getpid())
        assert store.list_installed() == set()
        assert store.get(v("1.21")) is None

    def test_staging_dirs_unique(self, store: InstallationStore):
        a = store.begin_install(v("1.21"))
        b = store.begin_install(v("1.21"))
        assert a.staging != b.staging

    def test_commit_publishes(self, store: InstallationStore, root: Path):
        handle = _stage(store, "1.21")
        inst = store.commit_install(handle, InstallMarker(version="go1.21.0", sha256="ab" * 32))

        assert inst == Installation(v("1.21"), root / "go1.21.0", complete=True)
        assert store.list_installed() == {inst}
        assert not handle.staging.exists()
        assert not (inst.path / OWNER_FILE).exists()
        marker = store.read_marker(inst)
        assert marker is not None and marker.sha256 == "ab" * 32

    def test_commit_replaces_stale_directory(self, store: InstallationStore, root: Path):
        stale = root / "go1.21.0"
        (stale / "go").mkdir(parents=True)
        (stale / "go" / "leftover").write_text("")

        inst = store.commit_install(_stage(store, "1.21"), InstallMarker(version="go1.21.0"))

        assert inst.complete
        assert not (stale / "go" / "leftover").exists()
        assert list(store.staging_root.iterdir()) == []

    def test_commit_keeps_install_published_after_check(self, store: InstallationStore, monkeypatch):
        """A complete tree appearing after the initial lookup is never deleted."""
        winner = store.commit_install(_stage(store, "1.21"), InstallMarker(version="go1.21.0", filename="a"))
        late = _stage(store, "1.21")
        real_get = store.get
        lookups = []

        def lagging_get(version):
            lookups.append(version)
            return None if len(lookups) == 1 else real_get(version)

        monkeypatch.setattr(store, "get", lagging_get)
        result = store.commit_install(late, InstallMarker(version="go1.21.0", filename="b"))

        assert result == winner
        assert store.read_marker(winner).filename == "a"
        assert (winner.toolkit_root / "bin" / "go").is_file()
        assert not late.staging.exists()

    def test_commit_restores_install_published_while_retiring(
        self, store: InstallationStore, root: Path, monkeypatch
    ):
        """A stale directory completed mid-rename is moved back, not deleted."""
        dest = root / "go1.21.0"
        (dest / "go" / "bin").mkdir(parents=True)
        (dest / "go" / "bin" / "go").write_text("")
        handle = _stage(store, "1.21")
        real_rename = os.rename
        renames = []

        def racing_rename(src, dst):
            renames.append((Path(src), Path(dst)))
            if len(renames) == 1:
                (Path(src) / MARKER_NAME).write_text(
                    InstallMarker(version="go1.21.0", filename="other").model_dump_json()
                )
            real_rename(src, dst)

        monkeypatch.setattr(store_mod.os, "rename", racing_rename)
        result = store.commit_install(handle, InstallMarker(version="go1.21.0", filename="ours"))

        assert result.path == dest
        assert store.read_marker(result).filename == "other"
        assert (dest / "go" / "bin" / "go").is_file()
        assert not handle.staging.exists()
        assert list(store.staging_root.iterdir()) == []

    def test_commit_second_copy_discarded(self, store: InstallationStore):
        """Two racers for one version: the later publish yields to the first."""
        first, second = _stage(store, "1.21"), _stage(store, "1.21")
        winner = store.commit_install(first, InstallMarker(version="go1.21.0", filename="a"))
        loser = store.commit_install(second, InstallMarker(version="go1.21.0", filename="b"))

        assert loser == winner
        assert not second.staging.exists()
        assert store.read_marker(winner).filename == "a"

    def test_commit_rename_conflict(self, store: InstallationStore, monkeypatch):
        """A concurrent publish landing mid-commit is adopted, not clobbered."""
        handle = _stage(store, "1.21")
        real_rename = os.rename

        def racing_rename(src, dst):
            other = _stage(store, "1.21")
            (other.staging / MARKER_NAME).write_text(InstallMarker(version="go1.21.0").model_dump_json())
            (other.staging / OWNER_FILE).unlink()
            real_rename(other.staging, dst)
            raise OSError(errno.ENOTEMPTY, "Directory not empty")

        monkeypatch.setattr(store_mod.os, "rename", racing_rename)
        result = store.commit_install(handle, InstallMarker(version="go1.21.0"))

        assert result.complete
        assert not handle.staging.exists()

    def test_abandon(self, store: InstallationStore):
        handle = _stage(store, "1.21")
        store.abandon(handle)
        assert not handle.staging.exists()
        store.abandon(handle)  # already gone


class TestActivation:
    """Tests for activate / deactivate / active."""

    def test_round_trip(self, store: InstallationStore, root: Path):
        inst = install_fake(store, "1.21")
        store.activate(inst)

        assert store.active() == inst
        assert store.pointer_path.is_symlink()
        assert os.readlink(store.pointer_path) == "go1.21.0/go"
        assert (store.pointer_path / "bin" / "go").is_file()

    def test_switch_keeps_single_pointer(self, store: InstallationStore, root: Path):
        a, b = install_fake(store, "1.20"), install_fake(store, "1.21")
        store.activate(a)
        store.activate(b)

        assert store.active().version == v("1.21")
        assert list(root.glob(".go.*.tmp")) == []

    def test_activate_not_installed(self, store: InstallationStore, root: Path):
        with pytest.raises(NotInstalledError):
            store.activate(Installation(v("1.21"), root / "go1.21.0"))
        assert store.active() is None

    def test_activate_stale(self, store: InstallationStore, root: Path):
        (root / "go1.21.0" / "go").mkdir(parents=True)
        with pytest.raises(NotInstalledError):
            store.activate(Installation(v("1.21"), root / "go1.21.0"))

    def test_dangling_pointer_reads_inactive(self, store: InstallationStore, root: Path):
        os.symlink("go1.99.0/go", root / "go")
        assert store.active() is None

    def test_foreign_pointer_reads_inactive(self, store: InstallationStore, root: Path):
        os.symlink("/usr/local/go", root / "go")
        assert store.active() is None

    def test_deactivate(self, store: InstallationStore):
        store.activate(install_fake(store, "1.21"))
        store.deactivate()
        assert store.active() is None
        assert not store.pointer_path.is_symlink()
        store.deactivate()


class TestRemove:
    """Tests for remove."""

    def test_remove(self, store: InstallationStore):
        inst = install_fake(store, "1.20")
        store.remove(inst)
        assert store.list_installed() == set()
        assert not inst.path.exists()

    def test_remove_active_refused(self, store: InstallationStore):
        inst = install_fake(store, "1.20")
        store.activate(inst)
        with pytest.raises(CannotRemoveActiveError) as exc:
            store.remove(inst)
        assert exc.value.exit_code == 7
        assert store.get(v("1.20")) is not None

    def test_interrupted_remove_leaves_stale(self, store: InstallationStore, monkeypatch):
        """Marker goes first: a half-done removal is stale, never installed."""
        inst = install_fake(store, "1.20")

        def fail_rmtree(path):
            raise PermissionError(13, "Permission denied", str(path))

        monkeypatch.setattr(store_mod, "_rmtree", fail_rmtree)
        with pytest.raises(FilesystemError):
            store.remove(inst)

        assert store.get(v("1.20")) is None
        assert [i.version for i in store.list_stale()] == [v("1.20")]


class TestSweep:
    """Tests for sweep_stale."""

    def test_removes_stale_version_dirs(self, store: InstallationStore, root: Path):
        keep = install_fake(store, "1.21")
        (root / "go1.20.0" / "go").mkdir(parents=True)

        removed = store.sweep_stale()

        assert removed == [root / "go1.20.0"]
        assert keep.path.exists()

    def test_keeps_live_staging(self, store: InstallationStore):
        handle = _stage(store, "1.21")
        assert store.sweep_stale() == []
        assert handle.staging.exists()

    def test_removes_dead_staging(self, store: InstallationStore):
        handle = _stage(store, "1.21")
        (handle.staging / OWNER_FILE).write_text(str(_dead_pid()))
        assert store.sweep_stale() == [handle.staging]
        assert not handle.staging.exists()

    def test_owner_falls_back_to_directory_name(self, store: InstallationStore):
        """A tree whose .owner is not written yet still belongs to us."""
        handle = _stage(store, "1.21")
        (handle.staging / OWNER_FILE).unlink()
        assert str(os.getpid()) in handle.staging.name
        assert store.sweep_stale() == []
        assert handle.staging.exists()

    def test_removes_unowned_staging(self, store: InstallationStore):
        orphan = store.staging_root / "go1.21.0.abcdef"
        (orphan / "go").mkdir(parents=True)
        assert store.sweep_stale() == [orphan]

    def test_removes_dead_staging_by_name(self, store: InstallationStore):
        orphan = store.staging_root / f"go1.21.0.{_dead_pid()}.abcd"
        orphan.mkdir(parents=True)
        assert store.sweep_stale() == [orphan]

    def test_removes_orphan_pointer_links(self, store: InstallationStore, root: Path):
        store.activate(install_fake(store, "1.21"))
        os.symlink("go1.21.0/go", root / ".go.abc123.tmp")

        assert store.sweep_stale() == [root / ".go.abc123.tmp"]
        assert store.active().version == v("1.21")

    def test_keeps_live_pointer_links(self, store: InstallationStore, root: Path):
        """Another process mid-activate keeps its temp link."""
        live = root / f".go.{os.getpid()}.abcd.tmp"
        dead = root / f".go.{_dead_pid()}.abcd.tmp"
        os.symlink("go1.21.0/go", live)
        os.symlink("go1.21.0/go", dead)

        assert store.sweep_stale() == [dead]
        assert live.is_symlink()

    def test_installed_untouched(self, store: InstallationStore):
        inst = install_fake(store, "1.21")
        store.sweep_stale()
        assert store.list_installed() == {inst}


class TestPins:
    """Tests for pin / unpin."""

    def test_pin_and_unpin(self, store: InstallationStore, root: Path):
        install_fake(store, "1.20")
        store.pin(v("go1.20"))

        assert store.pinned() == {v("1.20")}
        data = json.loads((root / "versions.json").read_text())
        assert data["pinned"] == ["go1.20.0"]

        store.unpin(v("1.20"))
        assert store.pinned() == set()

    def test_pin_idempotent(self, store: InstallationStore, root: Path):
        install_fake(store, "1.20")
        store.pin(v("1.20"))
        store.pin(v("1.20"))
        assert json.loads((root / "versions.json").read_text())["pinned"] == ["go1.20.0"]

    def test_pin_requires_install(self, store: InstallationStore):
        with pytest.raises(NotInstalledError):
            store.pin(v("1.20"))

    def test_unreadable_pins_ignored(self, store: InstallationStore, root: Path):
        (root / "versions.json").write_text(json.dumps({"pinned": ["go1.20.0", "garbage"]}))
        assert store.pinned() == {v("1.20")}

    def test_unpin_unknown(self, store: InstallationStore):
        store.unpin(v("1.20"))
        assert store.pinned() == set()


class TestDeferredInterrupts:
    """Tests for deferred_interrupts."""

    def test_interrupt_delivered_after_block(self):
        import signal

        done = []
        with pytest.raises(KeyboardInterrupt):
            with deferred_interrupts():
                os.kill(os.getpid(), signal.SIGINT)
                done.append("finished")
        assert done == ["finished"]

    def test_no_interrupt(self):
        with deferred_interrupts():
            pass
