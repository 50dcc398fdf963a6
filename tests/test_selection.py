"""
Tests for release selection and reconciliation (pure domain).
"""

from pathlib import Path

from goup.core.models import Installation, ReleaseDescriptor, TargetTriple, VersionId
from goup.core.services.toolkit.domain.selection import (
    available_versions,
    find_release,
    removable_versions,
    select_latest,
    version_statuses,
)

LINUX = TargetTriple("linux", "amd64")
MAC = TargetTriple("darwin", "arm64")


def v(raw: str) -> VersionId:
    return VersionId.parse(raw)


def rel(version: str, target: TargetTriple = LINUX, *, stable: bool = True, sha: str = "") -> ReleaseDescriptor:
    vid = v(version)
    filename = f"{vid}.{target}.tar.gz"
    return ReleaseDescriptor(
        version=vid,
        target=target,
        filename=filename,
        url=f"https://go.test/dl/{filename}",
        sha256=sha or None,
        stable=stable,
    )


def inst(version: str, complete: bool = True) -> Installation:
    return Installation(version=v(version), path=Path("/x") / version, complete=complete)


class TestFindRelease:
    """Tests for find_release."""

    def test_matches_version_and_target(self):
        releases = [rel("1.20", MAC), rel("1.20"), rel("1.21")]
        found = find_release(releases, v("go1.20.0"), LINUX)
        assert found is not None
        assert found.target == LINUX
        assert found.version == v("1.20")

    def test_missing(self):
        assert find_release([rel("1.20", MAC)], v("1.20"), LINUX) is None
        assert find_release([], v("1.20"), LINUX) is None

    def test_duplicates_first_wins(self):
        """Catalog order decides between duplicate descriptors."""
        first, second = rel("1.20", sha="aa" * 32), rel("1.20", sha="bb" * 32)
        assert find_release([first, second], v("1.20"), LINUX) is first


class TestSelectLatest:
    """Tests for select_latest."""

    def test_picks_greatest_for_target(self):
        releases = [rel("1.19"), rel("1.21", MAC), rel("1.20"), rel("1.9")]
        assert select_latest(releases, LINUX).version == v("1.20")

    def test_ignores_prereleases_and_unstable(self):
        releases = [rel("1.20"), rel("1.21rc2", stable=False), rel("1.22beta1")]
        assert select_latest(releases, LINUX).version == v("1.20")

    def test_include_unstable(self):
        releases = [rel("1.20"), rel("1.21rc2", stable=False)]
        assert select_latest(releases, LINUX, include_unstable=True).version == v("1.21rc2")

    def test_none_for_target(self):
        assert select_latest([rel("1.20", MAC)], LINUX) is None

    def test_tie_keeps_first(self):
        first, second = rel("1.20", sha="aa" * 32), rel("1.20", sha="bb" * 32)
        assert select_latest([first, second], LINUX) is first


class TestAvailableVersions:
    def test_distinct_for_target(self):
        releases = [rel("1.20"), rel("1.20"), rel("1.21", MAC)]
        assert available_versions(releases, LINUX) == {v("1.20")}


class TestRemovableVersions:
    """Tests for removable_versions."""

    def test_excludes_active(self):
        installed = [inst("1.16.0"), inst("1.17.0"), inst("1.18.0")]
        assert removable_versions(installed, v("1.18.0")) == [v("1.16.0"), v("1.17.0")]

    def test_excludes_pinned_and_kept(self):
        installed = [inst("1.16.0"), inst("1.17.0"), inst("1.18.0"), inst("1.19.0")]
        result = removable_versions(
            installed,
            v("1.19.0"),
            pinned=[v("1.16.0")],
            keep=[v("1.18.0")],
        )
        assert result == [v("1.17.0")]

    def test_no_active(self):
        installed = [inst("1.17.0"), inst("1.16.0")]
        assert removable_versions(installed, None) == [v("1.16.0"), v("1.17.0")]

    def test_ignores_incomplete(self):
        assert removable_versions([inst("1.16.0", complete=False)], None) == []


class TestVersionStatuses:
    """Tests for version_statuses."""

    def test_union_newest_first(self):
        rows = version_statuses(
            installed={v("1.18.0"), v("1.16.0")},
            available={v("1.18.0"), v("1.20.0")},
            active=v("1.18.0"),
            pinned={v("1.16.0")},
        )
        assert [str(r.version) for r in rows] == ["go1.20.0", "go1.18.0", "go1.16.0"]

        newest, active, old = rows
        assert (newest.installed, newest.available, newest.active) == (False, True, False)
        assert (active.installed, active.available, active.active) == (True, True, True)
        assert (old.installed, old.available, old.pinned) == (True, False, True)

    def test_empty(self):
        assert version_statuses(set(), set(), None) == []
