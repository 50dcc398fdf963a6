"""
VersionId — normalized, totally ordered release identifier.

Upstream spells the same release several ways (``go1.20``, ``1.20.0``,
``go1.21rc2``, ``1.21.0-rc.2``). All of them parse to one value type so
that set membership and sorting never depend on string comparison
(``"1.9" > "1.10"`` as text).

Order:
    major.minor.patch numerically, then any pre-release before the
    stable release of the same numbers, with ``alpha < beta < rc``.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass

from goup.core.errors import InvalidVersionError

_VERSION_RE = re.compile(
    r"""
    ^(?:go|v)?
    (?P<major>\d+)
    (?:\.(?P<minor>\d+))?
    (?:\.(?P<patch>\d+))?
    (?:[-.]?(?P<kind>alpha|beta|rc)\.?(?P<number>\d+)?)?
    $
    """,
    re.VERBOSE | re.IGNORECASE,
)

# Pre-release kinds in ascending order; a stable release ranks above all.
_PRE_RANK: dict[str, int] = {"alpha": 0, "beta": 1, "rc": 2}


@functools.total_ordering
@dataclass(frozen=True)
class VersionId:
    """A parsed Go release identifier.

    Equality and hashing cover every field, so two spellings of the same
    release collapse to one entry in a set or dict key.
    """

    major: int
    minor: int = 0
    patch: int = 0
    pre_kind: str | None = None
    pre_number: int = 0

    def __post_init__(self) -> None:
        if self.pre_kind is None:
            # A stable release has no pre-release number to compare.
            object.__setattr__(self, "pre_number", 0)
        elif self.pre_kind not in _PRE_RANK:
            raise InvalidVersionError(f"Unknown pre-release kind: {self.pre_kind!r}")

    @classmethod
    def parse(cls, raw: str) -> VersionId:
        """Parse an upstream or user-supplied version string.

        Raises:
            InvalidVersionError: If ``raw`` is not a recognizable version.
        """
        if not isinstance(raw, str):
            raise InvalidVersionError(f"Version must be a string, got {type(raw).__name__}")

        m = _VERSION_RE.match(raw.strip())
        if m is None:
            raise InvalidVersionError(f"Unable to parse Go version: {raw!r}")

        kind = m.group("kind")
        return cls(
            major=int(m.group("major")),
            minor=int(m.group("minor") or 0),
            patch=int(m.group("patch") or 0),
            pre_kind=kind.lower() if kind else None,
            pre_number=int(m.group("number") or 0) if kind else 0,
        )

    @property
    def is_prerelease(self) -> bool:
        return self.pre_kind is not None

    @property
    def sort_key(self) -> tuple[int, int, int, int, int, int]:
        if self.pre_kind is None:
            return (self.major, self.minor, self.patch, 1, 0, 0)
        return (self.major, self.minor, self.patch, 0, _PRE_RANK[self.pre_kind], self.pre_number)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, VersionId):
            return NotImplemented
        return self.sort_key < other.sort_key

    def __str__(self) -> str:
        pre = f"{self.pre_kind}{self.pre_number}" if self.pre_kind else ""
        return f"go{self.major}.{self.minor}.{self.patch}{pre}"


def parse_version(raw: str) -> VersionId:
    """Module-level shorthand for :meth:`VersionId.parse`."""
    return VersionId.parse(raw)


def compare(a: VersionId, b: VersionId) -> int:
    """Three-way comparison: -1 if ``a < b``, 0 if equal, 1 if ``a > b``."""
    if a == b:
        return 0
    return -1 if a < b else 1
