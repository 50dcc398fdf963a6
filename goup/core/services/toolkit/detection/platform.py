"""
L3 Detection — Platform target resolution.

Maps what the Python runtime reports (``platform.system()``,
``platform.machine()``) to the OS/arch names used by the go.dev catalog.
Unknown values fail closed: installing a wrong-architecture toolkit is
worse than refusing.
"""

from __future__ import annotations

import logging
import platform
import sys

from goup.core.errors import UnsupportedPlatformError
from goup.core.models.release import TargetTriple

logger = logging.getLogger(__name__)

# platform.system() → catalog OS name. Windows is deliberately absent.
_OS_MAP: dict[str, str] = {
    "linux": "linux",
    "darwin": "darwin",
    "freebsd": "freebsd",
    "openbsd": "openbsd",
    "netbsd": "netbsd",
    "dragonfly": "dragonfly",
    "aix": "aix",
    "sunos": "solaris",
    "solaris": "solaris",
    "illumos": "illumos",
}

# platform.machine() → catalog arch name (Go naming).
_ARCH_MAP: dict[str, str] = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i486": "386",
    "i586": "386",
    "i686": "386",
    "x86": "386",
    "armv6l": "armv6l",
    "armv7l": "armv6l",     # upstream ships one 32-bit ARM build
    "armv8l": "armv6l",
    "ppc64le": "ppc64le",
    "ppc64": "ppc64",
    "s390x": "s390x",
    "riscv64": "riscv64",
    "loongarch64": "loong64",
    "mipsel": "mipsle",
    "mips64el": "mips64le",
}

# Names the kernel reports for both byte orders. Only the running
# interpreter knows which one it is on.
_BYTE_ORDER_ARCH: dict[str, dict[str, str]] = {
    "mips": {"big": "mips", "little": "mipsle"},
    "mips64": {"big": "mips64", "little": "mips64le"},
}

KNOWN_OS: frozenset[str] = frozenset(_OS_MAP.values())
KNOWN_ARCH: frozenset[str] = frozenset(_ARCH_MAP.values()) | frozenset(
    name for by_order in _BYTE_ORDER_ARCH.values() for name in by_order.values()
)


def resolve_local_target(
    system: str | None = None,
    machine: str | None = None,
    byteorder: str | None = None,
) -> TargetTriple:
    """Resolve the catalog target for this machine.

    Args:
        system: Override for ``platform.system()`` (tests, cross setups).
        machine: Override for ``platform.machine()``.
        byteorder: ``"big"`` or ``"little"``. Defaults to ``sys.byteorder``
            only when ``machine`` is not overridden.

    Raises:
        UnsupportedPlatformError: If either value has no known mapping, or
            the architecture name is ambiguous and the byte order unknown.
    """
    raw_os = system if system is not None else platform.system()
    raw_arch = machine if machine is not None else platform.machine()
    if byteorder is None and machine is None:
        byteorder = sys.byteorder

    os_name = _OS_MAP.get(raw_os.strip().lower())
    arch_key = raw_arch.strip().lower()
    if arch_key in _BYTE_ORDER_ARCH:
        arch = _BYTE_ORDER_ARCH[arch_key].get(byteorder or "")
    else:
        arch = _ARCH_MAP.get(arch_key)

    if os_name is None or arch is None:
        raise UnsupportedPlatformError(
            f"Unsupported platform: system={raw_os!r} machine={raw_arch!r}"
            + (f" byteorder={byteorder!r}" if arch_key in _BYTE_ORDER_ARCH else "")
        )

    target = TargetTriple(os=os_name, arch=arch)
    logger.debug("Local target %s (from %s/%s)", target, raw_os, raw_arch)
    return target


def parse_target(text: str) -> TargetTriple:
    """Parse an explicit ``os-arch`` override such as ``linux-arm64``.

    Both halves must be names the catalog uses.
    """
    os_name, sep, arch = text.strip().lower().partition("-")
    if not sep or os_name not in KNOWN_OS or arch not in KNOWN_ARCH:
        raise UnsupportedPlatformError(f"Unsupported target override: {text!r}")
    return TargetTriple(os=os_name, arch=arch)
