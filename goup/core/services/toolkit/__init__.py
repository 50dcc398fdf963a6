"""
Toolkit installation service — package re-exports.

Layers, innermost first (domain → detection/resolver → execution →
orchestration)::

    from goup.core.services.toolkit import Orchestrator, InstallationStore
"""

# ── L1: Domain ──
from goup.core.services.toolkit.domain.selection import (  # noqa: F401
    available_versions,
    find_release,
    removable_versions,
    select_latest,
    version_statuses,
)

# ── L2: Resolver ──
from goup.core.services.toolkit.resolver.release_index import (  # noqa: F401
    ReleaseIndexClient,
    parse_index,
)

# ── L3: Detection ──
from goup.core.services.toolkit.detection.platform import (  # noqa: F401
    parse_target,
    resolve_local_target,
)

# ── L4: Execution ──
from goup.core.services.toolkit.execution.archive import (  # noqa: F401
    extract_archive,
    verify_toolkit,
)
from goup.core.services.toolkit.execution.download import (  # noqa: F401
    download_artifact,
    sha256_file,
)
from goup.core.services.toolkit.execution.store import InstallationStore  # noqa: F401

# ── L5: Orchestration ──
from goup.core.services.toolkit.orchestration.orchestrator import Orchestrator  # noqa: F401
