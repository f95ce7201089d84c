from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

from lazymake.deps.parse import parse_dependency_file
from lazymake.deps.store import DependencyStore
from lazymake.errors import MalformedDependencyArtifact

log = logging.getLogger("lazymake.deps")


def normalize_raw_artifact(
    raw_path: Path,
    store: DependencyStore,
    record_name: str,
    source: Optional[str] = None,
    keep_raw: bool = False,
) -> Optional[List[str]]:
    """
    Turn the compiler's raw dependency output into a dependency record.

    On success the raw artifact is deleted (unless keep_raw) and the
    prerequisite list is returned. A missing or malformed artifact is
    logged, the previous record is dropped so it cannot hide a change,
    and None is returned.
    """
    raw_path = Path(raw_path)
    try:
        rec = parse_dependency_file(raw_path, source=source)
    except MalformedDependencyArtifact as e:
        log.warning("No dependency data for '%s': %s", record_name, e.reason)
        store.remove_record(record_name)
        return None

    if store.write_record(record_name, rec.prerequisites):
        log.debug("Wrote dependency record %s (%d entries)", record_name, len(rec.prerequisites))

    if not keep_raw:
        raw_path.unlink(missing_ok=True)

    return rec.prerequisites
