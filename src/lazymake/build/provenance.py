from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from lazymake.buildfile.schema import BuildEvent

PROV_FILENAME = "provenance.jsonl"


def _prov_file(state_dir: Path) -> Path:
    p = Path(state_dir)
    p.mkdir(parents=True, exist_ok=True)
    return p / PROV_FILENAME


def _timestamp() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%S", time.localtime())


def _append_jsonl(path: Path, record: Dict[str, Any]) -> None:
    line = json.dumps(record, separators=(",", ":"))
    with path.open("a") as f:
        f.write(line + "\n")


# ---------------------------------------------------------------------
# PUBLIC API
# ---------------------------------------------------------------------

def write_build_event(
    state_dir: Path,
    event: str,
    target: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Append a build event:
      {
        "time": "...",
        "event": "target_built",
        "target": "a.o",
        "extra": {...}
      }
    """
    record = BuildEvent(time=_timestamp(), event=event, target=target, extra=extra or None)
    _append_jsonl(_prov_file(state_dir), record.model_dump(exclude_none=True))


def read_build_events(state_dir: Path) -> List[BuildEvent]:
    path = Path(state_dir) / PROV_FILENAME
    if not path.exists():
        return []

    out = []
    with path.open() as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                out.append(BuildEvent.model_validate(json.loads(line)))
            except ValueError:
                # a torn line from an interrupted run
                continue
    return out
