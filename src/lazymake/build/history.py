from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Sequence

STATE_FILE = "state.json"
HISTORY_VERSION = 1

log = logging.getLogger("lazymake.build")


def command_signature(action: Optional[str], target: str, prereqs: Sequence[str]) -> str:
    """Hash of the action template, the target and its static prerequisites."""
    h = hashlib.sha256()
    h.update(json.dumps([action, target, list(prereqs)]).encode())
    return h.hexdigest()[:16]


@dataclass
class BuildHistory:
    """
    Persistent per-target command signatures, kept in <state_dir>/state.json.
    """

    signatures: Dict[str, str] = field(default_factory=dict)
    version: int = HISTORY_VERSION

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    @staticmethod
    def load(state_dir: Path) -> "BuildHistory":
        path = Path(state_dir) / STATE_FILE
        if not path.exists():
            return BuildHistory()

        try:
            with path.open("r") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            log.warning("Ignoring unreadable build history %s: %s", path, e)
            return BuildHistory()

        if data.get("version") != HISTORY_VERSION:
            log.debug("Discarding build history with version %r", data.get("version"))
            return BuildHistory()
        return BuildHistory(signatures=dict(data.get("signatures", {})))

    def save(self, state_dir: Path) -> None:
        path = Path(state_dir) / STATE_FILE
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        with tmp.open("w") as f:
            json.dump(self.__dict__, f, indent=2, sort_keys=True)
        tmp.replace(path)

    # ------------------------------------------------------------------
    def get(self, target: str) -> Optional[str]:
        return self.signatures.get(target)

    def record(self, target: str, signature: Optional[str]) -> None:
        if signature is None:
            self.signatures.pop(target, None)
        else:
            self.signatures[target] = signature

    def forget(self, target: str) -> None:
        self.signatures.pop(target, None)
