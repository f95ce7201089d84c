from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Iterable, List

from lazymake.deps.parse import RULE_SEP_RE, parse_dependency_text, split_words
from lazymake.errors import (
    DependencyRecordNotFound,
    DependencyStoreUnreadable,
    MalformedDependencyArtifact,
)

log = logging.getLogger("lazymake.deps")

DEFAULT_SUFFIX = ".d"


def _escape(path: str) -> str:
    return path.replace("$", "$$").replace("#", "\\#").replace(" ", "\\ ")


def format_record(prerequisites: Iterable[str]) -> str:
    """One line, space separated, newline terminated."""
    return " ".join(_escape(p) for p in prerequisites) + "\n"


class DependencyStore:
    """
    Persists the flat prerequisite list of each source file as a small
    `<stem><suffix>` file under `root`.

    Each record has a single writer (the action that compiles the matching
    object), so records are not locked; only the counters are shared.
    """

    def __init__(self, root: Path, suffix: str = DEFAULT_SUFFIX) -> None:
        self.root = Path(root)
        self.suffix = suffix
        self.reads = 0
        self.writes = 0
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------
    def path_for(self, stem: str) -> Path:
        return self.root / f"{stem}{self.suffix}"

    def record_path(self, name: str) -> Path:
        return self.root / name

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------
    def write(self, stem: str, prerequisites: Iterable[str]) -> bool:
        return self._write(self.path_for(stem), prerequisites)

    def write_record(self, name: str, prerequisites: Iterable[str]) -> bool:
        return self._write(self.record_path(name), prerequisites)

    def _write(self, path: Path, prerequisites: Iterable[str]) -> bool:
        """Return False when the record already holds exactly this content."""
        data = format_record(prerequisites).encode("utf-8")

        try:
            if path.read_bytes() == data:
                log.debug("Dependency record %s unchanged", path)
                return False
        except FileNotFoundError:
            pass

        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)
        with self._lock:
            self.writes += 1
        return True

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------
    def read(self, stem: str) -> List[str]:
        return self._read(self.path_for(stem))

    def read_record(self, name: str) -> List[str]:
        return self._read(self.record_path(name))

    def _read(self, path: Path) -> List[str]:
        with self._lock:
            self.reads += 1
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise DependencyRecordNotFound(path) from e
        except (OSError, UnicodeDecodeError) as e:
            raise DependencyStoreUnreadable(path, f"cannot read record: {e}") from e

        if not text:
            raise MalformedDependencyArtifact(path, "empty dependency record")

        # records left in compiler form are still usable
        if any(RULE_SEP_RE.search(line) for line in text.splitlines()):
            return parse_dependency_text(text, path=path).prerequisites

        lines = [ln for ln in text.splitlines() if ln.strip()]
        if len(lines) > 1:
            raise MalformedDependencyArtifact(path, f"expected one line, found {len(lines)}")

        words = split_words(lines[0]) if lines else []
        return list(dict.fromkeys(words))

    # ------------------------------------------------------------------
    def remove(self, stem: str) -> None:
        self.path_for(stem).unlink(missing_ok=True)

    def remove_record(self, name: str) -> None:
        self.record_path(name).unlink(missing_ok=True)
