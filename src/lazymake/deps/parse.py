from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from lazymake.errors import MalformedDependencyArtifact

# a rule colon is followed by whitespace or the end of the line ("C:\x" is a path)
RULE_SEP_RE = re.compile(r"(?<!\\):(?=\s|$)")
CONTINUATION_RE = re.compile(r"\\\r?\n")
WORD_RE = re.compile(r"(?:\\[ #]|\S)+")


@dataclass(frozen=True)
class DependencyRecord:
    """
    Normalized content of one compiler dependency artifact.

    targets:        names on the left-hand side of the first rule
    source:         primary source file (excluded from prerequisites)
    prerequisites:  remaining paths, de-duplicated, in first-seen order
    """

    targets: Tuple[str, ...]
    source: Optional[str]
    prerequisites: List[str] = field(default_factory=list)

    @property
    def target(self) -> str:
        return self.targets[0]


def _unescape(word: str) -> str:
    return word.replace("\\ ", " ").replace("\\#", "#").replace("$$", "$")


def split_words(text: str) -> List[str]:
    """Split make-style words, honouring `\\ ` escapes. Lone backslashes are dropped."""
    return [_unescape(w) for w in WORD_RE.findall(text) if w != "\\"]


def parse_dependency_text(
    text: str,
    source: Optional[str] = None,
    path: Path | str = "<text>",
) -> DependencyRecord:
    """
    Parse a raw dependency artifact in either supported form:

      joined:    a.o: a.c a.h \\
                   b.h
      per-line:  a.o: a.c
                 a.o: a.h

    Rules for other targets (e.g. the `a.h:` stubs written by `-MP`) are
    ignored. Raises MalformedDependencyArtifact when no rule can be read.
    """
    if not text or not text.strip():
        raise MalformedDependencyArtifact(path, "empty dependency artifact")

    logical = CONTINUATION_RE.sub(" ", text)

    own: List[str] = []
    prereqs: List[str] = []

    for lineno, line in enumerate(logical.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        parts = RULE_SEP_RE.split(line, maxsplit=1)
        if len(parts) != 2:
            raise MalformedDependencyArtifact(path, f"line {lineno}: missing ':' separator")

        lhs = split_words(parts[0])
        rhs = split_words(parts[1])
        if not lhs:
            raise MalformedDependencyArtifact(path, f"line {lineno}: rule without target")

        if not own:
            own = lhs
        elif not set(lhs) & set(own):
            continue

        prereqs.extend(rhs)

    if not own:
        raise MalformedDependencyArtifact(path, "no rule found")

    if source is None and prereqs:
        source = prereqs[0]

    excluded = set(own)
    if source:
        excluded.add(source)

    out = list(dict.fromkeys(p for p in prereqs if p not in excluded))
    return DependencyRecord(targets=tuple(own), source=source, prerequisites=out)


def parse_dependency_file(path: Path | str, source: Optional[str] = None) -> DependencyRecord:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise MalformedDependencyArtifact(p, "dependency artifact is missing") from e
    except (OSError, UnicodeDecodeError) as e:
        raise MalformedDependencyArtifact(p, f"cannot read dependency artifact: {e}") from e

    return parse_dependency_text(text, source=source, path=p)
