from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, List, Optional, Tuple, TypeVar

WILDCARD = "%"

T = TypeVar("T")


@dataclass(frozen=True)
class Pattern:
    """
    A target name pattern: either an exact name or `prefix%suffix`.

    Only the first `%` is a wildcard; the text it matches (the stem) must
    be non-empty.
    """

    text: str

    @property
    def is_exact(self) -> bool:
        return WILDCARD not in self.text

    @property
    def prefix(self) -> str:
        return self.text.split(WILDCARD, 1)[0]

    @property
    def suffix(self) -> str:
        return self.text.split(WILDCARD, 1)[1] if not self.is_exact else ""

    @property
    def specificity(self) -> Tuple[int, int]:
        """Higher sorts first: exact names, then the longest literal part."""
        if self.is_exact:
            return (1, len(self.text))
        return (0, len(self.prefix) + len(self.suffix))

    def match(self, name: str) -> Optional[str]:
        """Return the stem ('' for exact patterns) or None."""
        if self.is_exact:
            return "" if name == self.text else None

        prefix, suffix = self.prefix, self.suffix
        if len(name) <= len(prefix) + len(suffix):
            return None
        if not (name.startswith(prefix) and name.endswith(suffix)):
            return None
        return name[len(prefix):len(name) - len(suffix)]

    def __str__(self) -> str:
        return self.text


def substitute(template: str, stem: str) -> str:
    """Replace the first `%` of a prerequisite template with the stem."""
    if not stem or WILDCARD not in template:
        return template
    return template.replace(WILDCARD, stem, 1)


@dataclass
class PatternTable(Generic[T]):
    """
    Ordered (pattern, value) entries queried in specificity order.

    Entries with equal specificity keep declaration order, so the first
    declared wins.
    """

    entries: List[Tuple[Pattern, T]] = field(default_factory=list)

    def add(self, pattern: Pattern | str, value: T) -> None:
        if isinstance(pattern, str):
            pattern = Pattern(pattern)
        self.entries.append((pattern, value))

    def candidates(self) -> List[Tuple[Pattern, T]]:
        # sorted() is stable: declaration order breaks ties
        return sorted(self.entries, key=lambda e: e[0].specificity, reverse=True)

    def matches(self, name: str) -> List[Tuple[T, str]]:
        """Every (value, stem) whose pattern matches, most specific first."""
        out = []
        for pattern, value in self.candidates():
            stem = pattern.match(name)
            if stem is not None:
                out.append((value, stem))
        return out

    def lookup(self, name: str) -> Optional[Tuple[T, str]]:
        hits = self.matches(name)
        return hits[0] if hits else None

    def __len__(self) -> int:
        return len(self.entries)
