from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from lazymake.graph.patterns import Pattern, substitute


@dataclass(frozen=True)
class Rule:
    """
    Declared build rule.

    pattern:      target name or `%` pattern
    prereqs:      static prerequisite templates (`%` = stem)
    depfile:      dependency record read lazily to extend the prerequisites
    action:       jinja2 command template (None = nothing to run)
    raw_depfile:  compiler output normalized into `depfile` after the action
    phony:        targets of this rule are not files
    """

    pattern: Pattern
    prereqs: Tuple[str, ...] = ()
    depfile: Optional[str] = None
    action: Optional[str] = None
    raw_depfile: Optional[str] = None
    phony: bool = False

    @property
    def is_pattern_rule(self) -> bool:
        return not self.pattern.is_exact


@dataclass(frozen=True)
class RuleMatch:
    """A rule bound to one concrete target name."""

    rule: Rule
    name: str
    stem: str = ""

    def static_prereqs(self) -> List[str]:
        return list(dict.fromkeys(substitute(p, self.stem) for p in self.rule.prereqs))

    @property
    def depfile(self) -> Optional[str]:
        if self.rule.depfile is None:
            return None
        return substitute(self.rule.depfile, self.stem)

    @property
    def raw_depfile(self) -> Optional[str]:
        if self.rule.raw_depfile is None:
            return None
        return substitute(self.rule.raw_depfile, self.stem)

    @property
    def action(self) -> Optional[str]:
        return self.rule.action

