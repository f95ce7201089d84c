from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Set

from lazymake.graph.lifecycle import IntermediatePolicy
from lazymake.graph.patterns import WILDCARD, Pattern, PatternTable
from lazymake.graph.rules import Rule, RuleMatch


class TargetGraph:
    """
    Declared rules, phony names and intermediate overrides.

    The graph only holds declarations; concrete targets (with their lazy
    prerequisite thunks) are instantiated by the planner for each run.
    """

    def __init__(self) -> None:
        self._rules: PatternTable[Rule] = PatternTable()
        self._phony: Set[str] = set()
        self._mentioned: Set[str] = set()
        self.intermediate = IntermediatePolicy()

    # ---------------------------------------------------------------
    # Declarations
    # ---------------------------------------------------------------
    def declare_rule(
        self,
        pattern: str,
        prereqs: Sequence[str] = (),
        depfile: Optional[str] = None,
        action: Optional[str] = None,
        raw_depfile: Optional[str] = None,
        phony: bool = False,
    ) -> Rule:
        if not pattern or not pattern.strip():
            raise ValueError("Rule pattern must be a non-empty name")

        pat = Pattern(pattern.strip())
        if phony and not pat.is_exact:
            raise ValueError(f"Phony rule '{pattern}' cannot be a pattern")
        if raw_depfile and not depfile:
            raise ValueError(f"Rule '{pattern}' has raw_depfile but no depfile")

        rule = Rule(
            pattern=pat,
            prereqs=tuple(prereqs),
            depfile=depfile,
            action=action,
            raw_depfile=raw_depfile,
            phony=phony,
        )
        self._rules.add(pat, rule)

        if pat.is_exact:
            self._mentioned.add(pat.text)
            if phony:
                self._phony.add(pat.text)
        self._mentioned.update(p for p in prereqs if WILDCARD not in p)
        return rule

    def declare_phony(self, *names: str) -> None:
        for name in names:
            self._phony.add(name)
            self._mentioned.add(name)

    def declare_intermediate_override(self, pattern: str, is_intermediate: bool) -> None:
        self.intermediate.declare(pattern, is_intermediate)

    # ---------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------
    @property
    def rules(self) -> List[Rule]:
        return [r for _, r in self._rules.entries]

    def candidates(self, name: str) -> List[RuleMatch]:
        """All rules matching `name`, in precedence order."""
        return [RuleMatch(rule=rule, name=name, stem=stem) for rule, stem in self._rules.matches(name)]

    def match(self, name: str) -> Optional[RuleMatch]:
        hits = self.candidates(name)
        return hits[0] if hits else None

    def is_phony(self, name: str) -> bool:
        return name in self._phony

    def is_mentioned(self, name: str) -> bool:
        return name in self._mentioned

    def default_intermediate(self, match: Optional[RuleMatch], goals: Iterable[str] = ()) -> bool:
        """Files made by `%` rules and never named explicitly are intermediate."""
        if match is None or self.is_phony(match.name):
            return False
        if match.name in set(goals) or self.is_mentioned(match.name):
            return False
        return match.rule.is_pattern_rule

    def is_intermediate(self, match: Optional[RuleMatch], goals: Iterable[str] = ()) -> bool:
        if match is None or self.is_phony(match.name):
            return False
        return self.intermediate.is_intermediate(
            match.name, self.default_intermediate(match, goals)
        )

    @property
    def default_goal(self) -> Optional[str]:
        for rule in self.rules:
            if rule.pattern.is_exact:
                return rule.pattern.text
        return None

    def __len__(self) -> int:
        return len(self._rules)
