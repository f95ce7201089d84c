from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from lazymake.errors import BuildError
from lazymake.graph.lazy import LazyPrerequisites
from lazymake.graph.rules import RuleMatch

UNVISITED = "UNVISITED"
VISITING = "VISITING"
RESOLVED = "RESOLVED"
UP_TO_DATE = "UP_TO_DATE"
QUEUED = "QUEUED"
BUILDING = "BUILDING"
BUILT = "BUILT"
FAILED = "FAILED"
SKIPPED = "SKIPPED"

VALID_STATES = {
    UNVISITED,
    VISITING,
    RESOLVED,
    UP_TO_DATE,
    QUEUED,
    BUILDING,
    BUILT,
    FAILED,
    SKIPPED,
}

# goal outcomes
SUCCESS = "SUCCESS"


@dataclass
class Target:
    """
    One node of the graph for the current run.

    `lazy` is the deferred prerequisite thunk; `prereqs` grows once when it
    is resolved on the first visit.
    """

    name: str
    match: Optional[RuleMatch] = None
    phony: bool = False
    intermediate: bool = False
    prereqs: List[str] = field(default_factory=list)
    lazy: Optional[LazyPrerequisites] = None
    lazy_prereqs: List[str] = field(default_factory=list)

    # a lazily discovered file that no longer exists and has no rule
    vanished: bool = False

    state: str = UNVISITED
    error: Optional[BuildError] = None

    # filesystem snapshot taken when staleness is decided
    exists: bool = False
    mtime: Optional[float] = None
    existed_before: bool = False

    # staleness decision
    changed: bool = False
    deferred: bool = False
    needs_run: bool = False
    reason: Optional[str] = None
    newer: List[str] = field(default_factory=list)
    signature: Optional[str] = None
    command: Optional[str] = None

    # ------------------------------------------------------------------
    @property
    def action(self) -> Optional[str]:
        return self.match.action if self.match else None

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------
    def _set(self, state: str) -> None:
        if state not in VALID_STATES:
            raise ValueError(f"Unknown target state '{state}'")
        self.state = state

    def mark_visiting(self) -> None:
        self._set(VISITING)

    def mark_resolved(self) -> None:
        self._set(RESOLVED)

    def mark_up_to_date(self) -> None:
        self._set(UP_TO_DATE)

    def mark_queued(self) -> None:
        self._set(QUEUED)

    def mark_building(self) -> None:
        self._set(BUILDING)

    def mark_built(self) -> None:
        self._set(BUILT)

    def mark_failed(self, error: BuildError) -> None:
        self.error = error
        self._set(FAILED)

    def mark_skipped(self) -> None:
        self._set(SKIPPED)

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "state": self.state,
            "phony": self.phony,
            "intermediate": self.intermediate,
            "prereqs": list(self.prereqs),
            "lazy_prereqs": list(self.lazy_prereqs),
            "needs_run": self.needs_run,
            "reason": self.reason,
            "error": str(self.error) if self.error else None,
        }


@dataclass
class GoalOutcome:
    goal: str
    status: str
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == SUCCESS


@dataclass
class BuildResult:
    """Outcome of one build invocation."""

    outcomes: List[GoalOutcome] = field(default_factory=list)
    executed: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    targets: Dict[str, Target] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def failed_goals(self) -> List[str]:
        return [o.goal for o in self.outcomes if o.status == FAILED]

    @property
    def skipped_goals(self) -> List[str]:
        return [o.goal for o in self.outcomes if o.status == SKIPPED]

    def outcome(self, goal: str) -> GoalOutcome:
        for o in self.outcomes:
            if o.goal == goal:
                return o
        raise KeyError(goal)

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1
