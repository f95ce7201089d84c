from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Set

from lazymake.build.history import BuildHistory, command_signature
from lazymake.build.options import BuildOptions
from lazymake.build.state import FAILED, VISITING, Target
from lazymake.deps.store import DependencyStore
from lazymake.errors import BuildError, CircularDependency, NoRuleFound
from lazymake.graph.graph import TargetGraph
from lazymake.graph.lazy import LazyPrerequisites
from lazymake.graph.rules import Rule, RuleMatch


@dataclass
class Plan:
    """Targets reachable from the goals, with their staleness decided."""

    goals: List[str]
    targets: Dict[str, Target] = field(default_factory=dict)
    errors: Dict[str, BuildError] = field(default_factory=dict)
    # post-order: every target comes after its prerequisites
    order: List[str] = field(default_factory=list)
    providers_invoked: List[str] = field(default_factory=list)
    effective_mtime: Dict[str, float] = field(default_factory=dict)

    @property
    def planned_goals(self) -> List[str]:
        return [g for g in self.goals if g not in self.errors]

    @property
    def to_run(self) -> List[Target]:
        return [self.targets[n] for n in self.order if self.targets[n].needs_run]

    def dependents(self) -> Dict[str, List[str]]:
        out: Dict[str, List[str]] = {n: [] for n in self.order}
        for name in self.order:
            for p in self.targets[name].prereqs:
                if p in out:
                    out[p].append(name)
        return out


class Planner:
    """
    Walks the graph from the goals, resolving lazy prerequisites on the
    first visit of each target, then decides which targets are stale.
    """

    def __init__(
        self,
        graph: TargetGraph,
        store: DependencyStore,
        options: BuildOptions,
        history: Optional[BuildHistory] = None,
    ) -> None:
        self.graph = graph
        self.store = store
        self.options = options
        self.history = history or BuildHistory()
        self.log = logging.getLogger("lazymake.build")

    # ---------------------------------------------------------------
    # Entry point
    # ---------------------------------------------------------------
    def plan(self, goals: List[str]) -> Plan:
        plan = Plan(goals=list(dict.fromkeys(goals)))

        for goal in plan.goals:
            try:
                self._visit(goal, [], plan, needed_by=None, lazily=False)
            except BuildError as e:
                plan.errors[goal] = e
                self.log.error("%s", e)

        decided: Set[str] = set()
        for goal in plan.planned_goals:
            self._decide(plan.targets[goal], plan, decided)

        self._pull_deferred(plan)

        for name in plan.order:
            t = plan.targets[name]
            if t.needs_run:
                t.mark_queued()
            else:
                t.mark_up_to_date()
        return plan

    # ---------------------------------------------------------------
    # Graph walk
    # ---------------------------------------------------------------
    def _can_make(self, name: str, used: FrozenSet[Rule]) -> bool:
        if self.graph.is_phony(name) or (self.options.root / name).exists():
            return True
        return any(self._applies(m, used) for m in self.graph.candidates(name))

    def _applies(self, match: RuleMatch, used: FrozenSet[Rule] = frozenset()) -> bool:
        """
        A `%` rule applies only if all its static prerequisites can be made.
        A pattern rule is used at most once per chain.
        """
        if not match.rule.is_pattern_rule:
            return True
        if match.rule in used:
            return False
        used = used | {match.rule}
        return all(self._can_make(p, used) for p in match.static_prereqs())

    def _select(self, name: str) -> Optional[RuleMatch]:
        candidates = self.graph.candidates(name)
        for m in candidates:
            if self._applies(m):
                return m
        if not candidates or (self.options.root / name).exists():
            return None
        # report the missing prerequisite of the best candidate
        return candidates[0]

    def _instantiate(self, name: str, needed_by: Optional[str], lazily: bool, plan: Plan) -> Target:
        match = self._select(name)
        phony = self.graph.is_phony(name) or bool(match and match.rule.phony)

        if lazily and match is not None and not phony and not self._applies(match):
            match = None

        if match is None and not phony:
            if (self.options.root / name).exists():
                return Target(name=name)
            if lazily:
                # a header listed by an old record may have been deleted
                self.log.debug("'%s' listed by the record of '%s' no longer exists", name, needed_by)
                return Target(name=name, vanished=True)
            raise NoRuleFound(name, needed_by)

        t = Target(
            name=name,
            match=match,
            phony=phony,
            intermediate=self.graph.is_intermediate(match, plan.goals),
        )
        if match is not None:
            t.prereqs = match.static_prereqs()
            if match.depfile:
                t.lazy = LazyPrerequisites(name, match.depfile, self.store)
        return t

    def _visit(
        self,
        name: str,
        stack: List[str],
        plan: Plan,
        needed_by: Optional[str],
        lazily: bool,
    ) -> Target:
        t = plan.targets.get(name)
        if t is not None:
            if t.state == VISITING:
                raise CircularDependency(stack[stack.index(name):] + [name])
            if t.state == FAILED and t.error is not None:
                raise t.error
            return t

        t = self._instantiate(name, needed_by, lazily, plan)
        plan.targets[name] = t
        t.mark_visiting()
        stack.append(name)
        try:
            if t.lazy is not None:
                self.log.debug("Reading dependency record '%s' for '%s'", t.lazy.record_name, name)
                extra = t.lazy.resolve()
                plan.providers_invoked.append(name)
                t.lazy_prereqs = [p for p in extra if p not in t.prereqs]
                t.prereqs.extend(t.lazy_prereqs)

            lazy_names = set(t.lazy_prereqs)
            for p in list(t.prereqs):
                self._visit(p, stack, plan, needed_by=name, lazily=p in lazy_names)
        except BuildError as e:
            t.mark_failed(e)
            raise
        finally:
            stack.pop()

        t.mark_resolved()
        return t

    # ---------------------------------------------------------------
    # Staleness
    # ---------------------------------------------------------------
    def _snapshot(self, t: Target) -> None:
        if t.phony or t.vanished:
            t.exists = False
            t.mtime = None
        else:
            try:
                t.mtime = (self.options.root / t.name).stat().st_mtime
                t.exists = True
            except FileNotFoundError:
                t.mtime = None
                t.exists = False
        t.existed_before = t.exists

    def _is_newer(self, p: Target, t: Target, plan: Plan) -> bool:
        if p.changed:
            return True
        eff = plan.effective_mtime.get(p.name, -math.inf)
        return t.mtime is None or eff > t.mtime

    def _decide(self, t: Target, plan: Plan, decided: Set[str]) -> None:
        if t.name in decided:
            return
        decided.add(t.name)

        prereqs = [plan.targets[p] for p in t.prereqs]
        for p in prereqs:
            self._decide(p, plan, decided)

        self._snapshot(t)
        plan.order.append(t.name)

        if t.match is None and not t.phony:
            # plain source file
            plan.effective_mtime[t.name] = math.inf if t.vanished else t.mtime
            return

        if t.match is not None and t.action is not None:
            t.signature = command_signature(t.action, t.name, t.match.static_prereqs())

        t.newer = [p.name for p in prereqs if self._is_newer(p, t, plan)]
        # an unusable record hides the real prerequisites: rebuild
        degraded = t.lazy is not None and t.lazy.degraded
        reason: Optional[str] = None

        if t.phony:
            reason = "phony target"
        elif not t.exists:
            if t.intermediate and t.name not in plan.goals:
                t.deferred = True
                changed = [p.name for p in prereqs if p.changed]
                if changed:
                    reason = f"prerequisite '{changed[0]}' changed"
                elif degraded:
                    reason = "dependency record unusable"
            else:
                reason = "target does not exist"
        elif t.newer:
            reason = f"prerequisite '{t.newer[0]}' is newer"
        elif degraded:
            reason = "dependency record unusable"
        elif self.options.track_commands and t.signature is not None:
            previous = self.history.get(t.name)
            if previous is not None and previous != t.signature:
                reason = "command changed"

        if t.deferred and reason is None:
            # missing intermediate: look through it at its own prerequisites
            effs = [plan.effective_mtime.get(p.name, -math.inf) for p in prereqs]
            plan.effective_mtime[t.name] = max(effs, default=-math.inf)
        else:
            plan.effective_mtime[t.name] = t.mtime if t.exists else math.inf

        t.reason = reason
        t.changed = t.needs_run = reason is not None

    def _pull_deferred(self, plan: Plan) -> None:
        """A target that runs needs its missing intermediate prerequisites built first."""
        work = [t for t in plan.to_run]
        while work:
            t = work.pop()
            for p in t.prereqs:
                pt = plan.targets[p]
                if pt.deferred and not pt.needs_run:
                    pt.needs_run = True
                    pt.reason = f"needed by '{t.name}'"
                    work.append(pt)
