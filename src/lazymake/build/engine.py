from __future__ import annotations

from typing import Iterable, List, Optional

import jinja2

from lazymake.build import actions
from lazymake.build.executor import Executor
from lazymake.build.history import BuildHistory
from lazymake.build.options import BuildOptions
from lazymake.build.planner import Plan, Planner
from lazymake.build.provenance import write_build_event
from lazymake.build.state import (
    BUILT,
    FAILED,
    QUEUED,
    SKIPPED,
    SUCCESS,
    UP_TO_DATE,
    BuildResult,
    GoalOutcome,
)
from lazymake.deps.store import DependencyStore
from lazymake.errors import BuildfileError
from lazymake.graph.graph import TargetGraph


# ===============================================================
class BuildEngine:
    """
    Plans and runs a build of the requested goals over a TargetGraph.

    Each call to `run` is one build invocation: lazy prerequisites are
    resolved afresh, stale targets are rebuilt, then intermediate files
    created by the run are removed.
    """

    def __init__(
        self,
        graph: TargetGraph,
        options: Optional[BuildOptions] = None,
        store: Optional[DependencyStore] = None,
        default_goal: Optional[str] = None,
    ) -> None:
        self.graph = graph
        self.options = options or BuildOptions()
        self.store = store or DependencyStore(self.options.root, self.options.dep_suffix)
        self.default_goal = default_goal or graph.default_goal
        self.log = self.options.logger

    # ---------------------------------------------------------------
    # Goals
    # ---------------------------------------------------------------
    def resolve_goals(self, goals: Iterable[str] | None) -> List[str]:
        out = [g for g in (goals or []) if g]
        if out:
            return out
        if not self.default_goal:
            raise BuildfileError("No targets specified and no default goal found")
        return [self.default_goal]

    def _load_history(self) -> BuildHistory:
        if not self.options.track_commands:
            return BuildHistory()
        return BuildHistory.load(self.options.state_path)

    # ---------------------------------------------------------------
    # Planning only
    # ---------------------------------------------------------------
    def plan(self, goals: Iterable[str] | None = None) -> Plan:
        planner = Planner(self.graph, self.store, self.options, self._load_history())
        return planner.plan(self.resolve_goals(goals))

    # ---------------------------------------------------------------
    # Build
    # ---------------------------------------------------------------
    def run(self, goals: Iterable[str] | None = None, dry_run: bool = False) -> BuildResult:
        goals = self.resolve_goals(goals)
        history = self._load_history()

        if dry_run:
            plan = Planner(self.graph, self.store, self.options, history).plan(goals)
            return self._dry_run(plan)

        state_dir = self.options.state_path
        write_build_event(state_dir, "build_start", extra={"goals": goals, **self.options.summary()})

        plan = Planner(self.graph, self.store, self.options, history).plan(goals)
        executor = Executor(plan, self.options, self.store, history)

        if plan.errors and not self.options.keep_going:
            for t in plan.to_run:
                t.mark_skipped()
        else:
            executor.execute()

        removed = executor.cleanup()
        if self.options.track_commands:
            history.save(state_dir)

        result = BuildResult(
            outcomes=self._outcomes(plan),
            executed=list(executor.executed),
            removed=removed,
            targets=plan.targets,
        )
        self._report(result)
        write_build_event(
            state_dir,
            "build_done",
            extra={
                "ok": result.ok,
                "executed": result.executed,
                "failed": result.failed_goals,
                "skipped": result.skipped_goals,
            },
        )
        return result

    def _dry_run(self, plan: Plan) -> BuildResult:
        would_run: List[str] = []
        for t in plan.to_run:
            if t.action is None:
                continue
            try:
                t.command = actions.render_command(t.action, actions.build_context(t))
            except jinja2.TemplateError as e:
                t.command = f"<cannot render action: {e}>"
            self.log.info("%s", t.command)
            would_run.append(t.name)

        outcomes = []
        for goal in plan.goals:
            if goal in plan.errors:
                outcomes.append(GoalOutcome(goal, FAILED, str(plan.errors[goal])))
            else:
                outcomes.append(GoalOutcome(goal, SUCCESS))
        return BuildResult(outcomes=outcomes, executed=would_run, targets=plan.targets)

    # ---------------------------------------------------------------
    # Results
    # ---------------------------------------------------------------
    def _outcomes(self, plan: Plan) -> List[GoalOutcome]:
        outcomes = []
        for goal in plan.goals:
            if goal in plan.errors:
                outcomes.append(GoalOutcome(goal, FAILED, str(plan.errors[goal])))
                continue

            t = plan.targets[goal]
            if t.state == FAILED:
                outcomes.append(GoalOutcome(goal, FAILED, str(t.error)))
            elif t.state == UP_TO_DATE:
                outcomes.append(GoalOutcome(goal, SUCCESS, "up to date"))
            elif t.state == BUILT:
                outcomes.append(GoalOutcome(goal, SUCCESS))
            elif t.state in (SKIPPED, QUEUED):
                outcomes.append(GoalOutcome(goal, SKIPPED, "not started after an earlier failure"))
            else:
                outcomes.append(GoalOutcome(goal, SKIPPED, f"left in state {t.state}"))
        return outcomes

    def _report(self, result: BuildResult) -> None:
        for o in result.outcomes:
            t = result.targets.get(o.goal)
            if o.status == SUCCESS and t is not None and t.state == UP_TO_DATE:
                self.log.info("'%s' is up to date.", o.goal)
            elif o.status == SUCCESS and t is not None and t.action is None and t.phony:
                self.log.info("Nothing to be done for '%s'.", o.goal)
            elif o.status == FAILED:
                self.log.error("Goal '%s' failed: %s", o.goal, o.reason)
            elif o.status == SKIPPED:
                self.log.warning("Goal '%s' skipped", o.goal)
