from __future__ import annotations

import logging
import os
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Deque, Dict, List, Set

import jinja2

from lazymake.build import actions
from lazymake.build.history import BuildHistory
from lazymake.build.options import BuildOptions
from lazymake.build.planner import Plan
from lazymake.build.provenance import write_build_event
from lazymake.build.state import BUILT, QUEUED, UP_TO_DATE, Target
from lazymake.deps.postprocess import normalize_raw_artifact
from lazymake.deps.store import DependencyStore
from lazymake.errors import ActionExecutionFailed, BuildError, PrerequisiteFailed


class Executor:
    """
    Runs the stale targets of a plan on a bounded thread pool.

    Only the calling thread touches target states, the history and the
    provenance log; worker threads run the action and postprocess the
    raw dependency artifact of their own target.
    """

    def __init__(
        self,
        plan: Plan,
        options: BuildOptions,
        store: DependencyStore,
        history: BuildHistory,
    ) -> None:
        self.plan = plan
        self.options = options
        self.store = store
        self.history = history
        self.log = logging.getLogger("lazymake.build")

        self.executed: List[str] = []
        self.removed: List[str] = []
        self._stop = False
        self._ready: Deque[Target] = deque()
        self._waiting: Dict[str, Set[str]] = {}
        self._dependents = plan.dependents()

    # ---------------------------------------------------------------
    # Scheduling
    # ---------------------------------------------------------------
    def execute(self) -> List[str]:
        to_run = self.plan.to_run
        run_names = {t.name for t in to_run}

        for t in to_run:
            self._waiting[t.name] = {p for p in t.prereqs if p in run_names}
            if not self._waiting[t.name]:
                self._ready.append(t)

        futures: Dict[Future, Target] = {}
        with ThreadPoolExecutor(max_workers=self.options.jobs) as pool:
            self._dispatch(pool, futures)
            if self._stop:
                self._cancel(futures)
            while futures:
                done, _ = wait(list(futures), return_when=FIRST_COMPLETED)
                for fut in done:
                    t = futures.pop(fut)
                    if fut.cancelled():
                        t.mark_skipped()
                        continue
                    result = fut.result()
                    if result.ok:
                        self._succeed(t)
                    else:
                        self._fail(t, ActionExecutionFailed(t.name, result.returncode, result.output))
                self._dispatch(pool, futures)
                if self._stop:
                    self._cancel(futures)

        for t in to_run:
            if t.state == QUEUED:
                t.mark_skipped()
        return self.executed

    def _dispatch(self, pool: ThreadPoolExecutor, futures: Dict[Future, Target]) -> None:
        while self._ready and not self._stop and len(futures) < self.options.jobs:
            t = self._ready.popleft()
            if t.state != QUEUED:
                continue

            if t.action is None:
                # nothing to run: the target counts as remade
                t.mark_built()
                self._release(t)
                continue

            try:
                t.command = actions.render_command(t.action, actions.build_context(t))
            except jinja2.TemplateError as e:
                self.log.error("Cannot render action for '%s': %s", t.name, e)
                self._fail(t, ActionExecutionFailed(t.name, -1, str(e)))
                continue

            t.mark_building()
            futures[pool.submit(self._run, t)] = t

    def _cancel(self, futures: Dict[Future, Target]) -> None:
        for fut in list(futures):
            if fut.cancel():
                futures.pop(fut).mark_skipped()

    def _release(self, t: Target) -> None:
        for d in self._dependents.get(t.name, []):
            waiting = self._waiting.get(d)
            if waiting is None:
                continue
            waiting.discard(t.name)
            if not waiting:
                self._ready.append(self.plan.targets[d])

    # ---------------------------------------------------------------
    # Worker side
    # ---------------------------------------------------------------
    def _run(self, t: Target) -> actions.ActionResult:
        self.log.info("%s", t.command)
        result = actions.run_action(t.command, self.options.root)
        if result.output:
            self.log.info("%s", result.output)

        if result.ok and t.match is not None and t.match.raw_depfile:
            try:
                written = normalize_raw_artifact(
                    self.options.root / t.match.raw_depfile,
                    self.store,
                    t.match.depfile,
                    source=t.prereqs[0] if t.prereqs else None,
                )
                target_path = self.options.root / t.name
                if written is not None and target_path.exists():
                    # the target must not be older than the record it depends on
                    os.utime(target_path)
            except OSError as e:
                self.log.warning("Cannot write dependency record for '%s': %s", t.name, e)
        return result

    # ---------------------------------------------------------------
    # Completion
    # ---------------------------------------------------------------
    def _succeed(self, t: Target) -> None:
        t.mark_built()
        self.executed.append(t.name)
        if not t.phony:
            self.history.record(t.name, t.signature)
        write_build_event(self.options.state_path, "target_built", t.name, {"reason": t.reason})
        self._release(t)

    def _fail(self, t: Target, error: BuildError) -> None:
        t.mark_failed(error)
        self.history.forget(t.name)
        self.log.error("%s", error)
        write_build_event(self.options.state_path, "target_failed", t.name, {"error": str(error)})

        if self.options.delete_on_error and not t.phony:
            self._delete_suspect(t)

        if not self.options.keep_going:
            self._stop = True

        # everything waiting on t fails with it
        work = [t.name]
        while work:
            name = work.pop()
            for d in self._dependents.get(name, []):
                dt = self.plan.targets[d]
                if dt.state == QUEUED:
                    dt.mark_failed(PrerequisiteFailed(d, name))
                    work.append(d)

    def _delete_suspect(self, t: Target) -> None:
        path = self.options.root / t.name
        try:
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            return
        if not t.existed_before or mtime != t.mtime:
            self.log.info("Deleting file '%s'", t.name)
            path.unlink(missing_ok=True)

    # ---------------------------------------------------------------
    # Intermediate cleanup
    # ---------------------------------------------------------------
    def cleanup(self) -> List[str]:
        """Delete intermediate files this run created once nothing needs them."""
        for name in self.plan.order:
            t = self.plan.targets[name]
            if not t.intermediate or t.phony or t.existed_before or t.state != BUILT:
                continue
            if name in self.plan.goals:
                continue
            users = [self.plan.targets[d] for d in self._dependents.get(name, [])]
            if not all(u.state in (BUILT, UP_TO_DATE) for u in users):
                continue

            path = self.options.root / name
            if path.exists():
                self.log.info("Removing intermediate file '%s'", name)
                path.unlink()
                self.removed.append(name)
                write_build_event(self.options.state_path, "intermediate_removed", name)
        return self.removed
