import os

import pytest

from lazymake.build.history import BuildHistory, command_signature
from lazymake.build.options import BuildOptions
from lazymake.build.planner import Planner
from lazymake.build.state import QUEUED, UP_TO_DATE
from lazymake.deps.store import DependencyStore
from lazymake.errors import CircularDependency, NoRuleFound
from lazymake.graph.graph import TargetGraph

OLD = 1_000_000
NEW = 2_000_000


# -------------------------------------------------------
# Helpers
# -------------------------------------------------------

def touch(root, name, text="", mtime=OLD):
    p = root / name
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text)
    os.utime(p, (mtime, mtime))
    return p


def c_graph():
    g = TargetGraph()
    g.declare_rule("%.o", ["%.c", "%.d"], depfile="%.d", action="build {{ target }}")
    g.declare_rule("%.d")
    g.declare_rule("app", ["a.o", "b.o"], action="build {{ target }}")
    return g


def c_sources(root):
    touch(root, "a.c")
    touch(root, "b.c")
    touch(root, "a.h")
    touch(root, "b.h")
    touch(root, "a.d", "a.h\n")
    touch(root, "b.d", "b.h\n")


def make_planner(root, graph=None, history=None):
    options = BuildOptions(root=root)
    store = DependencyStore(root)
    return Planner(graph or c_graph(), store, options, history), store


# -------------------------------------------------------
# Lazy resolution
# -------------------------------------------------------

def test_only_reachable_providers_are_invoked(tmp_path):
    c_sources(tmp_path)
    planner, store = make_planner(tmp_path)

    plan = planner.plan(["a.o"])

    assert plan.providers_invoked == ["a.o"]
    assert "b.o" not in plan.targets
    assert "b.h" not in plan.targets
    assert store.reads == 1
    assert plan.targets["a.o"].prereqs == ["a.c", "a.d", "a.h"]
    assert plan.targets["a.o"].lazy_prereqs == ["a.h"]


def test_provider_invoked_once_per_run(tmp_path):
    c_sources(tmp_path)
    planner, store = make_planner(tmp_path)

    plan = planner.plan(["a.o", "app", "a.o"])

    assert sorted(plan.providers_invoked) == ["a.o", "b.o"]
    assert plan.targets["a.o"].lazy.calls == 1
    assert store.reads == 2


def test_missing_record_means_no_extra_prereqs(tmp_path):
    touch(tmp_path, "a.c")
    planner, _ = make_planner(tmp_path)

    plan = planner.plan(["a.o"])

    assert plan.targets["a.o"].lazy_prereqs == []
    assert plan.targets["a.o"].reason == "target does not exist"


def test_lazy_prereqs_come_after_static(tmp_path):
    c_sources(tmp_path)
    touch(tmp_path, "a.d", "a.c a.h a.d\n")
    planner, _ = make_planner(tmp_path)

    t = planner.plan(["a.o"]).targets["a.o"]
    assert t.prereqs == ["a.c", "a.d", "a.h"]


# -------------------------------------------------------
# Graph errors
# -------------------------------------------------------

def test_cycle_is_reported_with_path(tmp_path):
    g = TargetGraph()
    g.declare_rule("x", ["y"])
    g.declare_rule("y", ["z"])
    g.declare_rule("z", ["x"])
    planner, _ = make_planner(tmp_path, g)

    plan = planner.plan(["x"])

    err = plan.errors["x"]
    assert isinstance(err, CircularDependency)
    assert err.cycle == ["x", "y", "z", "x"]
    assert str(err) == "Circular dependency: x -> y -> z -> x"


def test_cycle_through_lazy_record(tmp_path):
    g = TargetGraph()
    g.declare_rule("gen.h", ["gen.in"], depfile="gen.dep", action="build {{ target }}")
    g.declare_rule("user.o", ["user.c"], depfile="user.dep", action="build {{ target }}")
    touch(tmp_path, "gen.in")
    touch(tmp_path, "user.c")
    touch(tmp_path, "gen.dep", "user.o\n")
    touch(tmp_path, "user.dep", "gen.h\n")
    planner, _ = make_planner(tmp_path, g)

    plan = planner.plan(["user.o"])
    assert plan.errors["user.o"].cycle == ["user.o", "gen.h", "user.o"]


def test_missing_source_does_not_abort_independent_goal(tmp_path):
    c_sources(tmp_path)
    g = c_graph()
    g.declare_rule("broken", ["missing.c"], action="build {{ target }}")
    planner, _ = make_planner(tmp_path, g)

    plan = planner.plan(["broken", "a.o"])

    err = plan.errors["broken"]
    assert isinstance(err, NoRuleFound)
    assert str(err) == "No rule to make target 'missing.c', needed by 'broken'"
    assert plan.planned_goals == ["a.o"]
    assert plan.targets["a.o"].state == QUEUED


def test_unknown_goal(tmp_path):
    planner, _ = make_planner(tmp_path)
    plan = planner.plan(["nothing"])
    assert str(plan.errors["nothing"]) == "No rule to make target 'nothing'"


def test_existing_file_goal_without_rule_is_up_to_date(tmp_path):
    touch(tmp_path, "README")
    planner, _ = make_planner(tmp_path)
    plan = planner.plan(["README"])
    assert plan.targets["README"].state == UP_TO_DATE


def test_vanished_header_forces_rebuild(tmp_path):
    c_sources(tmp_path)
    touch(tmp_path, "a.d", "a.h gone.h\n")
    touch(tmp_path, "a.o", mtime=NEW)
    planner, _ = make_planner(tmp_path)

    plan = planner.plan(["a.o"])

    assert not plan.errors
    assert plan.targets["gone.h"].vanished
    assert plan.targets["a.o"].needs_run
    assert "gone.h" in plan.targets["a.o"].reason


def idl_graph():
    g = c_graph()
    g.declare_rule("%.h", ["%.idl"], action="build {{ target }}")
    return g


def test_pattern_rule_without_inputs_does_not_claim_existing_file(tmp_path):
    c_sources(tmp_path)
    touch(tmp_path, "a.idl")
    touch(tmp_path, "stdio_wrap.h")
    touch(tmp_path, "a.d", "a.h stdio_wrap.h\n")
    (tmp_path / "a.h").unlink()
    planner, _ = make_planner(tmp_path, idl_graph())

    plan = planner.plan(["a.o"])

    assert not plan.errors
    assert plan.targets["stdio_wrap.h"].match is None
    assert plan.targets["a.h"].match.rule.pattern.text == "%.h"
    assert plan.targets["a.h"].prereqs == ["a.idl"]


def test_pattern_rule_without_inputs_leaves_header_vanished(tmp_path):
    c_sources(tmp_path)
    touch(tmp_path, "a.d", "a.h gone.h\n")
    touch(tmp_path, "a.o", mtime=NEW)
    planner, _ = make_planner(tmp_path, idl_graph())

    plan = planner.plan(["a.o"])

    assert not plan.errors
    assert plan.targets["a.h"].match is None
    assert plan.targets["gone.h"].vanished
    assert plan.targets["a.o"].needs_run


def test_goal_reports_missing_input_of_best_rule(tmp_path):
    planner, _ = make_planner(tmp_path, idl_graph())

    plan = planner.plan(["x.h"])

    assert isinstance(plan.errors["x.h"], NoRuleFound)
    assert str(plan.errors["x.h"]) == "No rule to make target 'x.idl', needed by 'x.h'"


def test_pattern_rule_used_once_per_chain(tmp_path):
    g = c_graph()
    g.declare_rule("%", ["%.x"], action="build {{ target }}")
    touch(tmp_path, "a.c")
    touch(tmp_path, "a.d", "a.h\n")
    planner, _ = make_planner(tmp_path, g)

    plan = planner.plan(["a.o"])

    assert not plan.errors
    assert plan.targets["a.c"].match is None
    assert plan.targets["a.h"].vanished


def test_unusable_record_forces_rebuild(tmp_path):
    c_sources(tmp_path)
    touch(tmp_path, "a.d", "")
    touch(tmp_path, "a.o", mtime=NEW)
    planner, _ = make_planner(tmp_path)

    t = planner.plan(["a.o"]).targets["a.o"]

    assert t.lazy.degraded
    assert t.needs_run
    assert t.reason == "dependency record unusable"


def test_missing_record_is_not_degraded(tmp_path):
    touch(tmp_path, "a.c")
    touch(tmp_path, "a.o", mtime=NEW)
    planner, _ = make_planner(tmp_path)

    t = planner.plan(["a.o"]).targets["a.o"]

    assert not t.lazy.degraded
    assert not t.needs_run


# -------------------------------------------------------
# Staleness
# -------------------------------------------------------

def test_up_to_date_object(tmp_path):
    c_sources(tmp_path)
    touch(tmp_path, "a.o", mtime=NEW)
    planner, _ = make_planner(tmp_path)

    plan = planner.plan(["a.o"])

    assert plan.targets["a.o"].state == UP_TO_DATE
    assert plan.to_run == []


def test_newer_lazy_header_makes_object_stale(tmp_path):
    c_sources(tmp_path)
    touch(tmp_path, "a.o", mtime=NEW)
    touch(tmp_path, "a.h", mtime=NEW + 10)
    planner, _ = make_planner(tmp_path)

    t = planner.plan(["a.o"]).targets["a.o"]

    assert t.needs_run
    assert t.newer == ["a.h"]
    assert t.reason == "prerequisite 'a.h' is newer"


def test_rebuilt_prereq_makes_dependent_stale(tmp_path):
    c_sources(tmp_path)
    touch(tmp_path, "a.o", mtime=NEW)
    touch(tmp_path, "b.o", mtime=OLD - 10)
    touch(tmp_path, "app", mtime=NEW + 10)
    planner, _ = make_planner(tmp_path)

    plan = planner.plan(["app"])

    assert [t.name for t in plan.to_run] == ["b.o", "app"]
    assert plan.targets["app"].reason == "prerequisite 'b.o' is newer"


def test_phony_always_runs(tmp_path):
    g = TargetGraph()
    g.declare_rule("clean", action="rm -f *.o", phony=True)
    planner, _ = make_planner(tmp_path, g)

    t = planner.plan(["clean"]).targets["clean"]
    assert t.phony and t.needs_run and t.reason == "phony target"


def test_command_change_forces_rebuild(tmp_path):
    c_sources(tmp_path)
    touch(tmp_path, "a.o", mtime=NEW)
    history = BuildHistory()
    history.record("a.o", command_signature("old {{ target }}", "a.o", ["a.c", "a.d"]))
    planner, _ = make_planner(tmp_path, history=history)

    t = planner.plan(["a.o"]).targets["a.o"]
    assert t.reason == "command changed"


def test_unknown_signature_does_not_force_rebuild(tmp_path):
    c_sources(tmp_path)
    touch(tmp_path, "a.o", mtime=NEW)
    planner, _ = make_planner(tmp_path, history=BuildHistory())

    assert planner.plan(["a.o"]).targets["a.o"].state == UP_TO_DATE


# -------------------------------------------------------
# Missing intermediates
# -------------------------------------------------------

def gen_graph():
    g = TargetGraph()
    g.declare_rule("%.o", ["%.c", "%.h"], action="build {{ target }}")
    g.declare_rule("%.h", ["%.idl"], action="build {{ target }}")
    return g


def test_missing_intermediate_is_transparent(tmp_path):
    touch(tmp_path, "a.c")
    touch(tmp_path, "a.idl")
    touch(tmp_path, "a.o", mtime=NEW)
    planner, _ = make_planner(tmp_path, gen_graph())

    plan = planner.plan(["a.o"])

    assert plan.targets["a.h"].deferred
    assert plan.to_run == []


def test_missing_intermediate_pulled_in_when_needed(tmp_path):
    touch(tmp_path, "a.c")
    touch(tmp_path, "a.idl")
    planner, _ = make_planner(tmp_path, gen_graph())

    plan = planner.plan(["a.o"])

    assert [t.name for t in plan.to_run] == ["a.h", "a.o"]
    assert plan.targets["a.h"].reason == "needed by 'a.o'"


def test_intermediate_rebuilt_when_its_input_changes(tmp_path):
    touch(tmp_path, "a.c")
    touch(tmp_path, "a.idl", mtime=NEW + 10)
    touch(tmp_path, "a.o", mtime=NEW)
    planner, _ = make_planner(tmp_path, gen_graph())

    plan = planner.plan(["a.o"])

    assert [t.name for t in plan.to_run] == ["a.h", "a.o"]


def test_not_intermediate_missing_file_is_stale(tmp_path):
    touch(tmp_path, "a.c")
    touch(tmp_path, "a.idl")
    touch(tmp_path, "a.o", mtime=NEW)
    g = gen_graph()
    g.declare_intermediate_override("%.h", False)
    planner, _ = make_planner(tmp_path, g)

    plan = planner.plan(["a.o"])

    assert plan.targets["a.h"].reason == "target does not exist"
    assert [t.name for t in plan.to_run] == ["a.h", "a.o"]


@pytest.mark.parametrize("goal", ["a.h", "a.o"])
def test_dependents_listed(tmp_path, goal):
    touch(tmp_path, "a.c")
    touch(tmp_path, "a.idl")
    planner, _ = make_planner(tmp_path, gen_graph())

    plan = planner.plan([goal])
    deps = plan.dependents()
    assert deps["a.idl"] == ["a.h"]
