from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from lazymake.buildfile.grammar import parse_rule
from lazymake.buildfile.schema import BuildfileModel, RuleModel
from lazymake.errors import BuildfileError
from lazymake.graph.graph import TargetGraph

DEFAULT_BUILDFILE = "lazymake.yaml"


@dataclass
class Buildfile:
    path: Optional[Path]
    graph: TargetGraph
    options: Dict[str, Any] = field(default_factory=dict)
    default_goal: Optional[str] = None

    @property
    def root(self) -> Path:
        return self.path.parent if self.path else Path.cwd()


def graph_from_model(model: BuildfileModel) -> TargetGraph:
    graph = TargetGraph()

    for entry in model.rules:
        rule = parse_rule(entry) if isinstance(entry, str) else entry
        _declare(graph, rule)

    if model.phony:
        graph.declare_phony(*model.phony)

    for pattern, flag in model.intermediate.items():
        graph.declare_intermediate_override(pattern, flag)

    return graph


def _declare(graph: TargetGraph, rule: RuleModel) -> None:
    try:
        graph.declare_rule(
            rule.target,
            prereqs=rule.prereqs,
            depfile=rule.depfile,
            action=rule.action,
            raw_depfile=rule.raw_depfile,
            phony=rule.phony,
        )
    except ValueError as e:
        raise BuildfileError(str(e)) from e


def load_buildfile_text(text: str, path: Optional[Path] = None) -> Buildfile:
    where = str(path) if path else "<buildfile>"
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise BuildfileError(f"{where}: invalid YAML: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise BuildfileError(f"{where}: buildfile must be a mapping at top level")

    try:
        model = BuildfileModel.model_validate(data)
    except ValidationError as e:
        raise BuildfileError(f"{where}: {e}") from e

    graph = graph_from_model(model)
    return Buildfile(
        path=path,
        graph=graph,
        options=model.options.model_dump(exclude_none=True),
        default_goal=model.default_goal or graph.default_goal,
    )


def load_buildfile(path: Path | str) -> Buildfile:
    p = Path(path).expanduser().resolve()
    if not p.is_file():
        raise BuildfileError(f"Buildfile not found: {p}")
    return load_buildfile_text(p.read_text(encoding="utf-8"), path=p)
