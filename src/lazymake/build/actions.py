from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import jinja2

from lazymake.build.state import Target

jenv = jinja2.Environment(
    autoescape=False,
    undefined=jinja2.StrictUndefined,
    keep_trailing_newline=False,
)


@dataclass
class ActionResult:
    returncode: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def build_context(target: Target) -> Dict[str, Any]:
    match = target.match
    prereqs = list(target.prereqs)
    return {
        "target": target.name,
        "stem": match.stem if match else "",
        "source": prereqs[0] if prereqs else "",
        "prereqs": prereqs,
        "newer": list(target.newer),
        "depfile": (match.depfile if match else None) or "",
        "raw_depfile": (match.raw_depfile if match else None) or "",
    }


def render_command(template: str, context: Dict[str, Any]) -> str:
    """Render an action template; undefined names raise jinja2.UndefinedError."""
    return jenv.from_string(template).render(**context).strip()


def run_action(command: str, cwd: Path, env: Optional[Dict[str, str]] = None) -> ActionResult:
    """
    Run one rendered command through the shell inside the build root.
    stdout and stderr are merged.
    """
    try:
        proc = subprocess.run(
            command,
            shell=True,
            cwd=str(cwd),
            env={**os.environ, **(env or {})},
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
    except OSError as e:
        return ActionResult(returncode=127, output=str(e))

    out = proc.stdout.decode("utf-8", "replace").strip()
    return ActionResult(returncode=proc.returncode, output=out)
