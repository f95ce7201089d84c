from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence


class LazyMakeError(Exception):
    """Base class for every error raised by lazymake."""


# ---------------------------------------------------------------
# Fatal to the goal that needs the target
# ---------------------------------------------------------------

class BuildError(LazyMakeError):
    pass


class NoRuleFound(BuildError):
    def __init__(self, target: str, needed_by: Optional[str] = None) -> None:
        self.target = target
        self.needed_by = needed_by
        msg = f"No rule to make target '{target}'"
        if needed_by:
            msg += f", needed by '{needed_by}'"
        super().__init__(msg)


class CircularDependency(BuildError):
    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle: List[str] = list(cycle)
        super().__init__("Circular dependency: " + " -> ".join(self.cycle))


class ActionExecutionFailed(BuildError):
    def __init__(self, target: str, returncode: int, output: str = "") -> None:
        self.target = target
        self.returncode = returncode
        self.output = output
        super().__init__(f"Action for '{target}' failed (exit code {returncode})")


class PrerequisiteFailed(BuildError):
    def __init__(self, target: str, prerequisite: str) -> None:
        self.target = target
        self.prerequisite = prerequisite
        super().__init__(f"Target '{target}' not remade because '{prerequisite}' failed")


# ---------------------------------------------------------------
# Recovered: degrade to "no extra prerequisites, rebuild"
# ---------------------------------------------------------------

class DependencyDataError(LazyMakeError):
    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class MalformedDependencyArtifact(DependencyDataError):
    pass


class DependencyStoreUnreadable(DependencyDataError):
    pass


class DependencyRecordNotFound(DependencyDataError):
    def __init__(self, path: Path | str) -> None:
        super().__init__(path, "no dependency record")


# ---------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------

class BuildfileError(LazyMakeError):
    pass
