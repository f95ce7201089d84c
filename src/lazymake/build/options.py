"""
Central configuration object for a build run.
Everything in lazymake.build receives an instance of BuildOptions.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

# ---------------------------------------------------------------------------
# Option profiles (optional presets)
# ---------------------------------------------------------------------------

BUILD_PROFILES: Dict[str, Dict[str, Any]] = {
    "serial": {"jobs": 1, "keep_going": False},
    "default": {"jobs": 1, "keep_going": True},
    "parallel": {"jobs": os.cpu_count() or 1, "keep_going": True},
}

STATE_DIRNAME = ".lazymake"


def _resolve(path: str | Path | None) -> Optional[Path]:
    if path is None:
        return None
    return Path(path).expanduser().resolve()


@dataclass
class BuildOptions:
    """
    Fields:
      root:             directory target names are relative to
      jobs:             max concurrently running actions
      keep_going:       finish independent goals after a failure
      delete_on_error:  remove the target of a failed action
      track_commands:   rebuild when a target's command signature changes
      dep_suffix:       suffix of dependency records
      state_dir:        where history and provenance are kept (under root)
    """

    root: Path = field(default_factory=Path.cwd)
    jobs: int = 1
    keep_going: bool = True
    delete_on_error: bool = True
    track_commands: bool = True
    dep_suffix: str = ".d"
    state_dir: str = STATE_DIRNAME

    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("lazymake"))

    # -----------------------------------------------------------------------
    # Post-init
    # -----------------------------------------------------------------------
    def __post_init__(self):
        self.root = _resolve(self.root)
        self.jobs = max(1, int(self.jobs))

        # Configure logger if not configured
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("[lazymake] %(message)s"))
            self.logger.addHandler(handler)
        if self.logger.level == logging.NOTSET:
            self.logger.setLevel(logging.INFO)

    # -----------------------------------------------------------------------
    # Construction
    # -----------------------------------------------------------------------
    @classmethod
    def from_config(
        cls,
        cfg: Dict[str, Any] | None,
        root: str | Path | None = None,
        **overrides: Any,
    ) -> "BuildOptions":
        """
        Build from the buildfile entry, then apply overrides (CLI flags):

        options:
          profile: parallel
          jobs: 8
          keep_going: false
        """
        cfg = dict(cfg or {})

        # Step 1: profile (a command-line profile replaces the buildfile one)
        profile_name = overrides.pop("profile", None) or cfg.pop("profile", None)
        cfg.pop("profile", None)
        if profile_name and profile_name not in BUILD_PROFILES:
            raise ValueError(
                f"Unknown profile '{profile_name}'. Choose one of {list(BUILD_PROFILES)}"
            )
        profile_data = BUILD_PROFILES.get(profile_name, {}) if profile_name else {}

        # Step 2: profile -> buildfile -> explicit overrides (None = not given)
        merged = {**profile_data, **cfg}
        merged.update({k: v for k, v in overrides.items() if v is not None})

        known = set(cls.__dataclass_fields__) - {"root", "logger"}
        unknown = set(merged) - known
        if unknown:
            raise ValueError(f"Unknown build option(s): {', '.join(sorted(unknown))}")

        return cls(root=root if root is not None else Path.cwd(), **merged)

    # -----------------------------------------------------------------------
    # Utility
    # -----------------------------------------------------------------------
    @property
    def state_path(self) -> Path:
        return self.root / self.state_dir

    def summary(self) -> Dict[str, Any]:
        """Return a dictionary summary for debugging/logging."""
        return {
            "root": str(self.root),
            "jobs": self.jobs,
            "keep_going": self.keep_going,
            "delete_on_error": self.delete_on_error,
            "track_commands": self.track_commands,
            "dep_suffix": self.dep_suffix,
            "state_dir": self.state_dir,
        }
