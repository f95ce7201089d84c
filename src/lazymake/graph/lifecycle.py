from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from lazymake.graph.patterns import PatternTable


# ---------------------------------------------------------------------------
# IntermediatePolicy
# ---------------------------------------------------------------------------

@dataclass
class IntermediatePolicy:
    """
    Tri-state classification of generated files.

    Without an override a target keeps its default classification
    (computed by the graph). Overrides force it either way and are
    matched like rules: exact names first, then the most specific `%`
    pattern, then declaration order.

    Intermediate files are deleted after the build that created them and
    a missing intermediate file does not by itself make its dependents
    stale.
    """

    overrides: PatternTable[bool] = field(default_factory=PatternTable)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    @classmethod
    def from_config(cls, cfg: Dict[str, Any] | None) -> "IntermediatePolicy":
        """
        Build from the buildfile entry (mapping order is declaration order):

        intermediate:
          "%.d": false
          "%.h": false
          "gen/%.tmp": true
        """
        policy = cls()
        for pattern, flag in (cfg or {}).items():
            policy.declare(str(pattern), bool(flag))
        return policy

    def declare(self, pattern: str, is_intermediate: bool) -> None:
        self.overrides.add(pattern, bool(is_intermediate))

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------
    def lookup(self, name: str) -> Optional[bool]:
        """Return the forced classification, or None when no override matches."""
        hit = self.overrides.lookup(name)
        return None if hit is None else hit[0]

    def is_intermediate(self, name: str, default: bool) -> bool:
        forced = self.lookup(name)
        return default if forced is None else forced

    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, bool]:
        return {str(p): v for p, v in self.overrides.entries}
