"""
Build graph declarations.

Exports the public API:
- TargetGraph
- Rule, RuleMatch
- Pattern, PatternTable
- LazyPrerequisites
- IntermediatePolicy
"""
from .graph import TargetGraph
from .rules import Rule, RuleMatch
from .patterns import Pattern, PatternTable
from .lazy import LazyPrerequisites
from .lifecycle import IntermediatePolicy
