"""
Build planning and execution.

Exports the public API:
- BuildEngine
- BuildOptions
- Planner, Plan
- Executor
- BuildResult, GoalOutcome, Target
"""
from .engine import BuildEngine
from .options import BuildOptions
from .planner import Plan, Planner
from .executor import Executor
from .state import BuildResult, GoalOutcome, Target
