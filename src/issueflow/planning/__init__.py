"""Task planning.

Decomposes an issue into tasks with dependencies, levels them into an
advisory execution plan, and detects dependency cycles.
"""

from src.issueflow.planning.decomposer import FALLBACK_TASKS, TaskDecomposer
from src.issueflow.planning.graph import (
    CyclicDependencyError,
    build_task_graph,
    create_execution_plan,
    plan_tasks,
)
from src.issueflow.planning.models import Complexity, Task, TaskGraph

__all__ = [
    # Models
    "Complexity",
    "Task",
    "TaskGraph",
    # Graph
    "CyclicDependencyError",
    "build_task_graph",
    "create_execution_plan",
    "plan_tasks",
    # Decomposition
    "FALLBACK_TASKS",
    "TaskDecomposer",
]
