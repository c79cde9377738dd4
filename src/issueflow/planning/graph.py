"""Task graph construction and execution plan rendering.

build_task_graph levels a decomposition with a memoized depth-first
traversal. Each task is marked in-progress while its dependencies are
visited and done afterwards; its level is one more than the deepest
level among its dependencies, so level 0 holds tasks with nothing to
wait for. Meeting an in-progress task again is a back-edge: the cycle
flag is set and traversal carries on, leaving the levels best-effort.

Roots are visited in input order and dependencies in declared order,
so the result is deterministic for a fixed input list.
"""

import logging
from enum import Enum
from typing import Dict, Iterator, List, Sequence, Tuple

from src.issueflow.planning.models import Task, TaskGraph


logger = logging.getLogger(__name__)


class CyclicDependencyError(Exception):
    """Raised when a decomposition contains a dependency cycle.

    Attributes:
        task_ids: Identifiers of the tasks in the decomposition.
    """

    def __init__(self, task_ids: Sequence[str]):
        self.task_ids = list(task_ids)
        super().__init__(
            "Circular dependency detected in task graph: "
            + ", ".join(self.task_ids)
        )


class _Mark(Enum):
    IN_PROGRESS = 1
    DONE = 2


def build_task_graph(tasks: Sequence[Task]) -> TaskGraph:
    """Build the dependency graph for a decomposition.

    Never raises for cycles; inspect ``has_cycles`` on the result.

    Args:
        tasks: The flat task list.

    Returns:
        TaskGraph with levels ordered so dependencies come first.

    Example:
        >>> graph = build_task_graph([
        ...     Task(id="t1"),
        ...     Task(id="t2", dependencies=["t1"]),
        ... ])
        >>> graph.levels
        [['t1'], ['t2']]
    """
    by_id: Dict[str, Task] = {}
    for task in tasks:
        by_id.setdefault(task.id, task)

    marks: Dict[str, _Mark] = {}
    heights: Dict[str, int] = {}
    buckets: List[List[str]] = []
    has_cycles = False

    def enter(task_id: str) -> Tuple[str, Iterator[str]]:
        marks[task_id] = _Mark.IN_PROGRESS
        heights[task_id] = 0
        return task_id, iter(by_id[task_id].dependencies)

    for root in tasks:
        if root.id in marks:
            continue

        # Explicit stack of (task id, remaining dependencies); long chains
        # must not run into the interpreter's recursion limit.
        stack = [enter(root.id)]
        while stack:
            task_id, dependencies = stack[-1]
            descended = False
            for dependency in dependencies:
                mark = marks.get(dependency)
                if mark is _Mark.IN_PROGRESS:
                    has_cycles = True
                elif mark is _Mark.DONE:
                    heights[task_id] = max(heights[task_id], heights[dependency] + 1)
                elif dependency in by_id:
                    stack.append(enter(dependency))
                    descended = True
                    break
            if descended:
                continue

            stack.pop()
            marks[task_id] = _Mark.DONE
            height = heights[task_id]
            while len(buckets) <= height:
                buckets.append([])
            buckets[height].append(task_id)
            if stack:
                parent = stack[-1][0]
                heights[parent] = max(heights[parent], height + 1)

    if has_cycles:
        logger.warning(
            "Dependency cycle detected while building task graph",
            extra={"task_count": len(tasks)},
        )

    return TaskGraph(tasks=list(tasks), levels=buckets, has_cycles=has_cycles)


def create_execution_plan(graph: TaskGraph) -> List[str]:
    """Render one advisory line per level.

    Lines are 1-indexed; levels holding more than one task are marked
    "(parallel)". Nothing is scheduled.

    Example:
        >>> create_execution_plan(TaskGraph(levels=[["a"], ["b", "c"]]))
        ['Level 1: a', 'Level 2: b, c (parallel)']
    """
    plan: List[str] = []
    for index, level in enumerate(graph.levels, start=1):
        if not level:
            continue
        line = f"Level {index}: {', '.join(level)}"
        if len(level) > 1:
            line += " (parallel)"
        plan.append(line)
    return plan


def ensure_acyclic(graph: TaskGraph) -> TaskGraph:
    """Refuse a cyclic graph.

    Raises:
        CyclicDependencyError: If the graph's cycle flag is set.
    """
    if graph.has_cycles:
        raise CyclicDependencyError([task.id for task in graph.tasks])
    return graph


def plan_tasks(tasks: Sequence[Task]) -> Tuple[TaskGraph, List[str]]:
    """Build, validate and render a decomposition.

    Returns:
        Tuple of (graph, execution plan lines).

    Raises:
        CyclicDependencyError: If the tasks contain a dependency cycle.
    """
    graph = ensure_acyclic(build_task_graph(tasks))
    return graph, create_execution_plan(graph)
