"""Task decomposition models.

- Task: One unit of work produced by decomposing an issue
- TaskGraph: Dependency graph with execution levels and a cycle flag
- Complexity: Size estimate for an issue
"""

from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class Complexity(str, Enum):
    """Issue size estimate returned by complexity analysis."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    XLARGE = "xlarge"


class Task(BaseModel):
    """A single task in an issue decomposition.

    The AI returns camelCase keys (``estimatedEffort``); both spellings
    are accepted.

    Attributes:
        id: Identifier, unique within one decomposition.
        title: Short description of the work.
        dependencies: Identifiers of tasks that must finish first. Unknown
            identifiers are tolerated and ignored when building the graph.
        estimated_effort: Opaque effort estimate (e.g. "1h", "30m").
        agent: Name of the agent expected to perform the task.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., min_length=1, description="Task identifier")

    title: str = Field(default="", description="What the task does")

    dependencies: List[str] = Field(
        default_factory=list,
        description="Identifiers of tasks this task depends on",
    )

    estimated_effort: str = Field(
        default="unknown",
        alias="estimatedEffort",
        description="Opaque effort estimate",
    )

    agent: str = Field(default="codegen", description="Assigned agent name")


class TaskGraph(BaseModel):
    """Dependency graph built from one decomposition.

    When ``has_cycles`` is False, every dependency of a task in level i
    appears in some level j < i. When it is True, the levels are
    best-effort and must not be scheduled.

    Attributes:
        tasks: The decomposition, in input order.
        levels: Task identifiers grouped by execution level.
        has_cycles: Whether a dependency cycle was detected.
    """

    model_config = ConfigDict(frozen=True)

    tasks: List[Task] = Field(default_factory=list)

    levels: List[List[str]] = Field(default_factory=list)

    has_cycles: bool = False

    def level_of(self, task_id: str) -> int:
        """Index of the level holding a task.

        Raises:
            KeyError: If the task is not in any level.
        """
        for index, level in enumerate(self.levels):
            if task_id in level:
                return index
        raise KeyError(task_id)
