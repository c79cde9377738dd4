"""Coordinator agent.

Analyzes an issue's complexity, decomposes it into tasks, levels the
tasks into an execution plan and reports the result on the issue:

1. Post a "started" comment
2. Ask the decomposer for a complexity estimate and a task list
3. Build the task graph; refuse dependency cycles
4. Post the breakdown and plan
5. Label the issue ``complexity:<size>`` and ``agent:coordinator``

Any failure posts a "failed" comment and re-raises.
"""

import logging

from src.issueflow.agents.base import TrackerAgent, issue_number
from src.issueflow.agents.formatting import format_coordinator_comment
from src.issueflow.agents.models import CoordinatorResult
from src.issueflow.lifecycle.models import (
    AGENT_LABEL_PREFIX,
    COMPLEXITY_LABEL_PREFIX,
    IssueRecord,
)
from src.issueflow.planning.decomposer import TaskDecomposer
from src.issueflow.planning.graph import plan_tasks
from src.issueflow.ports import IssueStore


logger = logging.getLogger(__name__)


class CoordinatorAgent(TrackerAgent):
    """Plans the work for an issue.

    Attributes:
        store: Issue tracker.
        decomposer: Source of complexity estimates and task lists.
    """

    name = "coordinator"
    title = "CoordinatorAgent"

    def __init__(self, store: IssueStore, decomposer: TaskDecomposer):
        super().__init__(store)
        self.decomposer = decomposer

    async def execute(self, issue: IssueRecord) -> CoordinatorResult:
        """Plan an issue and report the plan.

        Args:
            issue: The issue to plan. Labels added on the tracker are also
                merged into this record.

        Returns:
            CoordinatorResult with complexity, graph and plan.

        Raises:
            CyclicDependencyError: If the task list has a dependency cycle.
            PortFailure: If the tracker or text generator fails.
        """
        number = issue_number(issue)

        try:
            await self._post_started(
                number,
                "Analyzing task complexity and creating execution plan...",
            )

            complexity = await self.decomposer.analyze_complexity(issue.title, issue.body)
            tasks = await self.decomposer.decompose(issue.title, issue.body)
            graph, execution_plan = plan_tasks(tasks)

            await self.store.create_comment(
                number,
                format_coordinator_comment(complexity, graph, execution_plan),
            )

            labels = [
                f"{COMPLEXITY_LABEL_PREFIX}{complexity.value}",
                f"{AGENT_LABEL_PREFIX}{self.name}",
            ]
            await self._add_labels(issue, number, labels)

        except Exception as e:
            logger.error(
                "Coordinator failed",
                extra={
                    "issue_number": number,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            await self._post_failed(number, str(e))
            raise

        logger.info(
            "Issue planned",
            extra={
                "issue_number": number,
                "complexity": complexity.value,
                "task_count": len(graph.tasks),
                "level_count": len(graph.levels),
            },
        )

        return CoordinatorResult(
            complexity=complexity,
            graph=graph,
            execution_plan=execution_plan,
            labels_added=labels,
        )

    async def process(self, issue: IssueRecord) -> IssueRecord:
        record = issue.model_copy(deep=True)
        await self.execute(record)
        return record
