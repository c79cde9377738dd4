"""Agent contract for the pipeline.

An agent is a named unit that receives an IssueRecord and returns its
replacement. Agents may fail by raising; the pipeline re-raises the
original exception unchanged.
"""

from typing import Any, Awaitable, Callable, Optional, Protocol, runtime_checkable

from src.issueflow.lifecycle.models import IssueRecord


@runtime_checkable
class Agent(Protocol):
    """Protocol every pipeline agent implements.

    Attributes:
        name: Agent name used in events and logs.
    """

    name: str

    async def process(self, issue: IssueRecord) -> IssueRecord:
        """Transform an issue record.

        Args:
            issue: The current issue record (owned by the agent until it returns).

        Returns:
            The replacement issue record.
        """
        ...


class AgentFailureError(Exception):
    """Raised when an agent cannot produce a valid issue record.

    Attributes:
        agent_name: Name of the failing agent.
        cause: The underlying exception, if any.
    """

    def __init__(
        self,
        agent_name: str,
        message: str,
        cause: Optional[Exception] = None,
    ):
        self.agent_name = agent_name
        self.cause = cause
        super().__init__(f"Agent {agent_name} failed: {message}")


class FunctionAgent:
    """Adapt a coroutine function into a pipeline agent.

    Example:
        >>> async def tag(issue):
        ...     issue.merge_labels(["validated"])
        ...     return issue
        >>> agent = FunctionAgent("validation", tag)
    """

    def __init__(
        self,
        name: str,
        fn: Callable[[IssueRecord], Awaitable[IssueRecord]],
    ):
        self.name = name
        self._fn = fn

    async def process(self, issue: IssueRecord) -> IssueRecord:
        return await self._fn(issue)

    def __repr__(self) -> str:
        return f"FunctionAgent(name={self.name!r})"


def ensure_issue_record(agent_name: str, value: Any) -> IssueRecord:
    """Check an agent's return value.

    Raises:
        AgentFailureError: If the agent returned something else.
    """
    if not isinstance(value, IssueRecord):
        raise AgentFailureError(
            agent_name,
            f"expected IssueRecord, got {type(value).__name__}",
        )
    return value
