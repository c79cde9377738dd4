"""Shared plumbing for tracker-aware agents."""

import logging
from typing import Optional, Sequence

from src.issueflow.agents.formatting import format_failed_comment, format_started_comment
from src.issueflow.lifecycle.models import IssueRecord
from src.issueflow.ports import IssueStore


logger = logging.getLogger(__name__)


def issue_number(issue: IssueRecord) -> int:
    """Tracker issue number for a record.

    Raises:
        ValueError: If the record id is not a positive integer.
    """
    try:
        number = int(issue.id)
    except ValueError:
        raise ValueError(f"Issue id is not a tracker issue number: {issue.id!r}") from None
    if number <= 0:
        raise ValueError(f"Issue id is not a tracker issue number: {issue.id!r}")
    return number


class TrackerAgent:
    """Base class for agents that report progress as issue comments.

    Subclasses set ``name`` (used by the pipeline and the router) and
    ``title`` (used in comments).

    Attributes:
        store: Issue tracker the agent comments on and labels.
    """

    name = "agent"
    title = "Agent"

    def __init__(self, store: IssueStore):
        self.store = store

    async def _post_started(self, number: int, detail: str, target: Optional[str] = None) -> None:
        await self.store.create_comment(
            number, format_started_comment(self.title, detail, target)
        )

    async def _post_failed(self, number: int, error: str) -> None:
        """Report a failure on the issue.

        A failure to post is logged and does not mask the original error.
        """
        try:
            await self.store.create_comment(number, format_failed_comment(self.title, error))
        except Exception as e:
            logger.error(
                "Failed to post failure comment",
                extra={"agent": self.name, "issue_number": number, "error": str(e)},
            )

    async def _add_labels(self, issue: IssueRecord, number: int, labels: Sequence[str]) -> None:
        await self.store.add_labels(number, list(labels))
        issue.merge_labels(labels)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
