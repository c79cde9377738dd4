"""GitHub issue models.

GitHubIssue is the subset of the REST API issue payload the pipeline
uses, plus the conversion into the lifecycle IssueRecord.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from src.issueflow.lifecycle.models import IssueRecord, IssueState, state_from_label


class GitHubIssue(BaseModel):
    """An issue as returned by the GitHub REST API.

    Attributes:
        number: Issue number within the repository.
        title: Issue title.
        body: Issue body, empty when GitHub returns null.
        status: Tracker status, "open" or "closed".
        labels: Label names in the order GitHub returns them.
        assignees: Assignee logins.
        created_at: Creation timestamp.
        updated_at: Last update timestamp.
    """

    number: int = Field(..., gt=0, description="Issue number")

    title: str = Field(default="", description="Issue title")

    body: str = Field(default="", description="Issue body (may be empty)")

    status: str = Field(
        default="open",
        pattern="^(open|closed)$",
        description="Tracker status",
    )

    labels: List[str] = Field(default_factory=list)

    assignees: List[str] = Field(default_factory=list)

    created_at: Optional[datetime] = None

    updated_at: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "GitHubIssue":
        """Build from a GitHub API issue payload.

        Labels may arrive as objects with a ``name`` key or as plain
        strings; both are accepted.

        Args:
            data: JSON-decoded issue payload.

        Returns:
            GitHubIssue instance.
        """
        labels = []
        for label in data.get("labels") or []:
            name = label.get("name") if isinstance(label, dict) else label
            if name:
                labels.append(str(name))

        assignees = [
            assignee["login"]
            for assignee in data.get("assignees") or []
            if isinstance(assignee, dict) and assignee.get("login")
        ]

        return cls(
            number=data["number"],
            title=data.get("title") or "",
            body=data.get("body") or "",
            status=data.get("state") or "open",
            labels=labels,
            assignees=assignees,
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    @property
    def lifecycle_state(self) -> IssueState:
        """Lifecycle state implied by the labels and tracker status.

        The first ``state:<x>`` label wins. Without one, a closed issue
        is CLOSED and an open one is NEW.
        """
        for label in self.labels:
            state = state_from_label(label)
            if state is not None:
                return state
        if self.status == "closed":
            return IssueState.CLOSED
        return IssueState.NEW

    def to_issue_record(self) -> IssueRecord:
        """Convert to the record the state machine and agents operate on."""
        return IssueRecord(
            id=str(self.number),
            title=self.title,
            body=self.body,
            state=self.lifecycle_state,
            labels=list(self.labels),
            assignee=self.assignees[0] if self.assignees else None,
        )
