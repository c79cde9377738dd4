"""GitHub webhook event models.

Only ``issues`` events are modelled; the router decides what each
action means for the issue lifecycle.
"""

from enum import Enum
from typing import List

from pydantic import BaseModel, Field

from src.issueflow.lifecycle.models import IssueRecord


class IssueAction(str, Enum):
    """GitHub issue event actions the service understands.

    Attributes:
        OPENED: A new issue was created. Runs the agent pipeline.
        EDITED: An issue's title or body changed.
        LABELED: A label was added to an issue.
        CLOSED: The issue was closed in the tracker.
        REOPENED: A closed issue was reopened.
    """

    OPENED = "opened"
    EDITED = "edited"
    LABELED = "labeled"
    CLOSED = "closed"
    REOPENED = "reopened"


class GitHubIssueEvent(BaseModel):
    """Parsed GitHub issue webhook event.

    Attributes:
        action: The type of issue event.
        issue_number: The issue number within the repository.
        title: The issue title text.
        body: The issue body/description text. May be empty.
        labels: List of label names attached to the issue.
        repository: The repository name (without owner prefix).
        owner: The repository owner (user or organization).
        author: The GitHub username who created the issue.
    """

    action: IssueAction = Field(
        ...,
        description="The type of issue event that triggered the webhook",
    )

    issue_number: int = Field(
        ...,
        gt=0,
        description="The issue number within the repository (positive integer)",
    )

    title: str = Field(
        ...,
        min_length=1,
        description="The issue title text (cannot be empty)",
    )

    body: str = Field(default="", description="The issue body (may be empty)")

    labels: List[str] = Field(default_factory=list)

    repository: str = Field(..., min_length=1)

    owner: str = Field(..., min_length=1)

    author: str = Field(..., min_length=1)

    @property
    def issue_id(self) -> str:
        """Issue ID in format "{owner}/{repository}#{issue_number}"."""
        return f"{self.owner}/{self.repository}#{self.issue_number}"

    def to_issue_record(self) -> IssueRecord:
        """A fresh record for an issue the pipeline has not seen yet."""
        return IssueRecord(
            id=str(self.issue_number),
            title=self.title,
            body=self.body,
            labels=list(self.labels),
        )
