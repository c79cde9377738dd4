"""GitHub webhook parsing."""

from src.issueflow.webhook.handler import WebhookHandler
from src.issueflow.webhook.models import GitHubIssueEvent, IssueAction

__all__ = [
    "GitHubIssueEvent",
    "IssueAction",
    "WebhookHandler",
]
