"""GitHub issue tracker integration.

Async REST client (with rate limiting and retry) implementing the
IssueStore port, and the issue payload model.
"""

from src.issueflow.github.client import (
    GitHubAPIError,
    GitHubClient,
    RateLimitError,
)
from src.issueflow.github.models import GitHubIssue

__all__ = [
    "GitHubAPIError",
    "GitHubClient",
    "GitHubIssue",
    "RateLimitError",
]
