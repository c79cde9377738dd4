"""External process execution.

Async subprocess runner with timeout and output capture, and the git
implementation of the VersionControl port built on it.
"""

from src.issueflow.runner.command import CommandResult, CommandRunner, split_command
from src.issueflow.runner.git import GitCommandError, GitRepository

__all__ = [
    "CommandResult",
    "CommandRunner",
    "GitCommandError",
    "GitRepository",
    "split_command",
]
