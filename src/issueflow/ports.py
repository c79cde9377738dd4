"""Capability ports used by the agents and the router.

Each port is a runtime-checkable Protocol so tests can substitute
AsyncMock objects and production code can pass the concrete
implementations:

- IssueStore: src.issueflow.github.client.GitHubClient
- TextGenerator: src.issueflow.llm.client.ChatTextGenerator
- VersionControl: src.issueflow.runner.git.GitRepository
"""

from typing import Any, Dict, List, Protocol, Sequence, runtime_checkable


class PortFailure(Exception):
    """Base class for failures reported by a capability port.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


@runtime_checkable
class IssueStore(Protocol):
    """Issue tracker operations."""

    async def get_issue(self, issue_number: int) -> Dict[str, Any]:
        ...

    async def add_labels(self, issue_number: int, labels: Sequence[str]) -> None:
        ...

    async def remove_label(self, issue_number: int, label: str) -> None:
        ...

    async def create_comment(self, issue_number: int, body: str) -> Dict[str, Any]:
        ...

    async def update_issue_state(self, issue_number: int, state: str) -> Dict[str, Any]:
        ...

    async def list_issues(self, state: str = "open") -> List[Dict[str, Any]]:
        ...


@runtime_checkable
class TextGenerator(Protocol):
    """Prompt-in, text-out generation."""

    async def generate(self, prompt: str, max_tokens: int = 1000) -> str:
        ...


@runtime_checkable
class VersionControl(Protocol):
    """Working-copy operations on the target repository."""

    async def create_branch(self, name: str) -> None:
        ...

    async def stage(self, paths: Sequence[str]) -> None:
        ...

    async def commit(self, message: str) -> None:
        ...

    async def changed_files(self, base: str) -> List[str]:
        ...
