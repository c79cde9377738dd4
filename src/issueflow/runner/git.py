"""Git working-copy operations.

GitRepository implements the VersionControl port by shelling out to the
``git`` executable through CommandRunner. Every failing git command
raises GitCommandError carrying the command, exit code and stderr.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from src.issueflow.ports import PortFailure
from src.issueflow.runner.command import CommandResult, CommandRunner


logger = logging.getLogger(__name__)


class GitCommandError(PortFailure):
    """Raised when a git command exits non-zero.

    Attributes:
        command: The argument vector that failed.
        exit_code: Process exit code.
        stderr: Captured standard error.
    """

    def __init__(self, command: Sequence[str], exit_code: int, stderr: str):
        self.command = list(command)
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"{' '.join(self.command)} failed with exit code {exit_code}: "
            f"{stderr.strip()}"
        )


class GitRepository:
    """A local git checkout.

    Attributes:
        path: Repository root.
        base_branch: Branch new feature branches start from.
        remote: Remote pulled before branching.

    Example:
        >>> repo = GitRepository(Path("/srv/checkout"))
        >>> await repo.create_branch("feature/issue-42")
        >>> await repo.stage(["src/app.py"])
        >>> await repo.commit("feat: Implement code for Issue #42")
    """

    def __init__(
        self,
        path: Path,
        base_branch: str = "main",
        remote: str = "origin",
        runner: Optional[CommandRunner] = None,
        timeout_seconds: float = 120,
    ):
        self.path = Path(path)
        self.base_branch = base_branch
        self.remote = remote
        self.runner = runner or CommandRunner(
            cwd=self.path, timeout_seconds=timeout_seconds
        )

    async def _git(self, *args: str) -> CommandResult:
        argv = ["git", *args]
        result = await self.runner.run(argv)
        if not result.success:
            raise GitCommandError(argv, result.exit_code, result.stderr)
        return result

    async def create_branch(self, name: str) -> None:
        """Check out a fresh branch from the updated base branch.

        When the branch cannot be created (typically because it already
        exists), the existing branch is checked out instead.

        Raises:
            GitCommandError: If neither creating nor checking out succeeds.
        """
        try:
            await self._git("checkout", self.base_branch)
            await self._git("pull", self.remote, self.base_branch)
            await self._git("checkout", "-b", name)
            logger.info(
                "Created branch",
                extra={"branch": name, "base_branch": self.base_branch},
            )
        except GitCommandError as e:
            logger.info(
                "Branch creation failed, checking out existing branch",
                extra={"branch": name, "error": e.stderr.strip()[:200]},
            )
            await self._git("checkout", name)

    async def stage(self, paths: Sequence[str]) -> None:
        for path in paths:
            await self._git("add", "--", path)

    async def commit(self, message: str) -> None:
        await self._git("commit", "-m", message)
        logger.info("Committed changes", extra={"commit_subject": message.splitlines()[0]})

    async def changed_files(self, base: str) -> List[str]:
        """Paths changed on the current branch relative to ``base``."""
        result = await self._git("diff", "--name-only", f"{base}...HEAD")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    async def current_branch(self) -> str:
        result = await self._git("rev-parse", "--abbrev-ref", "HEAD")
        return result.stdout.strip()
