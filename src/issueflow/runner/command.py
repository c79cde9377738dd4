"""Async subprocess execution.

Runs external tools (git, type checkers, linters, test runners) with a
timeout, capturing output line by line and logging it at debug level.
Commands are executed directly, never through a shell.
"""

import asyncio
import logging
import shlex
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

logger = logging.getLogger(__name__)


Command = Union[str, Sequence[str]]


@dataclass
class CommandResult:
    """Result of a command execution.

    Attributes:
        command: The argument vector that was executed.
        success: True when the command exited with code 0.
        exit_code: Process exit code (-1 for timeout/OS errors).
        stdout: Captured standard output.
        stderr: Captured standard error.
        duration_seconds: Wall-clock execution time.
        timed_out: True when the command was killed for exceeding the timeout.
    """

    command: List[str]
    success: bool
    exit_code: int
    stdout: str
    stderr: str
    duration_seconds: float
    timed_out: bool = False

    @property
    def output(self) -> str:
        """stdout and stderr joined, for parsers that read both."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


def split_command(command: Command) -> List[str]:
    """Normalize a command string or argument sequence into an argv list."""
    if isinstance(command, str):
        return shlex.split(command)
    return list(command)


class CommandRunner:
    """Executes commands as async subprocesses.

    Attributes:
        cwd: Working directory for every command.
        timeout_seconds: Maximum execution time before the process is killed.
    """

    def __init__(self, cwd: Optional[Path] = None, timeout_seconds: float = 600):
        self.cwd = cwd
        self.timeout_seconds = timeout_seconds

    async def run(self, command: Command) -> CommandResult:
        """Execute a command and capture its output.

        Never raises for a failing command; inspect ``success`` and
        ``exit_code`` on the result.

        Args:
            command: A command string (split with shell quoting rules)
                or an argument sequence.

        Returns:
            CommandResult with exit code, captured output, and duration.
        """
        argv = split_command(command)
        start_time = time.monotonic()

        if not argv:
            return CommandResult(
                command=argv,
                success=False,
                exit_code=-1,
                stdout="",
                stderr="Empty command",
                duration_seconds=0.0,
            )

        logger.debug(
            "Running command",
            extra={"command": argv, "cwd": str(self.cwd) if self.cwd else None},
        )

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=str(self.cwd) if self.cwd else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.error(
                "Failed to start command",
                extra={"command": argv, "error": str(exc)},
            )
            return CommandResult(
                command=argv,
                success=False,
                exit_code=-1,
                stdout="",
                stderr=f"Failed to start {argv[0]}: {exc}",
                duration_seconds=time.monotonic() - start_time,
            )

        stdout_lines: List[str] = []
        stderr_lines: List[str] = []

        try:
            await asyncio.wait_for(
                self._collect(process, stdout_lines, stderr_lines, argv[0]),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.error(
                "Command timed out",
                extra={"command": argv, "timeout": self.timeout_seconds},
            )
            return CommandResult(
                command=argv,
                success=False,
                exit_code=-1,
                stdout="\n".join(stdout_lines),
                stderr=f"Process timed out after {self.timeout_seconds}s",
                duration_seconds=time.monotonic() - start_time,
                timed_out=True,
            )

        exit_code = process.returncode if process.returncode is not None else -1
        duration = time.monotonic() - start_time

        logger.debug(
            "Command finished",
            extra={"command": argv, "exit_code": exit_code, "duration": duration},
        )

        return CommandResult(
            command=argv,
            success=exit_code == 0,
            exit_code=exit_code,
            stdout="\n".join(stdout_lines),
            stderr="\n".join(stderr_lines),
            duration_seconds=duration,
        )

    async def _collect(
        self,
        process: asyncio.subprocess.Process,
        stdout_lines: List[str],
        stderr_lines: List[str],
        program: str,
    ) -> None:
        await asyncio.gather(
            self._read_stream(process.stdout, stdout_lines, program, "stdout"),
            self._read_stream(process.stderr, stderr_lines, program, "stderr"),
        )
        await process.wait()

    async def _read_stream(
        self,
        stream: Optional[asyncio.StreamReader],
        sink: List[str],
        program: str,
        stream_name: str,
    ) -> None:
        if stream is None:
            return

        while True:
            raw_line = await stream.readline()
            if not raw_line:
                break
            line = raw_line.decode("utf-8", errors="replace").rstrip("\n")
            sink.append(line)
            logger.debug("%s %s: %s", program, stream_name, line)
