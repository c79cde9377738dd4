"""Test agent.

Runs the configured test and coverage commands against the working copy.
The issue passes when the test command succeeds with no failures and
total coverage meets the threshold; it is labelled ``test:passed`` or
``test:failed`` accordingly.
"""

import logging
import re
from typing import Tuple

from src.issueflow.agents.base import TrackerAgent, issue_number
from src.issueflow.agents.formatting import format_test_comment
from src.issueflow.agents.models import TestRunResult
from src.issueflow.lifecycle.models import IssueRecord
from src.issueflow.pipeline.agent import AgentFailureError
from src.issueflow.ports import IssueStore
from src.issueflow.runner.command import CommandRunner


logger = logging.getLogger(__name__)


DEFAULT_COVERAGE_THRESHOLD = 80.0

PASSED_LABEL = "test:passed"
FAILED_LABEL = "test:failed"

_COUNT_PATTERNS = {
    "passed": re.compile(r"(\d+) passed"),
    "failed": re.compile(r"(\d+) failed"),
    "errors": re.compile(r"(\d+) errors?\b"),
}

# "TOTAL   120   10   92%" from coverage report
_COVERAGE_TOTAL = re.compile(r"^TOTAL\s.*?(\d+(?:\.\d+)?)%\s*$", re.MULTILINE)


def parse_test_counts(output: str, exit_ok: bool) -> Tuple[int, int]:
    """Extract (passed, failed) counts from a test runner summary.

    Errors count as failures. A failing run that reports no counts is
    treated as a single failure.
    """
    counts = {}
    for key, pattern in _COUNT_PATTERNS.items():
        matches = pattern.findall(output)
        counts[key] = int(matches[-1]) if matches else 0

    passed = counts["passed"]
    failed = counts["failed"] + counts["errors"]
    if not exit_ok and failed == 0:
        failed = 1
    return passed, failed


def parse_coverage(output: str) -> float:
    """Total coverage percentage from a coverage report, 0.0 if absent."""
    matches = _COVERAGE_TOTAL.findall(output)
    if not matches:
        return 0.0
    return float(matches[-1])


class TestAgent(TrackerAgent):
    """Runs tests and coverage for an issue's changes.

    Attributes:
        store: Issue tracker.
        runner: Runs the test and coverage commands.
        test_command: Test suite invocation.
        coverage_command: Coverage report invocation.
        coverage_threshold: Minimum total coverage percentage.
    """

    __test__ = False

    name = "test"
    title = "TestAgent"

    def __init__(
        self,
        store: IssueStore,
        runner: CommandRunner,
        test_command: str = "coverage run -m pytest -q",
        coverage_command: str = "coverage report",
        coverage_threshold: float = DEFAULT_COVERAGE_THRESHOLD,
    ):
        super().__init__(store)
        self.runner = runner
        self.test_command = test_command
        self.coverage_command = coverage_command
        self.coverage_threshold = coverage_threshold

    async def execute(self, issue: IssueRecord) -> TestRunResult:
        number = issue_number(issue)

        try:
            await self._post_started(number, "Running tests and checking coverage...")

            test_run = await self.runner.run(self.test_command)
            if test_run.exit_code == -1:
                raise RuntimeError(test_run.stderr or f"{self.test_command} could not be run")
            passed_tests, failed_tests = parse_test_counts(test_run.output, test_run.success)

            coverage_run = await self.runner.run(self.coverage_command)
            coverage = parse_coverage(coverage_run.output) if coverage_run.exit_code != -1 else 0.0

            passed = (
                test_run.success
                and failed_tests == 0
                and coverage >= self.coverage_threshold
            )
            result = TestRunResult(
                success=True,
                passed=passed,
                total_tests=passed_tests + failed_tests,
                passed_tests=passed_tests,
                failed_tests=failed_tests,
                coverage=coverage,
            )

            await self.store.create_comment(
                number, format_test_comment(result, self.coverage_threshold)
            )
            await self._add_labels(issue, number, [PASSED_LABEL if passed else FAILED_LABEL])

        except Exception as e:
            logger.error(
                "Test run failed",
                extra={
                    "issue_number": number,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            await self._post_failed(number, str(e))
            return TestRunResult(success=False, error=str(e))

        logger.info(
            "Tests completed",
            extra={
                "issue_number": number,
                "passed": result.passed,
                "failed_tests": result.failed_tests,
                "coverage": result.coverage,
            },
        )
        return result

    async def process(self, issue: IssueRecord) -> IssueRecord:
        record = issue.model_copy(deep=True)
        result = await self.execute(record)
        if not result.success:
            raise AgentFailureError(self.name, result.error or "test run failed")
        return record
