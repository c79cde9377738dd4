"""Quality review agent.

Runs static checks over the working copy and scores the result:

- Type check command: every ``error`` diagnostic counts against the score
- Lint command: error and warning diagnostics count separately
- Security scan: changed Python files are searched for dangerous calls

The score is ``100 - 10*type_errors - 5*lint_errors - 2*lint_warnings
- 8*security_issues`` clamped to [0, 100]. A score below the threshold
posts an escalation comment and labels the issue ``blocked:quality-review``.
"""

import logging
import re
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from src.issueflow.agents.base import TrackerAgent, issue_number
from src.issueflow.agents.formatting import format_escalation_comment, format_review_comment
from src.issueflow.agents.models import (
    FindingCategory,
    FindingSeverity,
    QualityFinding,
    QualityMetrics,
    ReviewResult,
)
from src.issueflow.lifecycle.models import IssueRecord
from src.issueflow.pipeline.agent import AgentFailureError
from src.issueflow.ports import IssueStore, VersionControl
from src.issueflow.runner.command import CommandRunner


logger = logging.getLogger(__name__)


DEFAULT_QUALITY_THRESHOLD = 80

BLOCKED_LABEL = "blocked:quality-review"

# path:line[:col]: message
DIAGNOSTIC_PATTERN = re.compile(r"^(?P<file>[^\s:][^:]*):(?P<line>\d+)(?::\d+)?:\s*(?P<message>.+)$")

SECURITY_PATTERNS: Tuple[Tuple[re.Pattern, str], ...] = (
    (re.compile(r"(?<![\w.])eval\("), "Use of eval() is dangerous"),
    (re.compile(r"(?<![\w.])exec\("), "Use of exec() is dangerous"),
    (re.compile(r"shell\s*=\s*True"), "subprocess call with shell=True"),
    (re.compile(r"pickle\.loads?\("), "Unpickling untrusted data"),
    (re.compile(r"yaml\.load\((?![^)]*Loader)"), "yaml.load() without an explicit Loader"),
)


def diagnostic_severity(message: str) -> FindingSeverity:
    """Severity implied by a diagnostic message prefix."""
    lowered = message.lstrip().lower()
    if lowered.startswith("warning"):
        return FindingSeverity.WARNING
    if lowered.startswith("note"):
        return FindingSeverity.INFO
    return FindingSeverity.ERROR


def parse_diagnostics(output: str, category: FindingCategory) -> List[QualityFinding]:
    """Parse ``path:line[:col]: message`` lines from tool output.

    Lines in any other shape (summaries, banners) are ignored.

    Example:
        >>> findings = parse_diagnostics(
        ...     "app.py:3: error: Incompatible types\\nFound 1 error",
        ...     FindingCategory.TYPE_CHECK,
        ... )
        >>> (findings[0].file, findings[0].line)
        ('app.py', 3)
    """
    findings = []
    for raw_line in output.splitlines():
        match = DIAGNOSTIC_PATTERN.match(raw_line.strip())
        if match is None:
            continue
        message = match.group("message").strip()
        findings.append(
            QualityFinding(
                severity=diagnostic_severity(message),
                category=category,
                file=match.group("file"),
                line=int(match.group("line")),
                message=message,
            )
        )
    return findings


def scan_source(path: str, content: str) -> List[QualityFinding]:
    """Search one file's content for dangerous patterns."""
    findings = []
    for line_number, line in enumerate(content.splitlines(), start=1):
        for pattern, message in SECURITY_PATTERNS:
            if pattern.search(line):
                findings.append(
                    QualityFinding(
                        severity=FindingSeverity.WARNING,
                        category=FindingCategory.SECURITY,
                        file=path,
                        line=line_number,
                        message=message,
                    )
                )
    return findings


def calculate_quality_score(metrics: QualityMetrics) -> int:
    """Score review metrics, clamped to [0, 100].

    Example:
        >>> calculate_quality_score(QualityMetrics(type_errors=1, lint_warnings=2))
        86
    """
    score = 100
    score -= metrics.type_errors * 10
    score -= metrics.lint_errors * 5
    score -= metrics.lint_warnings * 2
    score -= metrics.security_issues * 8
    return max(0, min(100, score))


class ReviewAgent(TrackerAgent):
    """Scores the working copy and escalates low-quality changes.

    Attributes:
        store: Issue tracker.
        vcs: Working copy, used to list changed files.
        runner: Runs the type check and lint commands.
        repo_path: Root of the working copy.
        type_check_command: Type checker invocation (empty to skip).
        lint_command: Linter invocation (empty to skip).
        quality_threshold: Minimum passing score.
        base_branch: Branch the changes are compared against.
    """

    name = "review"
    title = "ReviewAgent"

    def __init__(
        self,
        store: IssueStore,
        vcs: VersionControl,
        runner: CommandRunner,
        repo_path: Path,
        type_check_command: str = "mypy .",
        lint_command: str = "ruff check .",
        quality_threshold: int = DEFAULT_QUALITY_THRESHOLD,
        base_branch: str = "main",
    ):
        super().__init__(store)
        self.vcs = vcs
        self.runner = runner
        self.repo_path = Path(repo_path)
        self.type_check_command = type_check_command
        self.lint_command = lint_command
        self.quality_threshold = quality_threshold
        self.base_branch = base_branch

    async def execute(self, issue: IssueRecord) -> ReviewResult:
        """Review the working copy for an issue.

        Returns:
            ReviewResult. ``success`` is False when the checks could not
            be run; ``passed`` reflects the score otherwise.
        """
        number = issue_number(issue)
        findings: List[QualityFinding] = []
        metrics = QualityMetrics()

        try:
            await self._post_started(
                number,
                "Running static analysis and security scan...",
                target=f"changes since {self.base_branch}",
            )

            type_findings = await self._run_check(
                self.type_check_command, FindingCategory.TYPE_CHECK
            )
            metrics.type_errors = _count(type_findings, FindingSeverity.ERROR)

            lint_findings = await self._run_check(self.lint_command, FindingCategory.LINT)
            metrics.lint_errors = _count(lint_findings, FindingSeverity.ERROR)
            metrics.lint_warnings = _count(lint_findings, FindingSeverity.WARNING)

            changed = await self.vcs.changed_files(self.base_branch)
            security_findings = self._scan_files(changed)
            metrics.security_issues = len(security_findings)
            metrics.files_reviewed = len(changed)

            findings = [
                finding
                for finding in type_findings + lint_findings + security_findings
                if finding.severity != FindingSeverity.INFO
            ]

            score = calculate_quality_score(metrics)
            result = ReviewResult(
                success=True,
                quality_score=score,
                passed=score >= self.quality_threshold,
                findings=findings,
                metrics=metrics,
            )

            await self.store.create_comment(
                number, format_review_comment(result, self.quality_threshold)
            )
            if not result.passed:
                await self._escalate(issue, number, result)

        except Exception as e:
            logger.error(
                "Review failed",
                extra={
                    "issue_number": number,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            await self._post_failed(number, str(e))
            return ReviewResult(
                success=False,
                findings=findings,
                metrics=metrics,
                error=str(e),
            )

        logger.info(
            "Review completed",
            extra={
                "issue_number": number,
                "quality_score": result.quality_score,
                "passed": result.passed,
                "finding_count": len(findings),
            },
        )
        return result

    async def process(self, issue: IssueRecord) -> IssueRecord:
        record = issue.model_copy(deep=True)
        result = await self.execute(record)
        if not result.success:
            raise AgentFailureError(self.name, result.error or "review failed")
        return record

    async def _run_check(
        self,
        command: Optional[str],
        category: FindingCategory,
    ) -> List[QualityFinding]:
        if not command:
            return []
        result = await self.runner.run(command)
        if result.exit_code == -1:
            # The tool never produced diagnostics (missing binary or timeout)
            raise RuntimeError(result.stderr or f"{command} could not be run")
        return parse_diagnostics(result.output, category)

    def _scan_files(self, paths: Sequence[str]) -> List[QualityFinding]:
        findings = []
        for path in paths:
            if not path.endswith(".py"):
                continue
            full_path = self.repo_path / path
            if not full_path.is_file():
                continue
            content = full_path.read_text(encoding="utf-8", errors="replace")
            findings.extend(scan_source(path, content))
        return findings

    async def _escalate(self, issue: IssueRecord, number: int, result: ReviewResult) -> None:
        await self.store.create_comment(
            number,
            format_escalation_comment(
                result.quality_score, self.quality_threshold, len(result.findings)
            ),
        )
        await self._add_labels(issue, number, [BLOCKED_LABEL])


def _count(findings: Sequence[QualityFinding], severity: FindingSeverity) -> int:
    return sum(1 for finding in findings if finding.severity == severity)
