"""Result models returned by the agents' ``execute`` methods."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from src.issueflow.planning.models import Complexity, TaskGraph


class CoordinatorResult(BaseModel):
    """Outcome of complexity analysis and planning.

    Attributes:
        complexity: Estimated issue size.
        graph: Task dependency graph.
        execution_plan: Advisory level-by-level plan lines.
        labels_added: Labels the coordinator put on the issue.
    """

    complexity: Complexity
    graph: TaskGraph
    execution_plan: List[str] = Field(default_factory=list)
    labels_added: List[str] = Field(default_factory=list)


class GeneratedFile(BaseModel):
    """A file produced by code generation."""

    path: str = Field(..., min_length=1)
    content: str = ""


class CodeGenResult(BaseModel):
    """Outcome of code generation.

    Attributes:
        success: Whether files were written and committed.
        files_generated: Repository-relative paths written so far.
        branch_name: Feature branch holding the changes.
        summary: Model-provided summary, when given.
        error: Failure description when success is False.
    """

    success: bool
    files_generated: List[str] = Field(default_factory=list)
    branch_name: str
    summary: Optional[str] = None
    error: Optional[str] = None


class FindingSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class FindingCategory(str, Enum):
    TYPE_CHECK = "type_check"
    LINT = "lint"
    SECURITY = "security"


class QualityFinding(BaseModel):
    """A single problem reported by review.

    Attributes:
        severity: How serious the finding is.
        category: Which check produced it.
        file: Repository-relative path.
        line: 1-based line number, when known.
        message: Tool or scanner message.
    """

    severity: FindingSeverity
    category: FindingCategory
    file: str
    line: Optional[int] = None
    message: str


class QualityMetrics(BaseModel):
    """Counts feeding the quality score."""

    type_errors: int = 0
    lint_errors: int = 0
    lint_warnings: int = 0
    security_issues: int = 0
    files_reviewed: int = 0


class ReviewResult(BaseModel):
    """Outcome of a quality review.

    Attributes:
        success: Whether the review ran to completion.
        quality_score: Score in [0, 100].
        passed: Whether the score met the threshold.
        findings: Everything the checks reported.
        metrics: Counts per finding kind.
        error: Failure description when success is False.
    """

    success: bool
    quality_score: int = 0
    passed: bool = False
    findings: List[QualityFinding] = Field(default_factory=list)
    metrics: QualityMetrics = Field(default_factory=QualityMetrics)
    error: Optional[str] = None


class TestRunResult(BaseModel):
    """Outcome of running the test suite and coverage.

    Attributes:
        success: Whether the commands could be run at all.
        passed: Tests passed and coverage met the threshold.
        total_tests: Tests collected, as reported by the runner.
        passed_tests: Tests that passed.
        failed_tests: Tests that failed or errored.
        coverage: Total line coverage percentage.
        error: Failure description when success is False.
    """

    __test__ = False

    success: bool
    passed: bool = False
    total_tests: int = 0
    passed_tests: int = 0
    failed_tests: int = 0
    coverage: float = 0.0
    error: Optional[str] = None
