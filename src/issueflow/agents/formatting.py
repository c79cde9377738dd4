"""Issue comment formatting for agent progress reports.

Every agent posts a "started" comment, a "completed" comment with its
results, and a "failed" comment when it cannot finish. The builders here
produce the GitHub-flavored markdown for each.
"""

from typing import List, Optional

from src.issueflow.agents.models import (
    CodeGenResult,
    FindingSeverity,
    QualityFinding,
    ReviewResult,
    TestRunResult,
)
from src.issueflow.lifecycle.models import IssueState
from src.issueflow.planning.models import Complexity, TaskGraph


MAX_LISTED_FINDINGS = 10


def format_started_comment(agent_title: str, detail: str, target: Optional[str] = None) -> str:
    """Announce that an agent picked the issue up.

    Example:
        >>> print(format_started_comment("ReviewAgent", "Running checks...", "feature/issue-7"))
        🤖 **ReviewAgent Started**
        <BLANKLINE>
        Running checks...
        <BLANKLINE>
        **Target:** `feature/issue-7`
    """
    comment = f"🤖 **{agent_title} Started**\n\n{detail}"
    if target:
        comment += f"\n\n**Target:** `{target}`"
    return comment


def format_failed_comment(agent_title: str, error: str) -> str:
    return f"❌ **{agent_title} Failed**\n\n```\n{error}\n```"


def format_coordinator_comment(
    complexity: Complexity,
    graph: TaskGraph,
    execution_plan: List[str],
) -> str:
    """Render complexity, task breakdown and execution plan.

    Args:
        complexity: Estimated issue size.
        graph: The task graph (its tasks are listed in input order).
        execution_plan: Lines from create_execution_plan.

    Returns:
        Markdown comment body.
    """
    lines = [
        "✅ **CoordinatorAgent Completed**",
        "",
        f"**Complexity:** {complexity.value.upper()}",
        f"**Tasks Identified:** {len(graph.tasks)}",
        f"**Execution Levels:** {len(graph.levels)}",
        "",
        "### Task Breakdown",
        "",
    ]

    for task in graph.tasks:
        lines.append(f"- **{task.id}**: {task.title}")
        lines.append(f"  - Agent: `{task.agent}`")
        lines.append(f"  - Effort: {task.estimated_effort}")
        if task.dependencies:
            lines.append(f"  - Dependencies: {', '.join(task.dependencies)}")

    lines.extend(["", "### Execution Plan", ""])
    lines.extend(execution_plan)

    return "\n".join(lines) + "\n"


def format_codegen_comment(result: CodeGenResult) -> str:
    files = "\n".join(f"- `{path}`" for path in result.files_generated)
    comment = (
        "✅ **CodeGenAgent Completed**\n\n"
        f"Generated {len(result.files_generated)} files:\n{files}\n\n"
        f"**Branch:** `{result.branch_name}`"
    )
    if result.summary:
        comment += f"\n\n{result.summary}"
    return comment


def _format_finding(finding: QualityFinding) -> str:
    icon = "🔴" if finding.severity == FindingSeverity.ERROR else "🟡"
    line = finding.line if finding.line is not None else "?"
    return f"{icon} **{finding.file}:{line}** - {finding.message}"


def format_review_comment(result: ReviewResult, threshold: int) -> str:
    """Render the review score, metrics and the first findings.

    At most MAX_LISTED_FINDINGS findings are listed; the rest are
    summarized by count.
    """
    status = "✅" if result.passed else "❌"
    verdict = "(PASSED)" if result.passed else "(FAILED)"
    metrics = result.metrics

    lines = [
        f"{status} **ReviewAgent Completed**",
        "",
        f"**Quality Score: {result.quality_score}/100** {verdict}",
        "",
        "### Metrics",
        f"- Type Errors: {metrics.type_errors}",
        f"- Lint Errors: {metrics.lint_errors}",
        f"- Lint Warnings: {metrics.lint_warnings}",
        f"- Security Issues: {metrics.security_issues}",
        f"- Files Reviewed: {metrics.files_reviewed}",
    ]

    if result.findings:
        lines.extend(["", f"### Issues Found ({len(result.findings)})", ""])
        lines.extend(
            _format_finding(finding)
            for finding in result.findings[:MAX_LISTED_FINDINGS]
        )
        hidden = len(result.findings) - MAX_LISTED_FINDINGS
        if hidden > 0:
            lines.extend(["", f"_...and {hidden} more issues_"])

    if not result.passed:
        lines.extend([
            "",
            f"⚠️ **Quality threshold not met ({threshold} required)**",
            "This issue will be escalated for review.",
        ])

    return "\n".join(lines) + "\n"


def format_escalation_comment(score: int, threshold: int, finding_count: int) -> str:
    return (
        "🚨 **ESCALATION: Quality Review Failed**\n\n"
        "This issue requires attention from a maintainer.\n\n"
        f"**Score:** {score}/{threshold}\n"
        f"**Issues:** {finding_count}"
    )


def format_test_comment(result: TestRunResult, threshold: float) -> str:
    status = "✅" if result.passed else "❌"
    coverage_mark = "✅" if result.coverage >= threshold else "❌"

    lines = [
        f"{status} **TestAgent Completed**",
        "",
        f"**Status: {'PASSED' if result.passed else 'FAILED'}**",
        "",
        "### Test Results",
        f"- Total Tests: {result.total_tests}",
        f"- Passed: {result.passed_tests}",
        f"- Failed: {result.failed_tests}",
        "",
        "### Coverage",
        f"- Coverage: {result.coverage:g}% {coverage_mark}",
        f"- Threshold: {threshold:g}%",
    ]
    if not result.passed:
        lines.extend(["", "⚠️ **Tests or coverage threshold not met**"])

    return "\n".join(lines) + "\n"


def format_transition_comment(
    from_state: IssueState,
    to_state: IssueState,
    reason: Optional[str],
) -> str:
    """Render the comment posted when an issue changes lifecycle state."""
    comment = (
        "🔄 **State Transition**\n\n"
        f"`{from_state.value}` → `{to_state.value}`"
    )
    if reason:
        comment += f"\n\n**Reason:** {reason}"
    return comment
