"""Unit tests for the tracker-aware agents.

The tracker, text generator, version control and command runner are
mocked; code generation writes into a pytest tmp_path.
"""

import asyncio
from pathlib import Path
from typing import List, Optional
from unittest.mock import AsyncMock

import pytest

from src.issueflow.agents.codegen import (
    FALLBACK_FILES,
    CodeGenAgent,
    UnsafePathError,
    parse_generated_files,
    resolve_in_root,
)
from src.issueflow.agents.coordinator import CoordinatorAgent
from src.issueflow.agents.models import FindingCategory, FindingSeverity, QualityMetrics
from src.issueflow.agents.review import (
    BLOCKED_LABEL,
    ReviewAgent,
    calculate_quality_score,
    parse_diagnostics,
    scan_source,
)
from src.issueflow.agents.testing import (
    FAILED_LABEL,
    PASSED_LABEL,
    TestAgent,
    parse_coverage,
    parse_test_counts,
)
from src.issueflow.lifecycle.models import IssueRecord, IssueState
from src.issueflow.pipeline.agent import AgentFailureError
from src.issueflow.planning.decomposer import TaskDecomposer
from src.issueflow.planning.graph import CyclicDependencyError
from src.issueflow.runner.command import CommandResult


def run_async(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def _make_issue(
    issue_id: str = "7",
    title: str = "Add greeting endpoint",
    body: str = "Return hello",
    labels: Optional[List[str]] = None,
) -> IssueRecord:
    return IssueRecord(
        id=issue_id,
        title=title,
        body=body,
        state=IssueState.PENDING,
        labels=labels or ["state:pending"],
    )


def _make_store() -> AsyncMock:
    store = AsyncMock()
    store.create_comment = AsyncMock(return_value={"id": 1})
    store.add_labels = AsyncMock(return_value=None)
    return store


def _make_generator(*responses: str) -> AsyncMock:
    generator = AsyncMock()
    generator.generate = AsyncMock(side_effect=list(responses))
    return generator


def _make_runner(*results: CommandResult) -> AsyncMock:
    runner = AsyncMock()
    runner.run = AsyncMock(side_effect=list(results))
    return runner


def _result(exit_code: int = 0, stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(
        command=["tool"],
        success=exit_code == 0,
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        duration_seconds=0.1,
    )


def _comments(store: AsyncMock) -> List[str]:
    return [call.args[1] for call in store.create_comment.call_args_list]


TASKS_JSON = """```json
{"tasks": [
  {"id": "t1", "title": "Model", "dependencies": [], "estimatedEffort": "1h", "agent": "codegen"},
  {"id": "t2", "title": "API", "dependencies": ["t1"], "estimatedEffort": "1h", "agent": "codegen"},
  {"id": "t3", "title": "Docs", "dependencies": ["t1"], "estimatedEffort": "15m", "agent": "codegen"}
]}
```"""

CYCLIC_TASKS_JSON = """```json
{"tasks": [
  {"id": "a", "title": "A", "dependencies": ["b"]},
  {"id": "b", "title": "B", "dependencies": ["a"]}
]}
```"""


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class TestCoordinatorAgent:

    def test_plans_issue_and_labels_it(self):
        store = _make_store()
        agent = CoordinatorAgent(store, TaskDecomposer(_make_generator("medium", TASKS_JSON)))
        issue = _make_issue()

        result = run_async(agent.execute(issue))

        assert result.graph.levels == [["t1"], ["t2", "t3"]]
        assert result.execution_plan == ["Level 1: t1", "Level 2: t2, t3 (parallel)"]
        assert result.labels_added == ["complexity:medium", "agent:coordinator"]
        store.add_labels.assert_awaited_once_with(7, ["complexity:medium", "agent:coordinator"])
        assert "agent:coordinator" in issue.labels

        comments = _comments(store)
        assert comments[0].startswith("🤖 **CoordinatorAgent Started**")
        assert "**Complexity:** MEDIUM" in comments[1]
        assert "### Execution Plan" in comments[1]
        assert "Level 2: t2, t3 (parallel)" in comments[1]

    def test_process_returns_labelled_copy(self):
        store = _make_store()
        agent = CoordinatorAgent(store, TaskDecomposer(_make_generator("small", TASKS_JSON)))
        issue = _make_issue()

        result = run_async(agent.process(issue))

        assert "complexity:small" in result.labels
        assert "complexity:small" not in issue.labels

    def test_cycle_fails_with_comment(self):
        store = _make_store()
        agent = CoordinatorAgent(
            store, TaskDecomposer(_make_generator("large", CYCLIC_TASKS_JSON))
        )

        with pytest.raises(CyclicDependencyError):
            run_async(agent.execute(_make_issue()))

        assert _comments(store)[-1].startswith("❌ **CoordinatorAgent Failed**")
        store.add_labels.assert_not_awaited()

    def test_non_numeric_issue_id_is_rejected(self):
        agent = CoordinatorAgent(_make_store(), TaskDecomposer(_make_generator()))

        with pytest.raises(ValueError):
            run_async(agent.execute(_make_issue(issue_id="abc")))


# ---------------------------------------------------------------------------
# Code generation
# ---------------------------------------------------------------------------


class TestCodeGenAgent:

    def _make_agent(self, tmp_path: Path, response: str):
        store = _make_store()
        vcs = AsyncMock()
        agent = CodeGenAgent(store, _make_generator(response), vcs, tmp_path)
        return agent, store, vcs

    def test_writes_and_commits_files(self, tmp_path):
        response = """```json
{"files": [
  {"path": "src/greet.py", "content": "def greet():\\n    return 'hi'\\n"},
  {"path": "tests/test_greet.py", "content": "from src.greet import greet\\n"}
], "summary": "Added greet()"}
```"""
        agent, store, vcs = self._make_agent(tmp_path, response)

        result = run_async(agent.execute(_make_issue()))

        assert result.success is True
        assert result.branch_name == "feature/issue-7"
        assert result.files_generated == ["src/greet.py", "tests/test_greet.py"]
        assert (tmp_path / "src" / "greet.py").read_text() == "def greet():\n    return 'hi'\n"
        vcs.create_branch.assert_awaited_once_with("feature/issue-7")
        vcs.stage.assert_awaited_once_with(["src/greet.py", "tests/test_greet.py"])
        message = vcs.commit.call_args.args[0]
        assert message.startswith("feat: Implement code for Issue #7")
        assert "- src/greet.py" in message
        assert "Added greet()" in _comments(store)[-1]

    def test_unusable_response_writes_fallback(self, tmp_path):
        agent, _, _ = self._make_agent(tmp_path, "Sorry, no code today")

        result = run_async(agent.execute(_make_issue()))

        assert result.success is True
        assert result.files_generated == [FALLBACK_FILES[0].path]
        assert (tmp_path / "src" / "hello.py").exists()

    def test_escaping_path_writes_nothing(self, tmp_path):
        response = """```json
{"files": [
  {"path": "src/ok.py", "content": "x = 1\\n"},
  {"path": "../outside.py", "content": "boom"}
]}
```"""
        agent, store, vcs = self._make_agent(tmp_path / "repo", response)
        (tmp_path / "repo").mkdir()

        result = run_async(agent.execute(_make_issue()))

        assert result.success is False
        assert "escapes the repository root" in result.error
        assert not (tmp_path / "outside.py").exists()
        assert not (tmp_path / "repo" / "src" / "ok.py").exists()
        vcs.create_branch.assert_not_awaited()
        assert _comments(store)[-1].startswith("❌ **CodeGenAgent Failed**")

    def test_process_raises_on_failure(self, tmp_path):
        agent, _, vcs = self._make_agent(tmp_path, "no json")
        vcs.create_branch.side_effect = RuntimeError("git unavailable")

        with pytest.raises(AgentFailureError) as exc_info:
            run_async(agent.process(_make_issue()))

        assert exc_info.value.agent_name == "codegen"
        assert "git unavailable" in str(exc_info.value)

    @pytest.mark.parametrize("path", ["/etc/passwd", "../x.py", "a/../../x.py", "."])
    def test_resolve_in_root_rejects(self, tmp_path, path):
        with pytest.raises(UnsafePathError):
            resolve_in_root(tmp_path, path)

    def test_resolve_in_root_accepts_nested(self, tmp_path):
        assert resolve_in_root(tmp_path, "a/b/../c.py") == (tmp_path / "a" / "c.py").resolve()

    def test_parse_generated_files_summary(self):
        files, summary = parse_generated_files(
            '```json\n{"files": [{"path": "a.py", "content": ""}], "summary": "done"}\n```'
        )
        assert [f.path for f in files] == ["a.py"]
        assert summary == "done"


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


class TestReviewHelpers:

    def test_parse_diagnostics(self):
        output = (
            "app.py:3: error: Incompatible types\n"
            "app.py:9:5: warning: unused variable\n"
            "app.py:10: note: See docs\n"
            "Found 1 error in 1 file"
        )

        findings = parse_diagnostics(output, FindingCategory.TYPE_CHECK)

        assert [(f.file, f.line, f.severity) for f in findings] == [
            ("app.py", 3, FindingSeverity.ERROR),
            ("app.py", 9, FindingSeverity.WARNING),
            ("app.py", 10, FindingSeverity.INFO),
        ]

    def test_scan_source(self):
        content = "import subprocess\nsubprocess.run(cmd, shell=True)\nresult = eval(text)\n"

        findings = scan_source("tool.py", content)

        assert [(f.line, f.category) for f in findings] == [
            (2, FindingCategory.SECURITY),
            (3, FindingCategory.SECURITY),
        ]

    def test_scan_source_ignores_safe_calls(self):
        content = "value = literal_eval(text)\ndata = yaml.load(fh, Loader=SafeLoader)\n"
        assert scan_source("safe.py", content) == []

    @pytest.mark.parametrize(
        "metrics,expected",
        [
            (QualityMetrics(), 100),
            (QualityMetrics(type_errors=1, lint_warnings=2), 86),
            (QualityMetrics(lint_errors=2, security_issues=1), 82),
            (QualityMetrics(type_errors=20), 0),
        ],
    )
    def test_quality_score(self, metrics, expected):
        assert calculate_quality_score(metrics) == expected


class TestReviewAgent:

    def _make_agent(self, tmp_path: Path, type_output: str, lint_output: str, changed: List[str]):
        store = _make_store()
        vcs = AsyncMock()
        vcs.changed_files = AsyncMock(return_value=changed)
        runner = _make_runner(
            _result(exit_code=1 if type_output else 0, stdout=type_output),
            _result(exit_code=1 if lint_output else 0, stdout=lint_output),
        )
        agent = ReviewAgent(store, vcs, runner, tmp_path, quality_threshold=80)
        return agent, store

    def test_clean_review_passes(self, tmp_path):
        (tmp_path / "clean.py").write_text("x = 1\n")
        agent, store = self._make_agent(tmp_path, "", "", ["clean.py", "README.md"])

        result = run_async(agent.execute(_make_issue()))

        assert result.success is True
        assert result.quality_score == 100
        assert result.passed is True
        assert result.metrics.files_reviewed == 2
        assert "(PASSED)" in _comments(store)[-1]
        store.add_labels.assert_not_awaited()

    def test_low_score_escalates(self, tmp_path):
        (tmp_path / "bad.py").write_text("eval(x)\nexec(y)\n")
        type_output = "bad.py:1: error: one\nbad.py:2: error: two\n"
        agent, store = self._make_agent(tmp_path, type_output, "bad.py:1:1: F821 undefined name", ["bad.py"])
        issue = _make_issue()

        result = run_async(agent.execute(issue))

        # 100 - 2*10 - 1*5 - 2*8
        assert result.quality_score == 59
        assert result.passed is False
        assert result.metrics.security_issues == 2
        comments = _comments(store)
        assert "🚨 **ESCALATION: Quality Review Failed**" in comments[-1]
        store.add_labels.assert_awaited_once_with(7, [BLOCKED_LABEL])
        assert BLOCKED_LABEL in issue.labels

    def test_missing_tool_fails_review(self, tmp_path):
        store = _make_store()
        runner = _make_runner(_result(exit_code=-1, stderr="Failed to start mypy"))
        agent = ReviewAgent(store, AsyncMock(), runner, tmp_path)

        result = run_async(agent.execute(_make_issue()))

        assert result.success is False
        assert "Failed to start mypy" in result.error

        with pytest.raises(AgentFailureError):
            run_async(
                ReviewAgent(
                    _make_store(),
                    AsyncMock(),
                    _make_runner(_result(exit_code=-1, stderr="x")),
                    tmp_path,
                ).process(_make_issue())
            )


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestTestHelpers:

    @pytest.mark.parametrize(
        "output,exit_ok,expected",
        [
            ("12 passed in 0.5s", True, (12, 0)),
            ("3 failed, 9 passed in 1.2s", False, (9, 3)),
            ("1 failed, 4 passed, 2 errors in 1s", False, (4, 3)),
            ("ImportError while loading conftest", False, (0, 1)),
        ],
    )
    def test_parse_test_counts(self, output, exit_ok, expected):
        assert parse_test_counts(output, exit_ok) == expected

    def test_parse_coverage(self):
        report = "Name    Stmts   Miss  Cover\n-----\napp.py     10      1    90%\nTOTAL      10      1    90%\n"
        assert parse_coverage(report) == 90.0
        assert parse_coverage("no report") == 0.0


class TestTestAgent:

    def test_passing_run_is_labelled(self):
        store = _make_store()
        runner = _make_runner(
            _result(stdout="10 passed in 0.3s"),
            _result(stdout="TOTAL    100    5    95%"),
        )
        agent = TestAgent(store, runner, coverage_threshold=80)
        issue = _make_issue()

        result = run_async(agent.execute(issue))

        assert result.passed is True
        assert result.total_tests == 10
        assert result.coverage == 95.0
        store.add_labels.assert_awaited_once_with(7, [PASSED_LABEL])
        assert PASSED_LABEL in issue.labels

    def test_low_coverage_fails(self):
        store = _make_store()
        runner = _make_runner(
            _result(stdout="10 passed in 0.3s"),
            _result(stdout="TOTAL    100    50    50%"),
        )
        agent = TestAgent(store, runner, coverage_threshold=80)

        result = run_async(agent.execute(_make_issue()))

        assert result.success is True
        assert result.passed is False
        store.add_labels.assert_awaited_once_with(7, [FAILED_LABEL])
        assert "Tests or coverage threshold not met" in _comments(store)[-1]

    def test_missing_runner_fails(self):
        store = _make_store()
        agent = TestAgent(store, _make_runner(_result(exit_code=-1, stderr="no pytest")))

        with pytest.raises(AgentFailureError) as exc_info:
            run_async(agent.process(_make_issue()))

        assert exc_info.value.agent_name == "test"
        store.add_labels.assert_not_awaited()
