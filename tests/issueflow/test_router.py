"""Unit tests for the IssueRouter.

The tracker is an AsyncMock returning GitHub issue payloads; the
pipeline is real so label synchronisation reflects actual state machine
output.
"""

import asyncio
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest

from src.issueflow.lifecycle.machine import InvalidTransitionError
from src.issueflow.lifecycle.models import IssueRecord, IssueState
from src.issueflow.pipeline.agent import FunctionAgent
from src.issueflow.pipeline.orchestrator import AgentPipeline
from src.issueflow.router import IssueRouter, UnknownAgentError, label_changes
from src.issueflow.webhook.models import GitHubIssueEvent, IssueAction


def run_async(coro):
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def _make_payload(
    number: int = 42,
    title: str = "Critical bug in login",
    labels: Optional[List[str]] = None,
    state: str = "open",
) -> Dict[str, Any]:
    return {
        "number": number,
        "title": title,
        "body": "Users cannot log in",
        "state": state,
        "labels": [{"name": name} for name in (labels or [])],
        "assignees": [],
    }


def _make_store(payload: Dict[str, Any]) -> AsyncMock:
    store = AsyncMock()
    store.get_issue = AsyncMock(return_value=payload)
    store.add_labels = AsyncMock(return_value=None)
    store.remove_label = AsyncMock(return_value=None)
    store.create_comment = AsyncMock(return_value={"id": 1})
    return store


def _make_event(action: IssueAction, number: int = 42) -> GitHubIssueEvent:
    return GitHubIssueEvent(
        action=action,
        issue_number=number,
        title="Critical bug in login",
        repository="widgets",
        owner="acme",
        author="dev1",
    )


def _labelling_agent(name: str, label: str) -> FunctionAgent:
    async def process(issue: IssueRecord) -> IssueRecord:
        updated = issue.model_copy(deep=True)
        updated.merge_labels([label])
        return updated

    return FunctionAgent(name, process)


@pytest.fixture
def deps():
    store = _make_store(_make_payload(labels=["customer"]))
    pipeline = AgentPipeline(agents=[_labelling_agent("coordinator", "agent:coordinator")])
    router = IssueRouter(
        store,
        pipeline,
        agents=[
            _labelling_agent("coordinator", "agent:coordinator"),
            _labelling_agent("codegen", "generated"),
        ],
    )
    return {"store": store, "pipeline": pipeline, "router": router}


# ---------------------------------------------------------------------------
# label_changes
# ---------------------------------------------------------------------------


class TestLabelChanges:

    def test_adds_new_and_removes_stale_state_labels(self):
        to_add, to_remove = label_changes(
            ["bug", "state:new"], ["bug", "state:pending", "priority:low"]
        )
        assert to_add == ["state:pending", "priority:low"]
        assert to_remove == ["state:new"]

    def test_never_removes_other_labels(self):
        to_add, to_remove = label_changes(["bug", "customer"], ["bug"])
        assert to_add == []
        assert to_remove == []


# ---------------------------------------------------------------------------
# Webhook events
# ---------------------------------------------------------------------------


class TestHandleIssueEvent:

    def test_opened_runs_pipeline_and_syncs_labels(self, deps):
        result = run_async(deps["router"].handle_issue_event(_make_event(IssueAction.OPENED)))

        assert result.state == IssueState.PENDING
        store = deps["store"]
        added = store.add_labels.call_args.args[1]
        assert store.add_labels.call_args.args[0] == 42
        assert "state:pending" in added
        assert "priority:critical" in added
        assert "agent:coordinator" in added
        assert "customer" not in added
        store.remove_label.assert_not_awaited()

    def test_closed_transitions_to_closed(self, deps):
        deps["store"].get_issue.return_value = _make_payload(labels=["state:in_progress"])

        result = run_async(deps["router"].handle_issue_event(_make_event(IssueAction.CLOSED)))

        assert result.state == IssueState.CLOSED
        store = deps["store"]
        store.add_labels.assert_awaited_once_with(42, ["state:closed"])
        store.remove_label.assert_awaited_once_with(42, "state:in_progress")
        comment = store.create_comment.call_args.args[1]
        assert "`in_progress` → `closed`" in comment
        assert "Issue closed" in comment

    def test_reopened_transitions_to_pending(self, deps):
        deps["store"].get_issue.return_value = _make_payload(state="closed")

        result = run_async(deps["router"].handle_issue_event(_make_event(IssueAction.REOPENED)))

        assert result.state == IssueState.PENDING
        deps["store"].add_labels.assert_awaited_once_with(42, ["state:pending"])

    def test_invalid_tracker_transition_is_ignored(self, deps):
        deps["store"].get_issue.return_value = _make_payload(labels=["state:pending"])

        result = run_async(deps["router"].handle_issue_event(_make_event(IssueAction.REOPENED)))

        assert result is None
        deps["store"].add_labels.assert_not_awaited()
        deps["store"].create_comment.assert_not_awaited()

    @pytest.mark.parametrize("action", [IssueAction.EDITED, IssueAction.LABELED])
    def test_other_actions_ignored(self, deps, action):
        assert run_async(deps["router"].handle_issue_event(_make_event(action))) is None
        deps["store"].get_issue.assert_not_awaited()


# ---------------------------------------------------------------------------
# Operator requests
# ---------------------------------------------------------------------------


class TestTransitionIssue:

    def test_transition(self, deps):
        deps["store"].get_issue.return_value = _make_payload(labels=["state:pending"])

        transition = run_async(
            deps["router"].transition_issue(42, IssueState.IN_PROGRESS, "picked up")
        )

        assert transition.from_state == IssueState.PENDING
        assert transition.to_state == IssueState.IN_PROGRESS
        assert "**Reason:** picked up" in deps["store"].create_comment.call_args.args[1]

    def test_invalid_transition_writes_nothing(self, deps):
        deps["store"].get_issue.return_value = _make_payload(labels=["state:pending"])

        with pytest.raises(InvalidTransitionError):
            run_async(deps["router"].transition_issue(42, IssueState.DONE))

        deps["store"].add_labels.assert_not_awaited()
        deps["store"].remove_label.assert_not_awaited()
        deps["store"].create_comment.assert_not_awaited()


class TestRunAgent:

    def test_explicit_agent(self, deps):
        result = run_async(deps["router"].run_agent(42, "codegen"))

        assert "generated" in result.labels
        deps["store"].add_labels.assert_awaited_once_with(42, ["generated"])

    def test_agent_label_selects_agent(self, deps):
        record = IssueRecord(id="42", labels=["agent:codegen"])
        assert deps["router"].resolve_agent(record).name == "codegen"

    def test_defaults_to_coordinator(self, deps):
        record = IssueRecord(id="42", labels=["bug"])
        assert deps["router"].resolve_agent(record).name == "coordinator"

    def test_unknown_agent(self, deps):
        with pytest.raises(UnknownAgentError) as exc_info:
            run_async(deps["router"].run_agent(42, "deploy"))

        assert exc_info.value.available == ["codegen", "coordinator"]
        assert "Unknown agent 'deploy'" in str(exc_info.value)

    def test_agent_names(self, deps):
        assert deps["router"].agent_names == ["codegen", "coordinator"]
