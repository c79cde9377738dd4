"""Property-based tests for the issue lifecycle state machine.

Validates that:
- Only transitions in VALID_TRANSITIONS are accepted
- Every accepted transition is appended to the history with a timestamp
- A rejected transition leaves state, labels and history untouched
- The record carries exactly one ``state:*`` label after any transition
- Initialization classifies new issues and leaves other issues alone
- Re-running automatic labeling never duplicates or changes labels

Testing Configuration:
- Library: Hypothesis (Python)
- Minimum iterations: 100 per property test
"""

import asyncio
from datetime import datetime, timezone
from typing import List

import pytest
from hypothesis import assume, given, settings, strategies as st

from src.issueflow.events.models import EventType, LifecycleEvent
from src.issueflow.lifecycle.classification import derive_labels
from src.issueflow.lifecycle.machine import (
    AUTO_PENDING_REASON,
    InvalidTransitionError,
    IssueStateMachine,
)
from src.issueflow.lifecycle.models import (
    PRIORITY_LABEL_PREFIX,
    STATE_LABEL_PREFIX,
    VALID_TRANSITIONS,
    IssuePriority,
    IssueRecord,
    IssueState,
)


def run_async(coro):
    return asyncio.run(coro)


ALL_STATES = list(IssueState)

VALID_PAIRS = [
    (from_state, to_state)
    for from_state in ALL_STATES
    for to_state in sorted(VALID_TRANSITIONS[from_state], key=lambda s: s.value)
]

INVALID_PAIRS = [
    (from_state, to_state)
    for from_state in ALL_STATES
    for to_state in ALL_STATES
    if to_state not in VALID_TRANSITIONS[from_state]
]


def _make_issue(
    state: IssueState = IssueState.NEW,
    title: str = "Something is off",
    body: str = "",
    labels: List[str] = None,
) -> IssueRecord:
    return IssueRecord(
        id="42",
        title=title,
        body=body,
        state=state,
        labels=labels if labels is not None else [],
    )


def _state_labels(issue: IssueRecord) -> List[str]:
    return [label for label in issue.labels if label.startswith(STATE_LABEL_PREFIX)]


# =============================================================================
# Strategies
# =============================================================================


@st.composite
def walk_strategy(draw, max_steps: int = 12):
    """Generate a sequence of target states, valid or not."""
    return draw(st.lists(st.sampled_from(ALL_STATES), min_size=1, max_size=max_steps))


label_strategy = st.sampled_from(
    ["bug", "customer", "ui", "p1", "agent:codegen", "state:new", "state:review"]
)


KEYWORD_WORDS = [
    "critical", "urgent", "security", "important", "blocker", "minor",
    "documentation", "bug", "error", "fix", "feature", "test", "docs",
    "state machine", "agent", "pipeline", "login", "page", "Update",
]

issue_text_strategy = st.one_of(
    st.text(max_size=80),
    st.lists(st.sampled_from(KEYWORD_WORDS), max_size=8).map(" ".join),
)


# =============================================================================
# Transition table
# =============================================================================


class TestTransitionTable:

    @given(pair=st.sampled_from(VALID_PAIRS))
    @settings(max_examples=100)
    def test_valid_transition_is_recorded(self, pair):
        from_state, to_state = pair
        machine = IssueStateMachine(_make_issue(state=from_state))
        before = datetime.now(timezone.utc)

        transition = run_async(machine.transition(to_state, "moving on"))

        assert machine.state == to_state
        assert transition.from_state == from_state
        assert transition.to_state == to_state
        assert transition.reason == "moving on"
        assert transition.timestamp >= before
        assert machine.get_history() == [transition]

    @given(pair=st.sampled_from(INVALID_PAIRS), labels=st.lists(label_strategy, max_size=5))
    @settings(max_examples=100)
    def test_invalid_transition_mutates_nothing(self, pair, labels):
        from_state, to_state = pair
        machine = IssueStateMachine(_make_issue(state=from_state, labels=labels))
        snapshot = machine.get_issue()

        with pytest.raises(InvalidTransitionError) as exc_info:
            run_async(machine.transition(to_state))

        assert exc_info.value.from_state == from_state
        assert exc_info.value.to_state == to_state
        assert machine.get_issue() == snapshot
        assert machine.get_history() == []

    @given(from_state=st.sampled_from(ALL_STATES), to_state=st.sampled_from(ALL_STATES))
    @settings(max_examples=100)
    def test_can_transition_to_matches_table(self, from_state, to_state):
        machine = IssueStateMachine(_make_issue(state=from_state))
        assert machine.can_transition_to(to_state) == (to_state in VALID_TRANSITIONS[from_state])

    def test_self_transitions_are_never_valid(self):
        for state in ALL_STATES:
            assert state not in VALID_TRANSITIONS[state]

    def test_closed_only_reopens_to_pending(self):
        assert VALID_TRANSITIONS[IssueState.CLOSED] == frozenset({IssueState.PENDING})


# =============================================================================
# History and labels
# =============================================================================


class TestHistoryAndLabels:

    @given(targets=walk_strategy(), labels=st.lists(label_strategy, max_size=5))
    @settings(max_examples=100)
    def test_history_tracks_every_accepted_transition(self, targets, labels):
        machine = IssueStateMachine(_make_issue(labels=labels))
        accepted = 0

        for target in targets:
            if machine.can_transition_to(target):
                run_async(machine.transition(target))
                accepted += 1
            else:
                with pytest.raises(InvalidTransitionError):
                    run_async(machine.transition(target))

        history = machine.get_history()
        assert len(history) == accepted
        for earlier, later in zip(history, history[1:]):
            assert earlier.to_state == later.from_state
            assert earlier.timestamp <= later.timestamp
        if history:
            assert history[-1].to_state == machine.state

    @given(targets=walk_strategy(), labels=st.lists(label_strategy, max_size=5))
    @settings(max_examples=100)
    def test_single_state_label_after_transition(self, targets, labels):
        machine = IssueStateMachine(_make_issue(labels=labels + ["state:review"]))
        assume(machine.can_transition_to(targets[0]))

        run_async(machine.transition(targets[0]))

        issue = machine.get_issue()
        assert _state_labels(issue) == [f"{STATE_LABEL_PREFIX}{targets[0].value}"]

    def test_get_issue_returns_copy(self):
        machine = IssueStateMachine(_make_issue())
        copy = machine.get_issue()
        copy.labels.append("tampered")
        copy.state = IssueState.DONE

        assert "tampered" not in machine.get_issue().labels
        assert machine.state == IssueState.NEW

    def test_input_record_is_not_mutated(self):
        issue = _make_issue()
        machine = IssueStateMachine(issue)
        run_async(machine.transition(IssueState.PENDING))

        assert issue.state == IssueState.NEW
        assert issue.labels == []


# =============================================================================
# Events
# =============================================================================


class TestTransitionEvents:

    def test_state_changed_event_carries_states_and_reason(self):
        machine = IssueStateMachine(_make_issue(state=IssueState.PENDING))
        seen: List[LifecycleEvent] = []
        machine.on(EventType.STATE_CHANGED, seen.append)

        run_async(machine.transition(IssueState.IN_PROGRESS, "picked up"))

        assert len(seen) == 1
        assert seen[0].issue_id == "42"
        assert seen[0].details == {
            "from_state": "pending",
            "to_state": "in_progress",
            "reason": "picked up",
        }

    def test_off_stops_delivery(self):
        machine = IssueStateMachine(_make_issue(state=IssueState.PENDING))
        seen: List[LifecycleEvent] = []
        machine.on(EventType.STATE_CHANGED, seen.append)

        assert machine.off(EventType.STATE_CHANGED, seen.append) is True
        run_async(machine.transition(IssueState.IN_PROGRESS))

        assert seen == []

    def test_invalid_transition_emits_nothing(self):
        machine = IssueStateMachine(_make_issue(state=IssueState.CLOSED))
        seen: List[LifecycleEvent] = []
        machine.on(EventType.STATE_CHANGED, seen.append)

        with pytest.raises(InvalidTransitionError):
            run_async(machine.transition(IssueState.DONE))

        assert seen == []


# =============================================================================
# Initialization
# =============================================================================


class TestInitialize:

    def test_critical_bug_is_classified(self):
        machine = IssueStateMachine(
            _make_issue(title="Critical bug in production", body="The system crashes")
        )
        events: List[EventType] = []
        for event_type in (
            EventType.STATE_CHANGED,
            EventType.PRIORITY_ASSIGNED,
            EventType.LABELS_UPDATED,
            EventType.READY_FOR_PROCESSING,
        ):
            machine.on(event_type, lambda e: events.append(e.event_type))

        run_async(machine.initialize())

        issue = machine.get_issue()
        assert issue.state == IssueState.PENDING
        assert issue.priority == IssuePriority.CRITICAL
        assert "priority:critical" in issue.labels
        assert "bug" in issue.labels
        assert "state:pending" in issue.labels
        assert events == [
            EventType.STATE_CHANGED,
            EventType.PRIORITY_ASSIGNED,
            EventType.LABELS_UPDATED,
            EventType.READY_FOR_PROCESSING,
        ]

        history = machine.get_history()
        assert len(history) == 1
        assert history[0].from_state == IssueState.NEW
        assert history[0].reason == AUTO_PENDING_REASON

    def test_minor_documentation_update(self):
        machine = IssueStateMachine(_make_issue(title="Minor documentation update"))

        run_async(machine.initialize())

        issue = machine.get_issue()
        assert issue.state == IssueState.PENDING
        assert issue.priority == IssuePriority.LOW
        assert "priority:low" in issue.labels
        assert "documentation" in issue.labels
        assert "state:pending" in issue.labels

    @given(
        title=issue_text_strategy,
        body=issue_text_strategy,
        labels=st.lists(label_strategy, max_size=5),
    )
    @settings(max_examples=100)
    def test_initialize_always_classifies(self, title, body, labels):
        machine = IssueStateMachine(_make_issue(title=title, body=body, labels=labels))

        run_async(machine.initialize())

        issue = machine.get_issue()
        assert issue.state == IssueState.PENDING
        assert isinstance(issue.priority, IssuePriority)
        assert f"{PRIORITY_LABEL_PREFIX}{issue.priority.value}" in issue.labels
        priority_labels = [
            label for label in issue.labels if label.startswith(PRIORITY_LABEL_PREFIX)
        ]
        assert len(priority_labels) == 1
        assert _state_labels(issue) == ["state:pending"]

    @given(
        title=issue_text_strategy,
        body=issue_text_strategy,
        labels=st.lists(label_strategy, max_size=5),
    )
    @settings(max_examples=100)
    def test_relabelling_is_idempotent(self, title, body, labels):
        machine = IssueStateMachine(_make_issue(title=title, body=body, labels=labels))
        run_async(machine.initialize())
        issue = machine.get_issue()
        labelled = list(issue.labels)

        issue.merge_labels(derive_labels(issue.text, issue.state, issue.priority))

        assert issue.labels == labelled
        assert len(issue.labels) == len(set(issue.labels))

    def test_documentation_issue_is_low_priority(self):
        machine = IssueStateMachine(
            _make_issue(title="Update documentation", body="Add examples to README")
        )

        run_async(machine.initialize())

        issue = machine.get_issue()
        assert issue.priority == IssuePriority.LOW
        assert "documentation" in issue.labels

    def test_unmatched_text_gets_medium_priority(self):
        machine = IssueStateMachine(_make_issue(title="Rename variable", body="x to y"))

        run_async(machine.initialize())

        assert machine.get_issue().priority == IssuePriority.MEDIUM

    def test_existing_labels_are_kept(self):
        machine = IssueStateMachine(
            _make_issue(title="Fix bug", labels=["bug", "customer", "state:new"])
        )

        run_async(machine.initialize())

        issue = machine.get_issue()
        assert issue.labels.count("bug") == 1
        assert "customer" in issue.labels
        assert _state_labels(issue) == ["state:pending"]

    def test_ready_event_carries_issue_copy(self):
        machine = IssueStateMachine(_make_issue(title="Add feature"))
        seen: List[LifecycleEvent] = []
        machine.on(EventType.READY_FOR_PROCESSING, seen.append)

        run_async(machine.initialize())

        ready_issue = seen[0].details["issue"]
        assert ready_issue == machine.get_issue()
        ready_issue.labels.append("tampered")
        assert "tampered" not in machine.get_issue().labels

    @given(state=st.sampled_from([s for s in ALL_STATES if s != IssueState.NEW]))
    @settings(max_examples=100)
    def test_non_new_issue_is_left_alone(self, state):
        machine = IssueStateMachine(_make_issue(state=state, title="Critical bug"))
        seen: List[LifecycleEvent] = []
        machine.on(EventType.STATE_CHANGED, seen.append)

        run_async(machine.initialize())

        assert machine.state == state
        assert machine.get_issue().priority is None
        assert machine.get_history() == []
        assert seen == []

    def test_listener_failure_emits_error_and_reraises(self):
        machine = IssueStateMachine(_make_issue(title="Critical bug"))
        errors: List[LifecycleEvent] = []

        def explode(event):
            raise RuntimeError("listener broke")

        machine.on(EventType.PRIORITY_ASSIGNED, explode)
        machine.on(EventType.ERROR, errors.append)

        with pytest.raises(RuntimeError, match="listener broke"):
            run_async(machine.initialize())

        assert len(errors) == 1
        assert errors[0].details["error_type"] == "RuntimeError"
        # Completed steps are not rolled back
        assert machine.state == IssueState.PENDING
