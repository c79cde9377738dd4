"""Issue lifecycle state machine.

This module implements the IssueStateMachine class that owns one issue
record, validates and performs state transitions, classifies new issues,
and emits lifecycle events.

The machine keeps its transition history in memory for its own lifetime;
nothing is persisted.
"""

import logging
from typing import List, Optional

from src.issueflow.events.emitter import EventDispatcher, EventEmitter, Listener
from src.issueflow.events.models import EventType, LifecycleEvent
from src.issueflow.lifecycle.classification import classify_priority, derive_labels
from src.issueflow.lifecycle.models import (
    IssuePriority,
    IssueRecord,
    IssueState,
    StateTransition,
    is_valid_transition,
)


logger = logging.getLogger(__name__)


AUTO_PENDING_REASON = "auto-transition from new issue"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted.

    Attributes:
        from_state: The current state.
        to_state: The attempted target state.
        message: Human-readable error message.
    """

    def __init__(
        self,
        from_state: IssueState,
        to_state: IssueState,
        message: Optional[str] = None,
    ):
        self.from_state = from_state
        self.to_state = to_state
        self.message = message or (
            f"Invalid transition from {from_state.value} to {to_state.value}"
        )
        super().__init__(self.message)


class IssueStateMachine:
    """State machine for one issue's lifecycle.

    The machine enforces the following invariants:
    - Only transitions in VALID_TRANSITIONS are allowed
    - Every transition is appended to the history with a timestamp
    - After a transition the record carries exactly one ``state:*`` label
    - A rejected transition mutates nothing

    The record passed in is copied; callers only ever receive copies
    back from ``get_issue``.

    Example:
        >>> machine = IssueStateMachine(IssueRecord(id="42", title="Critical bug"))
        >>> machine.on(EventType.STATE_CHANGED, print)
        >>> await machine.initialize()
        >>> machine.get_issue().state
        <IssueState.PENDING: 'pending'>
    """

    def __init__(self, issue: IssueRecord, sink: Optional[EventEmitter] = None):
        """Initialize the state machine with a copy of the issue.

        Args:
            issue: The issue record to manage.
            sink: Optional event sink every emitted event is forwarded to.
        """
        self._issue = issue.model_copy(deep=True)
        self._history: List[StateTransition] = []
        self._events = EventDispatcher(sink=sink)

    def on(self, event_type: EventType, listener: Listener) -> None:
        """Subscribe to a state machine event."""
        self._events.on(event_type, listener)

    def off(self, event_type: EventType, listener: Listener) -> bool:
        """Unsubscribe from a state machine event."""
        return self._events.off(event_type, listener)

    async def initialize(self) -> None:
        """Classify a new issue and move it to pending.

        Only acts when the issue is in the NEW state. Steps, in order:
        transition to PENDING, assign priority, assign labels, and emit
        READY_FOR_PROCESSING. A failure emits ERROR and re-raises; steps
        already completed are not rolled back.
        """
        if self._issue.state != IssueState.NEW:
            logger.debug(
                "Skipping initialization of non-new issue",
                extra={"issue_id": self._issue.id, "state": self._issue.state.value},
            )
            return

        try:
            self._apply_transition(IssueState.PENDING, AUTO_PENDING_REASON)
            self._assign_priority()
            self._assign_labels()
            self._emit(
                EventType.READY_FOR_PROCESSING,
                issue=self._issue.model_copy(deep=True),
            )
        except Exception as exc:
            logger.exception(
                "Issue initialization failed",
                extra={"issue_id": self._issue.id},
            )
            self._emit(EventType.ERROR, error=str(exc), error_type=type(exc).__name__)
            raise

    async def transition(
        self,
        to_state: IssueState,
        reason: Optional[str] = None,
    ) -> StateTransition:
        """Transition the issue to a new state.

        Args:
            to_state: The target state.
            reason: Optional explanation recorded with the transition.

        Returns:
            The recorded transition.

        Raises:
            InvalidTransitionError: If the transition is not in the table.
        """
        from_state = self._issue.state
        if not is_valid_transition(from_state, to_state):
            logger.warning(
                "Invalid state transition attempted",
                extra={
                    "issue_id": self._issue.id,
                    "from_state": from_state.value,
                    "to_state": to_state.value,
                },
            )
            raise InvalidTransitionError(from_state, to_state)

        return self._apply_transition(to_state, reason)

    def can_transition_to(self, to_state: IssueState) -> bool:
        """Check whether a transition from the current state is allowed."""
        return is_valid_transition(self._issue.state, to_state)

    def get_issue(self) -> IssueRecord:
        """Return a copy of the managed issue."""
        return self._issue.model_copy(deep=True)

    def get_history(self) -> List[StateTransition]:
        """Return a copy of the transition history."""
        return list(self._history)

    @property
    def state(self) -> IssueState:
        """The current lifecycle state."""
        return self._issue.state

    def _apply_transition(
        self,
        to_state: IssueState,
        reason: Optional[str],
    ) -> StateTransition:
        """Record a transition, update state and state label, emit STATE_CHANGED."""
        transition = StateTransition(
            from_state=self._issue.state,
            to_state=to_state,
            reason=reason,
        )

        self._history.append(transition)
        self._issue.state = to_state
        self._issue.replace_state_label(to_state)

        logger.info(
            "Issue state transition",
            extra={
                "issue_id": self._issue.id,
                "from_state": transition.from_state.value,
                "to_state": to_state.value,
            },
        )

        self._emit(
            EventType.STATE_CHANGED,
            from_state=transition.from_state.value,
            to_state=to_state.value,
            reason=reason,
        )
        return transition

    def _assign_priority(self) -> IssuePriority:
        priority = classify_priority(self._issue.text)
        self._issue.priority = priority
        self._emit(EventType.PRIORITY_ASSIGNED, priority=priority.value)
        return priority

    def _assign_labels(self) -> List[str]:
        labels = derive_labels(
            self._issue.text,
            self._issue.state,
            self._issue.priority,
        )
        merged = self._issue.merge_labels(labels)
        self._emit(EventType.LABELS_UPDATED, labels=merged)
        return merged

    def _emit(self, event_type: EventType, **details) -> None:
        self._events.emit(
            LifecycleEvent(
                event_type=event_type,
                issue_id=self._issue.id,
                details=details,
            )
        )
