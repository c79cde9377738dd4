"""Issue lifecycle models.

This module defines the data models shared by every stage of issue
processing, including:
- IssueState: Enum of lifecycle states
- IssuePriority: Enum of priority levels
- IssueRecord: The issue value object passed through the pipeline
- StateTransition: Record of a state transition with timestamp and reason
- VALID_TRANSITIONS: Map defining allowed state transitions
- PRIORITY_KEYWORDS / TYPE_LABEL_KEYWORDS / COMPONENT_LABEL_KEYWORDS:
  keyword tables used by automatic classification

The models use Pydantic for validation, consistent with the rest of the
package.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


STATE_LABEL_PREFIX = "state:"
PRIORITY_LABEL_PREFIX = "priority:"
AGENT_LABEL_PREFIX = "agent:"
COMPLEXITY_LABEL_PREFIX = "complexity:"


class IssueState(str, Enum):
    """Lifecycle states an issue moves through.

    State Flow:
        new → pending → in_progress → review → done → closed

    Work can be sent back (review → in_progress, in_progress → pending),
    any active state can be closed, and closed issues reopen to pending.

    Attributes:
        NEW: Issue just arrived; not yet classified.
        PENDING: Classified and waiting for an agent to pick it up.
        IN_PROGRESS: An agent is working on the issue.
        REVIEW: Work is finished and awaiting review.
        DONE: Review passed.
        CLOSED: Issue closed in the tracker.
    """

    NEW = "new"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"
    CLOSED = "closed"


class IssuePriority(str, Enum):
    """Priority levels assigned by keyword classification."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def _dedupe(labels: Iterable[str]) -> List[str]:
    """Collapse duplicate labels keeping the first occurrence."""
    return list(dict.fromkeys(labels))


class StateTransition(BaseModel):
    """Record of a lifecycle state transition.

    Transitions are appended to the state machine's history and never
    modified afterwards.

    Attributes:
        from_state: The state before the transition.
        to_state: The state after the transition.
        timestamp: When the transition occurred (UTC).
        reason: Optional free-text explanation.
    """

    model_config = ConfigDict(frozen=True)

    from_state: IssueState = Field(
        ...,
        description="The lifecycle state before this transition",
    )

    to_state: IssueState = Field(
        ...,
        description="The lifecycle state after this transition",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the transition occurred (UTC timezone)",
    )

    reason: Optional[str] = Field(
        default=None,
        description="Optional explanation of why the transition happened",
    )


class IssueRecord(BaseModel):
    """An issue as seen by the lifecycle state machine and pipeline agents.

    Labels behave as an ordered set: duplicates collapse on construction
    and on every assignment, and the first occurrence keeps its position.

    Attributes:
        id: Opaque issue identifier (the tracker issue number as a string).
        title: Issue title.
        body: Issue body/description. May be empty.
        state: Current lifecycle state.
        priority: Assigned priority, if any.
        labels: Ordered, unique label names.
        assignee: Optional assignee login.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Opaque issue identifier",
    )

    title: str = Field(
        default="",
        description="The issue title text",
    )

    body: str = Field(
        default="",
        description="The issue body/description text (may be empty)",
    )

    state: IssueState = Field(
        default=IssueState.NEW,
        description="The current lifecycle state",
    )

    priority: Optional[IssuePriority] = Field(
        default=None,
        description="Priority assigned by classification",
    )

    labels: List[str] = Field(
        default_factory=list,
        description="Ordered set of label names",
    )

    assignee: Optional[str] = Field(
        default=None,
        description="Login of the assigned user",
    )

    @field_validator("labels")
    @classmethod
    def dedupe_labels(cls, v: List[str]) -> List[str]:
        """Collapse duplicate labels keeping insertion order."""
        return _dedupe(v)

    @property
    def text(self) -> str:
        """Lowercased title and body, as used by keyword classification."""
        return f"{self.title} {self.body}".lower()

    def has_label(self, name: str) -> bool:
        """Check whether the record carries a label."""
        return name in self.labels

    def merge_labels(self, labels: Iterable[str]) -> List[str]:
        """Append labels with set semantics and return the resulting list."""
        self.labels = self.labels + list(labels)
        return list(self.labels)

    def replace_state_label(self, state: IssueState) -> None:
        """Drop every ``state:*`` label and append ``state:<state>``."""
        kept = [
            label for label in self.labels
            if not label.startswith(STATE_LABEL_PREFIX)
        ]
        self.labels = kept + [f"{STATE_LABEL_PREFIX}{state.value}"]


# Valid state transitions map
#
# - Every active state may be closed
# - CLOSED can only reopen to PENDING
# - REVIEW and DONE can send work back to IN_PROGRESS
VALID_TRANSITIONS: Dict[IssueState, FrozenSet[IssueState]] = {
    IssueState.NEW: frozenset({IssueState.PENDING, IssueState.CLOSED}),
    IssueState.PENDING: frozenset({IssueState.IN_PROGRESS, IssueState.CLOSED}),
    IssueState.IN_PROGRESS: frozenset({
        IssueState.REVIEW,
        IssueState.PENDING,
        IssueState.CLOSED,
    }),
    IssueState.REVIEW: frozenset({
        IssueState.DONE,
        IssueState.IN_PROGRESS,
        IssueState.CLOSED,
    }),
    IssueState.DONE: frozenset({IssueState.CLOSED, IssueState.IN_PROGRESS}),
    IssueState.CLOSED: frozenset({IssueState.PENDING}),
}


# Priority keyword tiers, checked in this order. The first tier with a
# matching keyword wins; MEDIUM is the fallback when nothing matches.
PRIORITY_KEYWORDS: Tuple[Tuple[IssuePriority, Tuple[str, ...]], ...] = (
    (
        IssuePriority.CRITICAL,
        ("critical", "urgent", "emergency", "production down", "security"),
    ),
    (
        IssuePriority.HIGH,
        ("high priority", "important", "blocker", "blocking", "asap"),
    ),
    (
        IssuePriority.LOW,
        ("low", "minor", "nice to have", "enhancement", "documentation"),
    ),
)

DEFAULT_PRIORITY = IssuePriority.MEDIUM


TYPE_LABEL_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("bug", ("bug", "error", "fix")),
    ("enhancement", ("feature", "enhancement")),
    ("testing", ("test", "testing")),
    ("documentation", ("documentation", "docs")),
)

COMPONENT_LABEL_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("state-machine", ("state machine", "fsm")),
    ("agent-system", ("agent", "pipeline")),
)


def is_valid_transition(from_state: IssueState, to_state: IssueState) -> bool:
    """Check if a state transition is valid.

    Args:
        from_state: The current lifecycle state.
        to_state: The target lifecycle state.

    Returns:
        bool: True if the transition is valid, False otherwise.

    Example:
        >>> is_valid_transition(IssueState.NEW, IssueState.PENDING)
        True
        >>> is_valid_transition(IssueState.CLOSED, IssueState.DONE)
        False
    """
    return to_state in VALID_TRANSITIONS.get(from_state, frozenset())


def state_from_label(label: str) -> Optional[IssueState]:
    """Parse a ``state:<x>`` label into an IssueState, if it names one."""
    if not label.startswith(STATE_LABEL_PREFIX):
        return None
    try:
        return IssueState(label[len(STATE_LABEL_PREFIX):])
    except ValueError:
        return None
