"""Issue lifecycle state machine.

Issues progress through: new → pending → in_progress → review → done
→ closed, with rework loops and reopening. New issues are classified
automatically (priority and labels) when the machine is initialized.
"""

from src.issueflow.lifecycle.classification import classify_priority, derive_labels
from src.issueflow.lifecycle.machine import (
    AUTO_PENDING_REASON,
    InvalidTransitionError,
    IssueStateMachine,
)
from src.issueflow.lifecycle.models import (
    VALID_TRANSITIONS,
    IssuePriority,
    IssueRecord,
    IssueState,
    StateTransition,
    is_valid_transition,
    state_from_label,
)

__all__ = [
    # Models
    "IssuePriority",
    "IssueRecord",
    "IssueState",
    "StateTransition",
    "VALID_TRANSITIONS",
    "is_valid_transition",
    "state_from_label",
    # Classification
    "classify_priority",
    "derive_labels",
    # State machine
    "AUTO_PENDING_REASON",
    "InvalidTransitionError",
    "IssueStateMachine",
]
