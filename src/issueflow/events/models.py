"""Lifecycle event models.

This module defines the data models for events emitted by the state
machine and the agent pipeline:
- EventType: Enum of every lifecycle signal
- LifecycleEvent: Structured event with type, issue id, timestamp and details

State machine events are republished by the pipeline under
pipeline-scoped names (see PIPELINE_FORWARDS).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted during issue processing.

    State machine scope:
        STATE_CHANGED: A transition was recorded.
        PRIORITY_ASSIGNED: Automatic priority assignment finished.
        LABELS_UPDATED: Automatic labeling finished.
        READY_FOR_PROCESSING: Initialization finished; the issue can go to agents.
        ERROR: Initialization failed.

    Pipeline scope:
        ISSUE_STATE_CHANGED, ISSUE_PRIORITY_ASSIGNED, ISSUE_LABELS_UPDATED,
        ISSUE_READY, FSM_ERROR: Republished state machine events.
        AGENT_REGISTERED / AGENTS_CLEARED: Agent list changes.
        AGENT_START / AGENT_COMPLETE: Bracket each agent's execution.
        PIPELINE_COMPLETE / PIPELINE_ERROR: Outcome of process_issue.
    """

    STATE_CHANGED = "state_changed"
    PRIORITY_ASSIGNED = "priority_assigned"
    LABELS_UPDATED = "labels_updated"
    READY_FOR_PROCESSING = "ready_for_processing"
    ERROR = "error"

    ISSUE_STATE_CHANGED = "issue_state_changed"
    ISSUE_PRIORITY_ASSIGNED = "issue_priority_assigned"
    ISSUE_LABELS_UPDATED = "issue_labels_updated"
    ISSUE_READY = "issue_ready"
    FSM_ERROR = "fsm_error"
    AGENT_REGISTERED = "agent_registered"
    AGENTS_CLEARED = "agents_cleared"
    AGENT_START = "agent_start"
    AGENT_COMPLETE = "agent_complete"
    PIPELINE_COMPLETE = "pipeline_complete"
    PIPELINE_ERROR = "pipeline_error"


# State machine event → pipeline-scoped name it is republished under
PIPELINE_FORWARDS: Dict[EventType, EventType] = {
    EventType.STATE_CHANGED: EventType.ISSUE_STATE_CHANGED,
    EventType.PRIORITY_ASSIGNED: EventType.ISSUE_PRIORITY_ASSIGNED,
    EventType.LABELS_UPDATED: EventType.ISSUE_LABELS_UPDATED,
    EventType.READY_FOR_PROCESSING: EventType.ISSUE_READY,
    EventType.ERROR: EventType.FSM_ERROR,
}

ERROR_EVENT_TYPES = frozenset({
    EventType.ERROR,
    EventType.FSM_ERROR,
    EventType.PIPELINE_ERROR,
})


class LifecycleEvent(BaseModel):
    """Structured event emitted by the state machine or pipeline.

    Details Field Conventions:
        STATE_CHANGED: from_state, to_state, reason
        PRIORITY_ASSIGNED: priority
        LABELS_UPDATED: labels
        READY_FOR_PROCESSING: issue (IssueRecord copy)
        ERROR / FSM_ERROR: error, error_type
        AGENT_START / AGENT_COMPLETE: agent (and issue for AGENT_COMPLETE)
        PIPELINE_COMPLETE: issue, duration_seconds
        PIPELINE_ERROR: error, error_type, agent (if an agent failed), issue

    Attributes:
        event_type: The category of event.
        issue_id: Identifier of the affected issue, when there is one.
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    issue_id: Optional[str] = Field(
        default=None,
        description="Identifier of the issue the event refers to",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Convert event to a flat dictionary suitable for structured logging.

        Nested pydantic models in details are dumped to plain dictionaries.

        Returns:
            Dict[str, Any]: Flat dictionary representation of the event.
        """
        details = {
            key: value.model_dump(mode="json") if isinstance(value, BaseModel) else value
            for key, value in self.details.items()
        }
        return {
            "event_type": self.event_type.value,
            "issue_id": self.issue_id,
            "timestamp": self.timestamp.isoformat(),
            **details,
        }
