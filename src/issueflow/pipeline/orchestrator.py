"""Sequential agent pipeline.

The AgentPipeline threads one issue through a fresh IssueStateMachine
and then through every registered agent in registration order,
republishing state machine events under pipeline-scoped names.

Ordering guarantees:
- State machine initialization completes before any agent runs
- Agent N receives exactly the record agent N-1 returned
- Events are delivered synchronously, in execution order

There is no retry and no partial result: the first failure, including a
listener raising on an agent or completion event, emits PIPELINE_ERROR
and the original exception propagates.
"""

import logging
import time
from typing import List, Optional

from src.issueflow.events.emitter import EventDispatcher, EventEmitter, Listener
from src.issueflow.events.models import PIPELINE_FORWARDS, EventType, LifecycleEvent
from src.issueflow.lifecycle.machine import IssueStateMachine
from src.issueflow.lifecycle.models import IssueRecord
from src.issueflow.pipeline.agent import Agent, ensure_issue_record


logger = logging.getLogger(__name__)


class AgentPipeline:
    """Runs issues through the state machine and an ordered list of agents.

    Attributes:
        sink: Optional event sink every pipeline event is forwarded to.

    Example:
        >>> pipeline = AgentPipeline(sink=LoggingEventEmitter())
        >>> pipeline.register_agent(FunctionAgent("validation", validate))
        >>> pipeline.on(EventType.ISSUE_READY, lambda e: print(e.issue_id))
        >>> result = await pipeline.process_issue(IssueRecord(id="42", title="Bug"))
    """

    def __init__(
        self,
        agents: Optional[List[Agent]] = None,
        sink: Optional[EventEmitter] = None,
    ):
        self._agents: List[Agent] = []
        self._events = EventDispatcher(sink=sink)
        self._machine: Optional[IssueStateMachine] = None
        for agent in agents or []:
            self.register_agent(agent)

    def on(self, event_type: EventType, listener: Listener) -> None:
        """Subscribe to a pipeline event."""
        self._events.on(event_type, listener)

    def on_any(self, listener: Listener) -> None:
        """Subscribe to every pipeline event."""
        self._events.on_any(listener)

    def off(self, event_type: EventType, listener: Listener) -> bool:
        """Unsubscribe from a pipeline event."""
        return self._events.off(event_type, listener)

    def register_agent(self, agent: Agent) -> None:
        """Append an agent to the end of the pipeline."""
        self._agents.append(agent)
        logger.info("Agent registered", extra={"agent": agent.name})
        self._emit(EventType.AGENT_REGISTERED, agent=agent.name)

    def clear_agents(self) -> None:
        """Remove every registered agent."""
        self._agents = []
        self._emit(EventType.AGENTS_CLEARED)

    def get_agents(self) -> List[Agent]:
        """Registered agents, in execution order (copy)."""
        return list(self._agents)

    @property
    def state_machine(self) -> Optional[IssueStateMachine]:
        """The state machine of the most recent process_issue call."""
        return self._machine

    async def process_issue(self, issue: IssueRecord) -> IssueRecord:
        """Drive an issue through initialization and every agent.

        Args:
            issue: The incoming issue record.

        Returns:
            The record returned by the last agent.

        Raises:
            Exception: Whatever the state machine or an agent raised.
            AgentFailureError: If an agent returned a non-IssueRecord value.
        """
        started = time.monotonic()
        machine = IssueStateMachine(issue)
        self._machine = machine
        self._forward_machine_events(machine)

        logger.info(
            "Starting pipeline for issue",
            extra={"issue_id": issue.id, "agent_count": len(self._agents)},
        )

        try:
            await machine.initialize()
        except Exception as exc:
            self._fail(machine.get_issue(), exc)
            raise

        current = machine.get_issue()

        for agent in list(self._agents):
            try:
                self._emit(EventType.AGENT_START, issue_id=current.id, agent=agent.name)
                result = await agent.process(current)
                current = ensure_issue_record(agent.name, result)
                self._emit(
                    EventType.AGENT_COMPLETE,
                    issue_id=current.id,
                    agent=agent.name,
                    issue=current.model_copy(deep=True),
                )
            except Exception as exc:
                self._fail(current, exc, agent=agent.name)
                raise

        duration = time.monotonic() - started
        logger.info(
            "Pipeline completed",
            extra={"issue_id": current.id, "duration_seconds": round(duration, 3)},
        )
        try:
            self._emit(
                EventType.PIPELINE_COMPLETE,
                issue_id=current.id,
                issue=current.model_copy(deep=True),
                duration_seconds=duration,
            )
        except Exception as exc:
            self._fail(current, exc)
            raise
        return current

    def _forward_machine_events(self, machine: IssueStateMachine) -> None:
        """Republish state machine events under pipeline-scoped names."""

        def forward(event: LifecycleEvent) -> None:
            self._events.emit(
                LifecycleEvent(
                    event_type=PIPELINE_FORWARDS[event.event_type],
                    issue_id=event.issue_id,
                    timestamp=event.timestamp,
                    details=dict(event.details),
                )
            )

        for source_type in PIPELINE_FORWARDS:
            machine.on(source_type, forward)

    def _fail(
        self,
        issue: IssueRecord,
        exc: Exception,
        agent: Optional[str] = None,
    ) -> None:
        logger.error(
            "Pipeline failed",
            extra={
                "issue_id": issue.id,
                "agent": agent,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
        details = {
            "error": str(exc),
            "error_type": type(exc).__name__,
            "issue": issue.model_copy(deep=True),
        }
        if agent is not None:
            details["agent"] = agent
        self._emit(EventType.PIPELINE_ERROR, issue_id=issue.id, **details)

    def _emit(
        self,
        event_type: EventType,
        issue_id: Optional[str] = None,
        **details,
    ) -> None:
        self._events.emit(
            LifecycleEvent(event_type=event_type, issue_id=issue_id, details=details)
        )
