"""Tracker-level orchestration.

The IssueRouter connects tracker events and operator requests to the
lifecycle and the agents. The tracker is the source of truth: every
operation rebuilds the IssueRecord from the tracker, applies the change
locally, and writes the label differences back.

Webhook actions:
- opened: run the issue through the agent pipeline
- closed: transition to CLOSED
- reopened: transition to PENDING
- anything else: logged and ignored
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

from src.issueflow.agents.formatting import format_transition_comment
from src.issueflow.events.emitter import EventEmitter
from src.issueflow.github.models import GitHubIssue
from src.issueflow.lifecycle.machine import InvalidTransitionError, IssueStateMachine
from src.issueflow.lifecycle.models import (
    AGENT_LABEL_PREFIX,
    STATE_LABEL_PREFIX,
    IssueRecord,
    IssueState,
    StateTransition,
)
from src.issueflow.pipeline.agent import Agent, ensure_issue_record
from src.issueflow.pipeline.orchestrator import AgentPipeline
from src.issueflow.ports import IssueStore
from src.issueflow.webhook.models import GitHubIssueEvent, IssueAction


logger = logging.getLogger(__name__)


DEFAULT_AGENT = "coordinator"

CLOSED_REASON = "Issue closed"
REOPENED_REASON = "Issue reopened"


class UnknownAgentError(Exception):
    """Raised when an agent name is not registered with the router.

    Attributes:
        agent_name: The requested name.
        available: Names that are registered.
    """

    def __init__(self, agent_name: str, available: Sequence[str]):
        self.agent_name = agent_name
        self.available = sorted(available)
        super().__init__(
            f"Unknown agent '{agent_name}'. Available: {', '.join(self.available) or 'none'}"
        )


def label_changes(
    before: Sequence[str],
    after: Sequence[str],
) -> Tuple[List[str], List[str]]:
    """Labels to add and ``state:*`` labels to remove on the tracker.

    Only state labels are ever removed; other labels the tracker carries
    are left alone even when a local record dropped them.

    Returns:
        Tuple of (labels_to_add, labels_to_remove).

    Example:
        >>> label_changes(["bug", "state:new"], ["bug", "state:pending", "priority:low"])
        (['state:pending', 'priority:low'], ['state:new'])
    """
    before_set = set(before)
    after_set = set(after)
    to_add = [label for label in after if label not in before_set]
    to_remove = [
        label for label in before
        if label.startswith(STATE_LABEL_PREFIX) and label not in after_set
    ]
    return to_add, to_remove


class IssueRouter:
    """Routes tracker events and operator requests for one repository.

    Attributes:
        store: Issue tracker.
        pipeline: Pipeline run for newly opened issues.
        sink: Event sink for state machines created by transitions.

    Example:
        >>> router = IssueRouter(store, pipeline, agents=[coordinator, codegen])
        >>> await router.transition_issue(42, IssueState.IN_PROGRESS, "picked up")
        >>> await router.run_agent(42, "codegen")
    """

    def __init__(
        self,
        store: IssueStore,
        pipeline: AgentPipeline,
        agents: Optional[Sequence[Agent]] = None,
        sink: Optional[EventEmitter] = None,
    ):
        self.store = store
        self.pipeline = pipeline
        self.sink = sink
        self._agents: Dict[str, Agent] = {agent.name: agent for agent in agents or []}

    @property
    def agent_names(self) -> List[str]:
        return sorted(self._agents)

    async def load_issue(self, issue_number: int) -> IssueRecord:
        """Rebuild an issue record from the tracker."""
        data = await self.store.get_issue(issue_number)
        return GitHubIssue.from_api(data).to_issue_record()

    async def handle_issue_event(self, event: GitHubIssueEvent) -> Optional[IssueRecord]:
        """React to an ``issues`` webhook event.

        Returns:
            The resulting record for handled actions, None when ignored.

        Raises:
            Exception: Whatever the pipeline or tracker raised for an
                opened issue. Invalid transitions for closed/reopened
                issues are logged and ignored.
        """
        logger.info(
            "Handling issue event",
            extra={"action": event.action.value, "issue_number": event.issue_number},
        )

        if event.action == IssueAction.OPENED:
            record = await self.load_issue(event.issue_number)
            result = await self.pipeline.process_issue(record)
            await self._sync_labels(event.issue_number, record.labels, result.labels)
            return result

        if event.action in (IssueAction.CLOSED, IssueAction.REOPENED):
            to_state, reason = (
                (IssueState.CLOSED, CLOSED_REASON)
                if event.action == IssueAction.CLOSED
                else (IssueState.PENDING, REOPENED_REASON)
            )
            try:
                _, record = await self._transition(event.issue_number, to_state, reason)
            except InvalidTransitionError as e:
                logger.warning(
                    "Ignoring tracker event that does not map to a valid transition",
                    extra={
                        "issue_number": event.issue_number,
                        "action": event.action.value,
                        "from_state": e.from_state.value,
                        "to_state": e.to_state.value,
                    },
                )
                return None
            return record

        logger.info(
            "Ignoring unhandled issue action",
            extra={"action": event.action.value, "issue_number": event.issue_number},
        )
        return None

    async def transition_issue(
        self,
        issue_number: int,
        to_state: IssueState,
        reason: Optional[str] = None,
    ) -> StateTransition:
        """Move an issue to a new lifecycle state on the tracker.

        Args:
            issue_number: Tracker issue number.
            to_state: Target state.
            reason: Optional explanation, included in the comment.

        Returns:
            The recorded transition.

        Raises:
            InvalidTransitionError: If the tracker state cannot move to
                ``to_state``. Nothing is written to the tracker.
        """
        transition, _ = await self._transition(issue_number, to_state, reason)
        return transition

    async def _transition(
        self,
        issue_number: int,
        to_state: IssueState,
        reason: Optional[str],
    ) -> Tuple[StateTransition, IssueRecord]:
        record = await self.load_issue(issue_number)
        machine = IssueStateMachine(record, sink=self.sink)
        transition = await machine.transition(to_state, reason)
        updated = machine.get_issue()

        await self._sync_labels(issue_number, record.labels, updated.labels)
        await self.store.create_comment(
            issue_number,
            format_transition_comment(transition.from_state, transition.to_state, reason),
        )
        return transition, updated

    def resolve_agent(self, record: IssueRecord, agent_name: Optional[str] = None) -> Agent:
        """Pick the agent to run for an issue.

        An explicit name wins, then the first ``agent:<name>`` label, then
        the coordinator.

        Raises:
            UnknownAgentError: If the chosen name is not registered.
        """
        name = agent_name
        if name is None:
            name = next(
                (
                    label[len(AGENT_LABEL_PREFIX):]
                    for label in record.labels
                    if label.startswith(AGENT_LABEL_PREFIX)
                ),
                DEFAULT_AGENT,
            )

        agent = self._agents.get(name)
        if agent is None:
            raise UnknownAgentError(name, self._agents)
        return agent

    async def run_agent(
        self,
        issue_number: int,
        agent_name: Optional[str] = None,
    ) -> IssueRecord:
        """Run one agent against an issue and sync its label changes.

        Raises:
            UnknownAgentError: If no agent matches.
            Exception: Whatever the agent raised.
        """
        record = await self.load_issue(issue_number)
        agent = self.resolve_agent(record, agent_name)

        logger.info(
            "Running agent",
            extra={"issue_number": issue_number, "agent": agent.name},
        )
        result = ensure_issue_record(agent.name, await agent.process(record))
        await self._sync_labels(issue_number, record.labels, result.labels)
        return result

    async def _sync_labels(
        self,
        issue_number: int,
        before: Sequence[str],
        after: Sequence[str],
    ) -> None:
        to_add, to_remove = label_changes(before, after)
        if to_add:
            await self.store.add_labels(issue_number, to_add)
        for label in to_remove:
            await self.store.remove_label(issue_number, label)
        if to_add or to_remove:
            logger.info(
                "Synced labels to tracker",
                extra={
                    "issue_number": issue_number,
                    "added": to_add,
                    "removed": to_remove,
                },
            )
