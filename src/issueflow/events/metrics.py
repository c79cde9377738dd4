"""Prometheus metrics for issue processing.

Metrics Defined:
- issueflow_issues_processed_total: Counter of issues through the pipeline
- issueflow_agent_runs_total: Counter of agent executions
- issueflow_state_transitions_total: Counter of lifecycle transitions
- issueflow_pipeline_duration_seconds: Histogram of pipeline run time

The MetricsEventEmitter is an event sink that updates these metrics from
lifecycle events; the service exposes them at ``/metrics``.
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

from src.issueflow.events.emitter import EventEmitter
from src.issueflow.events.models import EventType, LifecycleEvent


logger = logging.getLogger(__name__)


# Bucket boundaries for the pipeline duration histogram, 0.1s to 30 minutes
DEFAULT_DURATION_BUCKETS = (
    0.1,
    0.5,
    1.0,
    5.0,
    15.0,
    30.0,
    60.0,
    300.0,
    900.0,
    1800.0,
)


class PipelineMetrics:
    """Container for all issue processing Prometheus metrics.

    Metrics:
        issues_processed_total: Labels: result (success/failure)
        agent_runs_total: Labels: agent, result (success/failure)
        state_transitions_total: Labels: from_state, to_state
        pipeline_duration_seconds: Histogram, no labels

    Example:
        >>> metrics = PipelineMetrics(registry=CollectorRegistry())
        >>> metrics.record_issue_processed(success=True)
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics.

        Args:
            registry: Optional Prometheus registry. If None, uses the
                      default REGISTRY. Pass a custom registry for testing.
        """
        self.registry = registry or REGISTRY

        self.issues_processed_total = Counter(
            "issueflow_issues_processed_total",
            "Total number of issues processed by the agent pipeline",
            labelnames=["result"],
            registry=self.registry,
        )

        self.agent_runs_total = Counter(
            "issueflow_agent_runs_total",
            "Total number of agent executions",
            labelnames=["agent", "result"],
            registry=self.registry,
        )

        self.state_transitions_total = Counter(
            "issueflow_state_transitions_total",
            "Total number of lifecycle state transitions",
            labelnames=["from_state", "to_state"],
            registry=self.registry,
        )

        self.pipeline_duration_seconds = Histogram(
            "issueflow_pipeline_duration_seconds",
            "Time spent processing an issue through the pipeline in seconds",
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_issue_processed(self, success: bool) -> None:
        """Record that an issue finished the pipeline."""
        result = "success" if success else "failure"
        self.issues_processed_total.labels(result=result).inc()

    def record_agent_run(self, agent: str, success: bool) -> None:
        """Record one agent execution."""
        result = "success" if success else "failure"
        self.agent_runs_total.labels(agent=agent, result=result).inc()

    def record_transition(self, from_state: str, to_state: str) -> None:
        """Record a lifecycle transition."""
        self.state_transitions_total.labels(
            from_state=from_state,
            to_state=to_state,
        ).inc()

    def record_pipeline_duration(self, duration_seconds: float) -> None:
        """Record how long a pipeline run took."""
        self.pipeline_duration_seconds.observe(duration_seconds)


# Global metrics instance for the default registry
_default_metrics: Optional[PipelineMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> PipelineMetrics:
    """Get or create the metrics instance.

    Args:
        registry: Optional Prometheus registry. If None, returns the
                  global metrics instance for the default registry.

    Returns:
        PipelineMetrics: The metrics instance.
    """
    global _default_metrics

    if registry is not None:
        return PipelineMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = PipelineMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus text output for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)


class MetricsEventEmitter(EventEmitter):
    """Event sink that updates Prometheus metrics.

    Handles:
    - STATE_CHANGED / ISSUE_STATE_CHANGED: Increments state_transitions_total
    - AGENT_COMPLETE: Increments agent_runs_total (success)
    - PIPELINE_ERROR: Increments agent_runs_total (failure, when an agent
      failed) and issues_processed_total (failure)
    - PIPELINE_COMPLETE: Increments issues_processed_total (success) and
      records the duration

    Other events are ignored.
    """

    def __init__(
        self,
        metrics: Optional[PipelineMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        self._metrics = metrics if metrics is not None else get_metrics(registry)

    @property
    def metrics(self) -> PipelineMetrics:
        """The metrics instance updated by this sink."""
        return self._metrics

    def emit(self, event: LifecycleEvent) -> None:
        """Update metrics based on the lifecycle event."""
        try:
            if event.event_type in (EventType.STATE_CHANGED, EventType.ISSUE_STATE_CHANGED):
                self._metrics.record_transition(
                    str(event.details.get("from_state")),
                    str(event.details.get("to_state")),
                )
            elif event.event_type == EventType.AGENT_COMPLETE:
                self._metrics.record_agent_run(
                    str(event.details.get("agent", "unknown")),
                    success=True,
                )
            elif event.event_type == EventType.PIPELINE_ERROR:
                agent = event.details.get("agent")
                if agent:
                    self._metrics.record_agent_run(str(agent), success=False)
                self._metrics.record_issue_processed(success=False)
            elif event.event_type == EventType.PIPELINE_COMPLETE:
                self._metrics.record_issue_processed(success=True)
                duration = event.details.get("duration_seconds")
                if duration is not None:
                    self._metrics.record_pipeline_duration(float(duration))
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={"event_type": event.event_type.value, "issue_id": event.issue_id},
            )
