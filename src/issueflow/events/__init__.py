"""Lifecycle events and observability.

Event dispatch:
- EventDispatcher: Per-instance listener registry with synchronous delivery

Event sinks:
- EventEmitter: Abstract base class for sinks
- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- MetricsEventEmitter: Emits events as Prometheus metrics
- NullEventEmitter: Discards events (for testing)
- create_event_emitter: Creates sinks based on configuration
"""

from src.issueflow.events.emitter import (
    CompositeEventEmitter,
    EventDispatcher,
    EventEmitter,
    EventSinkType,
    LoggingEventEmitter,
    NullEventEmitter,
    create_event_emitter,
)
from src.issueflow.events.metrics import (
    MetricsEventEmitter,
    PipelineMetrics,
    generate_metrics_output,
    get_metrics,
)
from src.issueflow.events.models import EventType, LifecycleEvent, PIPELINE_FORWARDS

__all__ = [
    # Event models
    "EventType",
    "LifecycleEvent",
    "PIPELINE_FORWARDS",
    # Dispatch
    "EventDispatcher",
    # Sinks
    "EventEmitter",
    "LoggingEventEmitter",
    "CompositeEventEmitter",
    "MetricsEventEmitter",
    "NullEventEmitter",
    "EventSinkType",
    "create_event_emitter",
    # Metrics
    "PipelineMetrics",
    "get_metrics",
    "generate_metrics_output",
]
