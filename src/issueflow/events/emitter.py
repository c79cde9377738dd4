"""Event dispatch and sinks for lifecycle observability.

This module provides two layers:

- EventDispatcher: A per-instance listener registry. Components own one
  and call ``emit`` synchronously, so subscribers observe events in
  exactly the order they happen. Listener exceptions propagate.
- EventEmitter sinks: Destinations every dispatched event is forwarded
  to after listeners run (logs, metrics). Sink failures are logged and
  never reach the component that emitted the event.

Sinks:
- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- NullEventEmitter: Discards events (for testing)
- MetricsEventEmitter: Prometheus metrics (see metrics.py)
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Dict, List, Optional

from src.issueflow.events.models import ERROR_EVENT_TYPES, EventType, LifecycleEvent


logger = logging.getLogger(__name__)


Listener = Callable[[LifecycleEvent], None]


class EventSinkType(str, Enum):
    """Types of event sinks supported by the service.

    Attributes:
        LOGGING: Emit events as structured log entries.
        METRICS: Emit events as Prometheus metrics.
    """

    LOGGING = "logging"
    METRICS = "metrics"


class EventEmitter(ABC):
    """Abstract base class for event sinks.

    Sinks publish lifecycle events to external systems. ``emit`` is
    called synchronously from the dispatching component, so it should
    return quickly.

    Example:
        >>> class MyEmitter(EventEmitter):
        ...     def emit(self, event: LifecycleEvent) -> None:
        ...         print(event.event_type)
    """

    @abstractmethod
    def emit(self, event: LifecycleEvent) -> None:
        """Publish an event.

        Args:
            event: The lifecycle event to publish.
        """

    def close(self) -> None:
        """Release resources. The default implementation does nothing."""


class LoggingEventEmitter(EventEmitter):
    """Sink that writes events as structured log entries.

    Error events (ERROR, FSM_ERROR, PIPELINE_ERROR) are logged at ERROR
    level; every other event at INFO. Event fields are attached as
    ``extra`` so the structured formatter renders them as keys.

    Example:
        >>> emitter = LoggingEventEmitter()
        >>> emitter.emit(LifecycleEvent(event_type=EventType.AGENT_START,
        ...                             issue_id="42", details={"agent": "review"}))
        # Logs: INFO - Lifecycle event: agent_start for 42
    """

    def __init__(self, logger_name: Optional[str] = None):
        """Initialize the logging sink.

        Args:
            logger_name: Optional logger name. If not provided, uses
                         the module logger.
        """
        self._logger = logging.getLogger(logger_name) if logger_name else logger

    def emit(self, event: LifecycleEvent) -> None:
        """Emit event as a structured log entry."""
        level = logging.ERROR if event.event_type in ERROR_EVENT_TYPES else logging.INFO
        self._logger.log(
            level,
            "Lifecycle event: %s for %s",
            event.event_type.value,
            event.issue_id,
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Sink that delegates to multiple child sinks.

    Each child is called independently; a failing child is logged and
    does not stop delivery to the others.

    Example:
        >>> composite = CompositeEventEmitter([LoggingEventEmitter(), MetricsEventEmitter()])
        >>> composite.emit(event)  # Emits to both sinks
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self._emitters: List[EventEmitter] = list(emitters or [])

    def add_emitter(self, emitter: EventEmitter) -> None:
        """Add a child sink."""
        self._emitters.append(emitter)

    @property
    def emitters(self) -> List[EventEmitter]:
        """Child sinks (copy)."""
        return list(self._emitters)

    def emit(self, event: LifecycleEvent) -> None:
        """Emit event to all child sinks."""
        for emitter in self._emitters:
            try:
                emitter.emit(event)
            except Exception as e:
                logger.error(
                    "Failed to emit event to %s: %s",
                    type(emitter).__name__,
                    str(e),
                    extra={
                        "emitter_type": type(emitter).__name__,
                        "event_type": event.event_type.value,
                        "issue_id": event.issue_id,
                    },
                )

    def close(self) -> None:
        """Close all child sinks."""
        for emitter in self._emitters:
            try:
                emitter.close()
            except Exception as e:
                logger.error(
                    "Failed to close emitter %s: %s",
                    type(emitter).__name__,
                    str(e),
                )


class NullEventEmitter(EventEmitter):
    """Sink that discards all events."""

    def emit(self, event: LifecycleEvent) -> None:
        pass


class EventDispatcher:
    """Listener registry with synchronous, ordered delivery.

    Listeners subscribed to a specific event type run in subscription
    order, followed by catch-all listeners, followed by the optional
    sink. A listener that raises aborts delivery and the exception
    propagates to the caller of ``emit``.

    Attributes:
        sink: Optional EventEmitter every event is forwarded to.

    Example:
        >>> dispatcher = EventDispatcher()
        >>> seen = []
        >>> dispatcher.on(EventType.AGENT_START, seen.append)
        >>> dispatcher.emit(LifecycleEvent(event_type=EventType.AGENT_START))
        >>> len(seen)
        1
    """

    def __init__(self, sink: Optional[EventEmitter] = None):
        self.sink = sink
        self._listeners: Dict[EventType, List[Listener]] = {}
        self._catch_all: List[Listener] = []

    def on(self, event_type: EventType, listener: Listener) -> None:
        """Subscribe a listener to one event type."""
        self._listeners.setdefault(event_type, []).append(listener)

    def on_any(self, listener: Listener) -> None:
        """Subscribe a listener to every event type."""
        self._catch_all.append(listener)

    def off(self, event_type: EventType, listener: Listener) -> bool:
        """Unsubscribe a listener.

        Returns:
            True if the listener was found and removed, False otherwise.
        """
        try:
            self._listeners.get(event_type, []).remove(listener)
            return True
        except ValueError:
            return False

    def listener_count(self, event_type: EventType) -> int:
        """Number of listeners subscribed to an event type (excluding catch-all)."""
        return len(self._listeners.get(event_type, []))

    def emit(self, event: LifecycleEvent) -> None:
        """Deliver an event to listeners, then to the sink."""
        for listener in list(self._listeners.get(event.event_type, [])):
            listener(event)
        for listener in list(self._catch_all):
            listener(event)

        if self.sink is None:
            return
        try:
            self.sink.emit(event)
        except Exception:
            logger.exception(
                "Failed to forward event to sink",
                extra={
                    "event_type": event.event_type.value,
                    "issue_id": event.issue_id,
                },
            )


def create_event_emitter(
    sink_types: Optional[List[EventSinkType]] = None,
    logger_name: Optional[str] = None,
) -> EventEmitter:
    """Factory function to create event sinks based on configuration.

    Args:
        sink_types: Sink types to enable. If None or empty, returns a
                    LoggingEventEmitter as the default.
        logger_name: Optional logger name for the LoggingEventEmitter.

    Returns:
        An EventEmitter configured for the requested sinks.

    Example:
        >>> isinstance(create_event_emitter(), LoggingEventEmitter)
        True
        >>> emitter = create_event_emitter([EventSinkType.LOGGING, EventSinkType.METRICS])
        >>> isinstance(emitter, CompositeEventEmitter)
        True
    """
    if not sink_types:
        return LoggingEventEmitter(logger_name=logger_name)

    emitters: List[EventEmitter] = []

    for sink_type in sink_types:
        if sink_type == EventSinkType.LOGGING:
            emitters.append(LoggingEventEmitter(logger_name=logger_name))
        elif sink_type == EventSinkType.METRICS:
            # Imported here because metrics.py imports this module
            from src.issueflow.events.metrics import MetricsEventEmitter

            emitters.append(MetricsEventEmitter())
        else:
            logger.warning("Unknown event sink type: %s, skipping", sink_type)

    if not emitters:
        return LoggingEventEmitter(logger_name=logger_name)

    if len(emitters) == 1:
        return emitters[0]

    return CompositeEventEmitter(emitters)
