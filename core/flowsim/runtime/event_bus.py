"""
Event Bus - Pub/sub stream of execution state changes.

The engine publishes every mutation of its run state (status transitions,
node/edge states, outputs, log lines, progress) so presentation layers can
render a run without polling. Delivery is synchronous and in publish order;
a failing handler is logged and never affects the engine or other handlers.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Types of events the engine publishes."""

    # Run lifecycle
    RUN_INITIALIZED = "run_initialized"
    RUN_STARTED = "run_started"
    RUN_PAUSED = "run_paused"
    RUN_RESUMED = "run_resumed"
    RUN_STOPPED = "run_stopped"
    RUN_COMPLETED = "run_completed"

    # State changes
    NODE_STATE_CHANGED = "node_state_changed"
    EDGE_STATE_CHANGED = "edge_state_changed"
    NODE_OUTPUT_SET = "node_output_set"

    # Log and progress
    LOG_APPENDED = "log_appended"
    PROGRESS_CHANGED = "progress_changed"


@dataclass
class RunEvent:
    """An event emitted by an execution engine."""

    type: EventType
    run_id: str | None = None
    node_id: str | None = None  # Node the event concerns, if any
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "type": self.type.value,
            "run_id": self.run_id,
            "node_id": self.node_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


# Type for event handlers
EventHandler = Callable[[RunEvent], None]


@dataclass
class Subscription:
    """A subscription to events."""

    id: str
    event_types: set[EventType]
    handler: EventHandler
    filter_node: str | None = None  # Only receive events about this node
    filter_run: str | None = None  # Only receive events from this run


class EventBus:
    """
    Synchronous pub/sub bus for run events.

    Example:
        bus = EventBus()

        def on_complete(event: RunEvent):
            print(f"Run {event.run_id} completed")

        bus.subscribe(event_types=[EventType.RUN_COMPLETED], handler=on_complete)
    """

    def __init__(self, max_history: int = 1000):
        """
        Args:
            max_history: Maximum events to keep in history
        """
        self._subscriptions: dict[str, Subscription] = {}
        self._event_history: deque[RunEvent] = deque(maxlen=max_history)
        self._subscription_counter = 0

    def subscribe(
        self,
        event_types: list[EventType],
        handler: EventHandler,
        filter_node: str | None = None,
        filter_run: str | None = None,
    ) -> str:
        """
        Subscribe to events.

        Args:
            event_types: Types of events to receive
            handler: Function called with each matching event
            filter_node: Only receive events about this node
            filter_run: Only receive events from this run

        Returns:
            Subscription ID (use to unsubscribe)
        """
        self._subscription_counter += 1
        sub_id = f"sub_{self._subscription_counter}"

        self._subscriptions[sub_id] = Subscription(
            id=sub_id,
            event_types=set(event_types),
            handler=handler,
            filter_node=filter_node,
            filter_run=filter_run,
        )
        logger.debug(f"Subscription {sub_id} registered for {event_types}")
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove a subscription. Returns True if it existed."""
        if subscription_id in self._subscriptions:
            del self._subscriptions[subscription_id]
            logger.debug(f"Subscription {subscription_id} removed")
            return True
        return False

    def publish(self, event: RunEvent) -> None:
        """Record the event and deliver it to every matching subscriber."""
        self._event_history.append(event)

        # Snapshot: handlers may subscribe or unsubscribe while we iterate
        for subscription in list(self._subscriptions.values()):
            if not self._matches(subscription, event):
                continue
            try:
                subscription.handler(event)
            except Exception as e:
                logger.error(f"Handler error for {event.type}: {e}", exc_info=True)

    def emit(
        self,
        event_type: EventType,
        run_id: str | None = None,
        node_id: str | None = None,
        **data: Any,
    ) -> RunEvent:
        """Build and publish an event in one call."""
        event = RunEvent(type=event_type, run_id=run_id, node_id=node_id, data=data)
        self.publish(event)
        return event

    def _matches(self, subscription: Subscription, event: RunEvent) -> bool:
        """Check if a subscription matches an event."""
        if event.type not in subscription.event_types:
            return False

        if subscription.filter_node and subscription.filter_node != event.node_id:
            return False

        if subscription.filter_run and subscription.filter_run != event.run_id:
            return False

        return True

    # === QUERY OPERATIONS ===

    def get_history(
        self,
        event_type: EventType | None = None,
        run_id: str | None = None,
        node_id: str | None = None,
        limit: int = 100,
    ) -> list[RunEvent]:
        """
        Get event history with optional filtering.

        Returns:
            List of matching events (most recent first)
        """
        events = list(reversed(self._event_history))

        if event_type:
            events = [e for e in events if e.type == event_type]
        if run_id:
            events = [e for e in events if e.run_id == run_id]
        if node_id:
            events = [e for e in events if e.node_id == node_id]

        return events[:limit]

    def get_stats(self) -> dict:
        """Get event bus statistics."""
        type_counts: dict[str, int] = {}
        for event in self._event_history:
            type_counts[event.type.value] = type_counts.get(event.type.value, 0) + 1

        return {
            "total_events": len(self._event_history),
            "subscriptions": len(self._subscriptions),
            "events_by_type": type_counts,
        }

    def clear_history(self) -> None:
        self._event_history.clear()

    # === WAITING OPERATIONS ===

    async def wait_for(
        self,
        event_type: EventType,
        run_id: str | None = None,
        node_id: str | None = None,
        timeout: float | None = None,
    ) -> RunEvent | None:
        """
        Wait for a specific event while the engine runs on the event loop.

        Only useful with a scheduler that steps the engine from the running
        loop (``AsyncioScheduler``).

        Returns:
            The event if received, None on timeout
        """
        result: RunEvent | None = None
        event_received = asyncio.Event()

        def handler(event: RunEvent) -> None:
            nonlocal result
            result = event
            event_received.set()

        sub_id = self.subscribe(
            event_types=[event_type],
            handler=handler,
            filter_node=node_id,
            filter_run=run_id,
        )

        try:
            if timeout:
                try:
                    await asyncio.wait_for(event_received.wait(), timeout=timeout)
                except TimeoutError:
                    return None
            else:
                await event_received.wait()
            return result
        finally:
            self.unsubscribe(sub_id)
