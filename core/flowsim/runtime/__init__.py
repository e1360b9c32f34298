"""Runtime: the execution engine, its schedulers, event stream and reports."""

from flowsim.runtime.engine import ExecutionEngine
from flowsim.runtime.event_bus import EventBus, EventType, RunEvent
from flowsim.runtime.report import ExecutionReport
from flowsim.runtime.scheduler import (
    AsyncioScheduler,
    InlineScheduler,
    ManualScheduler,
    Scheduler,
)

__all__ = [
    "ExecutionEngine",
    "ExecutionReport",
    "EventBus",
    "EventType",
    "RunEvent",
    "Scheduler",
    "InlineScheduler",
    "ManualScheduler",
    "AsyncioScheduler",
]
