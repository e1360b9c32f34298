"""Schema definitions for execution state and test scenarios."""

from flowsim.schemas.execution import (
    EdgeState,
    ErrorPolicy,
    ExecutionLogEntry,
    ExecutionSnapshot,
    LogLevel,
    NodeState,
    RunStatus,
    Speed,
)
from flowsim.schemas.scenario import ScenarioLibrary, TestScenario

__all__ = [
    "NodeState",
    "EdgeState",
    "RunStatus",
    "LogLevel",
    "ErrorPolicy",
    "Speed",
    "ExecutionLogEntry",
    "ExecutionSnapshot",
    "TestScenario",
    "ScenarioLibrary",
]
