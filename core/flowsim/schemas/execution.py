"""
Execution Schema - Per-run state of a simulated workflow.

The engine owns these values; observers receive copies through
``ExecutionSnapshot`` or the event bus.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


class NodeState(StrEnum):
    """Execution state of a single node."""

    PENDING = "pending"
    ACTIVE = "active"  # At most one per run
    COMPLETED = "completed"
    ERROR = "error"


class EdgeState(StrEnum):
    INACTIVE = "inactive"
    ACTIVE = "active"  # Traversed during this run


class RunStatus(StrEnum):
    """Status of the engine's state machine."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"  # Includes runs stalled on a node error
    COMPLETED = "completed"
    STOPPED = "stopped"


class LogLevel(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ErrorPolicy(StrEnum):
    """What the engine does after a node fails."""

    STALL = "stall"  # Stop advancing; the run stays paused on the failed node
    CONTINUE = "continue"  # Log the error and follow the node's edges anyway


class Speed(StrEnum):
    """Pacing between steps."""

    SLOW = "slow"
    NORMAL = "normal"
    FAST = "fast"
    INSTANT = "instant"

    @property
    def delay(self) -> float:
        """Seconds between steps."""
        return SPEED_DELAYS[self]


SPEED_DELAYS: dict[Speed, float] = {
    Speed.SLOW: 2.0,
    Speed.NORMAL: 1.0,
    Speed.FAST: 0.5,
    Speed.INSTANT: 0.0,
}


class ExecutionLogEntry(BaseModel):
    """One line of the execution log. Entries are never modified."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    level: LogLevel = LogLevel.INFO
    message: str
    node_id: str | None = None

    model_config = ConfigDict(frozen=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "message": self.message,
        }

    def format(self) -> str:
        return f"[{self.timestamp.strftime('%H:%M:%S')}] {self.level.value.upper():<7} {self.message}"


class ExecutionSnapshot(BaseModel):
    """Read-only copy of an engine's state at one instant."""

    run_id: str | None = None
    status: RunStatus = RunStatus.IDLE
    current_node_id: str | None = None
    progress: int = 0
    node_states: dict[str, NodeState] = Field(default_factory=dict)
    edge_states: dict[str, EdgeState] = Field(default_factory=dict)
    node_outputs: dict[str, Any] = Field(default_factory=dict)
    logs: list[ExecutionLogEntry] = Field(default_factory=list)
    execution_path: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def completed_count(self) -> int:
        return sum(1 for s in self.node_states.values() if s == NodeState.COMPLETED)

    @computed_field
    @property
    def error_count(self) -> int:
        return sum(1 for s in self.node_states.values() if s == NodeState.ERROR)

    @property
    def is_finished(self) -> bool:
        return self.status in (RunStatus.COMPLETED, RunStatus.STOPPED)
