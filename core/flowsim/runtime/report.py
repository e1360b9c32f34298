"""
Execution Report - Exportable summary of one simulation run.

Shape (camelCase keys, matching the editor's export format):

    {
      "workflow": {"nodes", "edges", "executionTime", "completed", "errors"},
      "nodeData": {node_id: payload},
      "executionLogs": [{"timestamp", "level", "message"}]
    }
"""

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from flowsim.schemas.execution import NodeState, RunStatus
from flowsim.utils.io import atomic_write

if TYPE_CHECKING:
    from flowsim.runtime.engine import ExecutionEngine


class WorkflowSummary(BaseModel):
    nodes: int = 0
    edges: int = 0
    execution_time: float = Field(default=0.0, alias="executionTime", description="Seconds")
    completed: int = 0
    errors: int = 0

    model_config = {"populate_by_name": True}


class ExecutionReport(BaseModel):
    """Performance report for a finished (or stalled) run."""

    run_id: str | None = Field(default=None, alias="runId")
    status: RunStatus = RunStatus.IDLE
    execution_path: list[str] = Field(default_factory=list, alias="executionPath")
    workflow: WorkflowSummary = Field(default_factory=WorkflowSummary)
    node_data: dict[str, Any] = Field(default_factory=dict, alias="nodeData")
    execution_logs: list[dict[str, Any]] = Field(default_factory=list, alias="executionLogs")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_engine(
        cls,
        engine: "ExecutionEngine",
        elapsed_seconds: float | None = None,
    ) -> "ExecutionReport":
        """Summarize the engine's current run."""
        states = engine.node_states()
        graph = engine.graph
        if elapsed_seconds is None:
            elapsed_seconds = engine.elapsed_seconds()

        return cls(
            run_id=engine.run_id,
            status=engine.status,
            execution_path=engine.execution_path(),
            workflow=WorkflowSummary(
                nodes=len(graph.nodes) if graph else 0,
                edges=len(graph.edges) if graph else 0,
                execution_time=round(elapsed_seconds, 3),
                completed=sum(1 for s in states.values() if s == NodeState.COMPLETED),
                errors=sum(1 for s in states.values() if s == NodeState.ERROR),
            ),
            node_data=engine.node_outputs(),
            execution_logs=[entry.to_dict() for entry in engine.logs()],
        )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def save(self, path: Path | str) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with atomic_write(path) as f:
            f.write(self.to_json())
