"""
flowsim - Headless workflow authoring and simulation.

Build directed graphs of typed nodes, connect them through the connection
rules, undo and redo edits, and replay the workflow step by step with
simulated node outputs.

Example:
    from flowsim import ExecutionEngine, WorkflowEditor, NodeKind

    editor = WorkflowEditor()
    hook = editor.add_node(NodeKind.TRIGGER, "webhook")
    send = editor.add_node(NodeKind.MESSAGE, "message", config={"message": "Hi"})
    editor.connect(hook.id, send.id)

    snapshot = ExecutionEngine().run(editor.graph, {"webhookPayload": {"x": 1}})
    print(snapshot.execution_path)
"""

from flowsim.errors import (
    AmbiguousBranchError,
    ConnectionRejectedError,
    EngineStateError,
    FlowsimError,
    GraphImportError,
    GraphStructureError,
    SimulatedNodeError,
    SimulationError,
)
from flowsim.graph import (
    BranchResolver,
    CommandHistory,
    Edge,
    FanOutPolicy,
    FirstEdgePolicy,
    Node,
    NodeKind,
    StrictPolicy,
    WorkflowEditor,
    WorkflowGraph,
    can_connect,
    load_graph,
    parse_graph,
)
from flowsim.runtime import (
    AsyncioScheduler,
    EventBus,
    EventType,
    ExecutionEngine,
    ExecutionReport,
    InlineScheduler,
    ManualScheduler,
)
from flowsim.schemas import (
    EdgeState,
    ErrorPolicy,
    ExecutionSnapshot,
    NodeState,
    RunStatus,
    ScenarioLibrary,
    Speed,
    TestScenario,
)
from flowsim.simulation import FixedProvider, NodeOutputSimulator, RandomProvider

__version__ = "0.1.0"

__all__ = [
    # Graph
    "Node",
    "NodeKind",
    "Edge",
    "WorkflowGraph",
    "WorkflowEditor",
    "CommandHistory",
    "BranchResolver",
    "FirstEdgePolicy",
    "FanOutPolicy",
    "StrictPolicy",
    "can_connect",
    "load_graph",
    "parse_graph",
    # Simulation
    "NodeOutputSimulator",
    "RandomProvider",
    "FixedProvider",
    # Runtime
    "ExecutionEngine",
    "ExecutionReport",
    "EventBus",
    "EventType",
    "InlineScheduler",
    "ManualScheduler",
    "AsyncioScheduler",
    # Schemas
    "NodeState",
    "EdgeState",
    "RunStatus",
    "ErrorPolicy",
    "Speed",
    "ExecutionSnapshot",
    "TestScenario",
    "ScenarioLibrary",
    # Errors
    "FlowsimError",
    "GraphStructureError",
    "GraphImportError",
    "ConnectionRejectedError",
    "SimulationError",
    "SimulatedNodeError",
    "AmbiguousBranchError",
    "EngineStateError",
]
