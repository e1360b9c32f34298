"""Graph structures: nodes, edges, connection rules, history, and branching."""

from flowsim.graph.branch import (
    BranchDecision,
    BranchResolver,
    DecisionReason,
    FanOutPolicy,
    FirstEdgePolicy,
    StrictPolicy,
    TraversalPolicy,
    get_policy,
)
from flowsim.graph.connection import (
    ConnectionCheck,
    RejectionReason,
    can_connect,
    check_connection,
    needs_hidden_arrowhead,
)
from flowsim.graph.editor import ImportResult, WorkflowEditor, default_label
from flowsim.graph.history import CommandHistory, HistoryEntry
from flowsim.graph.io import dump_graph, load_graph, parse_graph, save_graph
from flowsim.graph.model import Edge, Node, NodeKind, Position, WorkflowGraph
from flowsim.graph.templates import WorkflowTemplate, get_template, list_templates

__all__ = [
    # Model
    "Node",
    "NodeKind",
    "Edge",
    "Position",
    "WorkflowGraph",
    # Connection
    "ConnectionCheck",
    "RejectionReason",
    "can_connect",
    "check_connection",
    "needs_hidden_arrowhead",
    # History
    "CommandHistory",
    "HistoryEntry",
    # Branching
    "BranchDecision",
    "BranchResolver",
    "DecisionReason",
    "TraversalPolicy",
    "FirstEdgePolicy",
    "FanOutPolicy",
    "StrictPolicy",
    "get_policy",
    # Editor
    "WorkflowEditor",
    "ImportResult",
    "default_label",
    # IO
    "parse_graph",
    "load_graph",
    "dump_graph",
    "save_graph",
    # Templates
    "WorkflowTemplate",
    "get_template",
    "list_templates",
]
