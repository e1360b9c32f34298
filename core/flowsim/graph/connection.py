"""
Connection Validator - Which edges may be created between two nodes.

Pure predicate layer consulted by the editor when a new edge is proposed.
Rules are evaluated in order and the first failing rule rejects:

1. Source is a data source (``isDataSource``) or has output connections
   disabled (``showOutputConnections = False``).
2. Target has input connections disabled (``showInputConnections = False``).
   A target's own ``isDataSource`` flag does not block incoming edges.
3. Otherwise accept.

The rules are checked at creation time only; changing a node's flags later
does not remove existing edges.
"""

from dataclasses import dataclass
from enum import StrEnum

from flowsim.graph.model import UNDIRECTED_KINDS, Node, WorkflowGraph


class RejectionReason(StrEnum):
    """Why a connection was refused."""

    UNKNOWN_SOURCE = "unknown_source"
    UNKNOWN_TARGET = "unknown_target"
    SOURCE_IS_DATA_SOURCE = "source_is_data_source"
    SOURCE_OUTPUTS_DISABLED = "source_outputs_disabled"
    TARGET_INPUTS_DISABLED = "target_inputs_disabled"
    TARGET_IS_DATA_SOURCE = "target_is_data_source"


@dataclass(frozen=True)
class ConnectionCheck:
    """Result of checking a proposed connection."""

    allowed: bool
    reason: RejectionReason | None = None

    def __bool__(self) -> bool:
        return self.allowed


_ACCEPT = ConnectionCheck(allowed=True)


def check_connection(
    graph: WorkflowGraph,
    source_id: str,
    target_id: str,
    block_data_source_targets: bool = False,
) -> ConnectionCheck:
    """Evaluate the gating rules for ``source_id -> target_id``.

    Args:
        graph: Graph holding both endpoints
        source_id: Proposed edge source
        target_id: Proposed edge target
        block_data_source_targets: Also refuse edges into a data-source node.
            Off by default so that only the three rules above apply.
    """
    source = graph.get_node(source_id)
    if source is None:
        return ConnectionCheck(False, RejectionReason.UNKNOWN_SOURCE)
    target = graph.get_node(target_id)
    if target is None:
        return ConnectionCheck(False, RejectionReason.UNKNOWN_TARGET)

    if source.is_data_source:
        return ConnectionCheck(False, RejectionReason.SOURCE_IS_DATA_SOURCE)
    if not source.emits_output:
        return ConnectionCheck(False, RejectionReason.SOURCE_OUTPUTS_DISABLED)

    if not target.accepts_input:
        return ConnectionCheck(False, RejectionReason.TARGET_INPUTS_DISABLED)
    if block_data_source_targets and target.is_data_source:
        return ConnectionCheck(False, RejectionReason.TARGET_IS_DATA_SOURCE)

    return _ACCEPT


def can_connect(graph: WorkflowGraph, source_id: str, target_id: str) -> bool:
    """True if an edge from ``source_id`` to ``target_id`` may be created."""
    return check_connection(graph, source_id, target_id).allowed


def needs_hidden_arrowhead(source: Node | None, target: Node | None) -> bool:
    """Edges touching an integration or banking node are drawn without a marker."""
    return any(node is not None and node.kind in UNDIRECTED_KINDS for node in (source, target))
