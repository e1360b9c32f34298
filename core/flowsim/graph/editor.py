"""
Workflow Editor - Graph-mutating actions with undo/redo.

Each successful mutation snapshots the pre-mutation graph into the
CommandHistory before touching anything. Rejected actions (refused
connections, unknown ids, malformed imports) leave both the graph and the
history untouched.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from flowsim.errors import (
    ConnectionRejectedError,
    DuplicateNodeError,
    GraphImportError,
    UnknownNodeError,
)
from flowsim.graph.connection import check_connection, needs_hidden_arrowhead
from flowsim.graph.history import DEFAULT_HISTORY_LIMIT, CommandHistory
from flowsim.graph.io import dump_graph, parse_graph
from flowsim.graph.model import UNDIRECTED_KINDS, Edge, Node, NodeKind, Position, WorkflowGraph
from flowsim.graph.templates import WorkflowTemplate, get_template

if TYPE_CHECKING:
    from flowsim.config import SimulatorConfig

logger = logging.getLogger(__name__)

PASTE_OFFSET = 50

_SUBTYPE_LABELS = {
    "webhook": "Webhook Trigger",
    "schedule": "Schedule Trigger",
    "click": "Manual Trigger",
    "chat": "Chat Message Trigger",
    "email": "Email Trigger",
    "form": "Form Submission",
    "database-change": "Database Change",
    "interval": "Timer Interval",
    "http": "HTTP Request",
    "email-send": "Send Email",
    "database": "Database Query",
    "googlesheets": "Google Sheets",
    "file-operations": "File Operations",
    "sms": "SMS Message",
    "pdf": "PDF Generator",
    "calendar": "Calendar",
    "if": "IF Condition",
    "switch": "Switch",
    "loop": "Loop Over Items",
    "merge": "Merge",
    "delay": "Delay",
    "filter-array": "Filter Array",
    "split": "Split Paths",
    "join": "Join Paths",
    "javascript": "JavaScript Code",
    "python": "Python Code",
    "c": "C Code",
    "bash": "Bash Script",
    "powershell": "PowerShell Script",
    "transform": "Transform Data",
    "json-path": "JSON Path",
    "ai-agent": "AI Agent",
    "ai-transform": "AI Transform",
    "input": "Input",
    "output-data": "Output Data",
    "message": "Send Message",
    "text-classification": "Text Classification",
    "sentiment-analysis": "Sentiment Analysis",
    "image-recognition": "Image Recognition",
    "data-extraction": "Data Extraction",
    "salesforce": "Salesforce",
    "stripe": "Stripe",
    "google-analytics": "Google Analytics",
    "slack": "Slack",
    "zendesk": "Zendesk",
    "hubspot": "HubSpot",
    "transaction-processing": "Transaction Processing",
    "account-verification": "Account Verification",
    "fraud-detection": "Fraud Detection",
    "kyc": "KYC Process",
    "loan-approval": "Loan Approval",
}

_KIND_LABELS = {
    NodeKind.TRIGGER: "Trigger",
    NodeKind.ACTION: "Action",
    NodeKind.LOGIC: "Logic",
    NodeKind.CODE: "Code",
    NodeKind.AI: "AI",
    NodeKind.MESSAGE: "Message",
    NodeKind.INTEGRATION: "Integration",
    NodeKind.BANKING: "Banking",
}


def default_label(kind: NodeKind | str, subtype: str = "") -> str:
    """Label for a new node: subtype name first, then the kind."""
    if subtype in _SUBTYPE_LABELS:
        return _SUBTYPE_LABELS[subtype]
    return _KIND_LABELS.get(kind, "Node")


@dataclass
class ImportResult:
    """Outcome of importing a workflow file."""

    success: bool
    error: str | None = None
    errors: list[str] = field(default_factory=list)
    node_count: int = 0
    edge_count: int = 0


class WorkflowEditor:
    """
    Owns the live graph and its command history.

    Example:
        editor = WorkflowEditor()
        trigger = editor.add_node(NodeKind.TRIGGER, "webhook")
        action = editor.add_node(NodeKind.ACTION, "http")
        editor.connect(trigger.id, action.id)
        editor.undo()   # removes the edge
    """

    def __init__(
        self,
        graph: WorkflowGraph | None = None,
        history_limit: int | None = DEFAULT_HISTORY_LIMIT,
        strict_data_sources: bool = True,
    ):
        """
        Args:
            graph: Initial graph (empty if omitted)
            history_limit: Maximum undo entries (None = unbounded)
            strict_data_sources: Also refuse edges *into* data-source nodes, so
                a data source never has an edge in either direction
        """
        self._graph = graph if graph is not None else WorkflowGraph()
        self.history = CommandHistory(max_entries=history_limit)
        self.strict_data_sources = strict_data_sources
        self._clipboard: Node | None = None

    @classmethod
    def from_config(cls, config: SimulatorConfig, **overrides: Any) -> WorkflowEditor:
        """Build an editor from configuration-file settings."""
        kwargs: dict[str, Any] = {"history_limit": config.history_limit}
        kwargs.update(overrides)
        return cls(**kwargs)

    @property
    def graph(self) -> WorkflowGraph:
        return self._graph

    def _record(self) -> None:
        self.history.snapshot(self._graph)

    def _rejected_edges(self, graph: WorkflowGraph) -> list[str]:
        """Edges of ``graph`` that ``connect`` would have refused."""
        errors = []
        for edge in graph.edges:
            check = check_connection(
                graph,
                edge.source,
                edge.target,
                block_data_source_targets=self.strict_data_sources,
            )
            if not check:
                errors.append(
                    f"Edge '{edge.id}' ({edge.source} -> {edge.target}) "
                    f"violates connection rules: {check.reason}"
                )
        return errors

    def _next_node_id(self) -> str:
        candidate = len(self._graph.nodes) + 1
        while self._graph.has_node(str(candidate)):
            candidate += 1
        return str(candidate)

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def add_node(
        self,
        kind: NodeKind | str,
        subtype: str = "",
        label: str | None = None,
        config: dict[str, Any] | None = None,
        position: tuple[float, float] | None = None,
        node_id: str | None = None,
    ) -> Node:
        """Create a node and append it to the graph."""
        kind = NodeKind(kind)
        config = dict(config or {})
        if kind in UNDIRECTED_KINDS:
            # Integration and banking nodes stay connectable unless configured otherwise
            config.setdefault("isDataSource", False)

        x, y = position or (0, 0)
        node = Node(
            id=node_id or self._next_node_id(),
            kind=kind,
            subtype=subtype,
            label=label or default_label(kind, subtype),
            config=config,
            position=Position(x=x, y=y),
        )
        if self._graph.has_node(node.id):
            raise DuplicateNodeError(f"Duplicate node ID: '{node.id}'")

        self._record()
        self._graph.add_node(node)
        logger.debug(f"Added node {node.id} ({kind}/{subtype})")
        return node

    def drop_node(
        self,
        payload: dict[str, Any] | str,
        position: tuple[float, float] = (0, 0),
        connect_from: str | None = None,
    ) -> Node | None:
        """
        Create a node from a palette drag payload.

        Args:
            payload: ``{"type": kind, "data": {"type": subtype, "label", "config"}}``
                as a dict or JSON string
            position: Drop position on the canvas
            connect_from: Optional existing node to wire the new node to

        Returns:
            The new node, or None if the payload could not be parsed
        """
        if isinstance(payload, str):
            try:
                payload = json.loads(payload)
            except json.JSONDecodeError as e:
                logger.error(f"Could not parse node data: {e}")
                return None
        if not isinstance(payload, dict):
            logger.error(f"Could not parse node data: expected an object, got {payload!r}")
            return None

        data = payload.get("data") or {}
        try:
            kind = NodeKind(payload.get("type"))
        except ValueError:
            logger.error(f"Could not parse node data: unknown node type {payload.get('type')!r}")
            return None

        node = self.add_node(
            kind,
            subtype=data.get("type", ""),
            label=data.get("label"),
            config=data.get("config"),
            position=position,
        )
        if connect_from is not None:
            self.connect(connect_from, node.id)
        return node

    def update_node(
        self,
        node_id: str,
        label: str | None = None,
        config: dict[str, Any] | None = None,
        position: tuple[float, float] | None = None,
    ) -> Node:
        """Update a node's label, merge into its config, or move it.

        Kind and subtype cannot change. Changing connection-gating flags does
        not remove existing edges.
        """
        node = self._graph.require_node(node_id)
        self._record()
        if label is not None:
            node.label = label
        if config:
            node.config = {**node.config, **config}
        if position is not None:
            node.position = Position(x=position[0], y=position[1])
        return node

    def delete_node(self, node_id: str) -> bool:
        """Delete a node and its connected edges."""
        if not self._graph.has_node(node_id):
            return False
        self._record()
        removed = self._graph.remove_node(node_id)
        logger.debug(f"Deleted node {node_id} and {len(removed)} connected edges")
        return True

    def copy_node(self, node_id: str) -> Node:
        """Put a copy of a node on the editor clipboard."""
        self._clipboard = self._graph.require_node(node_id).model_copy(deep=True)
        return self._clipboard

    def paste_node(self) -> Node | None:
        """Paste the clipboard node with a fresh id, offset on the canvas."""
        if self._clipboard is None:
            return None
        source = self._clipboard
        node = source.model_copy(
            deep=True,
            update={
                "id": self._next_node_id(),
                "position": Position(
                    x=source.position.x + PASTE_OFFSET,
                    y=source.position.y + PASTE_OFFSET,
                ),
            },
        )
        self._record()
        self._graph.add_node(node)
        return node

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def connect(
        self,
        source_id: str,
        target_id: str,
        source_handle: str | None = None,
        raise_on_reject: bool = False,
    ) -> Edge | None:
        """
        Create an edge if the connection validator accepts it.

        Args:
            source_id: Node the edge leaves
            target_id: Node the edge enters
            source_handle: Output handle on the source ("true", "false", case name)
            raise_on_reject: Raise instead of returning None when refused

        Returns:
            The new edge, or None if the connection was refused or already exists

        Raises:
            ConnectionRejectedError: If refused and ``raise_on_reject`` is set
        """
        check = check_connection(
            self._graph,
            source_id,
            target_id,
            block_data_source_targets=self.strict_data_sources,
        )
        if not check:
            logger.info(f"Connection {source_id} -> {target_id} refused: {check.reason}")
            if raise_on_reject:
                raise ConnectionRejectedError(source_id, target_id, str(check.reason))
            return None

        for existing in self._graph.get_outgoing_edges(source_id):
            if existing.target == target_id and existing.source_handle == source_handle:
                return None

        source = self._graph.get_node(source_id)
        target = self._graph.get_node(target_id)
        hide_arrowhead = needs_hidden_arrowhead(source, target)
        edge = Edge(
            id=f"reactflow__edge-{source_id}{source_handle or ''}-{target_id}",
            source=source_id,
            target=target_id,
            source_handle=source_handle,
            type="noArrow" if hide_arrowhead else "default",
            data={"hideArrowhead": hide_arrowhead},
        )

        self._record()
        self._graph.add_edge(edge)
        return edge

    def update_edge(self, edge_id: str, **changes: Any) -> Edge:
        """Update rendering metadata or the source handle of an edge."""
        edge = self._graph.get_edge(edge_id)
        if edge is None:
            raise UnknownNodeError(f"Edge '{edge_id}' not found")
        forbidden = {"id", "source", "target"} & changes.keys()
        if forbidden:
            raise ValueError(f"Edge endpoints cannot be changed: {sorted(forbidden)}")

        try:
            data = edge.model_dump(by_alias=True)
            for key, value in changes.items():
                field_info = Edge.model_fields.get(key)
                data[field_info.alias if field_info and field_info.alias else key] = value
            updated = Edge.model_validate(data)
        except ValidationError as e:
            raise ValueError(f"Invalid edge update: {e}") from e

        self._record()
        index = self._graph.edges.index(edge)
        self._graph.edges[index] = updated
        return updated

    def delete_edge(self, edge_id: str) -> bool:
        if self._graph.get_edge(edge_id) is None:
            return False
        self._record()
        self._graph.remove_edge(edge_id)
        return True

    # ------------------------------------------------------------------
    # Whole-graph actions
    # ------------------------------------------------------------------

    def replace_graph(self, graph: WorkflowGraph) -> None:
        """Swap in a new graph (template, import, clear) as one undoable step."""
        self._record()
        self._graph = graph

    def clear(self) -> None:
        self.replace_graph(WorkflowGraph())

    def load_template(self, template: WorkflowTemplate | str) -> WorkflowGraph:
        if isinstance(template, str):
            found = get_template(template)
            if found is None:
                raise KeyError(f"Unknown template '{template}'")
            template = found
        graph = template.build_graph()
        rejected = self._rejected_edges(graph)
        if rejected:
            raise GraphImportError(f"Template '{template.id}' breaks connection rules", rejected)
        self.replace_graph(graph)
        logger.info(f"Template '{template.name}' loaded")
        return self._graph

    def import_json(self, text: str) -> ImportResult:
        """
        Replace the graph with an imported workflow file.

        Validation failures are reported in the result; the current graph and
        history are left exactly as they were.
        """
        try:
            graph = parse_graph(text)
        except GraphImportError as e:
            logger.warning(f"Import failed: {e}")
            return ImportResult(success=False, error=str(e), errors=e.errors)

        rejected = self._rejected_edges(graph)
        if rejected:
            logger.warning(f"Import failed: {len(rejected)} edge(s) violate connection rules")
            return ImportResult(
                success=False,
                error="Invalid workflow format: connection rules violated",
                errors=rejected,
            )

        self.replace_graph(graph)
        logger.info(
            f"Imported workflow with {len(graph.nodes)} nodes and {len(graph.edges)} edges"
        )
        return ImportResult(
            success=True,
            node_count=len(graph.nodes),
            edge_count=len(graph.edges),
        )

    def export_json(self) -> str:
        return dump_graph(self._graph)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def undo(self) -> bool:
        restored = self.history.undo(self._graph)
        if restored is None:
            return False
        self._graph = restored
        return True

    def redo(self) -> bool:
        restored = self.history.redo(self._graph)
        if restored is None:
            return False
        self._graph = restored
        return True
