"""
Graph Model - Nodes, edges, and the workflow graph that holds them.

The graph is a passive store. It answers lookup queries (by id, by kind,
incoming/outgoing edges) and knows how to convert itself to and from the
editor's JSON wire format:

    node: {"id", "type": <kind>, "position": {x, y},
           "data": {"label", "type": <subtype>, "config": {...}}}
    edge: {"id", "source", "target", "sourceHandle", "type", "animated",
           "data": {"hideArrowhead": bool}}

Connection rules live in ``flowsim.graph.connection``; execution state lives
in the engine, never on these records.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from flowsim.errors import DuplicateNodeError, GraphStructureError, UnknownNodeError


class NodeKind(StrEnum):
    """Coarse node category."""

    TRIGGER = "trigger"
    ACTION = "action"
    LOGIC = "logic"
    CODE = "code"
    AI = "ai"
    MESSAGE = "message"
    INTEGRATION = "integration"
    BANKING = "banking"


# Node kinds whose edges are drawn without a directional marker
UNDIRECTED_KINDS = frozenset({NodeKind.INTEGRATION, NodeKind.BANKING})


class Position(BaseModel):
    """Canvas position. Presentation only."""

    x: float = 0
    y: float = 0


class Node(BaseModel):
    """A typed step in a workflow graph.

    ``kind`` and ``subtype`` are fixed once the node is created; ``config``
    is an opaque mapping owned by the node's configuration form.
    """

    id: str
    kind: NodeKind = Field(frozen=True)
    subtype: str = Field(default="", frozen=True)
    label: str = ""
    config: dict[str, Any] = Field(default_factory=dict)
    position: Position = Field(default_factory=Position)

    model_config = ConfigDict(extra="allow")

    # Connection-gating flags

    @property
    def is_data_source(self) -> bool:
        return self.config.get("isDataSource") is True

    @property
    def accepts_input(self) -> bool:
        return self.config.get("showInputConnections", True) is not False

    @property
    def emits_output(self) -> bool:
        return self.config.get("showOutputConnections", True) is not False

    @property
    def display_name(self) -> str:
        return self.label or self.subtype or self.kind.value

    def to_dict(self) -> dict[str, Any]:
        """Convert to the editor wire format."""
        extra = dict(self.model_extra or {})
        data: dict[str, Any] = dict(extra.pop("extra_data", None) or {})
        data.update(label=self.label, type=self.subtype, config=dict(self.config))
        result: dict[str, Any] = {
            "id": self.id,
            "type": self.kind.value,
            "position": {"x": self.position.x, "y": self.position.y},
            "data": data,
        }
        result.update(extra)
        return result

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Node:
        """Build a node from the editor wire format.

        Flat dicts (``kind``/``subtype``/``label``/``config`` at the top
        level) are accepted as well.
        """
        raw = dict(raw)
        data = raw.pop("data", None)
        if isinstance(data, dict):
            kind = raw.pop("type", None)
            fields = {
                "kind": kind,
                "subtype": data.get("type", ""),
                "label": data.get("label", ""),
                "config": data.get("config") or {},
            }
            # Keep any other per-node data (icons, descriptions, ...)
            extra_data = {
                k: v for k, v in data.items() if k not in ("type", "label", "config")
            }
            if extra_data:
                raw["extra_data"] = extra_data
        else:
            fields = {
                "kind": raw.pop("kind", raw.pop("type", None)),
                "subtype": raw.pop("subtype", ""),
                "label": raw.pop("label", ""),
                "config": raw.pop("config", None) or {},
            }
        return cls.model_validate({**raw, **fields})


class Edge(BaseModel):
    """A directed connection between two nodes.

    ``source_handle`` disambiguates multiple outputs of a branching node
    ("true"/"false" for IF, case names for SWITCH). Everything else besides
    the endpoints is rendering metadata.
    """

    id: str
    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    type: str = "default"
    animated: bool = False
    label: str = ""
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    @property
    def hide_arrowhead(self) -> bool:
        return bool(self.data.get("hideArrowhead", False))

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Edge:
        return cls.model_validate(raw)


class WorkflowGraph(BaseModel):
    """
    Ordered collection of nodes plus a collection of edges.

    Treated as a single versioned value: the command history and the engine
    both work on deep copies (``clone()``).

    Example:
        graph = WorkflowGraph(
            nodes=[
                Node(id="1", kind=NodeKind.TRIGGER, subtype="webhook"),
                Node(id="2", kind=NodeKind.ACTION, subtype="http"),
            ],
            edges=[Edge(id="e1-2", source="1", target="2")],
        )
    """

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_node(self, node_id: str) -> Node | None:
        """Get a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def require_node(self, node_id: str) -> Node:
        node = self.get_node(node_id)
        if node is None:
            raise UnknownNodeError(f"Node '{node_id}' not found")
        return node

    def get_edge(self, edge_id: str) -> Edge | None:
        """Get an edge by ID."""
        for edge in self.edges:
            if edge.id == edge_id:
                return edge
        return None

    def get_outgoing_edges(self, node_id: str) -> list[Edge]:
        """Get all edges leaving a node, in declaration order."""
        return [e for e in self.edges if e.source == node_id]

    def get_incoming_edges(self, node_id: str) -> list[Edge]:
        """Get all edges entering a node."""
        return [e for e in self.edges if e.target == node_id]

    def get_nodes_by_kind(self, kind: NodeKind | str) -> list[Node]:
        return [n for n in self.nodes if n.kind == kind]

    def get_trigger_nodes(self) -> list[Node]:
        return self.get_nodes_by_kind(NodeKind.TRIGGER)

    def node_ids(self) -> list[str]:
        return [n.id for n in self.nodes]

    def has_node(self, node_id: str) -> bool:
        return self.get_node(node_id) is not None

    # ------------------------------------------------------------------
    # Store operations (no connection rules here)
    # ------------------------------------------------------------------

    def add_node(self, node: Node) -> None:
        if self.has_node(node.id):
            raise DuplicateNodeError(f"Duplicate node ID: '{node.id}'")
        self.nodes.append(node)

    def add_edge(self, edge: Edge) -> None:
        for endpoint in (edge.source, edge.target):
            if not self.has_node(endpoint):
                raise UnknownNodeError(f"Edge '{edge.id}' references missing node '{endpoint}'")
        self.edges.append(edge)

    def remove_node(self, node_id: str) -> list[Edge]:
        """Remove a node and every edge touching it. Returns the removed edges."""
        self.require_node(node_id)
        removed = [e for e in self.edges if e.source == node_id or e.target == node_id]
        self.nodes = [n for n in self.nodes if n.id != node_id]
        self.edges = [e for e in self.edges if e.source != node_id and e.target != node_id]
        return removed

    def remove_edge(self, edge_id: str) -> Edge | None:
        edge = self.get_edge(edge_id)
        if edge is not None:
            self.edges = [e for e in self.edges if e.id != edge_id]
        return edge

    # ------------------------------------------------------------------
    # Validation & conversion
    # ------------------------------------------------------------------

    def validate_structure(self) -> list[str]:
        """Validate the graph structure. Returns error messages (empty = valid)."""
        errors = []

        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                errors.append(f"Duplicate node ID: '{node.id}'")
            seen.add(node.id)

        seen_edges: set[str] = set()
        for edge in self.edges:
            if edge.id in seen_edges:
                errors.append(f"Duplicate edge ID: '{edge.id}'")
            seen_edges.add(edge.id)
            if edge.source not in seen:
                errors.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
            if edge.target not in seen:
                errors.append(f"Edge '{edge.id}' references missing target '{edge.target}'")

        return errors

    def ensure_valid(self) -> None:
        """Raise GraphStructureError if ``validate_structure`` finds problems."""
        errors = self.validate_structure()
        if errors:
            raise GraphStructureError(f"Invalid workflow graph: {errors[0]}", errors=errors)

    def clone(self) -> WorkflowGraph:
        """Deep copy of the graph."""
        return self.model_copy(deep=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> WorkflowGraph:
        return cls(
            nodes=[Node.from_dict(n) for n in raw.get("nodes", [])],
            edges=[Edge.from_dict(e) for e in raw.get("edges", [])],
        )
