"""
Branch Resolver - Decides which outgoing edge(s) carry the flow forward.

Logic nodes pick an edge by ``source_handle``:

- ``if``:     handle ``"true"`` or ``"false"`` matching ``output["result"]``
- ``switch``: handle equal to ``output["result"]`` (e.g. ``"case2"``), then
              the ``"default"`` handle

Every other node kind, and any branch whose handle is not wired, defers to
a named traversal policy:

- FirstEdgePolicy: first outgoing edge in declaration order (default)
- FanOutPolicy:    every outgoing edge of a non-branch node
- StrictPolicy:    raise AmbiguousBranchError instead of guessing

A node with zero outgoing edges ends its path.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from flowsim.errors import AmbiguousBranchError
from flowsim.graph.model import Edge, Node, NodeKind

logger = logging.getLogger(__name__)

IF_SUBTYPE = "if"
SWITCH_SUBTYPE = "switch"
DEFAULT_HANDLE = "default"

_TRUTHY = {"true", "yes", "1", "on"}


class DecisionReason(StrEnum):
    """How the resolver arrived at its decision."""

    HANDLE_MATCH = "handle_match"  # Branch handle matched the outcome
    DEFAULT_HANDLE = "default_handle"  # Switch fell through to "default"
    FALLBACK = "fallback"  # Branch handle missing, policy picked
    POLICY = "policy"  # Non-branch node, policy picked
    END_OF_PATH = "end_of_path"  # No outgoing edges


@dataclass
class BranchDecision:
    """Edges to activate after a node completes."""

    edges: list[Edge] = field(default_factory=list)
    reason: DecisionReason = DecisionReason.END_OF_PATH
    outcome: Any = None

    @property
    def edge(self) -> Edge | None:
        """The primary edge to follow, if any."""
        return self.edges[0] if self.edges else None

    @property
    def is_end_of_path(self) -> bool:
        return not self.edges


class TraversalPolicy(ABC):
    """Strategy for choosing among outgoing edges when no handle decides."""

    name: str = "policy"

    @abstractmethod
    def select(self, node: Node, outgoing: list[Edge]) -> list[Edge]:
        """Edges to follow from a non-branching node (``outgoing`` is non-empty)."""

    @abstractmethod
    def fallback(self, node: Node, outgoing: list[Edge], outcome: Any) -> list[Edge]:
        """Edge to follow when a branch outcome has no matching handle."""


class FirstEdgePolicy(TraversalPolicy):
    """Follow the first outgoing edge in declaration order.

    Additional edges from a non-logic node are never activated.
    """

    name = "first_edge"

    def select(self, node: Node, outgoing: list[Edge]) -> list[Edge]:
        return outgoing[:1]

    def fallback(self, node: Node, outgoing: list[Edge], outcome: Any) -> list[Edge]:
        return outgoing[:1]


class FanOutPolicy(TraversalPolicy):
    """Follow every outgoing edge of a non-branching node.

    Branch nodes still pick a single edge; unwired outcomes fall back to the
    first edge.
    """

    name = "fan_out"

    def select(self, node: Node, outgoing: list[Edge]) -> list[Edge]:
        return list(outgoing)

    def fallback(self, node: Node, outgoing: list[Edge], outcome: Any) -> list[Edge]:
        return outgoing[:1]


class StrictPolicy(TraversalPolicy):
    """Refuse to guess: ambiguity is a modeling error."""

    name = "strict"

    def select(self, node: Node, outgoing: list[Edge]) -> list[Edge]:
        if len(outgoing) > 1:
            raise AmbiguousBranchError(
                f"Node '{node.display_name}' has {len(outgoing)} outgoing edges "
                f"but is not a branching node"
            )
        return outgoing[:1]

    def fallback(self, node: Node, outgoing: list[Edge], outcome: Any) -> list[Edge]:
        raise AmbiguousBranchError(
            f"Node '{node.display_name}' has no outgoing edge for outcome '{outcome}'"
        )


POLICIES: dict[str, type[TraversalPolicy]] = {
    FirstEdgePolicy.name: FirstEdgePolicy,
    FanOutPolicy.name: FanOutPolicy,
    StrictPolicy.name: StrictPolicy,
}


def get_policy(name: str) -> TraversalPolicy:
    """Instantiate a policy by name."""
    try:
        return POLICIES[name]()
    except KeyError:
        raise ValueError(f"Unknown traversal policy '{name}'. Valid: {sorted(POLICIES)}") from None


def is_branch_node(node: Node) -> bool:
    return node.kind == NodeKind.LOGIC and node.subtype in (IF_SUBTYPE, SWITCH_SUBTYPE)


def coerce_condition(value: Any) -> bool:
    """Interpret an IF node's ``result`` field as a boolean."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


class BranchResolver:
    """
    Picks the next edge(s) for a completed node.

    Example:
        resolver = BranchResolver()
        decision = resolver.resolve(node, graph.get_outgoing_edges(node.id), output)
        if decision.edge is not None:
            ...
    """

    def __init__(self, policy: TraversalPolicy | None = None):
        self.policy = policy or FirstEdgePolicy()

    def resolve(
        self,
        node: Node,
        outgoing: list[Edge],
        output: Any = None,
    ) -> BranchDecision:
        """
        Decide which edges to activate.

        Args:
            node: The node that just completed
            outgoing: Its outgoing edges, in declaration order
            output: The node's simulated output payload

        Returns:
            BranchDecision (empty when the path ends here)

        Raises:
            AmbiguousBranchError: If the policy refuses to choose
        """
        if not outgoing:
            return BranchDecision()

        if node.kind == NodeKind.LOGIC and node.subtype == IF_SUBTYPE:
            return self._resolve_if(node, outgoing, output)

        if node.kind == NodeKind.LOGIC and node.subtype == SWITCH_SUBTYPE:
            return self._resolve_switch(node, outgoing, output)

        return BranchDecision(
            edges=self.policy.select(node, outgoing),
            reason=DecisionReason.POLICY,
        )

    def _resolve_if(self, node: Node, outgoing: list[Edge], output: Any) -> BranchDecision:
        raw = output.get("result") if isinstance(output, dict) else None
        outcome = coerce_condition(raw)
        handle = "true" if outcome else "false"

        for edge in outgoing:
            if edge.source_handle == handle:
                return BranchDecision([edge], DecisionReason.HANDLE_MATCH, outcome)

        return self._fallback(node, outgoing, outcome)

    def _resolve_switch(self, node: Node, outgoing: list[Edge], output: Any) -> BranchDecision:
        raw = output.get("result") if isinstance(output, dict) else None
        outcome = None if raw is None else str(raw)

        if outcome is not None:
            for edge in outgoing:
                if edge.source_handle == outcome:
                    return BranchDecision([edge], DecisionReason.HANDLE_MATCH, outcome)

        for edge in outgoing:
            if edge.source_handle == DEFAULT_HANDLE:
                return BranchDecision([edge], DecisionReason.DEFAULT_HANDLE, outcome)

        return self._fallback(node, outgoing, outcome)

    def _fallback(self, node: Node, outgoing: list[Edge], outcome: Any) -> BranchDecision:
        edges = self.policy.fallback(node, outgoing, outcome)
        logger.warning(
            f"No '{outcome}' handle wired on '{node.display_name}', "
            f"{self.policy.name} policy chose {[e.id for e in edges]}"
        )
        return BranchDecision(edges, DecisionReason.FALLBACK, outcome)
