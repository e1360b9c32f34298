"""Exception hierarchy for flowsim.

Structural errors are raised synchronously at graph boundaries (import,
editor mutations, engine initialization). Simulation errors are raised by
node output handlers and branch policies and are contained per node by the
execution engine.
"""


class FlowsimError(Exception):
    """Base class for all flowsim errors."""


# ---------------------------------------------------------------------------
# Structural
# ---------------------------------------------------------------------------


class GraphStructureError(FlowsimError):
    """The graph violates a structural invariant."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or [message]


class GraphImportError(GraphStructureError):
    """An imported workflow file is malformed."""


class DuplicateNodeError(GraphStructureError):
    """A node id is already present in the graph."""


class UnknownNodeError(GraphStructureError):
    """A node id does not resolve to a node in the graph."""


class ConnectionRejectedError(FlowsimError):
    """The connection validator refused a proposed edge."""

    def __init__(self, source: str, target: str, reason: str):
        super().__init__(f"Connection {source} -> {target} rejected: {reason}")
        self.source = source
        self.target = target
        self.reason = reason


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------


class SimulationError(FlowsimError):
    """A node could not be simulated.

    ``notes`` carries the narrative lines the handler recorded before failing.
    """

    def __init__(self, message: str, notes: list[tuple[str, str]] | None = None):
        super().__init__(message)
        self.notes = notes or []


class SimulatedNodeError(SimulationError):
    """A simulated node execution failed (injected failure)."""


class AmbiguousBranchError(SimulationError):
    """A branch policy could not pick a single outgoing edge."""


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class EngineStateError(FlowsimError):
    """An engine operation was called from a state that does not allow it."""
