"""
Node Output Simulator - produces a plausible payload for a node.

Given a node's kind, subtype, config, and the run's test inputs, look up
the registered handler and run it against a ``SimulationContext``. The
simulator never touches the network or the filesystem.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

import flowsim.simulation.handlers  # noqa: F401  (registers the default handlers)
from flowsim.errors import SimulationError
from flowsim.graph.model import Node, NodeKind
from flowsim.simulation.provider import RandomProvider, SimulationProvider
from flowsim.simulation.registry import (
    Handler,
    HandlerRegistry,
    SimulationContext,
    default_registry,
)

logger = logging.getLogger(__name__)

DEFAULT_CODE_FAILURE_RATE = 0.05
DEFAULT_INTEGRATION_FAILURE_RATE = 0.1


@dataclass
class SimulationResult:
    """Payload plus the narrative lines the handler recorded."""

    output: dict[str, Any]
    notes: list[tuple[str, str]] = field(default_factory=list)


class NodeOutputSimulator:
    """
    Dispatches to per-type payload handlers.

    Example:
        simulator = NodeOutputSimulator(provider=RandomProvider(seed=7))
        payload = simulator.simulate("logic", "if", {"condition": "x > 1"}, {})
        payload["result"]  # reproducible for seed 7

    Custom node types plug in through ``register``:

        @simulator.register("action", "fax")
        def fax_payload(ctx):
            return {"sent": True, "pages": 2}
    """

    def __init__(
        self,
        provider: SimulationProvider | None = None,
        registry: HandlerRegistry | None = None,
        code_failure_rate: float = DEFAULT_CODE_FAILURE_RATE,
        integration_failure_rate: float = DEFAULT_INTEGRATION_FAILURE_RATE,
    ):
        for name, rate in (
            ("code_failure_rate", code_failure_rate),
            ("integration_failure_rate", integration_failure_rate),
        ):
            if not 0 <= rate <= 1:
                raise ValueError(f"{name} must be between 0 and 1, got {rate}")

        self.provider = provider or RandomProvider()
        # Copy so per-simulator registrations don't leak into the global registry
        self.registry = (registry or default_registry).copy()
        self.failure_rates = {
            "code": code_failure_rate,
            "integration": integration_failure_rate,
        }

    def register(self, kind: NodeKind | str, subtype: str = "*"):
        """Decorator registering a handler on this simulator only."""
        return self.registry.register(str(kind), subtype)

    def register_handler(self, kind: NodeKind | str, subtype: str, handler: Handler) -> None:
        self.registry.register_handler(str(kind), subtype, handler)

    def run(
        self,
        kind: NodeKind | str,
        subtype: str,
        config: dict[str, Any] | None = None,
        test_inputs: dict[str, Any] | None = None,
        label: str = "",
    ) -> SimulationResult:
        """
        Run the handler for ``(kind, subtype)``.

        Raises:
            SimulationError: Handler failed, including injected failures
                (``SimulatedNodeError``)
        """
        ctx = SimulationContext(
            kind=str(kind),
            subtype=subtype,
            config=dict(config or {}),
            test_inputs=dict(test_inputs or {}),
            provider=self.provider,
            label=label,
            failure_rates=dict(self.failure_rates),
        )

        handler = self.registry.get(ctx.kind, subtype)
        if handler is None:
            raise SimulationError(f"No simulation handler for {ctx.kind}/{subtype}")

        try:
            output = handler(ctx)
        except SimulationError as e:
            e.notes = list(ctx.notes)
            raise
        except Exception as e:
            logger.error(f"Simulation handler for {ctx.kind}/{subtype} failed: {e}", exc_info=True)
            raise SimulationError(
                f"Handler for {ctx.kind}/{subtype} failed: {e}", notes=list(ctx.notes)
            ) from e

        if not isinstance(output, dict):
            raise SimulationError(
                f"Handler for {ctx.kind}/{subtype} returned {type(output).__name__}, expected dict"
            )
        return SimulationResult(output=output, notes=list(ctx.notes))

    def simulate(
        self,
        kind: NodeKind | str,
        subtype: str,
        config: dict[str, Any] | None = None,
        test_inputs: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Return just the payload for ``(kind, subtype)``."""
        return self.run(kind, subtype, config, test_inputs).output

    def simulate_node(self, node: Node, test_inputs: dict[str, Any] | None = None) -> SimulationResult:
        return self.run(node.kind, node.subtype, node.config, test_inputs, label=node.label)
