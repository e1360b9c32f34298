"""Simulated node execution: payload handlers, providers, and the simulator."""

from flowsim.simulation.provider import FixedProvider, RandomProvider, SimulationProvider
from flowsim.simulation.registry import HandlerRegistry, SimulationContext, default_registry
from flowsim.simulation.simulator import NodeOutputSimulator, SimulationResult

__all__ = [
    "NodeOutputSimulator",
    "SimulationResult",
    "SimulationContext",
    "HandlerRegistry",
    "default_registry",
    "SimulationProvider",
    "RandomProvider",
    "FixedProvider",
]
