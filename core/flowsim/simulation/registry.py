"""
Handler registry for node output simulation.

Handlers are plain functions ``(ctx: SimulationContext) -> dict`` keyed by
``(kind, subtype)``. Lookup falls back from the exact subtype to the kind's
wildcard (``"*"``) and finally to the registry default.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from flowsim.simulation.provider import SimulationProvider

logger = logging.getLogger(__name__)

WILDCARD = "*"


@dataclass
class SimulationContext:
    """Everything a handler may look at while producing a payload."""

    kind: str
    subtype: str
    config: dict[str, Any]
    test_inputs: dict[str, Any]
    provider: SimulationProvider
    label: str = ""
    failure_rates: dict[str, float] = field(default_factory=dict)
    notes: list[tuple[str, str]] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.label or self.subtype or self.kind

    def note(self, message: str, level: str = "info") -> None:
        """Record a narrative line for the execution log."""
        self.notes.append((level, message))

    def should_fail(self, category: str) -> bool:
        """Roll for an injected failure in ``category`` (e.g. "code", "integration")."""
        rate = self.failure_rates.get(category, 0.0)
        return rate > 0 and self.provider.random() < rate


Handler = Callable[[SimulationContext], dict[str, Any]]


class HandlerRegistry:
    """
    Maps ``(kind, subtype)`` to payload handlers.

    Example:
        registry = HandlerRegistry()

        @registry.register("action", "http")
        def http_payload(ctx):
            return {"status": 200}
    """

    def __init__(self) -> None:
        self._handlers: dict[tuple[str, str], Handler] = {}
        self._default: Handler | None = None

    def register(self, kind: str, subtype: str = WILDCARD) -> Callable[[Handler], Handler]:
        """Decorator form of ``register_handler``."""

        def decorator(func: Handler) -> Handler:
            self.register_handler(kind, subtype, func)
            return func

        return decorator

    def register_handler(self, kind: str, subtype: str, handler: Handler) -> None:
        key = (str(kind), subtype)
        if key in self._handlers:
            logger.debug(f"Replacing simulation handler for {key}")
        self._handlers[key] = handler

    def set_default(self, handler: Handler) -> Handler:
        self._default = handler
        return handler

    def unregister(self, kind: str, subtype: str = WILDCARD) -> bool:
        return self._handlers.pop((str(kind), subtype), None) is not None

    def get(self, kind: str, subtype: str) -> Handler | None:
        kind = str(kind)
        return (
            self._handlers.get((kind, subtype))
            or self._handlers.get((kind, WILDCARD))
            or self._default
        )

    def keys(self) -> list[tuple[str, str]]:
        return list(self._handlers)

    def copy(self) -> HandlerRegistry:
        clone = HandlerRegistry()
        clone._handlers = dict(self._handlers)
        clone._default = self._default
        return clone


# Populated by flowsim.simulation.handlers
default_registry = HandlerRegistry()
