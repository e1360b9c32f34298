"""
Observability module: run-scoped trace context and structured logging.

- Trace context (run_id, node_id) propagated through a ContextVar
- JSON logging for machines, coloured logging for terminals
"""

from flowsim.observability.logging import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
)

__all__ = [
    "configure_logging",
    "get_trace_context",
    "set_trace_context",
    "clear_trace_context",
]
