"""
Command History - Snapshot-based undo/redo over a workflow graph.

Every mutating editor action first calls ``snapshot()`` with the
pre-mutation graph. ``undo()`` and ``redo()`` trade the current graph for
the top of the opposite stack. Entries are deep copies; nothing is shared
with the live graph.

The undo stack is bounded (``max_entries``, default 100). When full, the
oldest entry is dropped. Pass ``max_entries=None`` for an unbounded history.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime

from flowsim.graph.model import WorkflowGraph

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100


@dataclass(frozen=True)
class HistoryEntry:
    """Immutable deep copy of ``{nodes, edges}``."""

    graph: WorkflowGraph
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def capture(cls, graph: WorkflowGraph) -> HistoryEntry:
        return cls(graph=graph.clone())

    def restore(self) -> WorkflowGraph:
        """Return a fresh copy so the stored entry can never be mutated."""
        return self.graph.clone()


class CommandHistory:
    """
    Undo/redo stacks of graph snapshots.

    Example:
        history = CommandHistory()
        history.snapshot(graph)        # before mutating
        graph.add_node(...)
        graph = history.undo(graph)    # back to the pre-mutation graph
        graph = history.redo(graph)    # and forward again
    """

    def __init__(self, max_entries: int | None = DEFAULT_HISTORY_LIMIT):
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be a positive integer or None")
        self._max_entries = max_entries
        self._undo: deque[HistoryEntry] = deque(maxlen=max_entries)
        self._redo: deque[HistoryEntry] = deque(maxlen=max_entries)

    @property
    def max_entries(self) -> int | None:
        return self._max_entries

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def snapshot(self, graph: WorkflowGraph) -> None:
        """Record the pre-mutation graph and invalidate the redo stack."""
        if self._max_entries is not None and len(self._undo) == self._max_entries:
            logger.debug(f"History full ({self._max_entries}), evicting oldest entry")
        self._undo.append(HistoryEntry.capture(graph))
        self._redo.clear()

    def undo(self, current: WorkflowGraph) -> WorkflowGraph | None:
        """Step back. Returns the restored graph, or None if there is nothing to undo."""
        if not self._undo:
            return None
        entry = self._undo.pop()
        self._redo.append(HistoryEntry.capture(current))
        return entry.restore()

    def redo(self, current: WorkflowGraph) -> WorkflowGraph | None:
        """Step forward. Returns the restored graph, or None if there is nothing to redo."""
        if not self._redo:
            return None
        entry = self._redo.pop()
        self._undo.append(HistoryEntry.capture(current))
        return entry.restore()

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()
