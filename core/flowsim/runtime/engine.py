"""
Execution Engine - Steps through a workflow graph one node at a time.

State machine:

    idle --start()--> running <--pause()/resume()--> paused
      |                  |                             |
      |                  +---- no next edge ----> completed
      +--- stop() from any non-idle state ---> stopped

Each ``step`` processes the single active node: mark it completed, ask the
simulator for its output, ask the branch resolver for the next edge, then
activate that edge and its target and schedule the next step. A node whose
simulation fails is marked ``error`` and, under the default
``ErrorPolicy.STALL``, the run stops advancing there.

The engine owns all run state. The graph handed to ``initialize`` is copied,
so the editor may keep mutating its own graph during a run.
"""

import asyncio
import copy
import logging
import time
import uuid
from collections import deque
from collections.abc import Callable
from typing import Any

from flowsim.config import SimulatorConfig
from flowsim.errors import EngineStateError, SimulationError
from flowsim.graph.branch import (
    BranchDecision,
    BranchResolver,
    DecisionReason,
    TraversalPolicy,
    get_policy,
)
from flowsim.graph.model import Edge, WorkflowGraph
from flowsim.observability import set_trace_context
from flowsim.runtime.event_bus import EventBus, EventType, RunEvent
from flowsim.runtime.scheduler import (
    AsyncioScheduler,
    InlineScheduler,
    ManualScheduler,
    ScheduledCall,
    Scheduler,
)
from flowsim.schemas.execution import (
    EdgeState,
    ErrorPolicy,
    ExecutionLogEntry,
    ExecutionSnapshot,
    LogLevel,
    NodeState,
    RunStatus,
    Speed,
)
from flowsim.simulation.provider import RandomProvider
from flowsim.simulation.simulator import NodeOutputSimulator

logger = logging.getLogger(__name__)

# Guards against cycles running forever under the inline scheduler
DEFAULT_MAX_STEPS = 10_000

_PYTHON_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


class ExecutionEngine:
    """
    Runs simulated workflows.

    Example:
        engine = ExecutionEngine(simulator=NodeOutputSimulator(provider=RandomProvider(seed=1)))
        snapshot = engine.run(graph, {"webhookPayload": {"event": "order.created"}})
        snapshot.execution_path  # ["1", "2", "4"]

    Interactive, paced replay:

        engine = ExecutionEngine(scheduler=AsyncioScheduler(), speed=Speed.SLOW)
        engine.start(graph, inputs)
        engine.pause()
        engine.step_forward()
        engine.resume()
    """

    def __init__(
        self,
        simulator: NodeOutputSimulator | None = None,
        scheduler: Scheduler | None = None,
        event_bus: EventBus | None = None,
        policy: TraversalPolicy | str | None = None,
        speed: Speed | str = Speed.NORMAL,
        error_policy: ErrorPolicy | str = ErrorPolicy.STALL,
        max_steps: int = DEFAULT_MAX_STEPS,
    ):
        """
        Args:
            simulator: Produces node outputs (seedable; default unseeded)
            scheduler: Invokes the next step (default InlineScheduler)
            event_bus: Receives every state change (default: a private bus)
            policy: Traversal policy or its name (default FirstEdgePolicy)
            speed: Delay between steps
            error_policy: What to do after a node fails
            max_steps: Steps allowed per run before it is stalled
        """
        self.simulator = simulator or NodeOutputSimulator()
        self.scheduler = scheduler or InlineScheduler()
        self.event_bus = event_bus or EventBus()
        if isinstance(policy, str):
            policy = get_policy(policy)
        self.resolver = BranchResolver(policy)
        self.speed = Speed(speed)
        self.error_policy = ErrorPolicy(error_policy)
        self.max_steps = max_steps

        self._graph: WorkflowGraph | None = None
        self._test_inputs: dict[str, Any] = {}
        self._run_id: str | None = None
        self._status = RunStatus.IDLE
        self._ready = False  # initialize() succeeded and the run has not ended
        self._stalled = False

        self._node_states: dict[str, NodeState] = {}
        self._edge_states: dict[str, EdgeState] = {}
        self._outputs: dict[str, Any] = {}
        self._logs: list[ExecutionLogEntry] = []
        self._progress = 0
        self._current: str | None = None
        self._path: list[str] = []
        self._waiting: deque[str] = deque()  # Fan-out targets not yet visited

        self._pending: ScheduledCall | None = None
        self._steps = 0
        self._started_at: float | None = None
        self._finished_at: float | None = None
        self._subscriptions: list[str] = []
        self._closed = False

    @classmethod
    def from_config(cls, config: SimulatorConfig, **overrides: Any) -> "ExecutionEngine":
        """Build an engine from configuration-file settings."""
        simulator = NodeOutputSimulator(
            provider=RandomProvider(seed=config.seed),
            code_failure_rate=config.code_failure_rate,
            integration_failure_rate=config.integration_failure_rate,
        )
        kwargs: dict[str, Any] = {
            "simulator": simulator,
            "speed": config.speed,
            "error_policy": config.error_policy,
        }
        kwargs.update(overrides)
        return cls(**kwargs)

    # ------------------------------------------------------------------
    # Read-only observers
    # ------------------------------------------------------------------

    @property
    def status(self) -> RunStatus:
        return self._status

    @property
    def run_id(self) -> str | None:
        return self._run_id

    @property
    def graph(self) -> WorkflowGraph | None:
        """The run's private copy of the graph."""
        return self._graph

    @property
    def is_stalled(self) -> bool:
        return self._stalled

    def node_states(self) -> dict[str, NodeState]:
        return dict(self._node_states)

    def edge_states(self) -> dict[str, EdgeState]:
        return dict(self._edge_states)

    def node_outputs(self) -> dict[str, Any]:
        return copy.deepcopy(self._outputs)

    def logs(self) -> list[ExecutionLogEntry]:
        return list(self._logs)

    def progress(self) -> int:
        return self._progress

    def current_node_id(self) -> str | None:
        return self._current

    def execution_path(self) -> list[str]:
        return list(self._path)

    def elapsed_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._finished_at if self._finished_at is not None else time.monotonic()
        return end - self._started_at

    def snapshot(self) -> ExecutionSnapshot:
        return ExecutionSnapshot(
            run_id=self._run_id,
            status=self._status,
            current_node_id=self._current,
            progress=self._progress,
            node_states=self.node_states(),
            edge_states=self.edge_states(),
            node_outputs=self.node_outputs(),
            logs=self.logs(),
            execution_path=self.execution_path(),
        )

    def subscribe(
        self,
        event_types: list[EventType],
        handler: Callable[[RunEvent], None],
        filter_node: str | None = None,
    ) -> str:
        """Subscribe to this engine's events. Removed again by ``close()``."""
        sub_id = self.event_bus.subscribe(event_types, handler, filter_node=filter_node)
        self._subscriptions.append(sub_id)
        return sub_id

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def initialize(self, graph: WorkflowGraph, test_inputs: dict[str, Any] | None = None) -> bool:
        """
        Prepare a run over a copy of ``graph``.

        Resets every node to pending and every edge to inactive, clears the
        log, outputs and progress, rewinds the simulation provider, then
        activates the first trigger node and seeds its output with a copy of
        ``test_inputs``.

        Returns:
            True if the run is ready to start; False if the graph is
            structurally invalid or has no trigger node (an error is logged)
        """
        self._ensure_open()
        self._cancel_pending()

        self._graph = graph.clone()
        self._test_inputs = copy.deepcopy(test_inputs or {})
        self.simulator.provider.reset()
        self._run_id = f"run_{uuid.uuid4().hex[:12]}"
        set_trace_context(run_id=self._run_id, node_id=None)

        self._status = RunStatus.IDLE
        self._ready = False
        self._stalled = False
        self._reset_states()
        self._outputs = {}
        self._logs = []
        self._path = []
        self._steps = 0
        self._started_at = None
        self._finished_at = None

        errors = self._graph.validate_structure()
        if errors:
            for error in errors:
                self._log(LogLevel.ERROR, f"Invalid workflow: {error}")
            return False

        triggers = self._graph.get_trigger_nodes()
        if not triggers:
            self._log(LogLevel.ERROR, "No trigger nodes found in the workflow")
            return False

        trigger = triggers[0]
        self._ready = True
        self._set_node_state(trigger.id, NodeState.ACTIVE)
        self._current = trigger.id
        self._path.append(trigger.id)
        self._set_output(trigger.id, copy.deepcopy(self._test_inputs))
        self._log(LogLevel.INFO, f"Simulation started with trigger: {trigger.display_name}")
        self._emit(EventType.RUN_INITIALIZED, node_id=trigger.id)
        return True

    def start(
        self,
        graph: WorkflowGraph | None = None,
        test_inputs: dict[str, Any] | None = None,
    ) -> bool:
        """
        Start running. Initializes first when given a graph.

        Returns:
            False if initialization failed

        Raises:
            EngineStateError: No graph given and no prior successful initialize
        """
        self._ensure_open()
        if graph is not None:
            if not self.initialize(graph, test_inputs):
                return False
        elif not self._ready or self._status != RunStatus.IDLE:
            raise EngineStateError("start() needs a graph or a freshly initialized run")

        self._status = RunStatus.RUNNING
        self._started_at = time.monotonic()
        logger.info(f"Run {self._run_id} started at {self.speed} speed")
        self._emit(EventType.RUN_STARTED)
        self._schedule_step(self.speed.delay)
        return True

    def step(self, single_step: bool = False) -> bool:
        """
        Process the active node.

        Args:
            single_step: Do not schedule the following step

        Returns:
            True if a node was processed
        """
        self._cancel_pending()
        if self._closed or not self._ready or self._current is None or self._stalled:
            return False

        if self._steps >= self.max_steps:
            self._log(
                LogLevel.ERROR,
                f"Step limit of {self.max_steps} reached, halting run",
                self._current,
            )
            self._set_node_state(self._current, NodeState.ERROR)
            self._update_progress()
            self._stall()
            return False
        self._steps += 1

        node = self._graph.require_node(self._current)
        set_trace_context(node_id=node.id)
        self._set_node_state(node.id, NodeState.COMPLETED)

        decision: BranchDecision | None = None
        failed = False
        try:
            result = self.simulator.simulate_node(node, self._test_inputs)
            self._log_notes(result.notes, node.id)
            self._set_output(node.id, result.output)
            decision = self.resolver.resolve(
                node, self._graph.get_outgoing_edges(node.id), result.output
            )
        except SimulationError as e:
            failed = True
            self._log_notes(e.notes, node.id)
            self._set_output(node.id, {})
            self._log(LogLevel.ERROR, f'Error in node "{node.display_name}": {e}', node.id)
            self._set_node_state(node.id, NodeState.ERROR)

        self._update_progress()

        if failed:
            if self.error_policy == ErrorPolicy.STALL:
                self._stall()
                return True
            edges = self._graph.get_outgoing_edges(node.id)[:1]
        else:
            edges = decision.edges
            if decision.reason == DecisionReason.FALLBACK:
                outcome = decision.outcome
                handle = str(outcome).lower() if isinstance(outcome, bool) else outcome
                self._log(
                    LogLevel.WARNING,
                    f'No "{handle}" branch wired on "{node.display_name}", '
                    f"{self.resolver.policy.name} policy followed {[e.id for e in edges]}",
                    node.id,
                )

        next_id = self._advance(edges)
        if next_id is None:
            self._complete()
            return True

        self._path.append(next_id)
        self._set_node_state(next_id, NodeState.ACTIVE)
        self._current = next_id

        if not single_step and self._status == RunStatus.RUNNING:
            self._schedule_step(self.speed.delay)
        return True

    def step_forward(
        self,
        graph: WorkflowGraph | None = None,
        test_inputs: dict[str, Any] | None = None,
    ) -> bool:
        """
        Process exactly one node and leave the run paused.

        From a run that is not in progress this initializes first, using
        ``graph`` or the previous run's graph and inputs.

        Returns:
            True if a node was processed
        """
        self._ensure_open()
        if self._status == RunStatus.RUNNING:
            self.pause()

        if self._status == RunStatus.PAUSED:
            if self._stalled:
                logger.info("Run is stalled on a failed node, nothing to step")
                return False
            return self.step(single_step=True)

        if not (self._ready and self._status == RunStatus.IDLE):
            if graph is None:
                if self._graph is None:
                    raise EngineStateError("step_forward() needs a graph for a new run")
                graph, test_inputs = self._graph, test_inputs or self._test_inputs
            if not self.initialize(graph, test_inputs):
                return False

        self._status = RunStatus.PAUSED
        self._started_at = time.monotonic()
        self._emit(EventType.RUN_PAUSED, single_step=True)
        return self.step(single_step=True)

    def pause(self) -> bool:
        """
        Stop scheduling steps until ``resume()``.

        Returns:
            True if the run was running; False if already paused or completed

        Raises:
            EngineStateError: No run in progress
        """
        if self._status in (RunStatus.PAUSED, RunStatus.COMPLETED):
            return False
        if self._status != RunStatus.RUNNING:
            raise EngineStateError(f"Cannot pause a run that is {self._status}")

        self._cancel_pending()
        self._status = RunStatus.PAUSED
        self._log(LogLevel.INFO, "Simulation paused")
        self._emit(EventType.RUN_PAUSED)
        return True

    def resume(self) -> bool:
        """
        Continue a paused run from its current node.

        Returns:
            True if the run resumed; False if it is already running or is
            stalled on a failed node

        Raises:
            EngineStateError: The run is not paused
        """
        if self._status == RunStatus.RUNNING:
            return False
        if self._status != RunStatus.PAUSED:
            raise EngineStateError(f"Cannot resume a run that is {self._status}")
        if self._stalled:
            self._log(LogLevel.WARNING, "Cannot resume: run stalled on a failed node")
            return False

        self._status = RunStatus.RUNNING
        self._log(LogLevel.INFO, "Simulation resumed")
        self._emit(EventType.RUN_RESUMED)
        self._schedule_step(0.0)
        return True

    def stop(self) -> bool:
        """
        Abandon the run. Node and edge states reset; the log and outputs stay.

        Returns:
            False if there was nothing to stop
        """
        if self._status == RunStatus.IDLE and not self._ready:
            return False
        if self._status == RunStatus.STOPPED:
            return False

        self._cancel_pending()
        self._status = RunStatus.STOPPED
        self._ready = False
        self._stalled = False
        self._finished_at = time.monotonic() if self._started_at is not None else None
        self._log(LogLevel.INFO, "Simulation stopped")
        self._reset_states()
        self._emit(EventType.RUN_STOPPED)
        return True

    def reset(self) -> None:
        """Back to idle with an empty log and no outputs."""
        self._cancel_pending()
        self._status = RunStatus.IDLE
        self._ready = False
        self._stalled = False
        self._reset_states()
        self._outputs = {}
        self._logs = []
        self._path = []
        self._started_at = None
        self._finished_at = None

    def close(self) -> None:
        """Stop the run and detach subscribers. No step fires afterwards."""
        if self._closed:
            return
        self.stop()
        self._cancel_pending()
        for sub_id in self._subscriptions:
            self.event_bus.unsubscribe(sub_id)
        self._subscriptions.clear()
        self._closed = True

    def set_speed(self, speed: Speed | str) -> None:
        """Change pacing. A step already waiting is rescheduled at the new delay."""
        self.speed = Speed(speed)
        if self._pending is not None and self._pending.pending:
            self._cancel_pending()
            self._schedule_step(self.speed.delay)

    def run(
        self,
        graph: WorkflowGraph,
        test_inputs: dict[str, Any] | None = None,
    ) -> ExecutionSnapshot:
        """
        Run ``graph`` to completion (or stall) synchronously.

        Raises:
            EngineStateError: The scheduler is asynchronous
        """
        if isinstance(self.scheduler, AsyncioScheduler):
            raise EngineStateError("run() is synchronous; use start() with an AsyncioScheduler")
        self.start(graph, test_inputs)
        if isinstance(self.scheduler, ManualScheduler):
            self.scheduler.run_all(max_calls=self.max_steps + 1)
        return self.snapshot()

    async def wait_until_settled(
        self, timeout: float | None = None, poll_interval: float = 0.01
    ) -> ExecutionSnapshot:
        """
        Wait until the run is no longer running (completed, paused, stopped).

        Raises:
            TimeoutError: The run is still going after ``timeout`` seconds
        """

        async def _wait() -> None:
            while self._status == RunStatus.RUNNING:
                await asyncio.sleep(poll_interval)

        await asyncio.wait_for(_wait(), timeout=timeout)
        return self.snapshot()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise EngineStateError("Engine is closed")

    def _schedule_step(self, delay: float) -> None:
        self._pending = self.scheduler.schedule(delay, self.step)

    def _cancel_pending(self) -> None:
        self.scheduler.cancel(self._pending)
        self._pending = None

    def _reset_states(self) -> None:
        nodes = self._graph.nodes if self._graph else []
        edges = self._graph.edges if self._graph else []
        self._node_states = {n.id: NodeState.PENDING for n in nodes}
        self._edge_states = {e.id: EdgeState.INACTIVE for e in edges}
        self._current = None
        self._waiting.clear()
        if self._progress != 0:
            self._progress = 0
            self._emit(EventType.PROGRESS_CHANGED, progress=0)

    def _advance(self, edges: list[Edge]) -> str | None:
        """Activate ``edges`` and return the node to visit next, if any."""
        for edge in edges:
            self._set_edge_state(edge.id, EdgeState.ACTIVE)
        if edges:
            self._waiting.extend(edge.target for edge in edges[1:])
            return edges[0].target

        # End of this path: continue with a fan-out target not reached yet
        while self._waiting:
            candidate = self._waiting.popleft()
            if self._node_states.get(candidate) == NodeState.PENDING:
                return candidate
        return None

    def _complete(self) -> None:
        self._current = None
        self._ready = False
        self._status = RunStatus.COMPLETED
        self._finished_at = time.monotonic() if self._started_at is not None else None
        self._log(LogLevel.INFO, "Workflow execution completed")
        self._set_progress(100)
        set_trace_context(node_id=None)
        self._emit(EventType.RUN_COMPLETED, execution_path=self.execution_path())

    def _stall(self) -> None:
        self._cancel_pending()
        self._stalled = True
        self._status = RunStatus.PAUSED
        set_trace_context(node_id=None)
        self._emit(EventType.RUN_PAUSED, stalled=True)

    def _update_progress(self) -> None:
        total = len(self._node_states)
        if not total:
            return
        done = sum(
            1 for s in self._node_states.values() if s in (NodeState.COMPLETED, NodeState.ERROR)
        )
        self._set_progress(min(100, _round_half_up(100 * done / total)))

    def _set_progress(self, value: int) -> None:
        # Revisiting nodes in a cycle must not move the bar backwards
        value = max(self._progress, value)
        if value != self._progress:
            self._progress = value
            self._emit(EventType.PROGRESS_CHANGED, progress=value)

    def _set_node_state(self, node_id: str, state: NodeState) -> None:
        self._node_states[node_id] = state
        self._emit(EventType.NODE_STATE_CHANGED, node_id=node_id, state=state.value)

    def _set_edge_state(self, edge_id: str, state: EdgeState) -> None:
        self._edge_states[edge_id] = state
        self._emit(EventType.EDGE_STATE_CHANGED, edge_id=edge_id, state=state.value)

    def _set_output(self, node_id: str, output: Any) -> None:
        self._outputs[node_id] = output
        self._emit(EventType.NODE_OUTPUT_SET, node_id=node_id)

    def _log(self, level: LogLevel, message: str, node_id: str | None = None) -> None:
        entry = ExecutionLogEntry(level=level, message=message, node_id=node_id)
        self._logs.append(entry)
        logger.log(_PYTHON_LEVELS[level], message, extra={"event": "execution_log"})
        self._emit(EventType.LOG_APPENDED, node_id=node_id, level=level.value, message=message)

    def _log_notes(self, notes: list[tuple[str, str]], node_id: str) -> None:
        for level, message in notes:
            try:
                log_level = LogLevel(level)
            except ValueError:
                log_level = LogLevel.INFO
            self._log(log_level, message, node_id)

    def _emit(self, event_type: EventType, node_id: str | None = None, **data: Any) -> None:
        self.event_bus.emit(event_type, run_id=self._run_id, node_id=node_id, **data)
