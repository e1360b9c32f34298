"""
Tests for the ExecutionEngine.

Runs use FixedProvider(0.75) so IF conditions evaluate true and no failure
fires unless a rate is 1.0. ManualScheduler lets a test drive steps one at
a time; InlineScheduler runs to completion inside start().
"""

import logging

import pytest

from flowsim.errors import EngineStateError
from flowsim.graph.model import Edge, Node, NodeKind, WorkflowGraph
from flowsim.observability import get_trace_context
from flowsim.runtime.engine import ExecutionEngine
from flowsim.runtime.event_bus import EventType
from flowsim.runtime.scheduler import AsyncioScheduler, ManualScheduler
from flowsim.schemas.execution import (
    EdgeState,
    ErrorPolicy,
    LogLevel,
    NodeState,
    RunStatus,
    Speed,
)
from flowsim.simulation import FixedProvider, NodeOutputSimulator, RandomProvider

INPUTS = {"webhookPayload": {"event": "order.created"}}


def _branch_graph(handles: bool = True) -> WorkflowGraph:
    """A(webhook) -> B(if), B -true-> C, B -false-> D."""
    return WorkflowGraph(
        nodes=[
            Node(id="A", kind=NodeKind.TRIGGER, subtype="webhook", label="Hook"),
            Node(id="B", kind=NodeKind.LOGIC, subtype="if", label="Check", config={"condition": "x"}),
            Node(id="C", kind=NodeKind.ACTION, subtype="http", label="Yes"),
            Node(id="D", kind=NodeKind.ACTION, subtype="http", label="No"),
        ],
        edges=[
            Edge(id="eAB", source="A", target="B"),
            Edge(id="eBC", source="B", target="C", source_handle="true" if handles else None),
            Edge(id="eBD", source="B", target="D", source_handle="false" if handles else None),
        ],
    )


def _integration_graph() -> WorkflowGraph:
    """A(webhook) -> B(slack) -> C(message)."""
    return WorkflowGraph(
        nodes=[
            Node(id="A", kind=NodeKind.TRIGGER, subtype="webhook", label="Hook"),
            Node(id="B", kind=NodeKind.INTEGRATION, subtype="slack", label="Slack"),
            Node(id="C", kind=NodeKind.MESSAGE, subtype="message", label="Notify"),
        ],
        edges=[
            Edge(id="eAB", source="A", target="B"),
            Edge(id="eBC", source="B", target="C"),
        ],
    )


def _engine(scheduler=None, integration_failure_rate=0.0, **kwargs) -> ExecutionEngine:
    simulator = NodeOutputSimulator(
        provider=FixedProvider(0.75),
        code_failure_rate=0.0,
        integration_failure_rate=integration_failure_rate,
    )
    return ExecutionEngine(simulator=simulator, scheduler=scheduler, **kwargs)


def _messages(engine: ExecutionEngine) -> list[str]:
    return [entry.message for entry in engine.logs()]


# ---------------------------------------------------------------------------
# Full runs
# ---------------------------------------------------------------------------


class TestRun:
    def test_if_branch_follows_true_handle(self):
        engine = _engine()

        snapshot = engine.run(_branch_graph(), INPUTS)

        assert snapshot.status == RunStatus.COMPLETED
        assert snapshot.execution_path == ["A", "B", "C"]
        assert snapshot.progress == 100
        assert snapshot.node_states["D"] == NodeState.PENDING
        assert snapshot.edge_states == {
            "eAB": EdgeState.ACTIVE,
            "eBC": EdgeState.ACTIVE,
            "eBD": EdgeState.INACTIVE,
        }
        assert snapshot.completed_count == 3
        assert snapshot.is_finished

    def test_log_narrative(self):
        engine = _engine()
        engine.run(_branch_graph(), INPUTS)

        messages = _messages(engine)
        assert messages[0] == "Simulation started with trigger: Hook"
        assert "Evaluating condition: x" in messages
        assert "Condition evaluated to: true" in messages
        assert messages[-1] == "Workflow execution completed"

    def test_unwired_handles_fall_back_to_first_edge(self):
        engine = _engine()

        snapshot = engine.run(_branch_graph(handles=False), INPUTS)

        assert snapshot.execution_path == ["A", "B", "C"]
        warnings = [e for e in engine.logs() if e.level == LogLevel.WARNING]
        assert len(warnings) == 1
        assert warnings[0].node_id == "B"
        assert warnings[0].message == (
            'No "true" branch wired on "Check", first_edge policy followed [\'eBC\']'
        )

    def test_false_condition(self):
        simulator = NodeOutputSimulator(provider=FixedProvider(0.25))
        snapshot = ExecutionEngine(simulator=simulator).run(_branch_graph(), INPUTS)
        assert snapshot.execution_path == ["A", "B", "D"]

    def test_switch_routes_by_case(self):
        graph = WorkflowGraph(
            nodes=[
                Node(id="A", kind=NodeKind.TRIGGER, subtype="schedule"),
                Node(id="S", kind=NodeKind.LOGIC, subtype="switch"),
                Node(id="X", kind=NodeKind.ACTION, subtype="http"),
                Node(id="Y", kind=NodeKind.ACTION, subtype="http"),
            ],
            edges=[
                Edge(id="e1", source="A", target="S"),
                Edge(id="e2", source="S", target="X", source_handle="case1"),
                Edge(id="e3", source="S", target="Y", source_handle="default"),
            ],
        )
        # FixedProvider(0.75) picks "default"
        assert _engine().run(graph).execution_path == ["A", "S", "Y"]

    def test_fan_out_visits_every_branch(self):
        graph = WorkflowGraph(
            nodes=[
                Node(id="A", kind=NodeKind.TRIGGER, subtype="webhook"),
                Node(id="B", kind=NodeKind.ACTION, subtype="http"),
                Node(id="C", kind=NodeKind.MESSAGE, subtype="message"),
            ],
            edges=[Edge(id="e1", source="A", target="B"), Edge(id="e2", source="A", target="C")],
        )

        first_edge = _engine().run(graph)
        fan_out = _engine(policy="fan_out").run(graph)

        assert first_edge.execution_path == ["A", "B"]
        assert fan_out.execution_path == ["A", "B", "C"]
        assert set(fan_out.edge_states.values()) == {EdgeState.ACTIVE}

    def test_strict_policy_errors_on_ambiguous_node(self):
        graph = WorkflowGraph(
            nodes=[
                Node(id="A", kind=NodeKind.TRIGGER, subtype="webhook", label="Hook"),
                Node(id="B", kind=NodeKind.ACTION, subtype="http"),
                Node(id="C", kind=NodeKind.ACTION, subtype="http"),
            ],
            edges=[Edge(id="e1", source="A", target="B"), Edge(id="e2", source="A", target="C")],
        )
        engine = _engine(policy="strict")

        snapshot = engine.run(graph)

        assert snapshot.node_states["A"] == NodeState.ERROR
        assert engine.is_stalled
        assert any("has 2 outgoing edges" in m for m in _messages(engine))

    def test_cycle_halts_at_step_limit(self):
        graph = WorkflowGraph(
            nodes=[
                Node(id="A", kind=NodeKind.TRIGGER, subtype="webhook"),
                Node(id="B", kind=NodeKind.ACTION, subtype="http"),
            ],
            edges=[Edge(id="e1", source="A", target="B"), Edge(id="e2", source="B", target="A")],
        )
        engine = _engine(max_steps=5)

        snapshot = engine.run(graph)

        assert snapshot.status == RunStatus.PAUSED
        assert engine.is_stalled
        assert len(snapshot.execution_path) == 6
        assert "Step limit of 5 reached, halting run" in _messages(engine)
        assert NodeState.ACTIVE not in snapshot.node_states.values()
        assert snapshot.node_states[snapshot.current_node_id] == NodeState.ERROR

    def test_no_trigger(self):
        graph = WorkflowGraph(nodes=[Node(id="1", kind=NodeKind.ACTION, subtype="http")])
        engine = _engine()

        assert not engine.initialize(graph)
        assert not engine.start(graph)
        assert engine.status == RunStatus.IDLE
        assert engine.logs()[-1].level == LogLevel.ERROR
        assert engine.logs()[-1].message == "No trigger nodes found in the workflow"

    def test_first_trigger_wins(self):
        graph = _branch_graph()
        graph.add_node(Node(id="T2", kind=NodeKind.TRIGGER, subtype="schedule"))
        assert _engine().run(graph, INPUTS).execution_path[0] == "A"

    def test_run_rejects_async_scheduler(self):
        engine = _engine(scheduler=AsyncioScheduler())
        with pytest.raises(EngineStateError):
            engine.run(_branch_graph())


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    def test_integration_failure_stalls_run(self):
        engine = _engine(integration_failure_rate=1.0)

        snapshot = engine.run(_integration_graph(), INPUTS)

        assert snapshot.node_states == {
            "A": NodeState.COMPLETED,
            "B": NodeState.ERROR,
            "C": NodeState.PENDING,
        }
        assert NodeState.ACTIVE not in snapshot.node_states.values()
        assert snapshot.status == RunStatus.PAUSED
        assert snapshot.node_outputs["B"] == {}
        assert engine.is_stalled

        errors = [e for e in engine.logs() if e.level == LogLevel.ERROR]
        assert errors[-1].message == (
            'Error in node "Slack": Integration error: Could not connect to Slack'
        )
        assert errors[-1].node_id == "B"

    def test_stalled_run_cannot_resume(self):
        engine = _engine(integration_failure_rate=1.0)
        engine.run(_integration_graph(), INPUTS)

        assert not engine.resume()
        assert not engine.step_forward()
        assert engine.logs()[-1].message == "Cannot resume: run stalled on a failed node"

    def test_continue_policy_follows_edges(self):
        engine = _engine(integration_failure_rate=1.0, error_policy=ErrorPolicy.CONTINUE)

        snapshot = engine.run(_integration_graph(), INPUTS)

        assert snapshot.status == RunStatus.COMPLETED
        assert snapshot.execution_path == ["A", "B", "C"]
        assert snapshot.error_count == 1
        assert snapshot.progress == 100

    def test_stop_clears_stall(self):
        engine = _engine(integration_failure_rate=1.0)
        engine.run(_integration_graph(), INPUTS)

        assert engine.stop()
        assert not engine.is_stalled
        assert set(engine.node_states().values()) == {NodeState.PENDING}


# ---------------------------------------------------------------------------
# Controls
# ---------------------------------------------------------------------------


class TestControls:
    def test_start_schedules_at_speed_delay(self):
        scheduler = ManualScheduler()
        engine = _engine(scheduler=scheduler, speed=Speed.SLOW)

        engine.start(_branch_graph(), INPUTS)

        assert engine.status == RunStatus.RUNNING
        assert engine.current_node_id() == "A"
        assert scheduler.delays == [2.0]

    def test_set_speed_reschedules_waiting_step(self):
        scheduler = ManualScheduler()
        engine = _engine(scheduler=scheduler, speed=Speed.SLOW)
        engine.start(_branch_graph(), INPUTS)

        engine.set_speed(Speed.FAST)

        assert scheduler.delays == [0.5]

    def test_pause_and_resume(self):
        scheduler = ManualScheduler()
        engine = _engine(scheduler=scheduler)
        engine.start(_branch_graph(), INPUTS)
        scheduler.run_next()

        assert engine.pause()
        assert engine.status == RunStatus.PAUSED
        assert scheduler.pending == 0
        assert not engine.pause()

        assert engine.resume()
        assert scheduler.delays == [0.0]
        scheduler.run_all()

        assert engine.status == RunStatus.COMPLETED
        assert engine.execution_path() == ["A", "B", "C"]
        assert "Simulation paused" in _messages(engine)
        assert "Simulation resumed" in _messages(engine)

    def test_pause_and_resume_from_idle_raise(self):
        engine = _engine()
        with pytest.raises(EngineStateError):
            engine.pause()
        with pytest.raises(EngineStateError):
            engine.resume()

    def test_start_without_graph_needs_initialize(self):
        engine = _engine(scheduler=ManualScheduler())
        with pytest.raises(EngineStateError):
            engine.start()

        assert engine.initialize(_branch_graph(), INPUTS)
        assert engine.start()

    def test_stop_keeps_logs_and_outputs(self):
        scheduler = ManualScheduler()
        engine = _engine(scheduler=scheduler)
        engine.start(_branch_graph(), INPUTS)
        scheduler.run_next()

        assert engine.stop()

        assert engine.status == RunStatus.STOPPED
        assert engine.current_node_id() is None
        assert set(engine.node_states().values()) == {NodeState.PENDING}
        assert set(engine.edge_states().values()) == {EdgeState.INACTIVE}
        assert engine.progress() == 0
        assert "A" in engine.node_outputs()
        assert engine.logs()[-1].message == "Simulation stopped"
        assert scheduler.pending == 0
        assert not engine.stop()

    def test_step_forward_walks_one_node_at_a_time(self):
        engine = _engine(scheduler=ManualScheduler())
        graph = _branch_graph()

        assert engine.step_forward(graph, INPUTS)
        assert engine.status == RunStatus.PAUSED
        assert engine.current_node_id() == "B"

        assert engine.step_forward()
        assert engine.current_node_id() == "C"

        assert engine.step_forward()
        assert engine.status == RunStatus.COMPLETED

    def test_step_forward_pauses_running_run(self):
        scheduler = ManualScheduler()
        engine = _engine(scheduler=scheduler)
        engine.start(_branch_graph(), INPUTS)

        assert engine.step_forward()

        assert engine.status == RunStatus.PAUSED
        assert engine.execution_path() == ["A", "B"]
        assert scheduler.pending == 0

    def test_step_forward_restarts_finished_run(self):
        engine = _engine()
        engine.run(_branch_graph(), INPUTS)
        first_run = engine.run_id

        assert engine.step_forward()
        assert engine.run_id != first_run
        assert engine.execution_path() == ["A", "B"]

    def test_reset(self):
        engine = _engine()
        engine.run(_branch_graph(), INPUTS)
        engine.reset()

        assert engine.status == RunStatus.IDLE
        assert engine.logs() == []
        assert engine.node_outputs() == {}

    def test_close_detaches_subscribers(self):
        engine = _engine(scheduler=ManualScheduler())
        seen = []
        engine.subscribe([EventType.RUN_STARTED], seen.append)
        engine.close()

        assert engine.event_bus.get_stats()["subscriptions"] == 0
        with pytest.raises(EngineStateError, match="closed"):
            engine.start(_branch_graph())
        assert seen == []


# ---------------------------------------------------------------------------
# Run state
# ---------------------------------------------------------------------------


class TestRunState:
    def test_trigger_output_seeded_with_copy_of_inputs(self):
        inputs = {"webhookPayload": {"n": 1}}
        engine = _engine(scheduler=ManualScheduler())
        engine.initialize(_branch_graph(), inputs)

        inputs["webhookPayload"]["n"] = 2

        assert engine.node_outputs()["A"] == {"webhookPayload": {"n": 1}}
        assert engine.node_states()["A"] == NodeState.ACTIVE

    def test_run_uses_private_copy_of_graph(self):
        scheduler = ManualScheduler()
        graph = _branch_graph()
        engine = _engine(scheduler=scheduler)
        engine.start(graph, INPUTS)

        graph.remove_node("C")
        graph.get_node("B").config["condition"] = "changed"
        scheduler.run_all()

        assert engine.execution_path() == ["A", "B", "C"]
        assert engine.graph.get_node("B").config["condition"] == "x"

    def test_at_most_one_active_node(self):
        engine = _engine()
        active_counts = []

        def on_state(event):
            states = engine.node_states().values()
            active_counts.append(sum(1 for s in states if s == NodeState.ACTIVE))

        engine.subscribe([EventType.NODE_STATE_CHANGED], on_state)
        engine.run(_branch_graph(), INPUTS)

        assert active_counts
        assert max(active_counts) == 1

    def test_progress_is_monotonic(self):
        engine = _engine()
        values = []
        engine.subscribe([EventType.PROGRESS_CHANGED], lambda e: values.append(e.data["progress"]))

        engine.run(_branch_graph(), INPUTS)

        assert values == sorted(values)
        assert values[-1] == 100

    def test_progress_rounds_half_up(self):
        scheduler = ManualScheduler()
        graph = _integration_graph()
        graph.add_node(Node(id="Z", kind=NodeKind.ACTION, subtype="http"))
        graph.add_node(Node(id="Y", kind=NodeKind.ACTION, subtype="http"))
        graph.add_node(Node(id="X", kind=NodeKind.ACTION, subtype="http"))
        graph.add_node(Node(id="W", kind=NodeKind.ACTION, subtype="http"))
        graph.add_node(Node(id="V", kind=NodeKind.ACTION, subtype="http"))
        engine = _engine(scheduler=scheduler)

        engine.start(graph, INPUTS)
        scheduler.run_next()

        # 1 of 8 nodes done: 12.5 -> 13
        assert engine.progress() == 13

    def test_run_id_in_trace_context(self):
        engine = _engine(scheduler=ManualScheduler())
        engine.initialize(_branch_graph(), INPUTS)

        assert engine.run_id.startswith("run_")
        assert get_trace_context()["run_id"] == engine.run_id

    def test_events_carry_run_id(self):
        engine = _engine()
        engine.run(_branch_graph(), INPUTS)

        completed = engine.event_bus.get_history(event_type=EventType.RUN_COMPLETED)
        assert completed[0].run_id == engine.run_id
        assert completed[0].data["execution_path"] == ["A", "B", "C"]

    def test_log_entries_mirrored_to_python_logging(self, caplog):
        engine = _engine()

        with caplog.at_level(logging.INFO, logger="flowsim.runtime.engine"):
            engine.run(_branch_graph(), INPUTS)

        messages = [r.getMessage() for r in caplog.records if r.name == "flowsim.runtime.engine"]
        assert "Workflow execution completed" in messages
        assert any(getattr(r, "event", None) == "execution_log" for r in caplog.records)

    def test_invalid_structure_rejected(self):
        graph = WorkflowGraph(
            nodes=[Node(id="A", kind=NodeKind.TRIGGER, subtype="webhook")],
            edges=[Edge(id="bad", source="A", target="ghost")],
        )
        engine = _engine()

        assert not engine.initialize(graph)
        assert engine.logs()[0].message.startswith("Invalid workflow:")


# ---------------------------------------------------------------------------
# Seeded determinism
# ---------------------------------------------------------------------------


def _seeded_engine(seed: int = 3) -> ExecutionEngine:
    return ExecutionEngine(simulator=NodeOutputSimulator(provider=RandomProvider(seed=seed)))


def _outcome(engine: ExecutionEngine) -> tuple:
    snapshot = engine.run(_branch_graph(), INPUTS)
    return snapshot.execution_path, snapshot.node_states, snapshot.edge_states


class TestDeterminism:
    def test_reused_engine_repeats_run(self):
        engine = _seeded_engine()

        outcomes = [_outcome(engine) for _ in range(10)]

        assert all(outcome == outcomes[0] for outcome in outcomes)

    def test_fresh_and_reused_engines_agree(self):
        reused = _seeded_engine()
        _outcome(reused)

        assert _outcome(reused) == _outcome(_seeded_engine())

    def test_step_forward_restart_matches_run(self):
        engine = _seeded_engine()
        expected = _outcome(engine)

        engine.step_forward(_branch_graph(), INPUTS)
        while engine.status == RunStatus.PAUSED and not engine.is_stalled:
            engine.step_forward()

        assert engine.execution_path() == expected[0]
        assert engine.node_states() == expected[1]


# ---------------------------------------------------------------------------
# Asyncio pacing
# ---------------------------------------------------------------------------


class TestAsyncioScheduler:
    @pytest.mark.asyncio
    async def test_paced_run_completes(self):
        engine = _engine(scheduler=AsyncioScheduler(), speed=Speed.INSTANT)

        assert engine.start(_branch_graph(), INPUTS)
        snapshot = await engine.wait_until_settled(timeout=5)

        assert snapshot.status == RunStatus.COMPLETED
        assert snapshot.execution_path == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_wait_for_completion_event(self):
        engine = _engine(scheduler=AsyncioScheduler(), speed=Speed.INSTANT)

        engine.start(_branch_graph(), INPUTS)
        event = await engine.event_bus.wait_for(
            EventType.RUN_COMPLETED, run_id=engine.run_id, timeout=5
        )

        assert event is not None
        assert event.data["execution_path"] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_pause_cancels_timer(self):
        engine = _engine(scheduler=AsyncioScheduler(), speed=Speed.SLOW)
        engine.start(_branch_graph(), INPUTS)

        assert engine.pause()
        snapshot = await engine.wait_until_settled(timeout=1)

        assert snapshot.status == RunStatus.PAUSED
        assert snapshot.execution_path == ["A"]
