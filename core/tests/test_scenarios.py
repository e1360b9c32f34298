"""Tests for test scenarios, their file store, and run reports."""

import json

import pytest

from flowsim.graph.model import Edge, Node, NodeKind, WorkflowGraph
from flowsim.runtime.engine import ExecutionEngine
from flowsim.runtime.report import ExecutionReport
from flowsim.schemas.scenario import DEFAULT_SCENARIO_NAME, ScenarioLibrary
from flowsim.simulation import FixedProvider, NodeOutputSimulator
from flowsim.storage.scenario_store import ScenarioStore


class TestScenarioLibrary:
    def test_starts_with_default_scenario(self):
        library = ScenarioLibrary()

        assert library.names() == [DEFAULT_SCENARIO_NAME]
        assert "webhookPayload" in library.load(DEFAULT_SCENARIO_NAME)

    def test_save_upserts_by_name(self):
        library = ScenarioLibrary()
        library.save("Big order", {"webhookPayload": {"amount": 5000}})
        library.save("Big order", {"webhookPayload": {"amount": 9000}})

        assert library.names() == [DEFAULT_SCENARIO_NAME, "Big order"]
        assert library.load("Big order")["webhookPayload"]["amount"] == 9000

    def test_load_returns_copy(self):
        library = ScenarioLibrary()
        inputs = library.load(DEFAULT_SCENARIO_NAME)
        inputs["webhookPayload"]["event"] = "mutated"

        assert library.load(DEFAULT_SCENARIO_NAME)["webhookPayload"]["event"] == "user.created"

    def test_save_copies_inputs(self):
        library = ScenarioLibrary()
        inputs = {"aiResponse": "one"}
        library.save("AI", inputs)
        inputs["aiResponse"] = "two"

        assert library.load("AI") == {"aiResponse": "one"}

    def test_unknown_scenario(self):
        with pytest.raises(KeyError, match="Unknown scenario"):
            ScenarioLibrary().load("missing")

    def test_delete(self):
        library = ScenarioLibrary()
        library.save("Temp", {})

        assert library.delete("Temp")
        assert not library.delete("Temp")

    def test_export_import(self):
        library = ScenarioLibrary()
        library.save("Refund", {"webhookPayload": {"event": "refund"}})

        restored = ScenarioLibrary.import_json(library.export_json())

        assert restored.names() == library.names()
        assert restored.load("Refund") == {"webhookPayload": {"event": "refund"}}

    def test_import_bare_list(self):
        text = json.dumps([{"name": "Only", "inputs": {"x": 1}}])
        assert ScenarioLibrary.import_json(text).names() == ["Only"]

    @pytest.mark.parametrize("text", ["{not json", json.dumps({"scenarios": [{"name": ""}]})])
    def test_import_invalid(self, text):
        with pytest.raises(ValueError, match="Invalid scenario file"):
            ScenarioLibrary.import_json(text)


class TestScenarioStore:
    def test_missing_file_gives_defaults(self, tmp_path):
        store = ScenarioStore(tmp_path / "scenarios.json")

        assert not store.exists()
        assert store.load().names() == [DEFAULT_SCENARIO_NAME]

    def test_save_and_load(self, tmp_path):
        store = ScenarioStore(tmp_path / "nested" / "scenarios.json")
        library = ScenarioLibrary()
        library.save("Chat", {"aiResponse": "Hello"})

        store.save(library)

        assert store.exists()
        assert store.load().load("Chat") == {"aiResponse": "Hello"}
        assert [p.name for p in store.path.parent.iterdir()] == ["scenarios.json"]

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "scenarios.json"
        path.write_text("[{")

        with pytest.raises(ValueError):
            ScenarioStore(path).load()


class TestExecutionReport:
    def _engine(self) -> ExecutionEngine:
        graph = WorkflowGraph(
            nodes=[
                Node(id="1", kind=NodeKind.TRIGGER, subtype="webhook", label="Hook"),
                Node(id="2", kind=NodeKind.MESSAGE, subtype="message", config={"message": "Hi"}),
            ],
            edges=[Edge(id="e1-2", source="1", target="2")],
        )
        engine = ExecutionEngine(simulator=NodeOutputSimulator(provider=FixedProvider()))
        engine.run(graph, {"webhookPayload": {"id": 1}})
        return engine

    def test_report_shape(self):
        report = ExecutionReport.from_engine(self._engine(), elapsed_seconds=1.23456)
        data = report.to_dict()

        assert set(data) >= {"workflow", "nodeData", "executionLogs"}
        assert data["workflow"] == {
            "nodes": 2,
            "edges": 1,
            "executionTime": 1.235,
            "completed": 2,
            "errors": 0,
        }
        assert data["nodeData"]["2"]["sent"] is True
        assert data["executionLogs"][0]["message"] == "Simulation started with trigger: Hook"
        assert set(data["executionLogs"][0]) == {"timestamp", "level", "message"}
        assert data["status"] == "completed"

    def test_save(self, tmp_path):
        path = tmp_path / "reports" / "run.json"
        ExecutionReport.from_engine(self._engine()).save(path)

        loaded = json.loads(path.read_text())
        assert loaded["executionPath"] == ["1", "2"]
