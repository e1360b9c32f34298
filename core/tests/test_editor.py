"""
Tests for the WorkflowEditor facade.

Every successful mutation must be undoable; refused or malformed actions
must leave both the graph and the history untouched.
"""

import json

import pytest

from flowsim.errors import ConnectionRejectedError, DuplicateNodeError, UnknownNodeError
from flowsim.graph.editor import PASTE_OFFSET, WorkflowEditor, default_label
from flowsim.graph.model import NodeKind
from flowsim.graph.templates import get_template, list_templates


@pytest.fixture
def editor():
    return WorkflowEditor()


class TestNodes:
    def test_add_node_assigns_sequential_ids_and_labels(self, editor):
        first = editor.add_node(NodeKind.TRIGGER, "webhook")
        second = editor.add_node(NodeKind.ACTION, "http")

        assert (first.id, second.id) == ("1", "2")
        assert first.label == "Webhook Trigger"
        assert second.label == "HTTP Request"

    def test_id_bumped_past_existing(self, editor):
        editor.add_node(NodeKind.TRIGGER, "webhook", node_id="2")
        node = editor.add_node(NodeKind.ACTION, "http")
        assert node.id == "3"

    def test_duplicate_id_rejected_without_history(self, editor):
        editor.add_node(NodeKind.TRIGGER, "webhook", node_id="x")
        depth = editor.history.undo_depth

        with pytest.raises(DuplicateNodeError):
            editor.add_node(NodeKind.ACTION, "http", node_id="x")
        assert editor.history.undo_depth == depth

    def test_integration_and_banking_default_not_data_source(self, editor):
        integration = editor.add_node(NodeKind.INTEGRATION, "slack")
        banking = editor.add_node(NodeKind.BANKING, "kyc", config={"isDataSource": True})

        assert integration.config["isDataSource"] is False
        assert banking.config["isDataSource"] is True

    def test_default_label_falls_back_to_kind(self):
        assert default_label(NodeKind.CODE, "fortran") == "Code"
        assert default_label(NodeKind.BANKING, "kyc") == "KYC Process"

    def test_drop_node_from_json_payload(self, editor):
        source = editor.add_node(NodeKind.TRIGGER, "webhook")
        payload = json.dumps({"type": "message", "data": {"type": "message", "label": "Notify"}})

        node = editor.drop_node(payload, position=(300, 120), connect_from=source.id)

        assert node.label == "Notify"
        assert node.position.x == 300
        assert editor.graph.get_outgoing_edges(source.id)[0].target == node.id

    def test_drop_node_bad_payload(self, editor):
        assert editor.drop_node("{not json") is None
        assert editor.drop_node({"type": "teleport"}) is None
        assert editor.graph.nodes == []
        assert not editor.history.can_undo

    def test_update_node_merges_config(self, editor):
        node = editor.add_node(NodeKind.ACTION, "http", config={"url": "a", "method": "GET"})
        editor.update_node(node.id, label="Fetch", config={"url": "b"})

        updated = editor.graph.get_node(node.id)
        assert updated.label == "Fetch"
        assert updated.config == {"url": "b", "method": "GET"}

        editor.undo()
        assert editor.graph.get_node(node.id).config["url"] == "a"

    def test_update_unknown_node(self, editor):
        with pytest.raises(UnknownNodeError):
            editor.update_node("nope", label="x")

    def test_delete_node_removes_edges_and_is_undoable(self, editor):
        a = editor.add_node(NodeKind.TRIGGER, "webhook")
        b = editor.add_node(NodeKind.ACTION, "http")
        editor.connect(a.id, b.id)

        assert editor.delete_node(b.id)
        assert editor.graph.edges == []

        editor.undo()
        assert len(editor.graph.edges) == 1
        assert editor.graph.has_node(b.id)

    def test_copy_paste_offsets_and_renumbers(self, editor):
        node = editor.add_node(NodeKind.CODE, "python", position=(10, 20))
        editor.copy_node(node.id)

        pasted = editor.paste_node()

        assert pasted.id != node.id
        assert pasted.subtype == "python"
        assert pasted.position.x == 10 + PASTE_OFFSET
        assert pasted.position.y == 20 + PASTE_OFFSET

    def test_paste_with_empty_clipboard(self, editor):
        assert editor.paste_node() is None


class TestEdges:
    def test_connect_creates_edge(self, editor):
        a = editor.add_node(NodeKind.LOGIC, "if")
        b = editor.add_node(NodeKind.ACTION, "http")

        edge = editor.connect(a.id, b.id, source_handle="true")

        assert edge.source_handle == "true"
        assert edge.type == "default"
        assert not edge.hide_arrowhead

    def test_connect_to_integration_hides_arrowhead(self, editor):
        a = editor.add_node(NodeKind.TRIGGER, "webhook")
        b = editor.add_node(NodeKind.INTEGRATION, "stripe")

        edge = editor.connect(a.id, b.id)

        assert edge.type == "noArrow"
        assert edge.data["hideArrowhead"] is True

    def test_refused_connection_leaves_history_untouched(self, editor):
        a = editor.add_node(NodeKind.ACTION, "http", config={"isDataSource": True})
        b = editor.add_node(NodeKind.ACTION, "http")
        depth = editor.history.undo_depth

        assert editor.connect(a.id, b.id) is None
        assert editor.graph.edges == []
        assert editor.history.undo_depth == depth

    def test_data_source_gets_no_edges_in_either_direction(self, editor):
        source = editor.add_node(NodeKind.INTEGRATION, "salesforce", config={"isDataSource": True})
        other = editor.add_node(NodeKind.ACTION, "http")

        assert editor.connect(source.id, other.id) is None
        assert editor.connect(other.id, source.id) is None

    def test_lenient_editor_allows_edges_into_data_source(self):
        editor = WorkflowEditor(strict_data_sources=False)
        source = editor.add_node(NodeKind.INTEGRATION, "salesforce", config={"isDataSource": True})
        other = editor.add_node(NodeKind.ACTION, "http")

        assert editor.connect(other.id, source.id) is not None

    def test_raise_on_reject(self, editor):
        a = editor.add_node(NodeKind.ACTION, "http", config={"showOutputConnections": False})
        b = editor.add_node(NodeKind.ACTION, "http")

        with pytest.raises(ConnectionRejectedError) as exc_info:
            editor.connect(a.id, b.id, raise_on_reject=True)
        assert exc_info.value.reason == "source_outputs_disabled"

    def test_duplicate_connection_ignored(self, editor):
        a = editor.add_node(NodeKind.TRIGGER, "webhook")
        b = editor.add_node(NodeKind.ACTION, "http")
        editor.connect(a.id, b.id)

        assert editor.connect(a.id, b.id) is None
        assert len(editor.graph.edges) == 1

    def test_update_and_delete_edge(self, editor):
        a = editor.add_node(NodeKind.LOGIC, "if")
        b = editor.add_node(NodeKind.ACTION, "http")
        edge = editor.connect(a.id, b.id)

        editor.update_edge(edge.id, source_handle="false", animated=True)
        assert editor.graph.get_edge(edge.id).source_handle == "false"

        with pytest.raises(ValueError):
            editor.update_edge(edge.id, target="zzz")

        assert editor.delete_edge(edge.id)
        assert not editor.delete_edge(edge.id)

    def test_update_edge_accepts_wire_names(self, editor):
        a = editor.add_node(NodeKind.LOGIC, "if")
        b = editor.add_node(NodeKind.ACTION, "http")
        edge = editor.connect(a.id, b.id)

        editor.update_edge(edge.id, sourceHandle="true")

        updated = editor.graph.get_edge(edge.id)
        assert updated.source_handle == "true"
        assert "sourceHandle" not in (updated.model_extra or {})
        assert editor.graph.get_outgoing_edges(a.id) == [updated]

        editor.undo()
        assert editor.graph.get_edge(edge.id).source_handle is None

    def test_update_edge_rejects_bad_types(self, editor):
        a = editor.add_node(NodeKind.TRIGGER, "webhook")
        b = editor.add_node(NodeKind.ACTION, "http")
        edge = editor.connect(a.id, b.id)
        depth = editor.history.undo_depth

        with pytest.raises(ValueError, match="Invalid edge update"):
            editor.update_edge(edge.id, animated=[1])

        assert editor.graph.get_edge(edge.id).animated is False
        assert editor.history.undo_depth == depth


class TestImportExport:
    def test_misspelled_key_rejected_and_graph_untouched(self, editor):
        editor.add_node(NodeKind.TRIGGER, "webhook")
        before = editor.export_json()
        depth = editor.history.undo_depth

        result = editor.import_json(json.dumps({"nodes": [], "edge": []}))

        assert not result.success
        assert "Missing nodes or edges arrays" in result.error
        assert editor.export_json() == before
        assert editor.history.undo_depth == depth

    def test_import_replaces_graph_and_is_undoable(self, editor):
        editor.add_node(NodeKind.TRIGGER, "webhook")
        other = WorkflowEditor()
        other.add_node(NodeKind.TRIGGER, "schedule")
        other.add_node(NodeKind.MESSAGE, "message")

        result = editor.import_json(other.export_json())

        assert result.success
        assert result.node_count == 2
        assert editor.graph.get_node("1").subtype == "schedule"

        editor.undo()
        assert editor.graph.get_node("1").subtype == "webhook"

    def test_export_round_trip(self, editor):
        a = editor.add_node(NodeKind.LOGIC, "switch")
        b = editor.add_node(NodeKind.ACTION, "http")
        editor.connect(a.id, b.id, source_handle="case2")

        data = json.loads(editor.export_json())
        assert data["edges"][0]["sourceHandle"] == "case2"
        assert data["nodes"][0]["data"]["type"] == "switch"

    def _data_source_workflow(self) -> str:
        return json.dumps(
            {
                "nodes": [
                    {"id": "1", "type": "trigger", "data": {"type": "webhook"}},
                    {
                        "id": "2",
                        "type": "integration",
                        "data": {"type": "slack", "config": {"isDataSource": True}},
                    },
                    {"id": "3", "type": "action", "data": {"type": "http"}},
                ],
                "edges": [
                    {"id": "e1-3", "source": "1", "target": "3"},
                    {"id": "e2-1", "source": "2", "target": "1"},
                ],
            }
        )

    def test_edge_from_data_source_rejected(self, editor):
        editor.add_node(NodeKind.TRIGGER, "webhook")
        before = editor.export_json()
        depth = editor.history.undo_depth

        result = editor.import_json(self._data_source_workflow())

        assert not result.success
        assert "connection rules" in result.error
        assert result.errors == [
            "Edge 'e2-1' (2 -> 1) violates connection rules: source_is_data_source"
        ]
        assert editor.export_json() == before
        assert editor.history.undo_depth == depth

    def test_edge_into_data_source_depends_on_strictness(self):
        text = json.dumps(
            {
                "nodes": [
                    {"id": "1", "type": "trigger", "data": {"type": "webhook"}},
                    {
                        "id": "2",
                        "type": "integration",
                        "data": {"type": "slack", "config": {"isDataSource": True}},
                    },
                ],
                "edges": [{"id": "e1-2", "source": "1", "target": "2"}],
            }
        )

        strict = WorkflowEditor().import_json(text)
        lenient = WorkflowEditor(strict_data_sources=False).import_json(text)

        assert not strict.success
        assert "target_is_data_source" in strict.errors[0]
        assert lenient.success


class TestHistory:
    def test_undo_redo_through_editor(self, editor):
        editor.add_node(NodeKind.TRIGGER, "webhook")
        editor.add_node(NodeKind.ACTION, "http")

        assert editor.undo()
        assert editor.graph.node_ids() == ["1"]
        assert editor.redo()
        assert editor.graph.node_ids() == ["1", "2"]

    def test_undo_with_empty_history(self, editor):
        assert not editor.undo()
        assert not editor.redo()

    def test_clear_is_undoable(self, editor):
        editor.add_node(NodeKind.TRIGGER, "webhook")
        editor.clear()
        assert editor.graph.nodes == []

        editor.undo()
        assert len(editor.graph.nodes) == 1


class TestTemplates:
    def test_builtin_templates_listed(self):
        ids = [t.id for t in list_templates()]
        assert ids == ["ai-chat-assistant", "data-processing", "transaction-monitoring"]
        assert [t.id for t in list_templates(category="data")] == ["data-processing"]

    @pytest.mark.parametrize("template_id", ["ai-chat-assistant", "transaction-monitoring"])
    def test_templates_are_valid_and_have_a_trigger(self, template_id):
        graph = get_template(template_id).build_graph()
        assert graph.validate_structure() == []
        assert graph.get_trigger_nodes()

    def test_load_template(self, editor):
        graph = editor.load_template("transaction-monitoring")

        assert graph.get_node("2").kind == NodeKind.BANKING
        assert editor.history.can_undo

    def test_load_unknown_template(self, editor):
        with pytest.raises(KeyError):
            editor.load_template("nope")
