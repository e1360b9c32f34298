"""Built-in workflow templates.

A template is a named, categorized graph the editor can load in place of
the current one (``WorkflowEditor.load_template``).
"""

from typing import Any

from pydantic import BaseModel, Field

from flowsim.graph.model import WorkflowGraph


class WorkflowTemplate(BaseModel):
    """A reusable starting graph."""

    id: str
    name: str
    description: str = ""
    category: str = "automation"
    tags: list[str] = Field(default_factory=list)
    nodes: list[dict[str, Any]] = Field(default_factory=list)
    edges: list[dict[str, Any]] = Field(default_factory=list)

    def build_graph(self) -> WorkflowGraph:
        """Instantiate a fresh graph from the template."""
        return WorkflowGraph.from_dict({"nodes": self.nodes, "edges": self.edges})


def _node(
    node_id: str,
    kind: str,
    subtype: str,
    label: str,
    x: float,
    y: float,
    **config: Any,
) -> dict[str, Any]:
    return {
        "id": node_id,
        "type": kind,
        "position": {"x": x, "y": y},
        "data": {"label": label, "type": subtype, "config": config},
    }


def _edge(source: str, target: str, handle: str | None = None, label: str = "") -> dict[str, Any]:
    edge: dict[str, Any] = {"id": f"e{source}-{target}", "source": source, "target": target}
    if handle is not None:
        edge["sourceHandle"] = handle
    if label:
        edge["label"] = label
    return edge


BUILTIN_TEMPLATES: list[WorkflowTemplate] = [
    WorkflowTemplate(
        id="ai-chat-assistant",
        name="AI Chat Assistant",
        description=(
            "A workflow that processes incoming chat messages with an AI agent "
            "and responds accordingly."
        ),
        category="ai",
        tags=["AI", "Chat", "Customer Support"],
        nodes=[
            _node("1", "trigger", "chat", "When chat message received", 100, 200),
            _node(
                "2",
                "ai",
                "ai-agent",
                "AI Agent",
                400,
                200,
                model="gpt-4",
                systemPrompt="You are a helpful assistant.",
            ),
            _node(
                "3",
                "logic",
                "if",
                "If",
                700,
                200,
                condition='{{$node["AI Agent"].json["success"] === true}}',
            ),
            _node(
                "4",
                "message",
                "message",
                "Success",
                1000,
                100,
                message='{{$node["AI Agent"].json["response"]}}',
            ),
            _node(
                "5",
                "message",
                "message",
                "Failure",
                1000,
                300,
                message="Sorry, I couldn't process your request.",
            ),
        ],
        edges=[
            _edge("1", "2"),
            _edge("2", "3"),
            _edge("3", "4", handle="true", label="true"),
            _edge("3", "5", handle="false", label="false"),
        ],
    ),
    WorkflowTemplate(
        id="data-processing",
        name="Data Processing Pipeline",
        description="Extract data from Google Sheets, process it, and store in a database.",
        category="data",
        tags=["Data", "Google Sheets", "Database"],
        nodes=[
            _node("1", "trigger", "schedule", "Schedule", 100, 200, frequency="daily", time="08:00"),
            _node(
                "2",
                "action",
                "googlesheets",
                "Google Sheets",
                350,
                200,
                operation="read",
                range="Sheet1!A1:D100",
            ),
            _node(
                "3",
                "code",
                "javascript",
                "Process Data",
                600,
                200,
                code=(
                    "return { processedData: $input.data.map(row => "
                    "({ name: row[0], value: parseInt(row[1]) })) }"
                ),
            ),
            _node(
                "4",
                "action",
                "database",
                "Database",
                850,
                200,
                operation="insert",
                table="processed_data",
            ),
        ],
        edges=[_edge("1", "2"), _edge("2", "3"), _edge("3", "4")],
    ),
    WorkflowTemplate(
        id="transaction-monitoring",
        name="Transaction Monitoring",
        description="Monitor transactions for suspicious activity and alert if needed.",
        category="monitoring",
        tags=["Transactions", "Monitoring", "Alerts"],
        nodes=[
            _node(
                "1",
                "trigger",
                "webhook",
                "New Transaction",
                100,
                200,
                path="/transaction",
                method="POST",
            ),
            _node("2", "banking", "fraud-detection", "Risk Analysis", 350, 200, isDataSource=False),
            _node(
                "3",
                "logic",
                "if",
                "High Risk?",
                600,
                200,
                condition='{{$node["Risk Analysis"].json["riskScore"] > 70}}',
            ),
            _node(
                "4",
                "action",
                "database",
                "Flag Transaction",
                850,
                100,
                operation="update",
                table="transactions",
            ),
            _node(
                "5",
                "action",
                "email-send",
                "Send Alert",
                1100,
                100,
                to="security@example.com",
                subject="High Risk Transaction Detected",
            ),
            _node(
                "6",
                "action",
                "database",
                "Log Transaction",
                850,
                300,
                operation="insert",
                table="transaction_logs",
            ),
        ],
        edges=[
            _edge("1", "2"),
            _edge("2", "3"),
            _edge("3", "4", handle="true", label="high risk"),
            _edge("4", "5"),
            _edge("3", "6", handle="false", label="normal"),
        ],
    ),
]


def list_templates(category: str | None = None) -> list[WorkflowTemplate]:
    """List built-in templates, optionally filtered by category."""
    if category is None:
        return list(BUILTIN_TEMPLATES)
    return [t for t in BUILTIN_TEMPLATES if t.category == category]


def get_template(template_id: str) -> WorkflowTemplate | None:
    for template in BUILTIN_TEMPLATES:
        if template.id == template_id:
            return template
    return None
