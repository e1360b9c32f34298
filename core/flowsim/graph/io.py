"""Import/export of workflow graphs as JSON files.

File format::

    {"nodes": [...], "edges": [...]}

Both keys must be present and hold arrays before anything is accepted.
Parsing never touches a live graph; callers swap the parsed graph in only
after it validated.
"""

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from flowsim.errors import GraphImportError
from flowsim.graph.model import WorkflowGraph
from flowsim.utils.io import atomic_write

logger = logging.getLogger(__name__)


def validate_workflow_data(data: Any) -> list[str]:
    """Check the top-level shape of an imported workflow document."""
    if not isinstance(data, dict):
        return [f"Workflow file must contain a JSON object, got {type(data).__name__}"]

    errors = []
    for key in ("nodes", "edges"):
        if key not in data:
            errors.append(f"Missing '{key}' array")
        elif not isinstance(data[key], list):
            errors.append(f"'{key}' must be an array, got {type(data[key]).__name__}")
        else:
            for i, item in enumerate(data[key]):
                if not isinstance(item, dict):
                    errors.append(f"{key}[{i}] must be an object, got {type(item).__name__}")
    return errors


def graph_from_data(data: Any) -> WorkflowGraph:
    """Build a graph from decoded JSON, raising GraphImportError on any problem."""
    errors = validate_workflow_data(data)
    if errors:
        raise GraphImportError(
            "Invalid workflow format: Missing nodes or edges arrays", errors=errors
        )

    try:
        graph = WorkflowGraph.from_dict(data)
    except ValidationError as e:
        details = []
        for error in e.errors():
            field_path = ".".join(str(loc) for loc in error["loc"])
            details.append(f"{field_path}: {error['msg']}")
        raise GraphImportError("Invalid workflow format: malformed node or edge", details) from e

    structural = graph.validate_structure()
    if structural:
        raise GraphImportError("Invalid workflow structure", errors=structural)

    return graph


def parse_graph(text: str) -> WorkflowGraph:
    """Parse a JSON document into a graph."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise GraphImportError(f"Invalid JSON: {e}") from e
    return graph_from_data(data)


def load_graph(path: str | Path) -> WorkflowGraph:
    """Load a graph from a JSON file."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise GraphImportError(f"Error reading the file: {e}") from e
    graph = parse_graph(text)
    logger.info(
        f"Imported workflow with {len(graph.nodes)} nodes and {len(graph.edges)} edges "
        f"from {path.name}"
    )
    return graph


def dump_graph(graph: WorkflowGraph, indent: int | None = 2) -> str:
    """Serialize a graph to the JSON file format."""
    return json.dumps(graph.to_dict(), indent=indent)


def save_graph(graph: WorkflowGraph, path: str | Path) -> None:
    """Write a graph to a JSON file atomically."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with atomic_write(path) as f:
        f.write(dump_graph(graph))
    logger.debug(f"Exported workflow to {path}")
