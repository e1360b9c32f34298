"""
Command-line interface for flowsim.

Usage:
    flowsim run workflow.json --inputs '{"webhookPayload": {"event": "order.created"}}'
    flowsim run workflow.json --scenario-file scenarios.json --scenario "Big order"
    flowsim run workflow.json --seed 7 --error-policy continue --report report.json
    flowsim validate workflow.json
    flowsim templates
    flowsim templates --export transaction-monitoring --out monitoring.json
"""

import argparse
import json
import sys
from pathlib import Path

from flowsim.config import SimulatorConfig
from flowsim.errors import GraphImportError
from flowsim.graph.branch import POLICIES
from flowsim.graph.io import load_graph, save_graph
from flowsim.graph.templates import get_template, list_templates
from flowsim.observability import configure_logging
from flowsim.runtime.engine import ExecutionEngine
from flowsim.runtime.report import ExecutionReport
from flowsim.runtime.scheduler import InlineScheduler
from flowsim.schemas.execution import ErrorPolicy, RunStatus, Speed
from flowsim.simulation.provider import RandomProvider
from flowsim.simulation.simulator import NodeOutputSimulator
from flowsim.storage.scenario_store import ScenarioStore


def _load_inputs(args: argparse.Namespace) -> dict:
    if args.inputs and args.scenario:
        raise ValueError("Use either --inputs or --scenario, not both")

    if args.inputs:
        inputs = json.loads(args.inputs)
        if not isinstance(inputs, dict):
            raise ValueError("--inputs must be a JSON object")
        return inputs

    if args.scenario:
        if not args.scenario_file:
            raise ValueError("--scenario requires --scenario-file")
        library = ScenarioStore(args.scenario_file).load()
        return library.load(args.scenario)

    return {}


def cmd_run(args: argparse.Namespace) -> int:
    """Simulate a workflow file and print the execution log."""
    config = SimulatorConfig()

    try:
        graph = load_graph(args.file)
        inputs = _load_inputs(args)
    except (GraphImportError, ValueError, KeyError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    seed = args.seed if args.seed is not None else config.seed
    simulator = NodeOutputSimulator(
        provider=RandomProvider(seed=seed),
        code_failure_rate=config.code_failure_rate,
        integration_failure_rate=config.integration_failure_rate,
    )
    engine = ExecutionEngine(
        simulator=simulator,
        scheduler=InlineScheduler(),
        policy=args.policy,
        speed=args.speed or config.speed,
        error_policy=args.error_policy or config.error_policy,
    )

    snapshot = engine.run(graph, inputs)

    if args.json:
        print(snapshot.model_dump_json(indent=2))
    else:
        for entry in snapshot.logs:
            print(entry.format())
        print()
        print(f"Status:   {snapshot.status}")
        print(f"Path:     {' -> '.join(snapshot.execution_path) or '(none)'}")
        print(f"Progress: {snapshot.progress}%")

    if args.report:
        ExecutionReport.from_engine(engine).save(args.report)
        print(f"Report written to {args.report}", file=sys.stderr)

    return 0 if snapshot.status == RunStatus.COMPLETED else 1


def cmd_validate(args: argparse.Namespace) -> int:
    """Check that a workflow file loads and can start a run."""
    try:
        graph = load_graph(args.file)
    except GraphImportError as e:
        print(f"Invalid: {e}", file=sys.stderr)
        for error in e.errors[1:]:
            print(f"  - {error}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    triggers = graph.get_trigger_nodes()
    if not triggers:
        print("Invalid: No trigger nodes found in the workflow", file=sys.stderr)
        return 1

    print(f"Valid: {len(graph.nodes)} nodes, {len(graph.edges)} edges")
    print(f"Entry trigger: {triggers[0].display_name} ({triggers[0].id})")
    return 0


def cmd_templates(args: argparse.Namespace) -> int:
    """List the built-in templates, or export one to a workflow file."""
    if args.export:
        template = get_template(args.export)
        if template is None:
            print(f"Unknown template '{args.export}'", file=sys.stderr)
            return 1
        out = Path(args.out or f"{template.id}.json")
        save_graph(template.build_graph(), out)
        print(f"Wrote {template.name} to {out}")
        return 0

    for template in list_templates(category=args.category):
        print(f"{template.id:<28} {template.category:<12} {template.description}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowsim",
        description="flowsim - Author and simulate workflow graphs",
    )
    parser.add_argument("--log-level", default=None, help="Python log level (default from config)")
    parser.add_argument(
        "--log-format",
        choices=["auto", "human", "json"],
        default=None,
        help="Log output format (default from config)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run
    run_parser = subparsers.add_parser("run", help="Simulate a workflow file")
    run_parser.add_argument("file", type=Path, help="Workflow JSON file")
    run_parser.add_argument("--inputs", help="Test inputs as a JSON object")
    run_parser.add_argument("--scenario-file", type=Path, help="Scenario library JSON file")
    run_parser.add_argument("--scenario", help="Scenario name to load inputs from")
    run_parser.add_argument("--seed", type=int, help="Seed for reproducible outputs")
    run_parser.add_argument("--speed", choices=[s.value for s in Speed], help="Step pacing")
    run_parser.add_argument(
        "--error-policy",
        choices=[p.value for p in ErrorPolicy],
        help="What to do after a node fails",
    )
    run_parser.add_argument(
        "--policy",
        choices=sorted(POLICIES),
        default="first_edge",
        help="Edge traversal policy",
    )
    run_parser.add_argument("--report", type=Path, help="Write a run report to this file")
    run_parser.add_argument("--json", action="store_true", help="Print the final snapshot as JSON")
    run_parser.set_defaults(func=cmd_run)

    # validate
    validate_parser = subparsers.add_parser("validate", help="Validate a workflow file")
    validate_parser.add_argument("file", type=Path, help="Workflow JSON file")
    validate_parser.set_defaults(func=cmd_validate)

    # templates
    templates_parser = subparsers.add_parser("templates", help="List or export templates")
    templates_parser.add_argument("--category", help="Only list this category")
    templates_parser.add_argument("--export", metavar="ID", help="Template to export")
    templates_parser.add_argument("--out", type=Path, help="Output file for --export")
    templates_parser.set_defaults(func=cmd_templates)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = SimulatorConfig()
    configure_logging(
        level=args.log_level or config.log_level,
        format=args.log_format or config.log_format,
    )

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
