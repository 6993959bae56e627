"""
Command-line interface for canvasflow.

Usage:
    canvasflow run flows/chat.json --input message=hello
    canvasflow run flows/chat.json --inputs '{"message": "hello"}' --mock-llm
    canvasflow run flows/chat.json --persist --reset-state
    canvasflow validate flows/chat.json
    canvasflow order flows/chat.json
"""

import argparse
import asyncio
import json
import sys
from typing import Any

from canvasflow.config import FlowConfig, has_configured_model
from canvasflow.errors import GraphInvalidError
from canvasflow.executors import create_default_registry
from canvasflow.graph import FlowExecutor, GraphSpec, load_flow, order
from canvasflow.observability import configure_logging


def _parse_inputs(args: argparse.Namespace) -> dict[str, Any]:
    inputs: dict[str, Any] = {}
    if args.inputs:
        parsed = json.loads(args.inputs)
        if not isinstance(parsed, dict):
            raise ValueError("--inputs must be a JSON object")
        inputs.update(parsed)
    for item in args.input or []:
        key, sep, value = item.partition("=")
        if not sep:
            raise ValueError(f"Expected KEY=VALUE, got '{item}'")
        inputs[key] = value
    return inputs


def _load(path: str) -> GraphSpec | None:
    try:
        return load_flow(path)
    except (OSError, ValueError) as e:
        print(f"Could not load {path}: {e}", file=sys.stderr)
        return None


def _build_executor(args: argparse.Namespace) -> FlowExecutor:
    config = FlowConfig()
    llm = None
    if args.mock_llm:
        from canvasflow.llm.mock import MockLLMProvider

        llm = MockLLMProvider()
    elif args.model or has_configured_model():
        from canvasflow.llm.litellm import LiteLLMProvider

        if args.model:
            config.llm.model = args.model
        llm = LiteLLMProvider.from_config(config.llm)
    registry = create_default_registry(llm=llm, llm_config=config.llm)
    executor = FlowExecutor(registry=registry, config=config)
    if args.reset_state:
        executor.flow_state.forget_runtime_state()
    return executor


def cmd_run(args: argparse.Namespace) -> int:
    graph = _load(args.flow)
    if graph is None:
        return 1
    try:
        inputs = _parse_inputs(args)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return 1

    executor = _build_executor(args)

    def on_status(node_id: str, status: str, partial: Any) -> None:
        if not (args.quiet or args.json):
            print(f"  {node_id}: {status}")

    result = asyncio.run(
        executor.run_graph(
            graph,
            initial_inputs=inputs,
            on_node_status=on_status,
            persist_state=True if args.persist else None,
        )
    )

    if args.json:
        print(json.dumps(result.summary(), indent=2, default=str))
    else:
        print(f"Status: {result.status}")
        if result.error:
            print(f"Error: {result.error}")
        output = result.output
        if output is not None:
            print(f"Output: {output}")
    return 0 if result.success else 1


def cmd_validate(args: argparse.Namespace) -> int:
    graph = _load(args.flow)
    if graph is None:
        return 1
    errors = graph.validate()
    if not errors:
        try:
            order(graph.nodes, graph.edges)
        except GraphInvalidError as e:
            errors = [str(e)]

    if errors:
        print(f"{args.flow}: invalid")
        for error in errors:
            print(f"  - {error}")
        return 1
    print(f"{args.flow}: valid ({len(graph.nodes)} nodes, {len(graph.edges)} edges)")
    return 0


def cmd_order(args: argparse.Namespace) -> int:
    graph = _load(args.flow)
    if graph is None:
        return 1
    try:
        ordered = order(graph.nodes, graph.edges)
    except GraphInvalidError as e:
        print(str(e), file=sys.stderr)
        return 1
    for position, node in enumerate(ordered, start=1):
        print(f"{position:>3}. {node.id} ({node.kind})")
    return 0


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(
        prog="canvasflow",
        description="canvasflow - run node-canvas workflows",
    )
    parser.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")
    parser.add_argument(
        "--log-format",
        default="auto",
        choices=["auto", "human", "json"],
        help="Log output format",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Execute a flow")
    run_parser.add_argument("flow", help="Path to a flow JSON file")
    run_parser.add_argument(
        "--input", action="append", metavar="KEY=VALUE", help="Initial input (repeatable)"
    )
    run_parser.add_argument("--inputs", help="Initial inputs as a JSON object")
    run_parser.add_argument(
        "--mock-llm", action="store_true", help="Answer agent nodes with an echo model"
    )
    run_parser.add_argument(
        "--model",
        help="Answer agent nodes with this LiteLLM model (default: llm.model from the "
        "configuration file; without one, agent nodes echo their prompt)",
    )
    run_parser.add_argument(
        "--persist", action="store_true", help="Carry flow state into later runs"
    )
    run_parser.add_argument(
        "--reset-state", action="store_true", help="Forget remembered flow state before running"
    )
    run_parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    run_parser.add_argument("--quiet", "-q", action="store_true", help="Hide node progress")
    run_parser.set_defaults(func=cmd_run)

    validate_parser = subparsers.add_parser("validate", help="Check a flow for graph errors")
    validate_parser.add_argument("flow", help="Path to a flow JSON file")
    validate_parser.set_defaults(func=cmd_validate)

    order_parser = subparsers.add_parser("order", help="Print the execution order of a flow")
    order_parser.add_argument("flow", help="Path to a flow JSON file")
    order_parser.set_defaults(func=cmd_order)

    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, format=args.log_format)

    if hasattr(args, "func"):
        sys.exit(args.func(args))


if __name__ == "__main__":
    main()
