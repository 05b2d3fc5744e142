"""
Command-line interface for agentflow.

Usage:
    agentflow run agents/news-digest.json --input "what happened today?"
    agentflow run agents/news-digest.json --tools tools.py --mock
    agentflow validate agents/news-digest.json
    agentflow list agents/
"""

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from agentflow.config import RuntimeConfig
from agentflow.graph.edge import AgentGraph
from agentflow.graph.executor import WorkflowRunner
from agentflow.graph.node import NodeResult
from agentflow.llm.litellm import LiteLLMProvider
from agentflow.llm.mock import MockInferenceProvider
from agentflow.observability import configure_logging
from agentflow.runner.tool_registry import ToolRegistry
from agentflow.runtime.run_registry import RunRegistry
from agentflow.runtime.runtime_log_store import RuntimeLogStore
from agentflow.storage.agent_store import FileAgentStore, load_agent


def _load_or_report(path: Path) -> AgentGraph | None:
    try:
        return load_agent(path)
    except OSError as e:
        print(f"Cannot read {path}: {e}", file=sys.stderr)
    except ValidationError as e:
        print(f"{path} is not a valid agent definition:\n{e}", file=sys.stderr)
    return None


def _parse_input(raw: str | None) -> Any:
    """JSON objects become variable mappings; anything else is the input text."""
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    return value if isinstance(value, dict) else raw


def _print_payload(node_id: str, result: NodeResult) -> None:
    print(json.dumps(result.to_payload(), default=str, ensure_ascii=False), file=sys.stderr)


def cmd_run(args: argparse.Namespace) -> int:
    agent = _load_or_report(Path(args.agent))
    if agent is None:
        return 1

    config = RuntimeConfig()
    if args.model:
        config.model = args.model
    if args.log_dir:
        config.log_dir = Path(args.log_dir).expanduser()

    if args.mock:
        inference = MockInferenceProvider(responses=args.mock_response or None)
    else:
        inference = LiteLLMProvider(
            model=config.model,
            api_key=config.api_key,
            api_base=config.api_base,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )

    tools = ToolRegistry()
    if args.tools:
        tools_path = Path(args.tools)
        if not tools_path.exists():
            print(f"Tools file not found: {tools_path}", file=sys.stderr)
            return 1
        tools.discover_from_module(tools_path)

    runner = WorkflowRunner(
        RunRegistry(),
        inference=inference,
        tools=tools,
        config=config,
        log_store=RuntimeLogStore(config.log_dir) if config.log_dir else None,
    )

    async def _main() -> str | None:
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, runner.cancel_workflow, agent.id)
        except (NotImplementedError, RuntimeError):
            # No signal handlers on Windows event loops
            pass
        return await runner.execute_workflow(
            agent,
            _parse_input(args.input),
            on_node_executed=None if args.quiet else _print_payload,
        )

    output = asyncio.run(_main())
    if output is None:
        print("Workflow did not complete", file=sys.stderr)
        return 1
    print(output)
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    agent = _load_or_report(Path(args.agent))
    if agent is None:
        return 1
    errors = agent.validate()
    if errors:
        print(f"✗ {agent.id}: {len(errors)} problem(s)")
        for err in errors:
            print(f"   • {err}")
        return 1
    print(f"✓ {agent.id}: {len(agent.nodes)} nodes, {len(agent.edges)} edges")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    directory = Path(args.directory)
    if not directory.is_dir():
        print(f"Not a directory: {directory}", file=sys.stderr)
        return 1
    agents = FileAgentStore(directory).list_agents()
    if not agents:
        print(f"No agents found in {directory}")
        return 0
    for agent in agents:
        status = "ok" if not agent.validate() else "invalid"
        print(f"{agent.id:<30} {agent.name or '-':<30} {len(agent.nodes):>3} nodes  [{status}]")
    return 0


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    run_parser = subparsers.add_parser("run", help="Run an agent definition")
    run_parser.add_argument("agent", help="Path to the agent JSON file")
    run_parser.add_argument("--input", "-i", help="Input text, or a JSON object of variables")
    run_parser.add_argument("--tools", help="Python file with @tool functions")
    run_parser.add_argument(
        "--mock", action="store_true", help="Use a mock inference provider (no API calls)"
    )
    run_parser.add_argument(
        "--mock-response",
        action="append",
        help="Scripted reply for --mock (repeatable; default echoes the prompt)",
    )
    run_parser.add_argument("--log-dir", help="Directory for runtime logs")
    run_parser.add_argument("--model", help="Model override, e.g. openai/gpt-4o-mini")
    run_parser.add_argument(
        "--quiet", "-q", action="store_true", help="Do not print per-node payloads"
    )
    run_parser.set_defaults(func=cmd_run)

    validate_parser = subparsers.add_parser("validate", help="Check an agent definition")
    validate_parser.add_argument("agent", help="Path to the agent JSON file")
    validate_parser.set_defaults(func=cmd_validate)

    list_parser = subparsers.add_parser("list", help="List agents in a directory")
    list_parser.add_argument("directory", help="Directory of agent JSON files")
    list_parser.set_defaults(func=cmd_list)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="agentflow",
        description="agentflow - Run agent workflow graphs",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    parser.add_argument(
        "--log-format", default="auto", choices=["auto", "json", "human"], help="Log output"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, format=args.log_format)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
