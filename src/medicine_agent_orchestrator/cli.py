"""CLI entrypoint: run workflows locally or serve them over HTTP."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any

from pydantic import ValidationError as SettingsError

from medicine_agent_orchestrator import __version__
from medicine_agent_orchestrator.core.config import OrchestratorConfig
from medicine_agent_orchestrator.llm.factory import LLMFactory
from medicine_agent_orchestrator.workflow.engine import RunEngine
from medicine_agent_orchestrator.workflow.errors import ValidationError, WorkflowError
from medicine_agent_orchestrator.workflow.run import RunResult, RunStatus
from medicine_agent_orchestrator.workflows.registry import build_workflows

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CRASH = 1
EXIT_USAGE = 2
EXIT_SUSPENDED = 3
EXIT_FAILED = 4


class StdoutSink:
    """Prints chunks as they arrive."""

    def emit(self, chunk: str) -> None:
        sys.stdout.write(chunk + "\n")
        sys.stdout.flush()

    def close(self) -> None:
        sys.stdout.flush()


def _parse_json_object(value: str) -> dict[str, Any]:
    try:
        data = json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise argparse.ArgumentTypeError("expected a JSON object")
    return data


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="medicine-orchestrator",
        description="Run the medicine workflows locally or serve them over HTTP",
    )
    parser.add_argument(
        "--version", action="version", version=f"medicine-agent-orchestrator {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run a workflow once and print its result")
    run.add_argument("workflow", help="Workflow path, e.g. 'medicine' or 'dosage'")
    run.add_argument(
        "--input",
        dest="input_data",
        type=_parse_json_object,
        required=True,
        help='Workflow input as a JSON object, e.g. \'{"input": "Compare ibuprofen and acetaminophen"}\'',
    )
    run.add_argument(
        "--resume",
        dest="resume_data",
        type=_parse_json_object,
        action="append",
        default=[],
        help=(
            "Resume input used if the run suspends, e.g. '{\"answer\": \"yes\"}'. "
            "Repeat for workflows that suspend more than once."
        ),
    )
    run.add_argument("--stream", action="store_true", help="Print chunks as they are produced")

    subparsers.add_parser("list", help="List available workflows")

    serve = subparsers.add_parser("serve", help="Serve the REST API")
    serve.add_argument("--host", default=None, help="Bind address (default from settings)")
    serve.add_argument("--port", type=int, default=None, help="Port (default from settings)")

    return parser


def _sink(args: argparse.Namespace) -> StdoutSink | None:
    # The engine closes the sink it is given, so every start or resume gets its own.
    return StdoutSink() if args.stream else None


def _print_result(result: RunResult) -> int:
    print(json.dumps(result.to_json(), indent=2, default=str))
    if result.status == RunStatus.SUCCESS:
        return EXIT_OK
    if result.status == RunStatus.SUSPENDED:
        return EXIT_SUSPENDED
    return EXIT_FAILED


def _run(args: argparse.Namespace, config: OrchestratorConfig) -> int:
    workflows = build_workflows(config, LLMFactory.create_optional(config.llm))
    workflow = workflows.get(args.workflow)
    if workflow is None:
        print(
            f"Unknown or unavailable workflow: {args.workflow} "
            f"(available: {', '.join(sorted(workflows))})",
            file=sys.stderr,
        )
        return EXIT_USAGE

    engine = RunEngine.from_config(config.engine)
    result = engine.start(workflow, args.input_data, sink=_sink(args))

    pending = list(args.resume_data)
    while result.status == RunStatus.SUSPENDED and pending:
        logger.info(
            "Resuming suspended run",
            extra={"run_id": result.run_id, "payload": result.payload},
        )
        result = engine.resume(result.run_id, pending.pop(0), sink=_sink(args))

    return _print_result(result)


def _list(config: OrchestratorConfig) -> int:
    workflows = build_workflows(config, LLMFactory.create_optional(config.llm))
    for path, workflow in sorted(workflows.items()):
        print(f"{path}\t{workflow.id}\t{workflow.description}")
    return EXIT_OK


def _serve(args: argparse.Namespace, config: OrchestratorConfig) -> int:
    import uvicorn

    from medicine_agent_orchestrator.server.app import create_app
    from medicine_agent_orchestrator.server.config import ServerSettings

    settings = ServerSettings()
    app = create_app(config, settings=settings)
    uvicorn.run(
        app,
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=config.log_level.lower(),
    )
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = OrchestratorConfig()
    except SettingsError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return EXIT_USAGE

    config.setup_logging()

    try:
        if args.command == "run":
            return _run(args, config)
        if args.command == "list":
            return _list(config)
        if args.command == "serve":
            return _serve(args, config)

        logger.error("Unknown command", extra={"command": args.command})
        return EXIT_USAGE

    except ValidationError as e:
        print(str(e), file=sys.stderr)
        return EXIT_USAGE

    except WorkflowError as e:
        print(str(e), file=sys.stderr)
        return EXIT_FAILED

    except Exception:
        logger.exception("Command failed")
        return EXIT_CRASH


if __name__ == "__main__":
    raise SystemExit(main())
