"""
Main entry point for the Autotest Pipeline.
"""

import argparse
import json
import sys
from datetime import datetime

from autotest_pipeline.config import get_config
from autotest_pipeline.logging_config import configure_logging, get_logger
from autotest_pipeline.workflows.full_pipeline import FULL_PIPELINE, WORKFLOWS, PipelineOrchestrator, normalize_output

logger = get_logger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Autotest Pipeline - generate unit tests for a repository and open a pull request"
    )
    parser.add_argument(
        "--config",
        help="Path to config.yaml (default: ./config.yaml)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Start the HTTP API")
    serve.add_argument("--host", help="Bind address (default: server.host)")
    serve.add_argument("--port", type=int, help="Port (default: server.port)")

    run = subparsers.add_parser("run", help="Run the full pipeline in the foreground")
    run.add_argument("--project-id", required=True, help="Backend project id")
    run.add_argument("--repository-url", help="Repository URL or owner/name to clone")
    run.add_argument("--context-file", help="JSON file with the project context data")
    run.add_argument("--target-test-file", help="Only generate tests for this source file")

    workflow = subparsers.add_parser("workflow", help="Run a single workflow against an existing container")
    workflow.add_argument("name", choices=sorted(name for name in WORKFLOWS if name != FULL_PIPELINE))
    workflow.add_argument("--container-id", help="Container id (required unless the workflow starts one)")
    workflow.add_argument("--repo-path", help="Repository path inside the container")
    workflow.add_argument("--project-id", default="", help="Backend project id")
    workflow.add_argument("--repository-url", help="Repository URL or owner/name to clone")
    workflow.add_argument("--context-file", help="JSON file with the project context data")
    workflow.add_argument("--target-test-file", help="Only generate tests for this source file")

    return parser.parse_args(argv)


def load_context(path):
    if not path:
        return None
    with open(path, "r") as f:
        return json.load(f)


def print_results(state, command: str):
    """Print the outcome of a run."""
    output = state.get("output") or normalize_output(state)

    if state.get("next_action") == "fail":
        print(f"\n❌ {command} failed!")
        errors = state.get("errors") or []
        if errors:
            print("Errors:")
            for error in errors:
                print(f"  - {error}")
        return

    print(f"\n✓ {command} completed successfully!")
    print(f"  Result: {output.result}")
    if output.container_id:
        print(f"  Container: {output.container_id[:12]}")
    if output.context_path:
        print(f"  Context: {output.context_path}")
    if output.pr_url:
        print(f"  PR: {output.pr_url}")
    if output.coverage is not None:
        print(f"  Coverage: {output.coverage:.2%}")
    print(f"  Tool calls: {output.tool_call_count}")

    warnings = state.get("errors") or []
    if warnings:
        print(f"  Warnings: {len(warnings)}")
        for warning in warnings:
            print(f"    ⚠️ {warning}")


def serve(config, args) -> int:
    import uvicorn

    from autotest_pipeline.api import create_app

    host = args.host or config.server_host
    port = args.port or config.server_port
    logger.info("api_server_starting", host=host, port=port)
    uvicorn.run(create_app(PipelineOrchestrator(config)), host=host, port=port)
    return 0


def run_workflow(config, args) -> int:
    name = FULL_PIPELINE if args.command == "run" else args.name
    extra_state = {}
    if args.command == "workflow":
        if args.container_id:
            extra_state["container_id"] = args.container_id
        if args.repo_path:
            extra_state["repo_path"] = args.repo_path

    orchestrator = PipelineOrchestrator(config)
    record = orchestrator.create_run(name, project_id=args.project_id or None)

    start_time = datetime.utcnow()
    final_state = orchestrator.run(
        record.run_id,
        project_id=args.project_id,
        repository_url=args.repository_url,
        context_data=load_context(args.context_file),
        target_test_file=args.target_test_file,
        extra_state=extra_state,
    )
    print_results(final_state, name)

    duration = (datetime.utcnow() - start_time).total_seconds()
    failed = final_state.get("next_action") == "fail"
    logger.info(
        "pipeline_complete",
        run_id=record.run_id,
        workflow=name,
        duration=duration,
        total_agents_executed=len(final_state.get("agent_history", [])),
        success=not failed,
    )
    return 1 if failed else 0


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    configure_logging(debug=args.debug)
    logger.info("autotest_pipeline_starting", command=args.command)

    try:
        config = get_config(args.config)
        logger.info("config_loaded", path=config.path)
    except Exception as e:
        logger.error("config_load_failed", error=str(e))
        print(f"Error loading config: {e}")
        sys.exit(1)

    try:
        if args.command == "serve":
            sys.exit(serve(config, args))
        sys.exit(run_workflow(config, args))

    except KeyboardInterrupt:
        logger.info("autotest_pipeline_interrupted")
        print("\nOperation interrupted by user")
        sys.exit(130)

    except (OSError, ValueError) as e:
        logger.error("autotest_pipeline_input_error", error=str(e))
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
