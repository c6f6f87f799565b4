#!/usr/bin/env python3
"""Tidings: personalized newsletters from the pages you follow.

This CLI serves the newsletter workflow over HTTP, generates a single
newsletter in-process, and inspects runs stored in the database.

Commands:
    serve       Run the HTTP gateway (resumes unfinished runs)
    generate    Generate one newsletter and print or save it
    status      Show a run's status, or configuration and database stats
    result      Print the stored newsletter of a completed run
    prune       Delete expired results and old finished runs

Examples:
    python main.py serve --port 8787
    python main.py generate -i "rust" "databases" -s https://example.com/blog
    python main.py generate -i ai -s https://example.com --json
    python main.py status 3f2a...
    python main.py prune

Environment:
    GEMINI_API_KEY: Required for google-gla models
    See config.py for all configuration options
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from config import Config
from database import Database
from observability.logging import setup_logging
from observability.tracing import setup_tracing


def cmd_serve(args: argparse.Namespace, config: Config) -> int:
    """Run the HTTP gateway until interrupted.

    Args:
        args: Parsed command line arguments
        config: Application configuration

    Returns:
        Exit code (0 for success)
    """
    from server import run_server

    run_server(config, host=args.host, port=args.port)
    return 0


def cmd_generate(args: argparse.Namespace, config: Config) -> int:
    """Generate one newsletter through the same service and polling loop as the gateway.

    Args:
        args: Parsed command line arguments
        config: Application configuration

    Returns:
        Exit code (0 for success)
    """
    from gateway import PollState, SubmissionError, validate_submission, wait_for_newsletter
    from reports import save_newsletter_report
    from service import WorkflowService

    logger = logging.getLogger(__name__)

    try:
        params = validate_submission({"interests": args.interests, "sources": args.sources})
    except SubmissionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    async def run_generate():
        service = WorkflowService.from_config(config)
        try:
            run = await service.create_instance(params)
            return await wait_for_newsletter(
                service,
                run.id,
                max_attempts=config.poll_max_attempts,
                interval=config.poll_interval_seconds,
            )
        finally:
            # Unfinished runs stay 'running' and resume on the next `serve`
            await service.close()

    try:
        outcome = asyncio.run(run_generate())
    except KeyboardInterrupt:
        logger.info("Stopped by user (Ctrl+C)")
        return 130

    if outcome.state is PollState.FAILED:
        print(f"Newsletter generation failed (run {outcome.run_id}).", file=sys.stderr)
        return 1
    if outcome.state is PollState.TIMEOUT:
        print(
            f"Newsletter generation is taking longer than expected (run {outcome.run_id}).",
            file=sys.stderr,
        )
        return 1

    newsletter = outcome.newsletter
    if args.json:
        print(json.dumps(newsletter.to_dict(), indent=2, ensure_ascii=False))
        return 0

    if args.output:
        from reports import render_newsletter_markdown

        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(render_newsletter_markdown(newsletter, params.interests), encoding="utf-8")
        report_path = output_path
    else:
        report_path = save_newsletter_report(newsletter, config.reports_dir, params.interests)

    if report_path is None:
        print("Newsletter generated but failed to save.", file=sys.stderr)
        return 1
    print(f"Newsletter saved: {report_path} (articles={len(newsletter.articles)})")
    return 0


def cmd_status(args: argparse.Namespace, config: Config) -> int:
    """Display a run's status, or configuration and database statistics.

    Args:
        args: Parsed command line arguments
        config: Application configuration

    Returns:
        Exit code (0 for success)
    """
    with Database(config.db_path) as db:
        if args.run_id:
            record = db.get_run(args.run_id)
            if record is None:
                print(f"Run not found: {args.run_id}", file=sys.stderr)
                return 1
            steps = list(db.load_steps(args.run_id))
            print(json.dumps({
                "id": record["id"],
                "status": record["status"],
                "error": record["error"],
                "completed_steps": steps,
            }, indent=2))
            return 0
        db_stats = db.stats()

    status = {
        "config": {
            "scorer_model": config.scorer_model,
            "writer_model": config.writer_model,
            "score_threshold": config.score_threshold,
            "max_selected": config.max_selected,
            "result_ttl_seconds": config.result_ttl_seconds,
            "step_max_attempts": config.step_max_attempts,
            "enable_logfire": config.enable_logfire,
        },
        "database": {
            "path": str(config.db_path),
            **db_stats,
        },
    }

    print(json.dumps(status, indent=2))
    return 0


def cmd_result(args: argparse.Namespace, config: Config) -> int:
    """Print the stored newsletter of a completed run.

    Args:
        args: Parsed command line arguments
        config: Application configuration

    Returns:
        Exit code (0 for success)
    """
    from service import WorkflowError, WorkflowService

    async def fetch():
        service = WorkflowService(Database(config.db_path))
        try:
            return await service.get_result(args.run_id)
        finally:
            await service.close()

    try:
        newsletter = asyncio.run(fetch())
    except WorkflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.markdown:
        from reports import render_newsletter_markdown

        print(render_newsletter_markdown(newsletter))
    else:
        print(json.dumps(newsletter.to_dict(), indent=2, ensure_ascii=False))
    return 0


def cmd_prune(args: argparse.Namespace, config: Config) -> int:
    """Delete expired results and finished runs older than the retention window."""
    max_age = args.max_age if args.max_age is not None else config.result_ttl_seconds
    with Database(config.db_path) as db:
        deleted = db.prune(max_age)
    print(f"Pruned {deleted} row(s)")
    return 0


def main() -> int:
    """Main entry point.

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        description="Tidings: personalized newsletter workflow",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP gateway")
    serve_parser.add_argument("--host", help="Bind address (default: config HOST)")
    serve_parser.add_argument("--port", type=int, help="Bind port (default: config PORT)")

    # generate command
    generate_parser = subparsers.add_parser("generate", help="Generate one newsletter")
    generate_parser.add_argument(
        "-i", "--interests",
        nargs="+",
        required=True,
        help="Interest keywords",
    )
    generate_parser.add_argument(
        "-s", "--sources",
        nargs="+",
        required=True,
        help="Source page URLs",
    )
    generate_parser.add_argument(
        "--output",
        help="Write markdown to this path instead of the reports directory",
    )
    generate_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the newsletter JSON instead of saving markdown",
    )

    # status command
    status_parser = subparsers.add_parser("status", help="Show run status or statistics")
    status_parser.add_argument("run_id", nargs="?", help="Run id (omit for overall stats)")

    # result command
    result_parser = subparsers.add_parser("result", help="Print a completed run's newsletter")
    result_parser.add_argument("run_id", help="Run id")
    result_parser.add_argument(
        "--markdown",
        action="store_true",
        help="Print markdown instead of JSON",
    )

    # prune command
    prune_parser = subparsers.add_parser("prune", help="Delete expired results and old runs")
    prune_parser.add_argument(
        "--max-age",
        type=int,
        help="Age in seconds of finished runs to delete (default: RESULT_TTL_SECONDS)",
    )

    args = parser.parse_args()

    # Load configuration
    try:
        config = Config.load()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    # Setup logging
    setup_logging(config, verbose=args.verbose)

    # Validate configuration for commands that call models
    if args.command in ("serve", "generate"):
        error = config.validate()
        if error:
            print(f"Configuration error: {error}", file=sys.stderr)
            return 1
        if config.enable_logfire:
            setup_tracing(enabled=True, service_name="tidings", token=config.logfire_token)

    # Route to command handler
    commands = {
        "serve": cmd_serve,
        "generate": cmd_generate,
        "status": cmd_status,
        "result": cmd_result,
        "prune": cmd_prune,
    }

    if args.command in commands:
        try:
            return commands[args.command](args, config)
        except Exception as e:
            logging.getLogger(__name__).error("Command failed | cmd=%s error=%s", args.command, e, exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
