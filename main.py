"""CLI entry point for the job ingestion pipeline."""

import argparse
import json
import logging
import sys

from src.core.config import Settings
from src.core.db import init_db
from src.core.errors import IngestionError
from src.core.schemas import SourceType
from src.pipeline.orchestrator import build_pipeline


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Job ingestion pipeline - queue sources, import postings, score sources",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    _add_common(subparsers.add_parser("init-db", help="Create the database tables"))

    add_parser = subparsers.add_parser("add-source", help="Register a data source")
    add_parser.add_argument("--name", required=True, help="Display name of the source")
    add_parser.add_argument(
        "--type",
        required=True,
        choices=[t.value for t in SourceType],
        help="Source type",
    )
    add_parser.add_argument(
        "--source-config",
        default="{}",
        help='Fetcher config as JSON, e.g. \'{"company_slug": "acme"}\'',
    )
    add_parser.add_argument("--tag", action="append", default=[], help="Tag (repeatable)")
    add_parser.add_argument(
        "--validate",
        action="store_true",
        help="Fetch the feed once and register only if it answers",
    )
    _add_common(add_parser)

    queue_parser = subparsers.add_parser("queue-sources", help="Queue every active source")
    _add_common(queue_parser)

    process_parser = subparsers.add_parser("process-task", help="Run one queue tick")
    process_parser.add_argument(
        "--loop",
        action="store_true",
        help="Keep ticking until the queue is empty or a task fails",
    )
    _add_common(process_parser)

    _add_common(subparsers.add_parser("queue-status", help="Show task counts by status"))
    _add_common(subparsers.add_parser("score-sources", help="Recalculate every source score"))

    serve_parser = subparsers.add_parser("serve", help="Serve the cron HTTP endpoints")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")
    _add_common(serve_parser)

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_settings(path: str) -> Settings:
    return Settings.from_yaml(path)


def cmd_init_db(settings: Settings) -> None:
    conn = init_db(settings.database.path)
    conn.close()
    print(f"Database ready at {settings.database.path}")


def cmd_add_source(args: argparse.Namespace, settings: Settings) -> None:
    config = json.loads(args.source_config)
    if not isinstance(config, dict):
        msg = "--source-config must be a JSON object"
        raise ValueError(msg)
    conn = init_db(settings.database.path)
    try:
        pipeline = build_pipeline(conn, settings)
        if args.validate:
            check = pipeline.registry.validate(args.type, config, name=args.name)
            print(json.dumps(check, indent=2))
            if not check["valid"]:
                msg = f"Source validation failed: {check['error']}"
                raise ValueError(msg)
        source = pipeline.registry.register(args.name, args.type, config, tags=args.tag)
        print(f"Registered source {source.id}: {source.name} ({source.source_type})")
    finally:
        conn.close()


def cmd_queue_sources(settings: Settings) -> None:
    conn = init_db(settings.database.path)
    try:
        summary = build_pipeline(conn, settings).queue.enqueue_active_sources()
        print(json.dumps(summary, indent=2))
    finally:
        conn.close()


def cmd_process_task(args: argparse.Namespace, settings: Settings) -> None:
    conn = init_db(settings.database.path)
    try:
        runner = build_pipeline(conn, settings).runner
        while True:
            result = runner.run_once()
            print(json.dumps(result.to_response(), indent=2))
            # A failed task waits for the next invocation before it is retried.
            if not args.loop or result.idle or not result.success:
                break
    finally:
        conn.close()


def cmd_queue_status(settings: Settings) -> None:
    conn = init_db(settings.database.path)
    try:
        print(json.dumps({"queue": build_pipeline(conn, settings).queue.queue_stats()}, indent=2))
    finally:
        conn.close()


def cmd_score_sources(settings: Settings) -> None:
    conn = init_db(settings.database.path)
    try:
        summary = build_pipeline(conn, settings).scorer.recalculate_all_scores()
        print(json.dumps(summary, indent=2))
    finally:
        conn.close()


def cmd_serve(args: argparse.Namespace, settings: Settings) -> None:
    import uvicorn

    from src.api.app import create_app

    conn = init_db(settings.database.path)
    try:
        app = create_app(build_pipeline(conn, settings), settings)
        uvicorn.run(app, host=args.host, port=args.port)
    finally:
        conn.close()


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        if args.command == "init-db":
            cmd_init_db(settings)
        elif args.command == "add-source":
            cmd_add_source(args, settings)
        elif args.command == "queue-sources":
            cmd_queue_sources(settings)
        elif args.command == "process-task":
            cmd_process_task(args, settings)
        elif args.command == "queue-status":
            cmd_queue_status(settings)
        elif args.command == "score-sources":
            cmd_score_sources(settings)
        elif args.command == "serve":
            cmd_serve(args, settings)
    except (IngestionError, ImportError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
