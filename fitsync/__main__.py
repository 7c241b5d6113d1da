"""CLI entry point for fitsync."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .config import load_config
from .engine import build_engine


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def cmd_run(args: argparse.Namespace) -> int:
    """Push local changes, then keep draining the retry queue until interrupted."""
    config = load_config(args.config)
    engine = build_engine(config)

    print(f"Starting fitsync on {config.node.name}")
    print(f"Remote store: {config.remote.url}")
    print(f"Pending operations: {engine.queue.count}")

    try:
        synced = await engine.orchestrator.sync_pending_entities()
        print(f"Synced {synced} participants with local changes")

        if not config.loop.enabled:
            return 0

        await engine.loop.start()
        await asyncio.Event().wait()
    except (KeyboardInterrupt, asyncio.CancelledError):
        print("\nShutting down...")
    finally:
        await engine.close()

    return 0


async def cmd_sync(args: argparse.Namespace) -> int:
    """Run one sweep of local changes and one pass over the retry queue."""
    config = load_config(args.config)
    engine = build_engine(config)

    try:
        synced = await engine.orchestrator.sync_pending_entities()
        result = await engine.loop.run_once(ignore_backoff=args.now)
    finally:
        await engine.close()

    print(f"Synced {synced} participants")
    if not result.reachable:
        print("Remote store unreachable; queued operations left for later")
    else:
        print(
            f"Queue: attempted={result.attempted}, succeeded={result.succeeded}, "
            f"failed={result.failed}, dropped={result.dropped}, deferred={result.deferred}"
        )
    print(f"Status: {engine.orchestrator.status}")
    return 0


async def cmd_status(args: argparse.Namespace) -> int:
    """Check remote reachability and show local sync state."""
    config = load_config(args.config)
    engine = build_engine(config)

    try:
        available = await engine.orchestrator.check_availability()
        status_data = {
            "timestamp": datetime.now().isoformat(),
            "node": {"name": config.node.name},
            "remote": {
                "url": config.remote.url,
                "available": available,
            },
            "retry": {
                "max_attempts": config.retry.max_attempts,
                "base_delay_seconds": config.retry.base_delay_seconds,
                "max_delay_seconds": config.retry.max_delay_seconds,
                "jitter_factor": config.retry.jitter_factor,
            },
            "pending_operations": engine.queue.count,
            "store": engine.store.get_stats(),
        }
    finally:
        await engine.close()

    if args.json:
        print(json.dumps(status_data, indent=2))
        return 0

    print("fitsync Status Check")
    print("====================")
    print(f"Node: {config.node.name}")
    print()
    print(f"Remote store ({config.remote.url}):")
    print(f"  Status: {'Available' if available else 'Unavailable'}")
    print()
    print(f"Pending operations: {status_data['pending_operations']}")
    store_stats = status_data["store"]
    print("Local changes awaiting sync:")
    print(f"  Participants: {store_stats['participants_needing_sync']}")
    print(f"  Day logs: {store_stats['day_logs_needing_sync']}")
    print(f"  Activity data: {store_stats['activity_data_needing_sync']}")
    return 0


def cmd_pending_list(args: argparse.Namespace) -> int:
    """List queued operations."""
    config = load_config(args.config)
    engine = build_engine(config)

    try:
        operations = engine.queue.all()
    finally:
        asyncio.run(engine.close())

    if args.json:
        print(json.dumps([op.to_dict() for op in operations], indent=2))
        return 0

    if not operations:
        print("No pending operations")
        return 0

    for op in operations:
        last = op.last_attempt_at.isoformat() if op.last_attempt_at else "never"
        print(
            f"{op.operation_type.value:<20} {op.entity_id}  "
            f"attempts={op.attempt_count}  last={last}  error={op.last_error or '-'}"
        )
    return 0


def cmd_pending_clear(args: argparse.Namespace) -> int:
    """Drop every queued operation."""
    config = load_config(args.config)
    engine = build_engine(config)

    try:
        cleared = engine.queue.clear()
    finally:
        asyncio.run(engine.close())

    print(f"Cleared {cleared} pending operations")
    return 0


async def cmd_dashboard(args: argparse.Namespace) -> int:
    """Start the web dashboard with the retry loop running alongside."""
    config = load_config(args.config)

    try:
        from .dashboard import create_app

        import uvicorn
    except ImportError as e:
        print(f"Dashboard dependencies not installed: {e}", file=sys.stderr)
        print("Install with: pip install fitsync[dashboard]", file=sys.stderr)
        return 1

    host = args.host or config.dashboard.host
    port = args.port or config.dashboard.port

    engine = build_engine(config)
    app = create_app(engine)

    print("Starting fitsync Dashboard")
    print(f"Node: {config.node.name}")
    print(f"URL: http://{host}:{port}")

    try:
        if config.loop.enabled:
            await engine.loop.start()

        verbose = getattr(args, "verbose", False)
        config_uvicorn = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="info" if verbose else "warning",
        )
        server = uvicorn.Server(config_uvicorn)
        await server.serve()
    finally:
        await engine.close()

    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="fitsync",
        description="Offline-first sync engine for shared fitness challenges",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: built-in defaults)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Sync local changes and keep retrying")
    run_parser.set_defaults(func=cmd_run)

    # Sync command
    sync_parser = subparsers.add_parser("sync", help="Sync once and exit")
    sync_parser.add_argument(
        "--now",
        action="store_true",
        help="Replay queued operations even if their backoff has not elapsed",
    )
    sync_parser.set_defaults(func=cmd_sync)

    # Status command
    status_parser = subparsers.add_parser("status", help="Check sync status")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    # Pending queue commands
    pending_parser = subparsers.add_parser("pending", help="Inspect the pending operation queue")
    pending_subparsers = pending_parser.add_subparsers(dest="pending_command", help="Queue commands")

    pending_list = pending_subparsers.add_parser("list", help="List queued operations")
    pending_list.add_argument(
        "--json",
        action="store_true",
        help="Output operations as JSON",
    )
    pending_list.set_defaults(func=cmd_pending_list)

    pending_clear = pending_subparsers.add_parser("clear", help="Drop all queued operations")
    pending_clear.set_defaults(func=cmd_pending_clear)

    # Dashboard command
    dashboard_parser = subparsers.add_parser("dashboard", help="Start the web dashboard")
    dashboard_parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Port to run dashboard on (default: from config, 8080)",
    )
    dashboard_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind dashboard to (default: from config, 127.0.0.1)",
    )
    dashboard_parser.set_defaults(func=cmd_dashboard)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "pending" and not args.pending_command:
        pending_parser.print_help()
        return 1

    func = args.func
    if asyncio.iscoroutinefunction(func):
        return asyncio.run(func(args))
    return func(args)


if __name__ == "__main__":
    sys.exit(main())
