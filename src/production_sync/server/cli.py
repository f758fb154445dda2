"""``production-sync`` command line.

Subcommands:

- ``serve``         -- run the HTTP server (uvicorn).
- ``sync``          -- run one reconciliation pass and print the report.
- ``status``        -- print the persisted sync status and recent log.
- ``import-mirror`` -- replace the records with the spreadsheet's rows.
- ``init-config``   -- write a starter config file.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import uvicorn

from .. import __version__
from ..config_loader import ensure_config
from ..errors import ProductionSyncError
from ..logger import setup_logging
from ..models import SyncDirection
from ..sync.reporter import format_sync_log, format_sync_report
from .app import create_app
from .node import Node, build_node, load_node_config

logger = logging.getLogger(__name__)


def _config_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """CLI args -> ``Config`` field overrides (unset args are skipped)."""
    overrides = {
        "peer_url": args.peer_url,
        "store_backend": args.store,
        "data_dir": args.data_dir,
        "mirror_path": args.mirror,
        "insecure": True if args.insecure else None,
        "debug": True if args.debug else None,
        "host": getattr(args, "host", None),
        "port": getattr(args, "port", None),
    }
    return {k: v for k, v in overrides.items() if v is not None}


def _load_node(args: argparse.Namespace) -> Node:
    """Resolve config, set up logging and build the node.

    Raises:
        RuntimeError: On invalid configuration.
    """
    try:
        config, logging_config = load_node_config(_config_overrides(args))
    except ValueError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        raise RuntimeError(f"Configuration error: {e}") from e
    setup_logging(
        debug=config.debug,
        log_file=args.log_file or logging_config.file,
        log_format=logging_config.format,
        level=logging_config.level,
    )
    return build_node(config)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_serve(args: argparse.Namespace) -> int:
    node = _load_node(args)
    app = create_app(node=node)
    print(
        f"production-sync {__version__} listening on "
        f"http://{node.config.host}:{node.config.port}",
        file=sys.stderr,
    )
    uvicorn.run(app, host=node.config.host, port=node.config.port, log_config=None)
    return 0


async def _sync_once(node: Node, direction: SyncDirection | None) -> int:
    assert node.orchestrator is not None
    report = await node.orchestrator.run_once(direction)
    print(format_sync_report(report))
    return 0 if report.success else 1


def cmd_sync(args: argparse.Namespace) -> int:
    node = _load_node(args)
    try:
        if node.orchestrator is None:
            print("ERROR: Sync is disabled: set PEER_URL or --peer-url.", file=sys.stderr)
            return 1
        direction = SyncDirection(args.direction) if args.direction else None
        return asyncio.run(_sync_once(node, direction))
    finally:
        node.close()


def cmd_status(args: argparse.Namespace) -> int:
    node = _load_node(args)
    try:
        if node.orchestrator is None:
            print("Sync: disabled (no peer configured)")
        else:
            status = node.orchestrator.status()
            if args.json:
                print(json.dumps(status, indent=2, default=str))
            else:
                print(f"Sync direction: {status['direction']}")
                print(f"Last run:       {status['last_run_at'] or 'never'}")
                print(f"Last outcome:   {status['last_outcome'] or '-'}")
                print(f"Last success:   {status['last_success_at'] or 'never'}")
                if status["last_error"]:
                    print(f"Last error:     {status['last_error']}")
        print(f"Records:        {len(node.store.get_all())}")
        print(f"Unsynced:       {len(node.store.get_unsynced())}")
        print("")
        print(format_sync_log(node.store.get_sync_log(args.limit)))
        return 0
    finally:
        node.close()


def cmd_import_mirror(args: argparse.Namespace) -> int:
    node = _load_node(args)
    try:
        count = node.service.import_from_mirror()
    except (ProductionSyncError, ValueError) as e:
        print(f"ERROR: Import failed: {e}", file=sys.stderr)
        return 1
    finally:
        node.close()
    print(f"Imported {count} records from {node.mirror.path}")
    return 0


def cmd_init_config(args: argparse.Namespace) -> int:
    path = ensure_config(args.path)
    print(f"Config file: {path}")
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="production-sync",
        description="production-sync - keep two production-record nodes consistent",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the node's HTTP server (config from .env / config.yml)
  production-sync serve

  # Run as the local node, pulling from the remote database node
  production-sync --peer-url https://records.example.com serve --port 3000

  # One bidirectional pass, report on stdout
  production-sync sync --direction bidirectional

  # Seed the store from the spreadsheet mirror
  production-sync --mirror data/production_data.csv import-mirror

  # Write a starter config file
  production-sync init-config
        """,
    )
    parser.add_argument(
        "--peer-url",
        help="Override the peer node URL (takes precedence over PEER_URL and config files)",
    )
    parser.add_argument(
        "--store",
        choices=["memory", "json", "sql"],
        help="Record store backend",
    )
    parser.add_argument("--data-dir", help="Directory for store files and sync status")
    parser.add_argument("--mirror", help="CSV or XLSX mirror path")
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip SSL certificate verification towards the peer (development only)",
    )
    parser.add_argument("--debug", action="store_true", help="Debug logging")
    parser.add_argument("--log-file", help="Also log to this file")
    parser.add_argument(
        "--version",
        action="version",
        version=f"production-sync version {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve = subparsers.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, help="Bind port (default: 3000)")
    serve.set_defaults(func=cmd_serve)

    sync = subparsers.add_parser("sync", help="Run one reconciliation pass")
    sync.add_argument(
        "--direction",
        choices=[d.value for d in SyncDirection],
        help="Override the configured direction",
    )
    sync.set_defaults(func=cmd_sync)

    status = subparsers.add_parser("status", help="Show sync status and log")
    status.add_argument("--limit", type=int, default=20, help="Log entries to show")
    status.add_argument("--json", action="store_true", help="Status as JSON")
    status.set_defaults(func=cmd_status)

    imp = subparsers.add_parser(
        "import-mirror", help="Replace records with the mirror's rows"
    )
    imp.set_defaults(func=cmd_import_mirror)

    init = subparsers.add_parser("init-config", help="Write a starter config file")
    init.add_argument("--path", type=Path, help="Target path")
    init.set_defaults(func=cmd_init_config)

    return parser


def run(argv: list[str] | None = None) -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        code = args.func(args)
    except RuntimeError:
        # Error already printed to stderr
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)
    sys.exit(code)


if __name__ == "__main__":
    run()
