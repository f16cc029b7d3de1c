"""Command line entry point: ``litewatch serve`` and ``litewatch view``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from .config import ServerSettings, load_viewer_config
from .errors import PortUnavailableError

LOG = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="litewatch", description="Live, read-only SQLite table viewer.")
    subcommands = parser.add_subparsers(dest="command")

    serve = subcommands.add_parser("serve", help="Watch a database file and serve snapshots")
    serve.add_argument("--db", type=Path, help="Database file (default: $DB_PATH or ./database.sqlite)")
    serve.add_argument("--host", help="Interface to bind (default: 0.0.0.0)")
    serve.add_argument("--port", type=int, help="First port to try (default: $PORT or 4000)")
    serve.add_argument("--port-attempts", type=int, help="How many consecutive ports to try")
    serve.add_argument("--poll-interval", type=float, help="Seconds between file checks")
    serve.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")

    view = subcommands.add_parser("view", help="Open the terminal viewer")
    view.add_argument("--host", help="Server host (default from viewer config)")
    view.add_argument("--ports", type=int, nargs="+", help="Candidate ports to probe in order")
    view.add_argument("--log-file", type=Path, help="Write logs here; the terminal belongs to the UI")
    view.add_argument("--log-level", default="INFO", help="Logging level for --log-file")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace, environ: dict[str, str] | None = None) -> ServerSettings:
    """Environment first, explicit flags on top."""

    settings = ServerSettings.from_env(os.environ if environ is None else environ)
    overrides: dict[str, object] = {}
    if args.db is not None:
        overrides["db_path"] = args.db
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.port_attempts is not None:
        overrides["port_attempts"] = args.port_attempts
    if args.poll_interval is not None:
        overrides["poll_interval"] = args.poll_interval
    return settings.model_copy(update=overrides)


def run_server(args: argparse.Namespace) -> int:
    from .server import serve

    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)
    settings = build_settings(args)
    try:
        asyncio.run(serve(settings))
    except PortUnavailableError as exc:
        LOG.error("Unable to start server: %s", exc)
        return 1
    except KeyboardInterrupt:
        LOG.info("Server stopped")
    return 0


def run_viewer(args: argparse.Namespace) -> int:
    from .app import main as run_app

    if args.log_file is not None:
        logging.basicConfig(filename=args.log_file, level=args.log_level.upper(), format=LOG_FORMAT)
    config = load_viewer_config()
    updates: dict[str, object] = {}
    if args.host:
        updates["host"] = args.host
    if args.ports:
        updates["candidate_ports"] = list(args.ports)
    run_app(config.model_copy(update=updates))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    if args.command == "serve":
        return run_server(args)
    if args.command is None:
        args = parse_args(["view"])
    return run_viewer(args)


__all__ = ["build_settings", "main", "parse_args"]
