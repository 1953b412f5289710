"""Courier command-line entry point.

Usage::

    courier -c /etc/courier/config.yaml
    courier -c config.yaml --dev
    courier -c config.yaml --validate-only
    courier -c config.yaml serve --dev
    courier -c config.yaml worker
    courier -c config.yaml db status
    courier -c config.yaml failed list --page 2
    courier -c config.yaml failed retry 6f1c...
    python -m courier -c config.yaml
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

log = logging.getLogger(__name__)


def _get_version() -> str:
    from courier import __version__

    return __version__


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="courier",
        description="Courier - multi-channel notification delivery service",
    )
    parser.add_argument(
        "-c",
        "--config",
        required=True,
        metavar="PATH",
        help="Path to the configuration file (YAML or JSON).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug output (full tracebacks, verbose logging).",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Validate the configuration file and exit.",
    )
    parser.add_argument(
        "--dev",
        action="store_true",
        default=False,
        help="Use Flask's development server instead of gunicorn.",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    # Subcommands
    subparsers = parser.add_subparsers(dest="command")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the HTTP server and queue worker")
    serve_parser.add_argument(
        "--dev",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Use Flask's development server instead of gunicorn.",
    )

    # worker
    subparsers.add_parser("worker", help="Run only the queue worker")

    # db
    db_parser = subparsers.add_parser("db", help="Database management")
    db_sub = db_parser.add_subparsers(dest="db_command")
    db_sub.add_parser("status", help="Check database connectivity and schema")

    # failed
    failed_parser = subparsers.add_parser("failed", help="Inspect and retry failed notifications")
    failed_sub = failed_parser.add_subparsers(dest="failed_command")
    list_parser = failed_sub.add_parser("list", help="List unresolved failures")
    list_parser.add_argument("--page", type=int, default=1)
    list_parser.add_argument("--limit", type=int, default=20)
    retry_parser = failed_sub.add_parser("retry", help="Re-enqueue one failure at high priority")
    retry_parser.add_argument("failed_id", help="Failed notification UUID")

    return parser


def _print_error(message: str) -> None:
    """Print a user-facing error to stderr."""
    sys.stderr.write(f"courier: error: {message}\n")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Parses arguments, loads config, dispatches."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    # -- resolve config path ---
    config_path = Path(args.config)
    if not config_path.is_file():
        _print_error(f"configuration file not found: {config_path}")
        sys.exit(1)

    # -- bootstrap logging early (basic stderr until config is loaded) ---
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    # -- load & validate config ---
    try:
        from courier.config import ConfigValidationError, CourierConfig

        config = CourierConfig(config_file=str(config_path))
    except ConfigValidationError as exc:
        _print_error(str(exc))
        sys.exit(1)
    except Exception as exc:
        if args.debug:
            raise
        _print_error(f"failed to load configuration: {exc}")
        sys.exit(1)

    # -- replace bootstrap logging with structured logging ---
    from courier.logging import configure_logging

    configure_logging(config.settings.logging)

    if args.validate_only:
        _print_settings_summary(config, config_path)
        sys.exit(0)

    # -- dispatch subcommand ---
    command = args.command

    if command == "db":
        from courier.cli.commands.db import run_db

        run_db(config, args)
    elif command == "failed":
        from courier.cli.commands.failed import run_failed

        run_failed(config, args)
    elif command == "worker":
        from courier.cli.commands.worker import run_worker

        run_worker(config, args)
    else:
        # No subcommand = serve
        _print_settings_summary(config, config_path)
        _run_serve(config, args)


def _run_serve(config, args) -> None:
    """Initialise the database and hand over to the serve command."""
    try:
        from courier.db import init_database

        db = init_database(config.settings.database)
    except Exception as exc:
        if args.debug:
            raise
        _print_error(f"database initialisation failed: {exc}")
        sys.exit(1)

    from courier.cli.commands.serve import run_serve

    try:
        run_serve(config, args, db)
    except RuntimeError as exc:
        _print_error(str(exc))
        sys.exit(1)


def _print_settings_summary(config, config_path: Path) -> None:
    """Print a short summary of the loaded configuration."""
    s = config.settings
    channels = [
        name
        for name, enabled in (
            ("push", s.channels.push.enabled),
            ("whatsapp", s.channels.whatsapp.enabled),
            ("sms", s.channels.sms.enabled),
        )
        if enabled
    ]
    lines = [
        f"Courier {_get_version()}",
        f"  config:    {config_path}",
        f"  server:    {s.server.bind}:{s.server.port} ({s.server.workers} workers)",
        f"  database:  {s.database.user}@{s.database.host}:{s.database.port}/{s.database.database}",
        f"  channels:  {', '.join(channels) or 'none'}",
        f"  queue:     worker {'on' if s.queue.worker_enabled else 'off'}"
        f" ({s.queue.worker_threads} threads)",
        f"  dedup:     {'on' if s.dedup.enabled else 'off'}",
        f"  webhook:   {s.webhook.path if s.webhook.enabled else 'off'}",
    ]
    sys.stdout.write("\n".join(lines) + "\n")
