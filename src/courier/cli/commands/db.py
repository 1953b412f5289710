"""Database management subcommands."""

from __future__ import annotations

import logging
import sys

log = logging.getLogger(__name__)

EXPECTED_TABLES = (
    "notification_log",
    "failed_notifications",
    "user_devices",
    "notification_opt_outs",
    "whatsapp_opt_outs",
    "user_notification_preferences",
    "sms_cost_log",
    "notification_jobs",
)


def run_db(config, args) -> None:
    """Handle db subcommands."""
    if args.db_command == "status":
        _db_status(config)
    else:
        sys.stderr.write("courier: error: missing db subcommand (status)\n")
        sys.exit(1)


def _db_status(config) -> None:
    """Check database connectivity and which Courier tables exist."""
    from courier.db import init_database

    try:
        db = init_database(config.settings.database)
        db.fetch_value("SELECT 1")
        rows = db.fetch_all(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = 'public' AND table_name = ANY(%s)",
            (list(EXPECTED_TABLES),),
            as_dict=True,
        )
    except Exception as exc:
        sys.stderr.write(f"courier: error: database check failed: {exc}\n")
        sys.exit(1)

    present = {r["table_name"] for r in rows}
    missing = [t for t in EXPECTED_TABLES if t not in present]
    sys.stdout.write("Database: connected\n")
    sys.stdout.write(f"Tables:   {len(present)}/{len(EXPECTED_TABLES)} present\n")
    if missing:
        sys.stdout.write(f"Missing:  {', '.join(missing)}\n")
        sys.exit(1)
