"""Failed notification subcommands.

Usage::

    courier -c config.yaml failed list [--page N] [--limit N]
    courier -c config.yaml failed retry <uuid>
"""

from __future__ import annotations

import json
import sys
from uuid import UUID


def run_failed(config, args) -> None:
    """Dispatch to the appropriate failed-notification handler."""
    sub = getattr(args, "failed_command", None)
    if sub is None:
        sys.stderr.write("courier: error: missing failed subcommand (list, retry)\n")
        sys.exit(1)

    from courier.app.context import Container
    from courier.db import init_database

    db = init_database(config.settings.database)
    container = Container(db, config.settings)

    if sub == "list":
        _list(container, args.page, args.limit)
    elif sub == "retry":
        _retry(container, args.failed_id)
    else:
        sys.exit(1)


def _list(container, page: int, limit: int) -> None:
    from courier.api.serializers import serialize_failed_notification

    data = container.monitoring.get_recent_failed_notifications(page=page, limit=limit)
    result = {
        "total": data["total"],
        "page": data["page"],
        "notifications": [serialize_failed_notification(f) for f in data["notifications"]],
    }
    sys.stdout.write(json.dumps(result, indent=2) + "\n")


def _retry(container, failed_id: str) -> None:
    from courier.core.errors import CourierError

    try:
        fid = UUID(failed_id)
    except ValueError:
        sys.stderr.write(f"courier: error: not a UUID: {failed_id}\n")
        sys.exit(1)

    try:
        result = container.monitoring.retry_failed_notification(fid)
    except CourierError as exc:
        sys.stderr.write(f"courier: error: {exc.detail}\n")
        sys.exit(1)
    sys.stdout.write(json.dumps(result) + "\n")
