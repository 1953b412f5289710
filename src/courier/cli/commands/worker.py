"""Worker subcommand: drain the delivery queue without serving HTTP."""

from __future__ import annotations

import logging
import signal
import sys
import threading

log = logging.getLogger(__name__)


def run_worker(config, args) -> None:
    """Run the queue worker threads until SIGINT/SIGTERM."""
    from courier.app.context import Container
    from courier.db import init_database

    try:
        db = init_database(config.settings.database)
    except Exception as exc:
        if args.debug:
            raise
        sys.stderr.write(f"courier: error: database initialisation failed: {exc}\n")
        sys.exit(1)

    container = Container(db, config.settings)
    stop = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        log.info("Received signal %d, stopping queue worker", signum)
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    container.queue_worker.start()
    try:
        stop.wait()
    finally:
        container.queue_worker.stop()
