"""Serve subcommand: start the HTTP server (and, by default, the queue worker)."""

from __future__ import annotations

import logging

log = logging.getLogger(__name__)


def run_serve(config, args, db) -> None:
    """Start the Courier server on gunicorn, or Flask's server with ``--dev``."""
    from courier.app import create_app

    app = create_app(config=config, database=db)

    if args.dev:
        log.info("Starting development server (not for production)")
        app.run(
            host=config.settings.server.bind,
            port=config.settings.server.port,
            debug=True,
            use_reloader=False,
        )
    else:
        from courier.server.gunicorn_app import run_gunicorn

        run_gunicorn(app, config.settings.server)
