"""Flask application factory for Courier.

Usage::

    from courier.app import create_app
    from courier.config import get_config
    from courier.db import init_database

    db  = init_database(get_config().settings.database)
    app = create_app(config=get_config(), database=db)
"""

from __future__ import annotations

import atexit
import logging
from typing import TYPE_CHECKING

from flask import Flask, jsonify

if TYPE_CHECKING:
    from flask.typing import ResponseReturnValue
    from pypgkit import Database

    from courier.config.courier_config import CourierConfig

log = logging.getLogger(__name__)


def create_app(
    config: CourierConfig | None = None,
    database: Database | None = None,
    *,
    start_worker: bool = True,
) -> Flask:
    """Create and configure the Courier Flask application.

    Parameters
    ----------
    config:
        Loaded :class:`CourierConfig`.  Falls back to :func:`get_config`
        when ``None``.
    database:
        Initialised :class:`Database` singleton.  When provided, the
        dependency container is wired up and the API blueprints are
        registered.  When ``None`` only the health probes are served
        (useful for ``--validate-only`` or testing).
    start_worker:
        Start the queue worker threads in this process when
        ``queue.worker_enabled`` is true.

    Returns
    -------
    Flask
        Fully configured WSGI application.

    """
    if config is None:
        from courier.config import get_config  # noqa: PLC0415

        config = get_config()

    settings = config.settings

    app = Flask("courier")
    app.config["COURIER_SETTINGS"] = settings
    app.config["COURIER_CONFIG"] = config

    # -- Error handlers (RFC 7807) ------------------------------------------
    from courier.app.errors import register_error_handlers  # noqa: PLC0415

    register_error_handlers(app)

    # -- Request lifecycle hooks --------------------------------------------
    from courier.app.middleware import register_request_hooks  # noqa: PLC0415

    register_request_hooks(app)

    # -- Infrastructure endpoints -------------------------------------------
    _register_health(app)

    # -- Dependency container -----------------------------------------------
    if database is not None:
        from courier.app.context import Container  # noqa: PLC0415

        container = Container(database, settings)
        app.extensions["container"] = container

        # -- Queue worker (optional) ----------------------------------------
        if start_worker and settings.queue.worker_enabled:
            container.queue_worker.start()
            atexit.register(container.queue_worker.stop)

        # -- API routes -----------------------------------------------------
        from courier.api import register_blueprints  # noqa: PLC0415

        register_blueprints(app)

    log.info("Flask application created")
    return app


# ---------------------------------------------------------------------------
# Infrastructure endpoints
# ---------------------------------------------------------------------------


def _register_health(app: Flask) -> None:
    """Register ``/livez`` and ``/healthz`` probes."""
    from courier import __version__  # noqa: PLC0415

    @app.route("/livez")
    def livez() -> ResponseReturnValue:
        """Return minimal liveness probe."""
        return jsonify({"alive": True, "version": __version__}), 200

    @app.route("/healthz")
    def healthz() -> ResponseReturnValue:
        """Return database, worker and circuit breaker status."""
        result: dict = {"status": "ok", "version": __version__}
        checks: dict = {}

        container = app.extensions.get("container")
        if container is not None:
            try:
                container.db.fetch_value("SELECT 1")
                checks["database"] = "connected"
            except Exception:  # noqa: BLE001
                checks["database"] = "disconnected"
                result["status"] = "degraded"

            if container.settings.queue.worker_enabled:
                alive = container.queue_worker.running
                result["workers"] = {"queue_worker": "alive" if alive else "dead"}
                if not alive:
                    result["status"] = "degraded"

            breakers = container.breaker.get_status()
            open_channels = sorted(ch for ch, st in breakers.items() if st["is_open"])
            checks["channels"] = {
                "enabled": sorted(str(ch) for ch in container.adapters),
                "circuit_open": open_channels,
            }

        if checks:
            result["checks"] = checks

        code = 200 if result["status"] == "ok" else 503
        return jsonify(result), code
