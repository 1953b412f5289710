"""HTTP API layer: Flask blueprint registration.

Call :func:`register_blueprints` during application startup to wire
the producer, admin, webhook and metrics blueprints into the Flask app.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flask import Flask

log = logging.getLogger(__name__)


def register_blueprints(app: Flask) -> None:
    """Register all Courier blueprints on the Flask application.

    Reads ``api``, ``webhook`` and ``metrics`` from the app's settings
    to determine URL prefixes and which optional surfaces to mount.
    """
    settings = app.config["COURIER_SETTINGS"]
    base = settings.api.base_path.rstrip("/")
    admin_base = settings.api.admin_base_path.rstrip("/")

    from courier.api.admin import admin_bp  # noqa: PLC0415
    from courier.api.notifications import notifications_bp  # noqa: PLC0415
    from courier.api.preferences import preferences_bp  # noqa: PLC0415

    # Producer endpoints
    app.register_blueprint(notifications_bp, url_prefix=base)

    # Device tokens, preferences and opt-outs
    app.register_blueprint(preferences_bp, url_prefix=base)

    # Operator monitoring
    app.register_blueprint(admin_bp, url_prefix=admin_base)

    # WhatsApp webhook (optional)
    if settings.webhook.enabled:
        from courier.api.webhooks import webhooks_bp  # noqa: PLC0415

        app.register_blueprint(webhooks_bp, url_prefix=settings.webhook.path.rstrip("/"))
        log.info("WhatsApp webhook registered at %s", settings.webhook.path)

    # Metrics (optional)
    if settings.metrics.enabled:
        from courier.api.metrics import metrics_bp  # noqa: PLC0415

        app.register_blueprint(metrics_bp, url_prefix=settings.metrics.path.rstrip("/"))
        log.info("Metrics endpoint registered at %s", settings.metrics.path)

    log.info(
        "Registered Courier blueprints under base_path=%r, admin_base_path=%r (%d URL rules)",
        base,
        admin_base,
        len(list(app.url_map.iter_rules())),
    )
