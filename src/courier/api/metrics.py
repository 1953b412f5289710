"""Prometheus-compatible metrics endpoint.

``GET /metrics`` returns metrics in text format.  Protected by the
admin bearer token when ``api.admin_token`` is set.
"""

from __future__ import annotations

from flask import Blueprint, make_response

from courier.api.decorators import require_admin_token
from courier.app.context import get_container

metrics_bp = Blueprint("metrics", __name__)


@metrics_bp.route("", methods=["GET"])
@require_admin_token
def get_metrics():
    """Return metrics in Prometheus text exposition format."""
    container = get_container()
    collector = container.metrics_collector
    for channel, state in container.breaker.get_status().items():
        collector.set_gauge(
            "courier_circuit_open",
            1 if state["is_open"] else 0,
            labels={"channel": channel},
        )

    response = make_response(collector.export())
    response.headers["Content-Type"] = "text/plain; version=0.0.4; charset=utf-8"
    return response
