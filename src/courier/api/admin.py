"""Operator monitoring endpoints, mounted at ``api.admin_base_path``.

All routes require ``api.admin_token`` when one is configured.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from courier.api.decorators import int_arg, pagination, require_admin_token
from courier.api.serializers import serialize_failed_notification, serialize_job
from courier.app.context import get_container
from courier.app.errors import MALFORMED, CourierProblem
from courier.core.types import parse_channel
from courier.services.queue import DEAD_LETTER_QUEUE

admin_bp = Blueprint("admin", __name__)

MAX_HOURS_BACK = 24 * 30


@admin_bp.route("/notifications/metrics", methods=["GET"])
@require_admin_token
def dashboard_metrics():
    hours = int_arg("hours", 24, maximum=MAX_HOURS_BACK)
    return jsonify(get_container().monitoring.get_dashboard_metrics(hours_back=hours)), 200


@admin_bp.route("/notifications/failed", methods=["GET"])
@require_admin_token
def list_failed():
    page, limit = pagination()
    data = get_container().monitoring.get_recent_failed_notifications(page=page, limit=limit)
    return jsonify(
        {
            "notifications": [serialize_failed_notification(f) for f in data["notifications"]],
            "total": data["total"],
            "page": data["page"],
            "limit": data["limit"],
        },
    ), 200


@admin_bp.route("/notifications/failed/<uuid:failed_id>/retry", methods=["POST"])
@require_admin_token
def retry_failed(failed_id):
    return jsonify(get_container().monitoring.retry_failed_notification(failed_id)), 200


@admin_bp.route("/notifications/circuit-breakers", methods=["GET"])
@require_admin_token
def breaker_status():
    return jsonify(get_container().monitoring.get_breaker_status()), 200


@admin_bp.route("/notifications/dedup", methods=["GET"])
@require_admin_token
def dedup_metrics():
    hours = int_arg("hours", 24, maximum=MAX_HOURS_BACK)
    return jsonify(get_container().monitoring.get_dedup_metrics(hours_back=hours)), 200


@admin_bp.route("/notifications/failure-rate", methods=["GET"])
@require_admin_token
def failure_rate():
    channel = parse_channel(request.args.get("channel"))
    if channel is None:
        raise CourierProblem(
            MALFORMED, "channel must be one of: push, whatsapp, sms", field="channel"
        )
    window = int_arg("window", 15)
    rate = get_container().monitoring.get_failure_rate_for_window(channel, window_minutes=window)
    return jsonify(
        {"channel": channel.value, "window_minutes": window, "failure_rate": rate},
    ), 200


@admin_bp.route("/notifications/queue", methods=["GET"])
@require_admin_token
def queue_stats():
    return jsonify(get_container().queue.stats()), 200


@admin_bp.route("/notifications/dead-letters", methods=["GET"])
@require_admin_token
def dead_letters():
    page, limit = pagination()
    jobs = get_container().jobs.find_dead_letters(
        DEAD_LETTER_QUEUE,
        limit=limit,
        offset=(page - 1) * limit,
    )
    return jsonify(
        {"jobs": [serialize_job(j) for j in jobs], "page": page, "limit": limit},
    ), 200
