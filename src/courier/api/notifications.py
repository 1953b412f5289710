"""Producer endpoints.

``POST {base}/notifications``       enqueue one notification (202)
``POST {base}/notifications/bulk``  enqueue many (202)
``POST {base}/notifications/send``  deliver synchronously (200 / 422)
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify

from courier.api.decorators import json_body, require_api_token
from courier.api.serializers import parse_notification_request
from courier.app.context import get_container
from courier.app.errors import MALFORMED, SERVER_INTERNAL, CourierProblem
from courier.core.errors import ValidationError
from courier.delivery.orchestrator import validate_request

log = logging.getLogger(__name__)

notifications_bp = Blueprint("notifications", __name__)

MAX_BULK_SIZE = 500


@notifications_bp.route("/notifications", methods=["POST"])
@require_api_token
def enqueue():
    """Validate and enqueue one notification."""
    request_obj = parse_notification_request(json_body())
    job_id = get_container().queue.queue_notification(request_obj)
    if job_id is None:
        raise CourierProblem(SERVER_INTERNAL, "Failed to enqueue notification", 503)
    return jsonify({"job_id": str(job_id)}), 202


@notifications_bp.route("/notifications/bulk", methods=["POST"])
@require_api_token
def enqueue_bulk():
    """Enqueue a list of notifications; invalid entries yield ``null`` ids."""
    items = json_body().get("notifications")
    if not isinstance(items, list):
        raise CourierProblem(MALFORMED, "'notifications' must be a list", field="notifications")
    if len(items) > MAX_BULK_SIZE:
        raise CourierProblem(
            MALFORMED,
            f"At most {MAX_BULK_SIZE} notifications per request",
            field="notifications",
        )

    requests = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise CourierProblem(MALFORMED, f"notifications[{idx}] must be an object")
        try:
            requests.append(parse_notification_request(item))
        except ValidationError as exc:
            raise CourierProblem(
                MALFORMED, f"notifications[{idx}]: {exc.detail}", field=exc.field
            ) from exc

    job_ids = get_container().queue.queue_bulk_notifications(requests)
    return jsonify(
        {
            "job_ids": [str(j) if j is not None else None for j in job_ids],
            "queued": sum(1 for j in job_ids if j is not None),
        },
    ), 202


@notifications_bp.route("/notifications/send", methods=["POST"])
@require_api_token
def send_now():
    """Run the delivery pipeline inline and return the result."""
    request_obj = parse_notification_request(json_body())
    validate_request(
        request_obj.user_id,
        request_obj.template_code,
        request_obj.preferred_channel,
    )
    result = get_container().orchestrator.deliver_notification(request_obj)
    return jsonify(result.to_dict()), 200 if result.delivered else 422
