"""WhatsApp Business webhook endpoint, mounted at ``webhook.path``.

``GET``  subscription handshake (``hub.mode``/``hub.verify_token``/``hub.challenge``)
``POST`` signed status updates and inbound messages
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from courier.app.context import get_container
from courier.app.errors import MALFORMED, UNAUTHORIZED, CourierProblem

log = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__)


@webhooks_bp.route("", methods=["GET"])
def verify():
    """Echo ``hub.challenge`` when the verify token matches."""
    challenge = get_container().webhook.verify_webhook(
        request.args.get("hub.mode"),
        request.args.get("hub.verify_token"),
        request.args.get("hub.challenge"),
    )
    if challenge is None:
        log.warning("WhatsApp webhook verification rejected")
        raise CourierProblem(UNAUTHORIZED, "Webhook verification failed", 403)
    return challenge, 200, {"Content-Type": "text/plain; charset=utf-8"}


@webhooks_bp.route("", methods=["POST"])
def receive():
    """Verify the signature, then apply status updates and STOP messages."""
    service = get_container().webhook
    body = request.get_data()
    if not service.verify_signature(body, request.headers.get("X-Hub-Signature-256")):
        log.warning("WhatsApp webhook signature mismatch")
        raise CourierProblem(UNAUTHORIZED, "Invalid webhook signature", 401)

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise CourierProblem(MALFORMED, "Webhook body must be a JSON object")
    return jsonify(service.process_webhook(payload)), 200
