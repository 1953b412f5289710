"""Device token, preference and opt-out endpoints.

``POST {base}/devices``
``GET|PUT {base}/users/<user_id>/preferences``
``POST {base}/users/<user_id>/opt-out`` and ``/opt-in``
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from courier.api.decorators import json_body, require_api_token
from courier.app.context import get_container
from courier.app.errors import MALFORMED, CourierProblem
from courier.core.types import DevicePlatform

preferences_bp = Blueprint("preferences", __name__)


@preferences_bp.route("/devices", methods=["POST"])
@require_api_token
def register_device():
    """Register or re-assign a push device token."""
    data = json_body()
    user_id = data.get("user_id")
    token = data.get("token")
    if not isinstance(user_id, str) or not user_id:
        raise CourierProblem(MALFORMED, "user_id is required", field="user_id")
    if not isinstance(token, str) or not token:
        raise CourierProblem(MALFORMED, "token is required", field="token")
    try:
        platform = DevicePlatform(data.get("platform", DevicePlatform.ANDROID.value))
    except ValueError:
        raise CourierProblem(
            MALFORMED, "platform must be one of: android, ios, web", field="platform"
        ) from None

    device = get_container().devices.register(user_id, token, platform)
    return jsonify(
        {"id": str(device.id), "user_id": device.user_id, "platform": device.platform.value},
    ), 201


@preferences_bp.route("/users/<user_id>/preferences", methods=["GET"])
@require_api_token
def get_preferences(user_id: str):
    prefs = get_container().preferences.get_preferences(user_id)
    return jsonify(prefs.to_dict()), 200


@preferences_bp.route("/users/<user_id>/preferences", methods=["PUT"])
@require_api_token
def update_preferences(user_id: str):
    prefs = get_container().preferences.update_preferences(user_id, json_body())
    return jsonify(prefs.to_dict()), 200


@preferences_bp.route("/users/<user_id>/opt-out", methods=["POST"])
@require_api_token
def opt_out(user_id: str):
    """Hard-opt the user out of one channel."""
    channel = json_body().get("channel")
    changed = get_container().preferences.opt_out(user_id, channel)
    return jsonify({"user_id": user_id, "channel": channel, "changed": changed}), 200


@preferences_bp.route("/users/<user_id>/opt-in", methods=["POST"])
@require_api_token
def opt_in(user_id: str):
    """Remove a hard opt-out for one channel."""
    channel = json_body().get("channel")
    changed = get_container().preferences.opt_in(user_id, channel)
    return jsonify({"user_id": user_id, "channel": channel, "changed": changed}), 200
