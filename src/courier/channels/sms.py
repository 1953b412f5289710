"""SMS channel over the MSG91 flow API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from courier.channels.base import ChannelAdapter, SendResult
from courier.core.types import AttemptStatus, Channel

if TYPE_CHECKING:
    from collections.abc import Mapping

    from courier.config.settings import SmsSettings
    from courier.repositories.sms_cost import SmsCostRepository

log = logging.getLogger(__name__)

SMS_MAX_LENGTH = 160


def build_sms_body(template_code: str, context_data: Mapping[str, str], body: str = "") -> str:
    """Return the message text, truncated to one SMS segment."""
    body = context_data.get("_body") or body or (
        f"Notification: {template_code}. Please check the app for details."
    )
    if len(body) > SMS_MAX_LENGTH:
        return body[: SMS_MAX_LENGTH - 3] + "..."
    return body


def normalise_phone(phone: str) -> str:
    """Strip the ``+91`` / ``+`` prefix MSG91 does not accept."""
    return phone.replace("+91", "", 1).replace("+", "")


class SmsAdapter(ChannelAdapter):
    channel = Channel.SMS

    def __init__(self, settings: SmsSettings, costs: SmsCostRepository) -> None:
        super().__init__(timeout_seconds=settings.timeout_seconds)
        self._settings = settings
        self._costs = costs

    def send(
        self,
        user_id: str,
        subject: str | None,
        body: str,
        context_data: Mapping[str, str],
        template_name: str | None = None,
    ) -> SendResult:
        phone = context_data.get("_phone")
        if not phone:
            log.warning("No phone number for SMS", extra={"user_id": user_id})
            return SendResult(message_id="", status=AttemptStatus.NO_PHONE)

        message = build_sms_body(template_name or "", context_data, body)
        payload = {
            "sender": self._settings.sender_id,
            "route": self._settings.route,
            "country": self._settings.country,
            "sms": [{"message": message, "to": [normalise_phone(phone)]}],
        }
        resp = self._post_json(
            f"{self._settings.base_url.rstrip('/')}/flow/",
            payload,
            {"authkey": self._settings.api_key},
        )
        message_id = str(resp.get("request_id") or resp.get("message_id") or "")

        self._record_cost(user_id, phone, message_id)
        log.info("SMS sent", extra={"user_id": user_id, "message_id": message_id})
        return SendResult(message_id=message_id, status=AttemptStatus.SENT)

    def _record_cost(self, user_id: str, phone: str, message_id: str) -> None:
        try:
            self._costs.record(
                message_id=message_id,
                user_id=user_id,
                phone=phone,
                cost_in_paise=self._settings.cost_per_message_paise,
                provider=self._settings.provider,
            )
        except Exception:
            log.warning("Failed to log SMS cost", exc_info=True, extra={"user_id": user_id})
