"""WhatsApp Business template messaging over the Graph API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from courier.channels.base import ChannelAdapter, ChannelError, SendResult, template_params
from courier.core.types import AttemptStatus, Channel, Language

if TYPE_CHECKING:
    from collections.abc import Mapping

    from courier.config.settings import WhatsAppSettings
    from courier.repositories.opt_out import OptOutRepository

log = logging.getLogger(__name__)


class WhatsAppAdapter(ChannelAdapter):
    """Send template (or plain text) messages to ``context_data["_phone"]``.

    Phones that replied STOP are answered with ``opted_out`` without
    contacting the provider.
    """

    channel = Channel.WHATSAPP

    def __init__(self, settings: WhatsAppSettings, opt_outs: OptOutRepository) -> None:
        super().__init__(timeout_seconds=settings.timeout_seconds)
        self._settings = settings
        self._opt_outs = opt_outs

    @property
    def _endpoint(self) -> str:
        base = self._settings.base_url.rstrip("/")
        return f"{base}/{self._settings.phone_number_id}/messages"

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
            log.warning("No phone number for WhatsApp", extra={"user_id": user_id})
            return SendResult(message_id="", status=AttemptStatus.NO_PHONE)

        if self._opt_outs.is_phone_opted_out(phone):
            log.info("Phone opted out of WhatsApp", extra={"user_id": user_id})
            return SendResult(message_id="", status=AttemptStatus.OPTED_OUT)

        payload: dict[str, Any] = {
            "messaging_product": "whatsapp",
            "to": phone.replace("+", ""),
        }
        if template_name:
            language = context_data.get("_language") or self._settings.default_language
            payload["type"] = "template"
            payload["template"] = {
                "name": template_name,
                "language": {
                    "code": Language.HINDI.value
                    if language == Language.HINDI
                    else Language.ENGLISH.value,
                },
                "components": [
                    {
                        "type": "body",
                        "parameters": [
                            {"type": "text", "text": value}
                            for value in template_params(context_data).values()
                        ],
                    },
                ],
            }
        else:
            payload["type"] = "text"
            payload["text"] = {"body": context_data.get("_body") or body}

        resp = self._post_json(
            self._endpoint,
            payload,
            {"Authorization": f"Bearer {self._settings.access_token}"},
        )
        messages = resp.get("messages") or []
        if not messages or not messages[0].get("id"):
            msg = "WhatsApp API accepted the request but returned no message id"
            raise ChannelError(msg, retryable=True)

        message_id = str(messages[0]["id"])
        status = str(messages[0].get("message_status") or AttemptStatus.SENT)
        if status == "accepted":
            status = AttemptStatus.SENT
        log.info(
            "WhatsApp message %s (%s)",
            status,
            template_name or "text",
            extra={"user_id": user_id, "message_id": message_id},
        )
        return SendResult(message_id=message_id, status=status)
