"""Push channel over the FCM HTTP v1 API.

Each registered device token gets its own ``messages:send`` call.  The
channel succeeds if at least one device accepts the message.  Tokens
that FCM reports as unregistered or invalid are deleted so they are
not retried on the next notification.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from courier.channels.base import ChannelAdapter, ChannelError, SendResult, template_params
from courier.core.types import AttemptStatus, Channel

if TYPE_CHECKING:
    from collections.abc import Mapping

    from courier.config.settings import PushSettings
    from courier.repositories.device import DeviceRepository

log = logging.getLogger(__name__)

# FCM v1 error codes (and their legacy SDK spellings) meaning the token is dead.
_INVALID_TOKEN_CODES = frozenset(
    {
        "UNREGISTERED",
        "INVALID_ARGUMENT",
        "registration-token-not-registered",
        "invalid-registration-token",
    }
)


def _fcm_error_code(exc: ChannelError) -> str | None:
    """Extract the most specific FCM error code from a provider error body."""
    error = exc.body.get("error")
    if not isinstance(error, dict):
        return None
    for detail in error.get("details") or []:
        if isinstance(detail, dict) and detail.get("errorCode"):
            return str(detail["errorCode"])
    status = error.get("status")
    return str(status) if status else None


class PushAdapter(ChannelAdapter):
    """Send push notifications to every device registered for a user."""

    channel = Channel.PUSH

    def __init__(self, settings: PushSettings, devices: DeviceRepository) -> None:
        super().__init__(timeout_seconds=settings.timeout_seconds)
        self._settings = settings
        self._devices = devices

    @property
    def _endpoint(self) -> str:
        base = self._settings.base_url.rstrip("/")
        return f"{base}/projects/{self._settings.project_id}/messages:send"

    def _build_message(
        self,
        token: str,
        title: str,
        body: str,
        context_data: Mapping[str, str],
    ) -> dict[str, Any]:
        return {
            "message": {
                "token": token,
                "notification": {"title": title, "body": body},
                "data": {
                    **template_params(context_data),
                    "click_action": "FLUTTER_NOTIFICATION_CLICK",
                },
                "android": {
                    "priority": "high",
                    "notification": {
                        "channel_id": self._settings.android_channel_id,
                        "sound": "default",
                    },
                },
                "apns": {
                    "payload": {
                        "aps": {
                            "alert": {"title": title, "body": body},
                            "sound": "default",
                            "badge": 1,
                        },
                    },
                },
            },
        }

    def send(
        self,
        user_id: str,
        subject: str | None,
        body: str,
        context_data: Mapping[str, str],
        template_name: str | None = None,
    ) -> SendResult:
        tokens = self._devices.find_tokens(user_id)
        if not tokens:
            log.warning("No push tokens registered", extra={"user_id": user_id})
            return SendResult(message_id="", status=AttemptStatus.NO_TOKENS)

        title = context_data.get("_title") or subject or template_name or ""
        text = context_data.get("_body") or body or ""
        headers = {"Authorization": f"Bearer {self._settings.access_token}"}

        message_ids: list[str] = []
        invalid: list[str] = []
        for token in tokens:
            try:
                resp = self._post_json(
                    self._endpoint,
                    self._build_message(token, title, text, context_data),
                    headers,
                )
            except ChannelError as exc:
                code = _fcm_error_code(exc)
                if code in _INVALID_TOKEN_CODES:
                    invalid.append(token)
                log.debug("Push to one device failed (%s): %s", code, exc.detail)
                continue
            message_ids.append(str(resp.get("name", "")))

        if invalid:
            self._cleanup_tokens(user_id, invalid)

        if not message_ids:
            msg = f"FCM: all {len(tokens)} device(s) failed"
            raise ChannelError(msg, retryable=True)

        log.info(
            "Push sent to %d/%d device(s)",
            len(message_ids),
            len(tokens),
            extra={"user_id": user_id},
        )
        return SendResult(message_id=message_ids[0], status=AttemptStatus.SENT)

    def _cleanup_tokens(self, user_id: str, tokens: list[str]) -> None:
        try:
            removed = self._devices.delete_tokens(tokens)
        except Exception:
            log.exception("Failed to delete invalid push tokens", extra={"user_id": user_id})
            return
        log.info("Removed %d invalid push token(s)", removed, extra={"user_id": user_id})
