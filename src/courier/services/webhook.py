"""WhatsApp Business webhook handling.

Meta calls the webhook for two reasons we care about:

- **Status updates** (``statuses``) move a log row through
  ``sent`` -> ``delivered`` -> ``read`` or to ``failed``.
- **Inbound messages** (``messages``).  A text of ``STOP`` opts the
  sending phone out of WhatsApp.

Subscription is confirmed with a ``hub.mode``/``hub.verify_token``
handshake and every POST is signed with ``X-Hub-Signature-256``
(HMAC-SHA256 of the raw body keyed with the app secret).
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from datetime import UTC, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from courier.core.types import Channel, LogStatus

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from courier.config.settings import WebhookSettings
    from courier.delivery.preferences import PreferenceGate
    from courier.metrics.collector import MetricsCollector
    from courier.repositories.notification_log import NotificationLogRepository
    from courier.repositories.opt_out import OptOutRepository

log = logging.getLogger(__name__)
audit_log = logging.getLogger("courier.audit")

SIGNATURE_PREFIX = "sha256="
STOP_KEYWORD = "STOP"

# Graph API status -> log status
WEBHOOK_STATUSES: Mapping[str, LogStatus] = MappingProxyType(
    {
        "sent": LogStatus.SENT,
        "delivered": LogStatus.DELIVERED,
        "read": LogStatus.READ,
        "failed": LogStatus.FAILED,
    },
)


def _parse_timestamp(value: Any) -> datetime:  # noqa: ANN401
    try:
        return datetime.fromtimestamp(int(value), tz=UTC)
    except (TypeError, ValueError, OverflowError):
        return datetime.now(UTC)


class WhatsAppWebhookService:
    """Verify and apply WhatsApp webhook deliveries.

    Parameters
    ----------
    log_repo:
        Notification log repository for status transitions.
    opt_outs:
        Hard opt-out repository (phone-level STOP records).
    preferences:
        Preference gate, used when a STOP maps to a known user.
    settings:
        Webhook settings (verify token, app secret).
    user_lookup:
        Optional ``phone -> user_id`` resolver.  User records live
        outside this service, so without one STOP is recorded against
        the phone only.
    metrics:
        Optional metrics collector.

    """

    def __init__(  # noqa: PLR0913
        self,
        log_repo: NotificationLogRepository,
        opt_outs: OptOutRepository,
        preferences: PreferenceGate,
        settings: WebhookSettings,
        user_lookup: Callable[[str], str | None] | None = None,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._logs = log_repo
        self._opt_outs = opt_outs
        self._preferences = preferences
        self._settings = settings
        self._user_lookup = user_lookup
        self._metrics = metrics

    # -- verification -------------------------------------------------------

    def verify_webhook(self, mode: str | None, token: str | None, challenge: str | None) -> str | None:
        """Return *challenge* if the subscription handshake is valid, else ``None``."""
        if (
            mode == "subscribe"
            and token
            and self._settings.verify_token
            and hmac.compare_digest(token, self._settings.verify_token)
        ):
            return challenge or ""
        return None

    def verify_signature(self, body: bytes, signature: str | None) -> bool:
        """Check ``X-Hub-Signature-256`` against the raw request *body*."""
        if not self._settings.require_signature:
            return True
        if not signature or not self._settings.app_secret:
            return False
        digest = hmac.new(
            self._settings.app_secret.encode("utf-8"),
            body,
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(f"{SIGNATURE_PREFIX}{digest}", signature)

    # -- processing ---------------------------------------------------------

    def process_webhook(self, payload: Mapping[str, Any]) -> dict[str, int]:
        """Apply every status update and STOP message in *payload*.

        Returns counts of ``statuses`` applied and ``opt_outs`` recorded.
        """
        applied = 0
        opt_outs = 0
        for entry in payload.get("entry") or []:
            for change in entry.get("changes") or []:
                if change.get("field") != "messages":
                    continue
                value = change.get("value") or {}
                for status in value.get("statuses") or []:
                    applied += self._handle_status(status)
                for message in value.get("messages") or []:
                    if self._is_stop(message):
                        self.handle_stop(message.get("from", ""))
                        opt_outs += 1
        return {"statuses": applied, "opt_outs": opt_outs}

    def apply_status_update(
        self,
        external_message_id: str,
        new_status: str | LogStatus,
        timestamp: datetime,
        failure_reason: str | None = None,
    ) -> int:
        """Move log rows for *external_message_id* to *new_status*.

        Unknown statuses are ignored.  Returns the number of rows updated.
        """
        status = WEBHOOK_STATUSES.get(str(new_status))
        if status is None:
            log.debug("Ignoring WhatsApp status %r for %s", new_status, external_message_id)
            return 0
        if status == LogStatus.FAILED:
            failure_reason = failure_reason or "Unknown"
        else:
            failure_reason = None
        updated = self._logs.apply_status(external_message_id, status, timestamp, failure_reason)
        log.info(
            "WhatsApp delivery status updated",
            extra={"message_id": external_message_id, "status": status.value, "rows": updated},
        )
        if self._metrics is not None:
            self._metrics.increment(
                "courier_webhook_events_total",
                labels={"status": status.value},
            )
        return updated

    def handle_stop(self, phone: str) -> None:
        """Opt *phone* out of WhatsApp; also the owning user when resolvable."""
        if not phone:
            return
        log.info("WhatsApp STOP received", extra={"phone": phone})
        self._opt_outs.add_phone(phone)
        audit_log.info("WhatsApp phone opted out", extra={"phone": phone})

        if self._user_lookup is None:
            return
        user_id = self._user_lookup(phone)
        if user_id is None:
            log.warning(
                "WhatsApp STOP for unknown phone; recorded for deferred processing",
                extra={"phone": phone},
            )
            return
        self._preferences.opt_out(user_id, Channel.WHATSAPP)
        self._preferences.disable_channel_preferences(user_id, Channel.WHATSAPP)
        log.info(
            "WhatsApp opt-out applied to user",
            extra={"phone": phone, "user_id": user_id},
        )

    # -- helpers ------------------------------------------------------------

    def _handle_status(self, status: Mapping[str, Any]) -> int:
        message_id = status.get("id")
        if not message_id or status.get("status") not in WEBHOOK_STATUSES:
            return 0
        errors = status.get("errors") or []
        reason = errors[0].get("title") if errors else None
        self.apply_status_update(
            message_id,
            status["status"],
            _parse_timestamp(status.get("timestamp")),
            failure_reason=reason,
        )
        return 1

    @staticmethod
    def _is_stop(message: Mapping[str, Any]) -> bool:
        if message.get("type") != "text":
            return False
        text = (message.get("text") or {}).get("body") or ""
        return text.strip().upper() == STOP_KEYWORD
