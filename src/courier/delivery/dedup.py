"""Duplicate suppression for delivered notifications.

A notification is a duplicate when the same user already received the
same template with the same context (and correlation id, when given)
inside a short window.  The check runs against delivered history in
the notification log, unlike queue batching which collapses jobs that
have not run yet.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from courier.repositories.notification_log import NotificationLogRepository

log = logging.getLogger(__name__)

CONTEXT_HASH_LENGTH = 16
NOTIFICATION_HASH_LENGTH = 24

DEFAULT_WINDOW_SECONDS = 300
CRITICAL_WINDOW_SECONDS = 60

# Critical events resolve fast, so their suppression window is shorter.
CRITICAL_EVENT_TYPES = frozenset({"payment_confirmation", "receipt_delivery", "otp"})


def hash_context_data(context_data: Mapping[str, str]) -> str:
    """Return an order-independent digest of *context_data*."""
    canonical = "|".join(f"{key}={context_data[key]}" for key in sorted(context_data))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:CONTEXT_HASH_LENGTH]


def hash_notification(
    user_id: str,
    template_code: str,
    channel: str,
    context_data: Mapping[str, str],
    service_instance_id: str | None = None,
) -> str:
    """Return a digest combining identity, template, channel and context."""
    parts = [
        f"uid={user_id}",
        f"tpl={template_code}",
        f"ch={channel}",
        f"sid={service_instance_id}" if service_instance_id else "",
        f"ctx={hash_context_data(context_data)}",
    ]
    key = "::".join(p for p in parts if p)
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:NOTIFICATION_HASH_LENGTH]


class DeduplicationEngine:
    """Decide whether a notification repeats one sent recently.

    Parameters
    ----------
    log_repo:
        Notification log repository used for history lookups.
    default_window_seconds:
        Window for regular event types.
    critical_window_seconds:
        Window for :data:`CRITICAL_EVENT_TYPES`.
    now:
        Wall-clock source returning an aware datetime, for tests.

    """

    def __init__(
        self,
        log_repo: NotificationLogRepository,
        default_window_seconds: int = DEFAULT_WINDOW_SECONDS,
        critical_window_seconds: int = CRITICAL_WINDOW_SECONDS,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._log_repo = log_repo
        self._default_window = default_window_seconds
        self._critical_window = critical_window_seconds
        self._now = now or (lambda: datetime.now(UTC))

    def dedup_window(self, event_type: str | None) -> int:
        """Return the suppression window in seconds for *event_type*."""
        if event_type in CRITICAL_EVENT_TYPES:
            return self._critical_window
        return self._default_window

    def is_duplicate(
        self,
        user_id: str,
        template_code: str,
        context_data_hash: str,
        service_instance_id: str | None = None,
        event_type: str | None = None,
    ) -> bool:
        """Return True if a matching successful delivery exists within the window.

        Lookup failures are logged and reported as "not a duplicate".
        """
        since = self._now() - timedelta(seconds=self.dedup_window(event_type))
        try:
            found = self._log_repo.has_recent_success(
                user_id,
                template_code,
                context_data_hash,
                since,
                service_instance_id=service_instance_id,
            )
        except Exception:
            log.exception(
                "Duplicate lookup failed; delivering anyway",
                extra={"user_id": user_id, "template_code": template_code},
            )
            return False

        if found:
            log.info(
                "Duplicate notification suppressed",
                extra={
                    "user_id": user_id,
                    "template_code": template_code,
                    "context_data_hash": context_data_hash,
                },
            )
        return found

    def is_webhook_duplicate(self, idempotency_key: str) -> bool:
        """Return True if a send with this provider message id happened recently."""
        since = self._now() - timedelta(seconds=self._default_window)
        try:
            return self._log_repo.has_external_message_since(idempotency_key, since)
        except Exception:
            log.exception("Webhook duplicate lookup failed for %s", idempotency_key)
            return False
