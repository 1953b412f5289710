"""Delivery monitoring: dashboard aggregates, SLA breaches and manual retry.

All figures are computed from ``notification_log`` and
``failed_notifications`` on demand; nothing is cached.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from courier.core.errors import ConflictError, NotFoundError, QueueUnavailableError
from courier.core.types import Channel, LogStatus, Priority
from courier.delivery.orchestrator import SKIP_REASON_DUPLICATE
from courier.models.delivery import NotificationRequest

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from uuid import UUID

    from courier.delivery.circuit_breaker import ChannelCircuitBreaker
    from courier.repositories.failed_notification import FailedNotificationRepository
    from courier.repositories.notification_log import NotificationLogRepository
    from courier.services.queue import NotificationQueue

log = logging.getLogger(__name__)
audit_log = logging.getLogger("courier.audit")

# Seconds between creation and provider acceptance before a send
# counts as an SLA breach.
SLA_THRESHOLDS: Mapping[Channel, int] = MappingProxyType(
    {
        Channel.PUSH: 5,
        Channel.WHATSAPP: 30,
    },
)

TOP_FAILURE_REASONS = 20
MANUAL_RETRY = "manual_retry"


def _empty_channel(channel: str) -> dict[str, Any]:
    return {
        "channel": channel,
        "total_sent": 0,
        "delivered": 0,
        "failed": 0,
        "read": 0,
        "skipped": 0,
        "delivery_rate": 0.0,
        "failure_rate": 0.0,
    }


def aggregate_channel_stats(rows: list[dict]) -> list[dict[str, Any]]:
    """Fold ``{channel, status, count}`` rows into per-channel metrics.

    ``delivered`` and ``read`` rows were sent first, so they count
    towards ``total_sent``; ``read`` also counts as ``delivered``.
    Skipped rows are reported but never part of the totals.
    """
    channels: dict[str, dict[str, Any]] = {}
    for row in rows:
        m = channels.setdefault(row["channel"], _empty_channel(row["channel"]))
        count = int(row["count"])
        status = row["status"]
        if status == LogStatus.SENT:
            m["total_sent"] += count
        elif status == LogStatus.DELIVERED:
            m["delivered"] += count
            m["total_sent"] += count
        elif status == LogStatus.FAILED:
            m["failed"] += count
            m["total_sent"] += count
        elif status == LogStatus.READ:
            m["read"] += count
            m["delivered"] += count
            m["total_sent"] += count
        elif status == LogStatus.SKIPPED:
            m["skipped"] += count

    for m in channels.values():
        total = m["total_sent"]
        if total > 0:
            m["delivery_rate"] = (m["delivered"] + m["read"]) / total * 100
            m["failure_rate"] = m["failed"] / total * 100
    return list(channels.values())


class NotificationMonitoringService:
    """Operator-facing delivery metrics.

    Parameters
    ----------
    log_repo:
        Notification log repository (aggregate queries).
    failed_repo:
        Failed notification repository.
    queue:
        Queue front-end used to re-enqueue manual retries.
    breaker:
        Shared circuit breaker, for status reporting.
    now:
        Wall-clock source, injectable for tests.

    """

    def __init__(
        self,
        log_repo: NotificationLogRepository,
        failed_repo: FailedNotificationRepository,
        queue: NotificationQueue,
        breaker: ChannelCircuitBreaker,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._logs = log_repo
        self._failed = failed_repo
        self._queue = queue
        self._breaker = breaker
        self._now = now or (lambda: datetime.now(UTC))

    def get_dashboard_metrics(self, hours_back: int = 24) -> dict[str, Any]:
        """Return per-channel counts, rates, top failure reasons and SLA breaches."""
        since = self._now() - timedelta(hours=hours_back)
        channels = aggregate_channel_stats(self._logs.count_by_channel_and_status(since))
        reasons = self._logs.top_failure_reasons(since, limit=TOP_FAILURE_REASONS)

        breaches: dict[str, int] = {}
        for channel, threshold in SLA_THRESHOLDS.items():
            try:
                breaches[channel.value] = self._logs.count_sla_breaches(channel, threshold, since)
            except Exception:
                log.warning("SLA breach query failed for %s", channel, exc_info=True)
                breaches[channel.value] = 0

        return {
            "period": f"{hours_back}h",
            "total_sent": sum(m["total_sent"] for m in channels),
            "channels": channels,
            "failure_reasons": [
                {"reason": r["reason"] or "Unknown", "count": int(r["count"])} for r in reasons
            ],
            "sla_breaches": breaches,
        }

    def get_failure_rate_for_window(self, channel: str, window_minutes: int = 15) -> float:
        """Return the percentage of *channel* log rows that failed in the window."""
        since = self._now() - timedelta(minutes=window_minutes)
        total, failed = self._logs.count_outcomes(Channel(channel), since)
        return failed / total * 100 if total > 0 else 0.0

    def get_recent_failed_notifications(self, page: int = 1, limit: int = 20) -> dict[str, Any]:
        """Return one page of unresolved failures, newest first, with the total."""
        page = max(page, 1)
        rows = self._failed.find_unresolved(limit=limit, offset=(page - 1) * limit)
        return {
            "notifications": rows,
            "total": self._failed.count_unresolved(),
            "page": page,
            "limit": limit,
        }

    def retry_failed_notification(self, failed_id: UUID) -> dict[str, Any]:
        """Re-enqueue a failed notification at high priority and resolve it.

        The record is claimed (resolved) before the job is enqueued, so
        concurrent retries of the same failure enqueue at most one job.
        If the enqueue fails the claim is released again.

        Raises
        ------
        NotFoundError
            If no failed notification has this id.
        ConflictError
            If the failure was already resolved (retried or dismissed).
        QueueUnavailableError
            If the retry job could not be enqueued; the record is left
            unresolved.

        """
        failed = self._failed.find_by_id(failed_id)
        if failed is None:
            msg = f"Failed notification {failed_id} not found"
            raise NotFoundError(msg)
        if failed.resolved or self._failed.mark_resolved(failed_id, MANUAL_RETRY) is None:
            msg = f"Failed notification {failed_id} was already resolved"
            raise ConflictError(msg)

        request = NotificationRequest(
            user_id=failed.user_id,
            template_code=failed.template_code,
            preferred_channel=failed.channel,
            context_data=failed.context_data,
            priority=Priority.HIGH,
        )
        job_id = self._queue.queue_notification(request, priority=Priority.HIGH)
        if job_id is None:
            self._failed.reopen(failed_id, MANUAL_RETRY)
            log.warning("Manual retry of %s not enqueued; record reopened", failed_id)
            msg = f"Could not enqueue retry for failed notification {failed_id}"
            raise QueueUnavailableError(msg)

        audit_log.info(
            "Failed notification retried",
            extra={"failed_notification_id": str(failed_id), "job_id": str(job_id)},
        )
        return {"retried": True, "job_id": str(job_id)}

    def get_dedup_metrics(self, hours_back: int = 24) -> dict[str, Any]:
        """Return how many duplicates were suppressed in the period."""
        since = self._now() - timedelta(hours=hours_back)
        return {
            "total_prevented": self._logs.count_skipped(SKIP_REASON_DUPLICATE, since),
            "period": f"{hours_back}h",
        }

    def get_breaker_status(self) -> dict[str, dict[str, object]]:
        return self._breaker.get_status()
