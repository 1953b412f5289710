"""Notification log repository.

Besides plain row mapping this repository owns every aggregate query
the monitoring service reports on, so SQL for the log table lives in
one place.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pypgkit import BaseRepository, Database

from courier.core.types import SUCCESSFUL_LOG_STATUSES, Channel, LogStatus
from courier.models.notification_log import NotificationLog

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

# Webhook status -> timestamp column it stamps.
_STATUS_TIMESTAMP_COLUMNS: Mapping[LogStatus, str] = {
    LogStatus.SENT: "sent_at",
    LogStatus.DELIVERED: "delivered_at",
    LogStatus.READ: "read_at",
    LogStatus.FAILED: "failed_at",
}

_SUCCESS_VALUES = tuple(sorted(s.value for s in SUCCESSFUL_LOG_STATUSES))


class NotificationLogRepository(BaseRepository[NotificationLog]):
    table_name = "notification_log"
    primary_key = "id"

    def _row_to_entity(self, row: dict) -> NotificationLog:
        return NotificationLog(
            id=row["id"],
            user_id=row["user_id"],
            template_code=row["template_code"],
            channel=Channel(row["channel"]),
            status=LogStatus(row["status"]),
            language=row.get("language", "en"),
            subject=row.get("subject"),
            body=row.get("body", ""),
            context_data_hash=row.get("context_data_hash"),
            service_instance_id=row.get("service_instance_id"),
            priority=row.get("priority"),
            external_message_id=row.get("external_message_id"),
            sent_at=row.get("sent_at"),
            delivered_at=row.get("delivered_at"),
            read_at=row.get("read_at"),
            failed_at=row.get("failed_at"),
            failure_reason=row.get("failure_reason"),
            retry_count=row.get("retry_count", 0),
            created_at=row["created_at"],
        )

    def _entity_to_row(self, entity: NotificationLog) -> dict:
        return {
            "id": entity.id,
            "user_id": entity.user_id,
            "template_code": entity.template_code,
            "channel": entity.channel.value,
            "status": entity.status.value,
            "language": entity.language,
            "subject": entity.subject,
            "body": entity.body,
            "context_data_hash": entity.context_data_hash,
            "service_instance_id": entity.service_instance_id,
            "priority": entity.priority,
            "external_message_id": entity.external_message_id,
            "sent_at": entity.sent_at,
            "failed_at": entity.failed_at,
            "failure_reason": entity.failure_reason,
            "retry_count": entity.retry_count,
            "created_at": entity.created_at,
        }

    # -- dedup lookups ------------------------------------------------------

    def has_recent_success(
        self,
        user_id: str,
        template_code: str,
        context_data_hash: str,
        since: datetime,
        service_instance_id: str | None = None,
    ) -> bool:
        """Return True if a matching successful row was created after *since*."""
        db = Database.get_instance()
        sql = (
            "SELECT 1 FROM notification_log "
            "WHERE user_id = %s AND template_code = %s "
            "AND context_data_hash = %s "
            "AND status = ANY(%s) AND created_at >= %s"
        )
        params: list = [user_id, template_code, context_data_hash, list(_SUCCESS_VALUES), since]
        if service_instance_id is not None:
            sql += " AND service_instance_id = %s"
            params.append(service_instance_id)
        sql += " LIMIT 1"
        return db.fetch_one(sql, tuple(params)) is not None

    def has_external_message_since(self, external_message_id: str, since: datetime) -> bool:
        """Return True if a row with this provider message id exists after *since*."""
        db = Database.get_instance()
        row = db.fetch_one(
            "SELECT 1 FROM notification_log "
            "WHERE external_message_id = %s AND created_at >= %s LIMIT 1",
            (external_message_id, since),
        )
        return row is not None

    # -- webhook transitions ------------------------------------------------

    def apply_status(
        self,
        external_message_id: str,
        status: LogStatus,
        timestamp: datetime,
        failure_reason: str | None = None,
    ) -> int:
        """Set *status* and its timestamp on rows matching the message id.

        Returns the number of rows updated.
        """
        column = _STATUS_TIMESTAMP_COLUMNS.get(status)
        if column is None:
            msg = f"Status '{status}' is not a webhook transition"
            raise ValueError(msg)
        db = Database.get_instance()
        if status == LogStatus.FAILED:
            return db.execute(
                "UPDATE notification_log "
                "SET status = %s, failed_at = %s, failure_reason = %s "
                "WHERE external_message_id = %s",
                (status.value, timestamp, failure_reason, external_message_id),
            )
        return db.execute(
            f"UPDATE notification_log SET status = %s, {column} = %s "  # noqa: S608
            "WHERE external_message_id = %s",
            (status.value, timestamp, external_message_id),
        )

    # -- reporting ----------------------------------------------------------

    def count_by_channel_and_status(self, since: datetime) -> list[dict]:
        """Return ``{channel, status, count}`` rows created after *since*."""
        db = Database.get_instance()
        return db.fetch_all(
            "SELECT channel, status, COUNT(*) AS count FROM notification_log "
            "WHERE created_at >= %s GROUP BY channel, status",
            (since,),
            as_dict=True,
        )

    def top_failure_reasons(self, since: datetime, limit: int = 20) -> list[dict]:
        """Return the most frequent failure reasons as ``{reason, count}``."""
        db = Database.get_instance()
        return db.fetch_all(
            "SELECT failure_reason AS reason, COUNT(*) AS count FROM notification_log "
            "WHERE status = %s AND created_at >= %s AND failure_reason IS NOT NULL "
            "GROUP BY failure_reason ORDER BY count DESC LIMIT %s",
            (LogStatus.FAILED.value, since, limit),
            as_dict=True,
        )

    def count_sla_breaches(
        self,
        channel: Channel,
        threshold_seconds: float,
        since: datetime,
    ) -> int:
        """Count successful rows whose send took longer than *threshold_seconds*."""
        db = Database.get_instance()
        value = db.fetch_value(
            "SELECT COUNT(*) FROM notification_log "
            "WHERE channel = %s AND status = ANY(%s) AND created_at >= %s "
            "AND sent_at IS NOT NULL "
            "AND EXTRACT(EPOCH FROM (sent_at - created_at)) > %s",
            (channel.value, list(_SUCCESS_VALUES), since, threshold_seconds),
        )
        return int(value or 0)

    def count_outcomes(self, channel: Channel, since: datetime) -> tuple[int, int]:
        """Return ``(total, failed)`` row counts for *channel* created after *since*."""
        db = Database.get_instance()
        row = db.fetch_one(
            "SELECT COUNT(*) AS total, "
            "COUNT(*) FILTER (WHERE status = %s) AS failed "
            "FROM notification_log "
            "WHERE channel = %s AND created_at >= %s",
            (LogStatus.FAILED.value, channel.value, since),
            as_dict=True,
        )
        if row is None:
            return 0, 0
        return int(row["total"] or 0), int(row["failed"] or 0)

    def count_skipped(self, reason: str, since: datetime) -> int:
        """Count skipped rows with exactly *reason* created after *since*."""
        db = Database.get_instance()
        value = db.fetch_value(
            "SELECT COUNT(*) FROM notification_log "
            "WHERE status = %s AND failure_reason = %s AND created_at >= %s",
            (LogStatus.SKIPPED.value, reason, since),
        )
        return int(value or 0)
