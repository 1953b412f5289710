"""Failed notification repository."""

from __future__ import annotations

from typing import TYPE_CHECKING

from psycopg.types.json import Jsonb
from pypgkit import BaseRepository, Database

from courier.models.failed_notification import FailedNotification

if TYPE_CHECKING:
    from uuid import UUID


class FailedNotificationRepository(BaseRepository[FailedNotification]):
    table_name = "failed_notifications"
    primary_key = "id"

    def _row_to_entity(self, row: dict) -> FailedNotification:
        return FailedNotification(
            id=row["id"],
            notification_log_id=row.get("notification_log_id"),
            user_id=row["user_id"],
            template_code=row["template_code"],
            channel=row["channel"],
            context_data=dict(row.get("context_data") or {}),
            failure_reason=row.get("failure_reason"),
            retry_count=row.get("retry_count", 0),
            resolved_at=row.get("resolved_at"),
            resolved_by=row.get("resolved_by"),
            created_at=row["created_at"],
        )

    def _entity_to_row(self, entity: FailedNotification) -> dict:
        return {
            "id": entity.id,
            "notification_log_id": entity.notification_log_id,
            "user_id": entity.user_id,
            "template_code": entity.template_code,
            "channel": entity.channel,
            "context_data": Jsonb(entity.context_data),
            "failure_reason": entity.failure_reason,
            "retry_count": entity.retry_count,
            "resolved_at": entity.resolved_at,
            "resolved_by": entity.resolved_by,
        }

    def find_unresolved(self, limit: int = 20, offset: int = 0) -> list[FailedNotification]:
        """Return unresolved failures, newest first."""
        db = Database.get_instance()
        rows = db.fetch_all(
            "SELECT * FROM failed_notifications "
            "WHERE resolved_at IS NULL "
            "ORDER BY created_at DESC "
            "LIMIT %s OFFSET %s",
            (limit, offset),
            as_dict=True,
        )
        return [self._row_to_entity(r) for r in rows]

    def count_unresolved(self) -> int:
        db = Database.get_instance()
        return int(
            db.fetch_value("SELECT COUNT(*) FROM failed_notifications WHERE resolved_at IS NULL")
            or 0,
        )

    def mark_resolved(self, failed_id: UUID, resolved_by: str) -> FailedNotification | None:
        """Stamp ``resolved_at``/``resolved_by``; ``None`` if already resolved or missing."""
        db = Database.get_instance()
        row = db.fetch_one(
            "UPDATE failed_notifications "
            "SET resolved_at = now(), resolved_by = %s "
            "WHERE id = %s AND resolved_at IS NULL "
            "RETURNING *",
            (resolved_by, failed_id),
            as_dict=True,
        )
        return self._row_to_entity(row) if row else None

    def reopen(self, failed_id: UUID, resolved_by: str) -> bool:
        """Undo a resolution stamped by *resolved_by*; True if a row changed."""
        db = Database.get_instance()
        count = db.execute(
            "UPDATE failed_notifications "
            "SET resolved_at = NULL, resolved_by = NULL "
            "WHERE id = %s AND resolved_by = %s",
            (failed_id, resolved_by),
        )
        return count > 0
