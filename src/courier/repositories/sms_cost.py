"""SMS spend log repository."""

from __future__ import annotations

from pypgkit import Database


class SmsCostRepository:
    def __init__(self, db) -> None:
        self._db = db

    def record(
        self,
        *,
        message_id: str,
        user_id: str,
        phone: str,
        cost_in_paise: int,
        provider: str,
    ) -> None:
        db = Database.get_instance()
        db.execute(
            "INSERT INTO sms_cost_log "
            "(notification_message_id, user_id, phone, cost_in_paise, provider) "
            "VALUES (%s, %s, %s, %s, %s)",
            (message_id, user_id, phone, cost_in_paise, provider),
        )
