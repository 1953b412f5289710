"""Hard opt-out repository (per-user channel opt-outs and phone STOP records)."""

from __future__ import annotations

from pypgkit import Database

from courier.core.types import Channel


class OptOutRepository:
    """Reads and writes ``notification_opt_outs`` and ``whatsapp_opt_outs``."""

    def __init__(self, db) -> None:
        self._db = db

    def channels_for_user(self, user_id: str) -> frozenset[Channel]:
        db = Database.get_instance()
        rows = db.fetch_all(
            "SELECT channel FROM notification_opt_outs WHERE user_id = %s",
            (user_id,),
            as_dict=True,
        )
        return frozenset(Channel(r["channel"]) for r in rows)

    def add(self, user_id: str, channel: Channel) -> bool:
        """Record a hard opt-out. Returns False if it already existed."""
        db = Database.get_instance()
        row = db.fetch_one(
            "INSERT INTO notification_opt_outs (user_id, channel) VALUES (%s, %s) "
            "ON CONFLICT (user_id, channel) DO NOTHING RETURNING id",
            (user_id, channel.value),
        )
        return row is not None

    def remove(self, user_id: str, channel: Channel) -> bool:
        """Delete a hard opt-out. Returns False if none existed."""
        db = Database.get_instance()
        return (
            db.execute(
                "DELETE FROM notification_opt_outs WHERE user_id = %s AND channel = %s",
                (user_id, channel.value),
            )
            > 0
        )

    def add_phone(self, phone: str) -> None:
        """Record a WhatsApp STOP for *phone* (idempotent)."""
        db = Database.get_instance()
        db.execute(
            "INSERT INTO whatsapp_opt_outs (phone) VALUES (%s) ON CONFLICT (phone) DO NOTHING",
            (phone,),
        )

    def is_phone_opted_out(self, phone: str) -> bool:
        db = Database.get_instance()
        return (
            db.fetch_one(
                "SELECT 1 FROM whatsapp_opt_outs WHERE phone = %s",
                (phone,),
            )
            is not None
        )
