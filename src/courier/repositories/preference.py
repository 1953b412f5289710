"""User notification preference repository."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pypgkit import BaseRepository, Database

from courier.core.types import Language
from courier.models.preference import UserNotificationPreference

if TYPE_CHECKING:
    from collections.abc import Mapping

# Columns callers may update; anything else is silently dropped.
PREFERENCE_FIELDS = frozenset(
    {
        "service_updates_push",
        "service_updates_whatsapp",
        "payment_push",
        "payment_sms",
        "document_push",
        "document_whatsapp",
        "marketing_whatsapp",
        "preferred_language",
    }
)


class PreferenceRepository(BaseRepository[UserNotificationPreference]):
    table_name = "user_notification_preferences"
    primary_key = "id"

    def _row_to_entity(self, row: dict) -> UserNotificationPreference:
        return UserNotificationPreference(
            id=row["id"],
            user_id=row["user_id"],
            service_updates_push=row.get("service_updates_push", True),
            service_updates_whatsapp=row.get("service_updates_whatsapp", True),
            payment_push=row.get("payment_push", True),
            payment_sms=row.get("payment_sms", True),
            document_push=row.get("document_push", True),
            document_whatsapp=row.get("document_whatsapp", True),
            marketing_whatsapp=row.get("marketing_whatsapp", True),
            preferred_language=Language(row.get("preferred_language", Language.HINDI.value)),
            created_at=row["created_at"],
            updated_at=row.get("updated_at"),
        )

    def _entity_to_row(self, entity: UserNotificationPreference) -> dict:
        return {
            "id": entity.id,
            "user_id": entity.user_id,
            "service_updates_push": entity.service_updates_push,
            "service_updates_whatsapp": entity.service_updates_whatsapp,
            "payment_push": entity.payment_push,
            "payment_sms": entity.payment_sms,
            "document_push": entity.document_push,
            "document_whatsapp": entity.document_whatsapp,
            "marketing_whatsapp": entity.marketing_whatsapp,
            "preferred_language": entity.preferred_language.value,
        }

    def get_or_create(self, user_id: str) -> UserNotificationPreference:
        """Return the user's record, inserting the all-enabled default first if missing."""
        db = Database.get_instance()
        db.execute(
            "INSERT INTO user_notification_preferences (user_id) VALUES (%s) "
            "ON CONFLICT (user_id) DO NOTHING",
            (user_id,),
        )
        row = db.fetch_one(
            "SELECT * FROM user_notification_preferences WHERE user_id = %s",
            (user_id,),
            as_dict=True,
        )
        return self._row_to_entity(row)

    def upsert_fields(self, user_id: str, fields: Mapping[str, Any]) -> UserNotificationPreference:
        """Set *fields* (already filtered to :data:`PREFERENCE_FIELDS`) for *user_id*."""
        unknown = set(fields) - PREFERENCE_FIELDS
        if unknown:
            msg = f"Unknown preference fields: {sorted(unknown)}"
            raise ValueError(msg)
        if not fields:
            return self.get_or_create(user_id)

        columns = sorted(fields)
        insert_cols = ", ".join(["user_id", *columns])
        placeholders = ", ".join(["%s"] * (len(columns) + 1))
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in columns)
        db = Database.get_instance()
        row = db.fetch_one(
            f"INSERT INTO user_notification_preferences ({insert_cols}) "  # noqa: S608
            f"VALUES ({placeholders}) "
            f"ON CONFLICT (user_id) DO UPDATE SET {updates}, updated_at = now() "
            "RETURNING *",
            (user_id, *(fields[c] for c in columns)),
            as_dict=True,
        )
        return self._row_to_entity(row)
