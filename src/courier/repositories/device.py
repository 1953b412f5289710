"""Push device registration repository."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pypgkit import BaseRepository, Database

from courier.core.types import DevicePlatform
from courier.models.device import UserDevice

if TYPE_CHECKING:
    from collections.abc import Sequence


class DeviceRepository(BaseRepository[UserDevice]):
    table_name = "user_devices"
    primary_key = "id"

    def _row_to_entity(self, row: dict) -> UserDevice:
        return UserDevice(
            id=row["id"],
            user_id=row["user_id"],
            token=row["token"],
            platform=DevicePlatform(row.get("platform", DevicePlatform.ANDROID.value)),
            created_at=row["created_at"],
            updated_at=row.get("updated_at"),
        )

    def _entity_to_row(self, entity: UserDevice) -> dict:
        return {
            "id": entity.id,
            "user_id": entity.user_id,
            "token": entity.token,
            "platform": entity.platform.value,
        }

    def find_tokens(self, user_id: str) -> list[str]:
        """Return every registered push token for *user_id*."""
        db = Database.get_instance()
        rows = db.fetch_all(
            "SELECT token FROM user_devices WHERE user_id = %s ORDER BY created_at",
            (user_id,),
            as_dict=True,
        )
        return [r["token"] for r in rows]

    def delete_tokens(self, tokens: Sequence[str]) -> int:
        """Delete the given tokens. Returns the count removed."""
        if not tokens:
            return 0
        db = Database.get_instance()
        return db.execute(
            "DELETE FROM user_devices WHERE token = ANY(%s)",
            (list(tokens),),
        )

    def register(self, user_id: str, token: str, platform: DevicePlatform) -> UserDevice:
        """Insert or re-assign a device token to *user_id*."""
        db = Database.get_instance()
        row = db.fetch_one(
            "INSERT INTO user_devices (user_id, token, platform) "
            "VALUES (%s, %s, %s) "
            "ON CONFLICT (token) DO UPDATE "
            "SET user_id = EXCLUDED.user_id, platform = EXCLUDED.platform, "
            "    updated_at = now() "
            "RETURNING *",
            (user_id, token, platform.value),
            as_dict=True,
        )
        return self._row_to_entity(row)
