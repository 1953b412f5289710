"""Per-user category preferences."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from courier.core.types import Language

if TYPE_CHECKING:
    from uuid import UUID

_EPOCH = datetime(1970, 1, 1)


@dataclass(frozen=True)
class UserNotificationPreference:
    id: UUID
    user_id: str
    service_updates_push: bool = True
    service_updates_whatsapp: bool = True
    payment_push: bool = True
    payment_sms: bool = True
    document_push: bool = True
    document_whatsapp: bool = True
    marketing_whatsapp: bool = True
    preferred_language: Language = Language.HINDI
    created_at: datetime = _EPOCH
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "service_updates_push": self.service_updates_push,
            "service_updates_whatsapp": self.service_updates_whatsapp,
            "payment_push": self.payment_push,
            "payment_sms": self.payment_sms,
            "document_push": self.document_push,
            "document_whatsapp": self.document_whatsapp,
            "marketing_whatsapp": self.marketing_whatsapp,
            "preferred_language": self.preferred_language.value,
        }
