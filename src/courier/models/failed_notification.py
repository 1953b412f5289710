"""Failed notification entity (one per exhausted fallback chain)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

_EPOCH = datetime(1970, 1, 1)


@dataclass(frozen=True)
class FailedNotification:
    id: UUID
    user_id: str
    template_code: str
    channel: str
    notification_log_id: UUID | None = None
    context_data: dict[str, str] = field(default_factory=dict)
    failure_reason: str | None = None
    retry_count: int = 0
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    created_at: datetime = _EPOCH

    @property
    def resolved(self) -> bool:
        return self.resolved_at is not None
