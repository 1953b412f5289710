"""Notification log entity."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from courier.core.types import Channel, LogStatus

if TYPE_CHECKING:
    from uuid import UUID

_EPOCH = datetime(1970, 1, 1)


@dataclass(frozen=True)
class NotificationLog:
    id: UUID
    user_id: str
    template_code: str
    channel: Channel
    status: LogStatus
    language: str = "en"
    subject: str | None = None
    body: str = ""
    context_data_hash: str | None = None
    service_instance_id: str | None = None
    priority: str | None = None
    external_message_id: str | None = None
    sent_at: datetime | None = None
    delivered_at: datetime | None = None
    read_at: datetime | None = None
    failed_at: datetime | None = None
    failure_reason: str | None = None
    retry_count: int = 0
    created_at: datetime = _EPOCH
