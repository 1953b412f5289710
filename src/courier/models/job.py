"""Queued delivery job."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from courier.core.types import JobState

if TYPE_CHECKING:
    from uuid import UUID

_EPOCH = datetime(1970, 1, 1)


@dataclass(frozen=True)
class NotificationJob:
    id: UUID
    name: str
    data: dict[str, Any] = field(default_factory=dict)
    state: JobState = JobState.CREATED
    priority: int = 5
    retry_limit: int = 3
    retry_count: int = 0
    retry_delay: int = 30
    retry_backoff: bool = True
    expire_in_seconds: int = 600
    singleton_key: str | None = None
    dead_letter: str | None = None
    start_after: datetime = _EPOCH
    started_at: datetime | None = None
    completed_at: datetime | None = None
    output: dict[str, Any] | None = None
    created_at: datetime = _EPOCH
