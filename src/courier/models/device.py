"""Registered push device."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from courier.core.types import DevicePlatform

if TYPE_CHECKING:
    from uuid import UUID

_EPOCH = datetime(1970, 1, 1)


@dataclass(frozen=True)
class UserDevice:
    id: UUID
    user_id: str
    token: str
    platform: DevicePlatform = DevicePlatform.ANDROID
    created_at: datetime = _EPOCH
    updated_at: datetime | None = None
