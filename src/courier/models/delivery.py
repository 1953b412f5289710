"""Ephemeral value objects for one delivery.

:class:`NotificationRequest` is built by a producer and never mutated
after it is enqueued.  :class:`DeliveryAttempt` records one channel try
and :class:`DeliveryResult` summarises one ``deliver_notification``
call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from courier.core.types import AttemptStatus, Channel, FinalStatus, Priority

if TYPE_CHECKING:
    from collections.abc import Mapping
    from uuid import UUID


@dataclass(frozen=True)
class NotificationRequest:
    user_id: str
    template_code: str
    preferred_channel: str | None = None
    context_data: Mapping[str, str] = field(default_factory=dict)
    priority: Priority = Priority.NORMAL
    service_instance_id: str | None = None
    event_type: str | None = None
    batchable: bool = False

    def __post_init__(self) -> None:
        # Freeze the context so the request stays immutable after enqueue.
        frozen = MappingProxyType({str(k): str(v) for k, v in dict(self.context_data).items()})
        object.__setattr__(self, "context_data", frozen)
        if not isinstance(self.priority, Priority):
            object.__setattr__(self, "priority", Priority(self.priority))

    def to_payload(self) -> dict[str, Any]:
        """Serialise to the JSON document stored on a queue job."""
        payload: dict[str, Any] = {
            "user_id": self.user_id,
            "template_code": self.template_code,
            "channel": self.preferred_channel,
            "context_data": dict(self.context_data),
            "priority": self.priority.value,
            "batchable": self.batchable,
        }
        if self.service_instance_id is not None:
            payload["service_instance_id"] = self.service_instance_id
        if self.event_type is not None:
            payload["event_type"] = self.event_type
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> NotificationRequest:
        """Rebuild a request from a queue job payload."""
        return cls(
            user_id=payload["user_id"],
            template_code=payload["template_code"],
            preferred_channel=payload.get("channel"),
            context_data=payload.get("context_data") or {},
            priority=Priority(payload.get("priority", Priority.NORMAL.value)),
            service_instance_id=payload.get("service_instance_id"),
            event_type=payload.get("event_type"),
            batchable=bool(payload.get("batchable", False)),
        )


@dataclass(frozen=True)
class DeliveryAttempt:
    channel: Channel
    message_id: str = ""
    status: str = AttemptStatus.FAILED
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == AttemptStatus.SENT

    def describe(self) -> str:
        """Return the ``"{channel}: {error or status}"`` failure fragment."""
        return f"{self.channel}: {self.error or self.status}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "channel": self.channel.value,
            "message_id": self.message_id,
            "status": str(self.status),
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class DeliveryResult:
    user_id: str
    template_code: str
    attempts: tuple[DeliveryAttempt, ...]
    final_status: FinalStatus
    notification_log_id: UUID | None = None

    @property
    def delivered(self) -> bool:
        return self.final_status == FinalStatus.DELIVERED

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "template_code": self.template_code,
            "attempts": [a.to_dict() for a in self.attempts],
            "final_status": self.final_status.value,
            "notification_log_id": (
                str(self.notification_log_id) if self.notification_log_id else None
            ),
        }
