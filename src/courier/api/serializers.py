"""JSON (de)serialisation for the Courier HTTP API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from courier.core.errors import ValidationError
from courier.core.types import Priority
from courier.models.delivery import NotificationRequest

if TYPE_CHECKING:
    from courier.models.failed_notification import FailedNotification
    from courier.models.job import NotificationJob


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def parse_notification_request(data: dict[str, Any]) -> NotificationRequest:
    """Build a :class:`NotificationRequest` from a producer JSON object.

    Field presence and the channel name are checked later by
    ``validate_request``; this function only rejects values of the
    wrong shape.
    """
    context = data.get("context_data") or {}
    if not isinstance(context, dict):
        msg = "context_data must be an object"
        raise ValidationError(msg, field="context_data")

    priority = data.get("priority", Priority.NORMAL.value)
    try:
        priority = Priority(priority)
    except ValueError:
        msg = "priority must be one of: high, normal, low"
        raise ValidationError(msg, field="priority") from None

    for key in ("user_id", "template_code", "channel", "service_instance_id", "event_type"):
        value = data.get(key)
        if value is not None and not isinstance(value, str):
            msg = f"{key} must be a string"
            raise ValidationError(msg, field=key)

    return NotificationRequest(
        user_id=data.get("user_id") or "",
        template_code=data.get("template_code") or "",
        preferred_channel=data.get("channel"),
        context_data=context,
        priority=priority,
        service_instance_id=data.get("service_instance_id"),
        event_type=data.get("event_type"),
        batchable=bool(data.get("batchable", False)),
    )


def serialize_failed_notification(failed: FailedNotification) -> dict[str, Any]:
    return {
        "id": str(failed.id),
        "notification_log_id": (
            str(failed.notification_log_id) if failed.notification_log_id else None
        ),
        "user_id": failed.user_id,
        "template_code": failed.template_code,
        "channel": failed.channel,
        "context_data": failed.context_data,
        "failure_reason": failed.failure_reason,
        "retry_count": failed.retry_count,
        "resolved_at": _iso(failed.resolved_at),
        "resolved_by": failed.resolved_by,
        "created_at": _iso(failed.created_at),
    }


def serialize_job(job: NotificationJob) -> dict[str, Any]:
    return {
        "id": str(job.id),
        "name": job.name,
        "state": job.state.value,
        "data": job.data,
        "retry_count": job.retry_count,
        "retry_limit": job.retry_limit,
        "output": job.output,
        "created_at": _iso(job.created_at),
        "completed_at": _iso(job.completed_at),
    }
