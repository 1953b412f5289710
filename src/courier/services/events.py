"""Producer helpers for the common notification events.

Each helper builds the context for one business event and enqueues the
channel-specific templates for it.  Template codes follow
``{event}_{channel}_{language}_v1``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from courier.core.types import Channel, Language, Priority
from courier.models.delivery import NotificationRequest

if TYPE_CHECKING:
    from uuid import UUID

    from courier.services.queue import NotificationQueue


def _template(event: str, channel_code: str, language: str) -> str:
    return f"{event}_{channel_code}_{Language(language).value}_v1"


def notify_service_status_change(  # noqa: PLR0913
    queue: NotificationQueue,
    *,
    user_id: str,
    service_name: str,
    step_name: str,
    current_step: int,
    total_steps: int,
    agent_name: str,
    service_instance_id: str,
    language: str = Language.HINDI,
) -> list[UUID | None]:
    """Tell a customer their service moved to a new step (push and WhatsApp)."""
    context = {
        "service_name": service_name,
        "step_name": step_name,
        "current_step": str(current_step),
        "total_steps": str(total_steps),
        "agent_name": agent_name,
        "customer_name": "",
    }
    return [
        queue.queue_notification(
            NotificationRequest(
                user_id=user_id,
                template_code=_template("service_status_change", code, language),
                preferred_channel=channel,
                context_data=context,
                priority=Priority.HIGH,
                service_instance_id=service_instance_id,
                event_type="service_status_change",
            ),
        )
        for channel, code in ((Channel.PUSH, "push"), (Channel.WHATSAPP, "wa"))
    ]


def notify_payment_confirmation(  # noqa: PLR0913
    queue: NotificationQueue,
    *,
    user_id: str,
    service_name: str,
    amount: str,
    receipt_id: str,
    service_instance_id: str,
    language: str = Language.HINDI,
) -> list[UUID | None]:
    """Confirm a payment (push and SMS)."""
    context = {
        "service_name": service_name,
        "amount": amount,
        "receipt_id": receipt_id,
        "customer_name": "",
    }
    return [
        queue.queue_notification(
            NotificationRequest(
                user_id=user_id,
                template_code=_template("payment_confirmation", code, language),
                preferred_channel=channel,
                context_data=context,
                priority=Priority.HIGH,
                service_instance_id=service_instance_id,
                event_type="payment_confirmation",
            ),
        )
        for channel, code in ((Channel.PUSH, "push"), (Channel.SMS, "sms"))
    ]


def notify_document_delivered(  # noqa: PLR0913
    queue: NotificationQueue,
    *,
    user_id: str,
    customer_name: str,
    service_name: str,
    document_name: str,
    service_instance_id: str,
    language: str = Language.HINDI,
) -> list[UUID | None]:
    """Announce a delivered document (push and WhatsApp)."""
    push_context = {"service_name": service_name, "document_name": document_name}
    wa_context = {"customer_name": customer_name, **push_context}
    requests = [
        NotificationRequest(
            user_id=user_id,
            template_code=_template("document_delivered", "push", language),
            preferred_channel=Channel.PUSH,
            context_data=push_context,
            priority=Priority.NORMAL,
            service_instance_id=service_instance_id,
            event_type="document_delivered",
        ),
        NotificationRequest(
            user_id=user_id,
            template_code=_template("document_delivered", "wa", language),
            preferred_channel=Channel.WHATSAPP,
            context_data=wa_context,
            priority=Priority.NORMAL,
            service_instance_id=service_instance_id,
            event_type="document_delivered",
        ),
    ]
    return [queue.queue_notification(r) for r in requests]


def notify_task_assignment(  # noqa: PLR0913
    queue: NotificationQueue,
    *,
    agent_user_id: str,
    service_name: str,
    customer_name: str,
    property_address: str,
    service_instance_id: str,
    language: str = Language.HINDI,
) -> UUID | None:
    """Tell a field agent about a new assignment (push only)."""
    return queue.queue_notification(
        NotificationRequest(
            user_id=agent_user_id,
            template_code=_template("task_assignment", "push", language),
            preferred_channel=Channel.PUSH,
            context_data={
                "service_name": service_name,
                "customer_name": customer_name,
                "property_address": property_address,
            },
            priority=Priority.HIGH,
            service_instance_id=service_instance_id,
            event_type="task_assignment",
        ),
    )
