"""Services layered on the delivery core: queueing, monitoring and webhooks."""

from courier.services.monitoring import NotificationMonitoringService
from courier.services.queue import NotificationQueue
from courier.services.queue_worker import QueueWorker
from courier.services.webhook import WhatsAppWebhookService

__all__ = [
    "NotificationMonitoringService",
    "NotificationQueue",
    "QueueWorker",
    "WhatsAppWebhookService",
]
