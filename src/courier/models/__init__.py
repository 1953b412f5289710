"""Entity and value models for Courier.

All models are frozen dataclasses.  Use :func:`dataclasses.replace`
for modifications (copy-on-write).
"""

from courier.models.delivery import DeliveryAttempt, DeliveryResult, NotificationRequest
from courier.models.device import UserDevice
from courier.models.failed_notification import FailedNotification
from courier.models.job import NotificationJob
from courier.models.notification_log import NotificationLog
from courier.models.preference import UserNotificationPreference

__all__ = [
    "DeliveryAttempt",
    "DeliveryResult",
    "FailedNotification",
    "NotificationJob",
    "NotificationLog",
    "NotificationRequest",
    "UserDevice",
    "UserNotificationPreference",
]
