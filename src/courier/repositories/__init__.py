"""Repository classes for the Courier persistence layer.

Each table-backed entity repository extends
:class:`pypgkit.BaseRepository` with custom query methods; the
opt-out and SMS cost stores are plain SQL helpers.
"""

from courier.repositories.device import DeviceRepository
from courier.repositories.failed_notification import FailedNotificationRepository
from courier.repositories.job import JobRepository
from courier.repositories.notification_log import NotificationLogRepository
from courier.repositories.opt_out import OptOutRepository
from courier.repositories.preference import PreferenceRepository
from courier.repositories.sms_cost import SmsCostRepository

__all__ = [
    "DeviceRepository",
    "FailedNotificationRepository",
    "JobRepository",
    "NotificationLogRepository",
    "OptOutRepository",
    "PreferenceRepository",
    "SmsCostRepository",
]
