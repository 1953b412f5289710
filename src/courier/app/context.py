"""Dependency injection container for Courier.

Created once during application startup and stored on the Flask app
via ``app.extensions["container"]``.  Accessible from any request
context with :func:`get_container`.  The CLI ``worker`` command builds
one without a Flask app.

Usage::

    from courier.app.context import get_container

    c = get_container()
    result = c.orchestrator.deliver_notification(request)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from flask import current_app

from courier.channels.registry import build_adapters
from courier.delivery.circuit_breaker import ChannelCircuitBreaker
from courier.delivery.dedup import DeduplicationEngine
from courier.delivery.orchestrator import DeliveryOrchestrator
from courier.delivery.preferences import PreferenceGate
from courier.metrics.collector import MetricsCollector
from courier.repositories import (
    DeviceRepository,
    FailedNotificationRepository,
    JobRepository,
    NotificationLogRepository,
    OptOutRepository,
    PreferenceRepository,
    SmsCostRepository,
)
from courier.services.monitoring import NotificationMonitoringService
from courier.services.queue import NotificationQueue
from courier.services.queue_worker import QueueWorker
from courier.services.webhook import WhatsAppWebhookService

if TYPE_CHECKING:
    from collections.abc import Callable

    from pypgkit import Database

    from courier.config.settings import CourierSettings


class Container:
    """Application-wide dependency container.

    Holds a reference to the :class:`Database` singleton, pre-built
    repository instances and the delivery services wired on top of
    them.  The circuit breaker and metrics collector are shared by
    every request thread and queue worker thread in the process.

    Parameters
    ----------
    db:
        Initialised database.
    settings:
        Typed settings tree.
    user_lookup:
        Optional ``phone -> user_id`` resolver for WhatsApp STOP
        handling.

    """

    def __init__(
        self,
        db: Database,
        settings: CourierSettings,
        user_lookup: Callable[[str], str | None] | None = None,
    ) -> None:
        self.db: Database = db
        self.settings: CourierSettings = settings

        # Repositories
        self.notification_logs = NotificationLogRepository(db)
        self.failed_notifications = FailedNotificationRepository(db)
        self.devices = DeviceRepository(db)
        self.opt_outs = OptOutRepository(db)
        self.preference_repo = PreferenceRepository(db)
        self.sms_costs = SmsCostRepository(db)
        self.jobs = JobRepository(db)

        # Shared in-process state
        self.metrics_collector = MetricsCollector()
        self.breaker = ChannelCircuitBreaker(
            failure_threshold=settings.circuit_breaker.failure_threshold,
            recovery_seconds=settings.circuit_breaker.recovery_seconds,
        )

        # Delivery core
        self.adapters = build_adapters(
            settings.channels,
            devices=self.devices,
            opt_outs=self.opt_outs,
            sms_costs=self.sms_costs,
        )
        self.dedup: DeduplicationEngine | None = None
        if settings.dedup.enabled:
            self.dedup = DeduplicationEngine(
                self.notification_logs,
                default_window_seconds=settings.dedup.default_window_seconds,
                critical_window_seconds=settings.dedup.critical_window_seconds,
            )
        self.preferences = PreferenceGate(self.preference_repo, self.opt_outs)
        self.orchestrator = DeliveryOrchestrator(
            self.adapters,
            self.breaker,
            self.dedup,
            self.preferences,
            self.notification_logs,
            self.failed_notifications,
            whatsapp_max_attempts=settings.channels.whatsapp.max_attempts,
            whatsapp_retry_pause=settings.channels.whatsapp.retry_pause_seconds,
            metrics=self.metrics_collector,
        )

        # Services
        self.queue = NotificationQueue(
            self.jobs,
            batch_window_seconds=settings.queue.batch_window_seconds,
            metrics=self.metrics_collector,
        )
        self.queue_worker = QueueWorker(
            self.jobs,
            self.orchestrator.deliver_notification,
            worker_threads=settings.queue.worker_threads,
            poll_seconds=settings.queue.poll_seconds,
            claim_batch_size=settings.queue.claim_batch_size,
            max_backoff_seconds=settings.queue.max_backoff_seconds,
            metrics=self.metrics_collector,
            db=db,
        )
        self.monitoring = NotificationMonitoringService(
            self.notification_logs,
            self.failed_notifications,
            self.queue,
            self.breaker,
        )
        self.webhook = WhatsAppWebhookService(
            self.notification_logs,
            self.opt_outs,
            self.preferences,
            settings.webhook,
            user_lookup=user_lookup,
            metrics=self.metrics_collector,
        )


def get_container() -> Container:
    """Return the :class:`Container` from the current Flask app.

    Raises :class:`RuntimeError` if the database was not
    initialised (i.e. ``create_app`` was called without a
    ``database`` argument).
    """
    container = current_app.extensions.get("container")
    if container is None:
        msg = (
            "Dependency container not available -- "
            "was the database initialised before "
            "create_app()?"
        )
        raise RuntimeError(
            msg,
        )
    return container
