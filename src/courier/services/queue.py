"""Queue front-end: turns producer requests into delivery jobs.

Jobs are rows in ``notification_jobs`` (see :mod:`courier.repositories.job`)
on the ``notification.send`` queue.  Each priority class carries its
own claim weight, retry policy and expiry.

Batchable requests share a singleton key per user and template.  When
a job with that key was enqueued recently and has not started yet, its
payload is overwritten instead of adding a second job, so a burst of
updates produces one notification carrying the latest context.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING
from uuid import uuid4

from courier.core.errors import ValidationError
from courier.core.types import JobState, Priority
from courier.delivery.orchestrator import validate_request
from courier.models.job import NotificationJob

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from uuid import UUID

    from courier.metrics.collector import MetricsCollector
    from courier.models.delivery import NotificationRequest
    from courier.repositories.job import JobRepository

log = logging.getLogger(__name__)

QUEUE_NAME = "notification.send"
DEAD_LETTER_QUEUE = "notification.send.dead-letter"
BATCH_WINDOW_SECONDS = 300


@dataclass(frozen=True)
class PriorityPolicy:
    """Claim weight and retry policy for one priority class."""

    weight: int
    retry_limit: int
    retry_delay: int
    retry_backoff: bool
    expire_in_seconds: int


PRIORITY_OPTIONS: Mapping[Priority, PriorityPolicy] = MappingProxyType(
    {
        Priority.HIGH: PriorityPolicy(1, 3, 10, True, 300),
        Priority.NORMAL: PriorityPolicy(5, 3, 30, True, 600),
        Priority.LOW: PriorityPolicy(10, 3, 60, True, 1800),
    },
)


def retry_delay_for(policy: PriorityPolicy | NotificationJob, retry_count: int) -> int:
    """Return seconds to wait before retry number ``retry_count + 1``."""
    if policy.retry_backoff:
        return policy.retry_delay * (2**retry_count)
    return policy.retry_delay


def batch_key(user_id: str, template_code: str) -> str:
    return f"batch:{user_id}:{template_code}"


class NotificationQueue:
    """Producer-facing queue API.

    Parameters
    ----------
    jobs:
        Job repository.
    batch_window_seconds:
        How long a pending batchable job stays open for replacement.
    metrics:
        Optional metrics collector.

    """

    def __init__(
        self,
        jobs: JobRepository,
        batch_window_seconds: int = BATCH_WINDOW_SECONDS,
        metrics: MetricsCollector | None = None,
    ) -> None:
        self._jobs = jobs
        self._batch_window = batch_window_seconds
        self._metrics = metrics

    def queue_notification(
        self,
        request: NotificationRequest,
        *,
        priority: Priority | None = None,
    ) -> UUID | None:
        """Validate *request* and enqueue it.

        Returns the job id, the id of the pending job whose payload was
        replaced (batchable requests), or ``None`` if the insert failed.

        Raises
        ------
        ValidationError
            If the request is missing required fields or names an
            unknown channel.

        """
        validate_request(request.user_id, request.template_code, request.preferred_channel)
        effective = Priority(priority or request.priority)
        policy = PRIORITY_OPTIONS[effective]
        payload = request.to_payload()
        payload["priority"] = effective.value

        singleton_key = None
        if request.batchable:
            singleton_key = batch_key(request.user_id, request.template_code)
            try:
                replaced = self._jobs.replace_pending_singleton(
                    QUEUE_NAME,
                    singleton_key,
                    self._batch_window,
                    payload,
                )
            except Exception:
                log.exception("Batch lookup failed for %s", singleton_key)
                replaced = None
            if replaced is not None:
                log.info(
                    "Batched notification into pending job %s",
                    replaced,
                    extra={"user_id": request.user_id, "template_code": request.template_code},
                )
                self._count("batched")
                return replaced

        job = NotificationJob(
            id=uuid4(),
            name=QUEUE_NAME,
            data=payload,
            state=JobState.CREATED,
            priority=policy.weight,
            retry_limit=policy.retry_limit,
            retry_delay=policy.retry_delay,
            retry_backoff=policy.retry_backoff,
            expire_in_seconds=policy.expire_in_seconds,
            singleton_key=singleton_key,
            dead_letter=DEAD_LETTER_QUEUE,
        )
        try:
            self._jobs.create(job)
        except Exception:
            log.exception(
                "Failed to enqueue notification",
                extra={"user_id": request.user_id, "template_code": request.template_code},
            )
            self._count("enqueue_failed")
            return None

        log.info(
            "Notification queued",
            extra={
                "job_id": str(job.id),
                "user_id": request.user_id,
                "template_code": request.template_code,
                "priority": effective.value,
            },
        )
        self._count("queued")
        return job.id

    def queue_bulk_notifications(
        self,
        requests: Iterable[NotificationRequest],
    ) -> list[UUID | None]:
        """Enqueue each request; invalid ones yield ``None`` instead of raising."""
        job_ids: list[UUID | None] = []
        for request in requests:
            try:
                job_ids.append(self.queue_notification(request))
            except ValidationError as exc:
                log.warning(
                    "Skipping invalid bulk notification: %s",
                    exc.detail,
                    extra={"user_id": request.user_id},
                )
                job_ids.append(None)
        queued = sum(1 for j in job_ids if j is not None)
        log.info("Bulk notifications queued: %d/%d", queued, len(job_ids))
        return job_ids

    def stats(self) -> dict[str, dict[str, int]]:
        """Return job counts by state for the main and dead-letter queues."""
        return {
            QUEUE_NAME: self._jobs.count_by_state(QUEUE_NAME),
            DEAD_LETTER_QUEUE: self._jobs.count_by_state(DEAD_LETTER_QUEUE),
        }

    def _count(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.increment("courier_enqueue_total", labels={"outcome": outcome})
