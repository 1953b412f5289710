"""Background delivery worker pool.

Runs ``worker_threads`` daemon threads that claim due jobs from the
``notification.send`` queue and hand each one to the delivery
orchestrator.  Different notifications are delivered concurrently
without coordination; claiming uses ``FOR UPDATE SKIP LOCKED`` so no
job is handed to two threads.

Job outcomes:

- The handler returned (``delivered``, ``skipped`` or ``failed``):
  the job is completed.  A ``failed`` delivery already has its
  operator record written by the orchestrator.
- The handler raised: the job is retried with the priority class
  backoff until ``retry_limit``, then moved to the dead-letter queue.
- The job stayed active longer than ``expire_in_seconds``: it is
  marked expired and then retried or dead-lettered the same way.

The expiry sweep runs on one thread per cluster, elected with a
PostgreSQL advisory lock.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from typing import TYPE_CHECKING

from courier.models.delivery import NotificationRequest
from courier.services.queue import QUEUE_NAME, retry_delay_for

if TYPE_CHECKING:
    from collections.abc import Callable

    from courier.metrics.collector import MetricsCollector
    from courier.models.delivery import DeliveryResult
    from courier.models.job import NotificationJob
    from courier.repositories.job import JobRepository

log = logging.getLogger(__name__)

MAX_POLL_BACKOFF_SECONDS = 300


class QueueWorker:
    """Pool of daemon threads draining the delivery queue.

    Parameters
    ----------
    jobs:
        Job repository.
    handler:
        Called with each decoded :class:`NotificationRequest`; normally
        ``DeliveryOrchestrator.deliver_notification``.
    worker_threads:
        Number of polling threads.
    poll_seconds:
        Idle wait between polls when the queue is empty.
    claim_batch_size:
        Jobs claimed per poll per thread.
    max_backoff_seconds:
        Upper bound on the retry delay for a failed job.
    metrics:
        Optional metrics collector.
    db:
        Database used for leader election of the expiry sweep.  Without
        one, every process sweeps.

    """

    # Advisory lock ID for leader election (arbitrary but stable)
    _ADVISORY_LOCK_ID = 824_101

    def __init__(  # noqa: PLR0913
        self,
        jobs: JobRepository,
        handler: Callable[[NotificationRequest], DeliveryResult],
        worker_threads: int = 4,
        poll_seconds: float = 2.0,
        claim_batch_size: int = 10,
        max_backoff_seconds: int = 3600,
        metrics: MetricsCollector | None = None,
        db=None,
    ) -> None:
        self._jobs = jobs
        self._handler = handler
        self._worker_threads = max(1, worker_threads)
        self._poll_seconds = poll_seconds
        self._claim_batch_size = claim_batch_size
        self._max_backoff = max_backoff_seconds
        self._metrics = metrics
        self._db = db
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the worker threads (no-op if already running)."""
        if any(t.is_alive() for t in self._threads):
            return
        self._stop_event.clear()
        self._threads = []
        for idx in range(self._worker_threads):
            thread = threading.Thread(
                target=self._run,
                args=(idx,),
                name=f"queue-worker-{idx}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        log.info(
            "Queue worker started (threads=%d, poll=%.1fs, batch=%d)",
            self._worker_threads,
            self._poll_seconds,
            self._claim_batch_size,
        )

    def stop(self) -> None:
        """Signal all threads to stop and wait for them."""
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout=self._poll_seconds + 5)
        if self._threads:
            log.info("Queue worker stopped")
        self._threads = []

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _run(self, idx: int) -> None:
        consecutive_failures = 0
        while not self._stop_event.is_set():
            try:
                if idx == 0:
                    self.sweep_expired()
                processed = self.poll_once()
                consecutive_failures = 0
            except Exception:
                consecutive_failures += 1
                log.exception(
                    "Queue worker poll error (consecutive failures: %d)",
                    consecutive_failures,
                )
                if self._metrics:
                    self._metrics.increment("courier_queue_worker_errors_total")
                backoff = min(
                    self._poll_seconds * (2**consecutive_failures),
                    MAX_POLL_BACKOFF_SECONDS,
                )
                self._stop_event.wait(timeout=backoff)
                continue
            if processed == 0:
                self._stop_event.wait(timeout=self._poll_seconds)

    def poll_once(self) -> int:
        """Claim and process one batch of due jobs. Returns the number handled."""
        jobs = self._jobs.claim(QUEUE_NAME, self._claim_batch_size)
        for job in jobs:
            if self._stop_event.is_set():
                break
            self.process_job(job)
        return len(jobs)

    def process_job(self, job: NotificationJob) -> None:
        """Run the handler for *job* and record the job outcome."""
        try:
            request = NotificationRequest.from_payload(job.data)
            result = self._handler(request)
        except Exception as exc:
            log.exception("Delivery job %s raised", job.id)
            self._fail(job, str(exc) or type(exc).__name__)
            return

        self._jobs.complete(job.id, output=result.to_dict())
        self._count("completed")
        log.debug(
            "Job %s completed with status %s",
            job.id,
            result.final_status,
        )

    def sweep_expired(self) -> int:
        """Expire overdue active jobs and retry or dead-letter them."""
        if not self._try_acquire_leader():
            return 0
        try:
            expired = self._jobs.expire_overdue(QUEUE_NAME)
            for job in expired:
                log.warning(
                    "Job %s expired after %ds",
                    job.id,
                    job.expire_in_seconds,
                )
                self._count("expired")
                self._fail(job, f"Job expired after {job.expire_in_seconds}s")
            return len(expired)
        finally:
            self._release_leader()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fail(self, job: NotificationJob, error: str) -> None:
        if job.retry_count < job.retry_limit:
            delay = min(retry_delay_for(job, job.retry_count), self._max_backoff)
            self._jobs.schedule_retry(job.id, delay, error)
            self._count("retried")
            log.info(
                "Job %s scheduled for retry %d/%d in %ds",
                job.id,
                job.retry_count + 1,
                job.retry_limit,
                delay,
            )
            return

        self._jobs.move_to_dead_letter(job.id, error)
        self._count("dead_letter")
        log.error(
            "Job %s moved to dead-letter after %d retries: %s",
            job.id,
            job.retry_count,
            error,
        )

    def _count(self, outcome: str) -> None:
        if self._metrics is not None:
            self._metrics.increment("courier_jobs_total", labels={"outcome": outcome})

    def _try_acquire_leader(self) -> bool:
        """Try to acquire the advisory lock for leader election."""
        if self._db is None:
            return True
        try:
            return bool(
                self._db.fetch_value(
                    "SELECT pg_try_advisory_lock(%s)",
                    (self._ADVISORY_LOCK_ID,),
                ),
            )
        except Exception:
            log.debug("Advisory lock check failed, skipping expiry sweep")
            return False

    def _release_leader(self) -> None:
        """Release the advisory lock."""
        if self._db is None:
            return
        with contextlib.suppress(Exception):
            self._db.execute(
                "SELECT pg_advisory_unlock(%s)",
                (self._ADVISORY_LOCK_ID,),
            )
