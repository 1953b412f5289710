"""Delivery job queue repository.

Jobs live in ``notification_jobs``.  Claiming uses
``SELECT ... FOR UPDATE SKIP LOCKED`` so any number of worker threads
(in any number of processes) can pull from the same queue without
handing the same job to two workers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from psycopg.types.json import Jsonb
from pypgkit import BaseRepository, Database

from courier.core.types import JobState
from courier.models.job import NotificationJob

if TYPE_CHECKING:
    from uuid import UUID

_CLAIMABLE = (JobState.CREATED.value, JobState.RETRY.value)


class JobRepository(BaseRepository[NotificationJob]):
    table_name = "notification_jobs"
    primary_key = "id"

    def _row_to_entity(self, row: dict) -> NotificationJob:
        return NotificationJob(
            id=row["id"],
            name=row["name"],
            data=dict(row.get("data") or {}),
            state=JobState(row["state"]),
            priority=row.get("priority", 5),
            retry_limit=row.get("retry_limit", 3),
            retry_count=row.get("retry_count", 0),
            retry_delay=row.get("retry_delay", 30),
            retry_backoff=row.get("retry_backoff", True),
            expire_in_seconds=row.get("expire_in_seconds", 600),
            singleton_key=row.get("singleton_key"),
            dead_letter=row.get("dead_letter"),
            start_after=row["start_after"],
            started_at=row.get("started_at"),
            completed_at=row.get("completed_at"),
            output=row.get("output"),
            created_at=row["created_at"],
        )

    def _entity_to_row(self, entity: NotificationJob) -> dict:
        return {
            "id": entity.id,
            "name": entity.name,
            "data": Jsonb(entity.data),
            "state": entity.state.value,
            "priority": entity.priority,
            "retry_limit": entity.retry_limit,
            "retry_count": entity.retry_count,
            "retry_delay": entity.retry_delay,
            "retry_backoff": entity.retry_backoff,
            "expire_in_seconds": entity.expire_in_seconds,
            "singleton_key": entity.singleton_key,
            "dead_letter": entity.dead_letter,
        }

    # -- producer side ------------------------------------------------------

    def replace_pending_singleton(
        self,
        name: str,
        singleton_key: str,
        window_seconds: int,
        data: dict[str, Any],
    ) -> UUID | None:
        """Overwrite the payload of a not-yet-started job sharing *singleton_key*.

        Only jobs created within the last *window_seconds* qualify.
        Returns the id of the job that was updated, or ``None``.
        """
        db = Database.get_instance()
        row = db.fetch_one(
            "UPDATE notification_jobs SET data = %s "
            "WHERE id = ("
            "    SELECT id FROM notification_jobs "
            "    WHERE name = %s AND singleton_key = %s AND state = %s "
            "    AND created_at >= now() - make_interval(secs => %s) "
            "    ORDER BY created_at DESC LIMIT 1 "
            "    FOR UPDATE SKIP LOCKED"
            ") RETURNING id",
            (Jsonb(data), name, singleton_key, JobState.CREATED.value, window_seconds),
            as_dict=True,
        )
        return row["id"] if row else None

    # -- worker side --------------------------------------------------------

    def claim(self, name: str, limit: int) -> list[NotificationJob]:
        """Atomically mark up to *limit* due jobs active and return them.

        Lower ``priority`` numbers are claimed first, then oldest first.
        """
        db = Database.get_instance()
        rows = db.fetch_all(
            "UPDATE notification_jobs SET state = %s, started_at = now() "
            "WHERE id IN ("
            "    SELECT id FROM notification_jobs "
            "    WHERE name = %s AND state = ANY(%s) AND start_after <= now() "
            "    ORDER BY priority, created_at "
            "    LIMIT %s "
            "    FOR UPDATE SKIP LOCKED"
            ") RETURNING *",
            (JobState.ACTIVE.value, name, list(_CLAIMABLE), limit),
            as_dict=True,
        )
        jobs = [self._row_to_entity(r) for r in rows]
        jobs.sort(key=lambda j: (j.priority, j.created_at))
        return jobs

    def complete(self, job_id: UUID, output: dict[str, Any] | None = None) -> bool:
        db = Database.get_instance()
        return (
            db.execute(
                "UPDATE notification_jobs "
                "SET state = %s, completed_at = now(), output = %s "
                "WHERE id = %s AND state = %s",
                (
                    JobState.COMPLETED.value,
                    Jsonb(output) if output is not None else None,
                    job_id,
                    JobState.ACTIVE.value,
                ),
            )
            > 0
        )

    def schedule_retry(self, job_id: UUID, delay_seconds: float, error: str) -> bool:
        """Put an active job back in the queue after *delay_seconds*."""
        db = Database.get_instance()
        return (
            db.execute(
                "UPDATE notification_jobs "
                "SET state = %s, retry_count = retry_count + 1, started_at = NULL, "
                "    start_after = now() + make_interval(secs => %s), output = %s "
                "WHERE id = %s AND state = ANY(%s)",
                (
                    JobState.RETRY.value,
                    delay_seconds,
                    Jsonb({"error": error}),
                    job_id,
                    [JobState.ACTIVE.value, JobState.EXPIRED.value],
                ),
            )
            > 0
        )

    def move_to_dead_letter(self, job_id: UUID, error: str) -> bool:
        """Move an exhausted job onto its dead-letter queue."""
        db = Database.get_instance()
        return (
            db.execute(
                "UPDATE notification_jobs "
                "SET state = %s, name = COALESCE(dead_letter, name), "
                "    completed_at = now(), output = %s "
                "WHERE id = %s AND state = ANY(%s)",
                (
                    JobState.DEAD_LETTER.value,
                    Jsonb({"error": error}),
                    job_id,
                    [JobState.ACTIVE.value, JobState.EXPIRED.value],
                ),
            )
            > 0
        )

    def expire_overdue(self, name: str) -> list[NotificationJob]:
        """Mark active jobs that outlived ``expire_in_seconds`` as expired."""
        db = Database.get_instance()
        rows = db.fetch_all(
            "UPDATE notification_jobs SET state = %s "
            "WHERE name = %s AND state = %s "
            "AND started_at + make_interval(secs => expire_in_seconds) < now() "
            "RETURNING *",
            (JobState.EXPIRED.value, name, JobState.ACTIVE.value),
            as_dict=True,
        )
        return [self._row_to_entity(r) for r in rows]

    def find_dead_letters(self, name: str, limit: int = 50, offset: int = 0) -> list[NotificationJob]:
        db = Database.get_instance()
        rows = db.fetch_all(
            "SELECT * FROM notification_jobs WHERE name = %s AND state = %s "
            "ORDER BY completed_at DESC LIMIT %s OFFSET %s",
            (name, JobState.DEAD_LETTER.value, limit, offset),
            as_dict=True,
        )
        return [self._row_to_entity(r) for r in rows]

    def count_by_state(self, name: str) -> dict[str, int]:
        db = Database.get_instance()
        rows = db.fetch_all(
            "SELECT state, COUNT(*) AS count FROM notification_jobs "
            "WHERE name = %s GROUP BY state",
            (name,),
            as_dict=True,
        )
        return {r["state"]: int(r["count"]) for r in rows}
