"""Delivery orchestrator: walks the channel fallback chain for one notification.

One call to :meth:`DeliveryOrchestrator.deliver_notification` runs the
whole pipeline for a single request:

1. Build the chain from :data:`~courier.core.types.CHANNEL_ORDER`,
   rotated so the preferred channel leads, minus hard opt-outs.
2. Suppress duplicates of a recent successful delivery.
3. Try each channel in order until one reports ``sent``, consulting the
   circuit breaker and the user's category preferences first.
4. Persist a notification log row and, when nothing was delivered, a
   failed notification row for operators.

The orchestrator never raises.  Adapter exceptions become ``failed``
attempts and persistence errors are logged and reported through
:class:`PersistOutcome`.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Generic, TypeVar
from uuid import uuid4

from courier.core.errors import ValidationError
from courier.core.types import (
    CHANNEL_ORDER,
    NON_PROVIDER_STATUSES,
    AttemptStatus,
    Channel,
    FinalStatus,
    LogStatus,
    parse_channel,
)
from courier.delivery.dedup import hash_context_data
from courier.models.delivery import DeliveryAttempt, DeliveryResult
from courier.models.failed_notification import FailedNotification
from courier.models.notification_log import NotificationLog

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from uuid import UUID

    from courier.channels.base import ChannelAdapter
    from courier.delivery.circuit_breaker import ChannelCircuitBreaker
    from courier.delivery.dedup import DeduplicationEngine
    from courier.delivery.preferences import PreferenceGate
    from courier.metrics.collector import MetricsCollector
    from courier.models.delivery import NotificationRequest
    from courier.repositories.failed_notification import FailedNotificationRepository
    from courier.repositories.notification_log import NotificationLogRepository

log = logging.getLogger(__name__)

T = TypeVar("T")

SKIP_REASON_ALL_OPTED_OUT = "User opted out of all channels"
SKIP_REASON_DUPLICATE = "Duplicate skipped"

WHATSAPP_MAX_ATTEMPTS = 2
WHATSAPP_RETRY_PAUSE_SECONDS = 0.5


@dataclass(frozen=True)
class PersistOutcome(Generic[T]):
    """Result of a best-effort write: either a value or the error message."""

    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def validate_request(
    user_id: str | None,
    template_code: str | None,
    channel: str | None = None,
) -> None:
    """Check producer-supplied delivery parameters.

    Raises
    ------
    ValidationError
        If ``user_id`` or ``template_code`` is missing, or ``channel``
        is given but is not ``push``, ``whatsapp`` or ``sms``.

    """
    if not user_id:
        msg = "user_id is required"
        raise ValidationError(msg, field="user_id")
    if not template_code:
        msg = "template_code is required"
        raise ValidationError(msg, field="template_code")
    if channel is not None and parse_channel(channel) is None:
        msg = "channel must be one of: push, whatsapp, sms"
        raise ValidationError(msg, field="channel")


def build_chain(
    preferred: str | None,
    opted_out: frozenset[Channel] | set[Channel] = frozenset(),
) -> list[Channel]:
    """Return the fallback chain with *preferred* first and opt-outs removed."""
    order = list(CHANNEL_ORDER)
    start = parse_channel(preferred or Channel.PUSH.value)
    if start is not None:
        idx = order.index(start)
        order = order[idx:] + order[:idx]
    return [ch for ch in order if ch not in opted_out]


def _failure_reason(attempts: Sequence[DeliveryAttempt]) -> str:
    return " | ".join(a.describe() for a in attempts)


def _failed_count(attempts: Sequence[DeliveryAttempt]) -> int:
    return sum(1 for a in attempts if a.status == AttemptStatus.FAILED)


class DeliveryOrchestrator:
    """Deliver one notification across push, WhatsApp and SMS.

    Parameters
    ----------
    adapters:
        Enabled channel adapters keyed by channel.  A channel in the
        chain with no adapter is skipped.
    breaker:
        Shared per-channel circuit breaker.
    dedup:
        Duplicate suppression engine, or ``None`` to disable it.
    preferences:
        Consent checks (hard opt-outs and category preferences).
    log_repo, failed_repo:
        Persistence for log rows and operator failure records.
    whatsapp_max_attempts, whatsapp_retry_pause:
        Bounded retry for WhatsApp within one delivery.
    metrics:
        Optional in-process metrics collector.
    sleep:
        Pause function between WhatsApp attempts, injectable for tests.
    now:
        Wall-clock source returning an aware datetime.  The log row's
        ``created_at`` is taken when delivery starts and ``sent_at``
        when the chain finishes, so their gap is the SLA latency.

    """

    def __init__(  # noqa: PLR0913
        self,
        adapters: Mapping[Channel, ChannelAdapter],
        breaker: ChannelCircuitBreaker,
        dedup: DeduplicationEngine | None,
        preferences: PreferenceGate,
        log_repo: NotificationLogRepository,
        failed_repo: FailedNotificationRepository,
        *,
        whatsapp_max_attempts: int = WHATSAPP_MAX_ATTEMPTS,
        whatsapp_retry_pause: float = WHATSAPP_RETRY_PAUSE_SECONDS,
        metrics: MetricsCollector | None = None,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._adapters = dict(adapters)
        self._breaker = breaker
        self._dedup = dedup
        self._preferences = preferences
        self._log_repo = log_repo
        self._failed_repo = failed_repo
        self._whatsapp_max_attempts = max(1, whatsapp_max_attempts)
        self._whatsapp_retry_pause = whatsapp_retry_pause
        self._metrics = metrics
        self._sleep = sleep
        self._now = now or (lambda: datetime.now(UTC))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def deliver_notification(self, request: NotificationRequest) -> DeliveryResult:
        """Run the full delivery pipeline for *request*.  Never raises."""
        started_at = self._now()
        user_id = request.user_id
        template_code = request.template_code
        log.info(
            "Starting delivery",
            extra={
                "user_id": user_id,
                "template_code": template_code,
                "preferred_channel": request.preferred_channel,
            },
        )

        chain = build_chain(request.preferred_channel, self._opted_out_channels(user_id))
        if not chain:
            log.warning(
                "User opted out of all channels",
                extra={"user_id": user_id, "template_code": template_code},
            )
            skipped = self._persist_skipped(request, SKIP_REASON_ALL_OPTED_OUT, started_at)
            return self._finish(request, (), FinalStatus.FAILED, skipped.value)

        context_hash = hash_context_data(request.context_data)
        if self._dedup is not None and self._dedup.is_duplicate(
            user_id,
            template_code,
            context_hash,
            service_instance_id=request.service_instance_id,
            event_type=request.event_type,
        ):
            skipped = self._persist_skipped(
                request,
                SKIP_REASON_DUPLICATE,
                started_at,
                context_hash,
            )
            return self._finish(request, (), FinalStatus.SKIPPED, skipped.value)

        attempts: list[DeliveryAttempt] = []
        delivered = False
        for channel in chain:
            if self._run_channel(request, channel, attempts):
                delivered = True
                break

        log_row = self._persist_log(request, attempts, delivered, context_hash, started_at)
        if not delivered and log_row.ok and log_row.value is not None:
            self._persist_failure(request, attempts, log_row.value)

        status = FinalStatus.DELIVERED if delivered else FinalStatus.FAILED
        return self._finish(request, tuple(attempts), status, log_row.value)

    # ------------------------------------------------------------------
    # Channel walk
    # ------------------------------------------------------------------

    def _opted_out_channels(self, user_id: str) -> frozenset[Channel]:
        try:
            return self._preferences.hard_opted_out_channels(user_id)
        except Exception:
            log.exception("Opt-out lookup failed for user %s; using full chain", user_id)
            return frozenset()

    def _category_allowed(self, request: NotificationRequest, channel: Channel) -> bool:
        try:
            return self._preferences.is_allowed(request.user_id, request.event_type, channel)
        except Exception:
            log.exception(
                "Preference lookup failed for user %s; allowing %s",
                request.user_id,
                channel,
            )
            return True

    def _run_channel(
        self,
        request: NotificationRequest,
        channel: Channel,
        attempts: list[DeliveryAttempt],
    ) -> bool:
        """Try *channel*, append its attempts and return True on ``sent``."""
        adapter = self._adapters.get(channel)
        if adapter is None:
            log.debug("Channel %s is not enabled; skipping", channel)
            return False

        if not self._breaker.is_available(channel):
            log.warning(
                "Circuit open for %s; skipping",
                channel,
                extra={"user_id": request.user_id, "template_code": request.template_code},
            )
            return False

        if not self._category_allowed(request, channel):
            log.info(
                "User disabled %s for %s",
                channel,
                request.event_type,
                extra={"user_id": request.user_id},
            )
            attempts.append(DeliveryAttempt(channel=channel, status=AttemptStatus.OPTED_OUT))
            self._count_attempt(attempts[-1])
            return False

        max_tries = self._whatsapp_max_attempts if channel == Channel.WHATSAPP else 1
        outcome = self._call_adapter(request, adapter, channel, max_tries)
        attempts.extend(outcome)
        for attempt in outcome:
            self._count_attempt(attempt)

        final = outcome[-1]
        if final.succeeded:
            self._breaker.record_success(channel)
            return True
        if final.status not in NON_PROVIDER_STATUSES:
            self._breaker.record_failure(channel)
        return False

    def _call_adapter(
        self,
        request: NotificationRequest,
        adapter: ChannelAdapter,
        channel: Channel,
        max_tries: int,
    ) -> list[DeliveryAttempt]:
        context = request.context_data
        outcome: list[DeliveryAttempt] = []
        for attempt_no in range(1, max_tries + 1):
            log.info(
                "Attempting %s",
                channel,
                extra={
                    "user_id": request.user_id,
                    "template_code": request.template_code,
                    "attempt": attempt_no,
                },
            )
            try:
                result = adapter.send(
                    request.user_id,
                    context.get("_title"),
                    context.get("_body", ""),
                    context,
                    template_name=request.template_code,
                )
            except Exception as exc:
                log.exception(
                    "%s delivery error",
                    channel,
                    extra={"user_id": request.user_id, "template_code": request.template_code},
                )
                outcome.append(
                    DeliveryAttempt(channel=channel, status=AttemptStatus.FAILED, error=str(exc)),
                )
            else:
                if result.status == AttemptStatus.SENT:
                    log.info(
                        "%s sent",
                        channel,
                        extra={"user_id": request.user_id, "message_id": result.message_id},
                    )
                    outcome.append(
                        DeliveryAttempt(
                            channel=channel,
                            message_id=result.message_id,
                            status=AttemptStatus.SENT,
                        ),
                    )
                    return outcome
                if result.status in NON_PROVIDER_STATUSES:
                    outcome.append(
                        DeliveryAttempt(
                            channel=channel,
                            message_id=result.message_id,
                            status=result.status,
                        ),
                    )
                    return outcome
                outcome.append(
                    DeliveryAttempt(
                        channel=channel,
                        message_id=result.message_id,
                        status=AttemptStatus.FAILED,
                        error=f"Attempt {attempt_no}: unexpected status '{result.status}'",
                    ),
                )

            if attempt_no < max_tries:
                self._sleep(self._whatsapp_retry_pause)
        return outcome

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist_skipped(
        self,
        request: NotificationRequest,
        reason: str,
        created_at: datetime,
        context_hash: str | None = None,
    ) -> PersistOutcome[UUID]:
        entry = NotificationLog(
            id=uuid4(),
            user_id=request.user_id,
            template_code=request.template_code,
            channel=Channel.PUSH,
            status=LogStatus.SKIPPED,
            language=request.context_data.get("_language", "en"),
            context_data_hash=context_hash,
            service_instance_id=request.service_instance_id,
            priority=request.priority.value,
            failure_reason=reason,
            created_at=created_at,
        )
        return self._create_log(entry)

    def _persist_log(
        self,
        request: NotificationRequest,
        attempts: Sequence[DeliveryAttempt],
        delivered: bool,
        context_hash: str,
        created_at: datetime,
    ) -> PersistOutcome[UUID]:
        sent = next((a for a in attempts if a.succeeded), None)
        last = attempts[-1] if attempts else None
        reference = sent or last
        now = self._now()

        entry = NotificationLog(
            id=uuid4(),
            user_id=request.user_id,
            template_code=request.template_code,
            channel=reference.channel if reference else Channel.PUSH,
            status=LogStatus.SENT if delivered else LogStatus.FAILED,
            language=request.context_data.get("_language", "en"),
            subject=request.context_data.get("_title"),
            body=request.context_data.get("_body", ""),
            context_data_hash=context_hash,
            service_instance_id=request.service_instance_id,
            priority=request.priority.value,
            external_message_id=(reference.message_id or None) if reference else None,
            sent_at=now if delivered else None,
            failed_at=None if delivered else now,
            failure_reason=None if delivered else _failure_reason(attempts),
            retry_count=_failed_count(attempts),
            created_at=created_at,
        )
        return self._create_log(entry)

    def _create_log(self, entry: NotificationLog) -> PersistOutcome[UUID]:
        try:
            self._log_repo.create(entry)
        except Exception as exc:
            log.warning(
                "Failed to write notification log: %s",
                exc,
                extra={"user_id": entry.user_id, "template_code": entry.template_code},
            )
            return PersistOutcome(error=str(exc))
        return PersistOutcome(value=entry.id)

    def _persist_failure(
        self,
        request: NotificationRequest,
        attempts: Sequence[DeliveryAttempt],
        log_id: UUID,
    ) -> PersistOutcome[UUID]:
        record = FailedNotification(
            id=uuid4(),
            notification_log_id=log_id,
            user_id=request.user_id,
            template_code=request.template_code,
            channel=request.preferred_channel or Channel.PUSH.value,
            context_data=dict(request.context_data),
            failure_reason=_failure_reason(attempts),
            retry_count=_failed_count(attempts),
        )
        try:
            self._failed_repo.create(record)
        except Exception as exc:
            log.warning(
                "Failed to write failed notification record: %s",
                exc,
                extra={"user_id": request.user_id, "template_code": request.template_code},
            )
            return PersistOutcome(error=str(exc))
        log.info(
            "Failure record created",
            extra={"user_id": request.user_id, "notification_log_id": str(log_id)},
        )
        return PersistOutcome(value=record.id)

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _count_attempt(self, attempt: DeliveryAttempt) -> None:
        if self._metrics is not None:
            self._metrics.increment(
                "courier_channel_attempts_total",
                labels={"channel": attempt.channel.value, "status": str(attempt.status)},
            )

    def _finish(
        self,
        request: NotificationRequest,
        attempts: tuple[DeliveryAttempt, ...],
        status: FinalStatus,
        log_id: UUID | None,
    ) -> DeliveryResult:
        if self._metrics is not None:
            self._metrics.increment(
                "courier_deliveries_total",
                labels={"status": status.value},
            )
        log.info(
            "Delivery finished",
            extra={
                "user_id": request.user_id,
                "template_code": request.template_code,
                "final_status": status.value,
                "attempt_count": len(attempts),
            },
        )
        return DeliveryResult(
            user_id=request.user_id,
            template_code=request.template_code,
            attempts=attempts,
            final_status=status,
            notification_log_id=log_id,
        )
