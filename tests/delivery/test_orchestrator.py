"""Tests for the delivery orchestrator (fallback chain, dedup, persistence).

Pattern: adapters are small fakes that replay scripted outcomes; the
circuit breaker is real; repositories, dedup and the preference gate
are MagicMocks.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from courier.channels.base import ChannelError, SendResult
from courier.core.errors import ValidationError
from courier.core.types import AttemptStatus, Channel, FinalStatus, LogStatus, Priority
from courier.delivery.circuit_breaker import ChannelCircuitBreaker
from courier.delivery.dedup import hash_context_data
from courier.delivery.orchestrator import (
    SKIP_REASON_ALL_OPTED_OUT,
    SKIP_REASON_DUPLICATE,
    DeliveryOrchestrator,
    PersistOutcome,
    build_chain,
    validate_request,
)
from courier.metrics.collector import MetricsCollector
from courier.models.delivery import NotificationRequest

START = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeAdapter:
    """Replays scripted outcomes: a SendResult is returned, an exception raised."""

    def __init__(self, channel: Channel, *outcomes) -> None:
        self.channel = channel
        self._outcomes = list(outcomes)
        self.calls: list[tuple] = []

    def send(self, user_id, subject, body, context_data, template_name=None):
        self.calls.append((user_id, subject, body, dict(context_data), template_name))
        outcome = self._outcomes.pop(0) if len(self._outcomes) > 1 else self._outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def sent(message_id: str) -> SendResult:
    return SendResult(message_id=message_id, status=AttemptStatus.SENT)


def _request(**overrides) -> NotificationRequest:
    data = {
        "user_id": "user-1",
        "template_code": "service_status_change_push_hi_v1",
        "context_data": {"service_name": "Mutation", "_phone": "+919800000000"},
    }
    data.update(overrides)
    return NotificationRequest(**data)


class Harness:
    def __init__(
        self,
        adapters,
        *,
        opted_out=frozenset(),
        duplicate=False,
        breaker=None,
        now=None,
    ):
        self.adapters = {a.channel: a for a in adapters}
        self.breaker = breaker or ChannelCircuitBreaker(clock=lambda: 0.0)
        self.dedup = MagicMock()
        self.dedup.is_duplicate.return_value = duplicate
        self.preferences = MagicMock()
        self.preferences.hard_opted_out_channels.return_value = frozenset(opted_out)
        self.preferences.is_allowed.return_value = True
        self.log_repo = MagicMock()
        self.failed_repo = MagicMock()
        self.metrics = MetricsCollector()
        self.sleeps: list[float] = []
        self.orchestrator = DeliveryOrchestrator(
            self.adapters,
            self.breaker,
            self.dedup,
            self.preferences,
            self.log_repo,
            self.failed_repo,
            whatsapp_max_attempts=2,
            whatsapp_retry_pause=0.5,
            metrics=self.metrics,
            sleep=self.sleeps.append,
            now=now,
        )

    def deliver(self, request=None):
        return self.orchestrator.deliver_notification(request or _request())

    @property
    def log_entry(self):
        return self.log_repo.create.call_args.args[0]

    @property
    def failed_entry(self):
        return self.failed_repo.create.call_args.args[0]


# ---------------------------------------------------------------------------
# Chain construction and validation
# ---------------------------------------------------------------------------


class TestBuildChain:
    def test_default_is_push_first(self):
        assert build_chain(None) == [Channel.PUSH, Channel.WHATSAPP, Channel.SMS]

    def test_preferred_rotates_to_front(self):
        assert build_chain("whatsapp") == [Channel.WHATSAPP, Channel.SMS, Channel.PUSH]
        assert build_chain("sms") == [Channel.SMS, Channel.PUSH, Channel.WHATSAPP]

    def test_unknown_preferred_keeps_global_order(self):
        assert build_chain("email") == [Channel.PUSH, Channel.WHATSAPP, Channel.SMS]

    def test_opted_out_channels_removed(self):
        assert build_chain("whatsapp", {Channel.WHATSAPP}) == [Channel.SMS, Channel.PUSH]
        assert build_chain(None, set(Channel)) == []


class TestValidateRequest:
    def test_valid(self):
        validate_request("u1", "tpl", "push")
        validate_request("u1", "tpl")

    @pytest.mark.parametrize(
        ("user_id", "template_code", "channel", "field"),
        [
            ("", "tpl", None, "user_id"),
            (None, "tpl", None, "user_id"),
            ("u1", "", None, "template_code"),
            ("u1", "tpl", "email", "channel"),
        ],
    )
    def test_invalid(self, user_id, template_code, channel, field):
        with pytest.raises(ValidationError) as exc_info:
            validate_request(user_id, template_code, channel)
        assert exc_info.value.field == field


class TestPersistOutcome:
    def test_ok(self):
        assert PersistOutcome(value=1).ok is True
        assert PersistOutcome(error="boom").ok is False


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class TestHappyPath:
    def test_push_delivers_first(self):
        push = FakeAdapter(Channel.PUSH, sent("projects/p/messages/1"))
        wa = FakeAdapter(Channel.WHATSAPP, sent("wamid.1"))
        h = Harness([push, wa])

        result = h.deliver()

        assert result.final_status == FinalStatus.DELIVERED
        assert [a.channel for a in result.attempts] == [Channel.PUSH]
        assert wa.calls == []
        assert h.log_entry.status == LogStatus.SENT
        assert h.log_entry.channel == Channel.PUSH
        assert h.log_entry.external_message_id == "projects/p/messages/1"
        assert h.log_entry.retry_count == 0
        assert result.notification_log_id == h.log_entry.id
        h.failed_repo.create.assert_not_called()

    def test_adapter_receives_routing_hints(self):
        push = FakeAdapter(Channel.PUSH, sent("m1"))
        h = Harness([push])
        context = {"_title": "Update", "_body": "Step 2 done", "step": "2"}

        h.deliver(_request(context_data=context))

        user_id, subject, body, ctx, template = push.calls[0]
        assert (user_id, subject, body) == ("user-1", "Update", "Step 2 done")
        assert ctx == context
        assert template == "service_status_change_push_hi_v1"

    def test_log_row_carries_request_fields(self):
        h = Harness([FakeAdapter(Channel.PUSH, sent("m1"))])
        h.deliver(
            _request(
                context_data={"_title": "T", "_body": "B", "_language": "hi"},
                service_instance_id="svc-9",
                priority=Priority.HIGH,
            ),
        )
        entry = h.log_entry
        assert entry.subject == "T"
        assert entry.body == "B"
        assert entry.language == "hi"
        assert entry.service_instance_id == "svc-9"
        assert entry.priority == "high"
        assert entry.sent_at is not None
        assert entry.failed_at is None

    def test_fallback_to_whatsapp(self):
        push = FakeAdapter(Channel.PUSH, ChannelError("FCM down"))
        wa = FakeAdapter(Channel.WHATSAPP, sent("wamid.1"))
        h = Harness([push, wa])

        result = h.deliver()

        assert result.delivered
        assert [(a.channel, a.status) for a in result.attempts] == [
            (Channel.PUSH, AttemptStatus.FAILED),
            (Channel.WHATSAPP, AttemptStatus.SENT),
        ]
        assert result.attempts[0].error == "FCM down"
        assert h.log_entry.channel == Channel.WHATSAPP
        assert h.log_entry.retry_count == 1
        assert h.breaker.get_status() == {"push": {"is_open": False, "failures": 1}}

    def test_sms_otp_with_preferred_channel(self):
        sms = FakeAdapter(Channel.SMS, sent("req-77"))
        push = FakeAdapter(Channel.PUSH, sent("m1"))
        h = Harness([push, sms])

        result = h.deliver(
            _request(
                template_code="otp_sms_en_v1",
                preferred_channel="sms",
                event_type="otp",
                context_data={"otp": "482913", "_phone": "+919812345678"},
            ),
        )

        assert result.delivered
        assert [a.channel for a in result.attempts] == [Channel.SMS]
        assert push.calls == []
        h.dedup.is_duplicate.assert_called_once()
        assert h.dedup.is_duplicate.call_args.kwargs["event_type"] == "otp"


class TestExhaustedChain:
    def test_all_channels_fail(self):
        push = FakeAdapter(Channel.PUSH, ChannelError("push err"))
        wa = FakeAdapter(Channel.WHATSAPP, ChannelError("wa err"))
        sms = FakeAdapter(Channel.SMS, ChannelError("sms err"))
        h = Harness([push, wa, sms])

        result = h.deliver()

        assert result.final_status == FinalStatus.FAILED
        assert [a.channel for a in result.attempts] == [
            Channel.PUSH,
            Channel.WHATSAPP,
            Channel.WHATSAPP,
            Channel.SMS,
        ]
        assert h.sleeps == [0.5]
        reason = "push: push err | whatsapp: wa err | whatsapp: wa err | sms: sms err"
        assert h.log_entry.status == LogStatus.FAILED
        assert h.log_entry.failure_reason == reason
        assert h.log_entry.retry_count == 4
        assert h.log_entry.failed_at is not None

        failed = h.failed_entry
        assert failed.notification_log_id == h.log_entry.id
        assert failed.failure_reason == reason
        assert failed.retry_count == 4
        assert failed.channel == "push"
        assert failed.context_data["service_name"] == "Mutation"

    def test_failed_record_uses_preferred_channel(self):
        sms = FakeAdapter(Channel.SMS, ChannelError("sms err"))
        h = Harness([sms])
        h.deliver(_request(preferred_channel="sms"))
        assert h.failed_entry.channel == "sms"

    def test_each_failure_counts_once_per_channel_on_breaker(self):
        wa = FakeAdapter(Channel.WHATSAPP, ChannelError("wa err"))
        h = Harness([wa])
        h.deliver(_request(preferred_channel="whatsapp"))
        assert h.breaker.get_status()["whatsapp"]["failures"] == 1


class TestWhatsAppRetry:
    def test_second_attempt_succeeds(self):
        wa = FakeAdapter(Channel.WHATSAPP, ChannelError("timeout"), sent("wamid.2"))
        h = Harness([wa])

        result = h.deliver(_request(preferred_channel="whatsapp"))

        assert result.delivered
        assert [a.status for a in result.attempts] == [AttemptStatus.FAILED, AttemptStatus.SENT]
        assert len(wa.calls) == 2
        assert h.sleeps == [0.5]
        assert h.log_entry.external_message_id == "wamid.2"
        assert h.breaker.get_status() == {}

    def test_unexpected_status_is_failure(self):
        wa = FakeAdapter(Channel.WHATSAPP, SendResult("wamid.3", "queued"))
        h = Harness([wa])

        result = h.deliver(_request(preferred_channel="whatsapp"))

        assert result.final_status == FinalStatus.FAILED
        assert result.attempts[0].error == "Attempt 1: unexpected status 'queued'"
        assert result.attempts[1].error == "Attempt 2: unexpected status 'queued'"

    def test_no_phone_stops_retries(self):
        wa = FakeAdapter(Channel.WHATSAPP, SendResult("", AttemptStatus.NO_PHONE))
        sms = FakeAdapter(Channel.SMS, sent("req-1"))
        h = Harness([wa, sms])

        result = h.deliver(_request(preferred_channel="whatsapp"))

        assert len(wa.calls) == 1
        assert h.sleeps == []
        assert result.attempts[0].status == AttemptStatus.NO_PHONE
        assert result.delivered
        assert "whatsapp" not in h.breaker.get_status()


class TestSkippedChannels:
    def test_no_tokens_falls_through_without_breaker(self):
        push = FakeAdapter(Channel.PUSH, SendResult("", AttemptStatus.NO_TOKENS))
        wa = FakeAdapter(Channel.WHATSAPP, sent("wamid.1"))
        h = Harness([push, wa])

        result = h.deliver()

        assert [a.status for a in result.attempts] == [AttemptStatus.NO_TOKENS, AttemptStatus.SENT]
        assert h.breaker.get_status() == {}
        assert h.log_entry.retry_count == 0

    def test_open_circuit_is_skipped_silently(self):
        breaker = ChannelCircuitBreaker(clock=lambda: 0.0)
        for _ in range(5):
            breaker.record_failure(Channel.PUSH)
        push = FakeAdapter(Channel.PUSH, sent("m1"))
        wa = FakeAdapter(Channel.WHATSAPP, sent("wamid.1"))
        h = Harness([push, wa], breaker=breaker)

        result = h.deliver()

        assert push.calls == []
        assert [a.channel for a in result.attempts] == [Channel.WHATSAPP]

    def test_disabled_channel_is_skipped(self):
        sms = FakeAdapter(Channel.SMS, sent("req-1"))
        h = Harness([sms])
        result = h.deliver()
        assert [a.channel for a in result.attempts] == [Channel.SMS]

    def test_category_preference_denial(self):
        push = FakeAdapter(Channel.PUSH, sent("m1"))
        wa = FakeAdapter(Channel.WHATSAPP, sent("wamid.1"))
        h = Harness([push, wa])
        h.preferences.is_allowed.side_effect = lambda _u, _e, ch: ch != Channel.PUSH

        result = h.deliver(_request(event_type="service_status_change"))

        assert push.calls == []
        assert [(a.channel, a.status) for a in result.attempts] == [
            (Channel.PUSH, AttemptStatus.OPTED_OUT),
            (Channel.WHATSAPP, AttemptStatus.SENT),
        ]
        assert h.breaker.get_status() == {}

    def test_preference_lookup_failure_allows(self):
        push = FakeAdapter(Channel.PUSH, sent("m1"))
        h = Harness([push])
        h.preferences.is_allowed.side_effect = RuntimeError("db down")
        assert h.deliver().delivered

    def test_opt_out_lookup_failure_uses_full_chain(self):
        push = FakeAdapter(Channel.PUSH, sent("m1"))
        h = Harness([push])
        h.preferences.hard_opted_out_channels.side_effect = RuntimeError("db down")
        assert h.deliver().delivered


class TestSuppression:
    def test_opted_out_of_everything(self):
        push = FakeAdapter(Channel.PUSH, sent("m1"))
        h = Harness([push], opted_out=set(Channel))

        result = h.deliver()

        assert result.final_status == FinalStatus.FAILED
        assert result.attempts == ()
        assert push.calls == []
        assert h.log_entry.status == LogStatus.SKIPPED
        assert h.log_entry.failure_reason == SKIP_REASON_ALL_OPTED_OUT
        h.dedup.is_duplicate.assert_not_called()
        h.failed_repo.create.assert_not_called()

    def test_duplicate_is_skipped(self):
        push = FakeAdapter(Channel.PUSH, sent("m1"))
        h = Harness([push], duplicate=True)
        request = _request(service_instance_id="svc-1")

        result = h.deliver(request)

        assert result.final_status == FinalStatus.SKIPPED
        assert result.attempts == ()
        assert push.calls == []
        entry = h.log_entry
        assert entry.status == LogStatus.SKIPPED
        assert entry.channel == Channel.PUSH
        assert entry.failure_reason == SKIP_REASON_DUPLICATE
        assert entry.context_data_hash == hash_context_data(request.context_data)
        assert result.notification_log_id == entry.id

    def test_without_dedup_engine(self):
        push = FakeAdapter(Channel.PUSH, sent("m1"))
        h = Harness([push])
        h.orchestrator._dedup = None
        assert h.deliver().delivered


class TestPersistenceFailures:
    def test_log_write_failure_still_returns_result(self):
        push = FakeAdapter(Channel.PUSH, ChannelError("down"))
        h = Harness([push])
        h.log_repo.create.side_effect = RuntimeError("db down")

        result = h.deliver()

        assert result.final_status == FinalStatus.FAILED
        assert result.notification_log_id is None
        h.failed_repo.create.assert_not_called()

    def test_failed_record_write_failure_is_swallowed(self):
        push = FakeAdapter(Channel.PUSH, ChannelError("down"))
        h = Harness([push])
        h.failed_repo.create.side_effect = RuntimeError("db down")

        result = h.deliver()

        assert result.final_status == FinalStatus.FAILED
        assert result.notification_log_id is not None


class SteppingClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class SlowAdapter(FakeAdapter):
    """Moves the clock forward by *delay* seconds on every send."""

    def __init__(self, channel: Channel, clock: SteppingClock, delay: float, *outcomes) -> None:
        super().__init__(channel, *outcomes)
        self._clock = clock
        self._delay = delay

    def send(self, *args, **kwargs):
        self._clock.advance(self._delay)
        return super().send(*args, **kwargs)


class TestLogTimestamps:
    def test_created_at_is_delivery_start(self):
        clock = SteppingClock(START)
        push = FakeAdapter(Channel.PUSH, sent("m1"))
        h = Harness([push], now=clock)

        h.deliver()

        entry = h.log_entry
        assert entry.created_at == START
        assert entry.created_at <= entry.sent_at

    def test_slow_chain_produces_gap(self):
        clock = SteppingClock(START)
        push = SlowAdapter(Channel.PUSH, clock, 10, ChannelError("timeout"))
        wa = SlowAdapter(Channel.WHATSAPP, clock, 25, sent("wamid.1"))
        h = Harness([push, wa], now=clock)

        h.deliver()

        entry = h.log_entry
        assert entry.channel == Channel.WHATSAPP
        assert entry.created_at == START
        assert (entry.sent_at - entry.created_at).total_seconds() == 35

    def test_failed_row_keeps_start_time(self):
        clock = SteppingClock(START)
        push = SlowAdapter(Channel.PUSH, clock, 4, ChannelError("down"))
        h = Harness([push], now=clock)

        h.deliver()

        entry = h.log_entry
        assert entry.created_at == START
        assert entry.failed_at == START + timedelta(seconds=4)

    def test_skipped_row_has_start_time(self):
        clock = SteppingClock(START)
        h = Harness([FakeAdapter(Channel.PUSH, sent("m1"))], duplicate=True, now=clock)

        h.deliver()

        assert h.log_entry.created_at == START


class TestMetrics:
    def test_counts_outcome_and_attempts(self):
        push = FakeAdapter(Channel.PUSH, ChannelError("down"))
        wa = FakeAdapter(Channel.WHATSAPP, sent("wamid.1"))
        h = Harness([push, wa])
        h.deliver()

        assert h.metrics.get("courier_deliveries_total", labels={"status": "delivered"}) == 1
        assert (
            h.metrics.get(
                "courier_channel_attempts_total",
                labels={"channel": "push", "status": "failed"},
            )
            == 1
        )
        assert (
            h.metrics.get(
                "courier_channel_attempts_total",
                labels={"channel": "whatsapp", "status": "sent"},
            )
            == 1
        )
