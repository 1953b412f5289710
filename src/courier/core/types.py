"""Enumerated types shared by the delivery core and the persistence layer.

All enums inherit from :class:`enum.StrEnum` so their ``.value`` is a
plain string that psycopg serialises as TEXT and JSON round-trips
naturally.
"""

from __future__ import annotations

from enum import StrEnum

# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


class Channel(StrEnum):
    PUSH = "push"
    WHATSAPP = "whatsapp"
    SMS = "sms"


# Fixed global fallback order; the preferred channel is rotated to the front.
CHANNEL_ORDER: tuple[Channel, ...] = (Channel.PUSH, Channel.WHATSAPP, Channel.SMS)


def parse_channel(value: str | None) -> Channel | None:
    """Return the :class:`Channel` for *value*, or ``None`` if unknown."""
    if value is None:
        return None
    try:
        return Channel(value)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Priority
# ---------------------------------------------------------------------------


class Priority(StrEnum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class AttemptStatus(StrEnum):
    SENT = "sent"
    FAILED = "failed"
    NO_TOKENS = "no_tokens"
    NO_PHONE = "no_phone"
    OPTED_OUT = "opted_out"


# Outcomes caused by missing user data or consent, not by the provider.
# They never count against a channel's circuit breaker.
NON_PROVIDER_STATUSES = frozenset(
    {
        AttemptStatus.NO_TOKENS,
        AttemptStatus.NO_PHONE,
        AttemptStatus.OPTED_OUT,
    }
)


class FinalStatus(StrEnum):
    DELIVERED = "delivered"
    FAILED = "failed"
    SKIPPED = "skipped"


# ---------------------------------------------------------------------------
# Notification log
# ---------------------------------------------------------------------------


class LogStatus(StrEnum):
    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"
    SKIPPED = "skipped"


# Statuses that mean a provider accepted the message.
SUCCESSFUL_LOG_STATUSES = frozenset(
    {
        LogStatus.SENT,
        LogStatus.DELIVERED,
        LogStatus.READ,
    }
)


# ---------------------------------------------------------------------------
# Queue jobs
# ---------------------------------------------------------------------------


class JobState(StrEnum):
    CREATED = "created"
    RETRY = "retry"
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"
    FAILED = "failed"
    DEAD_LETTER = "dead_letter"


# ---------------------------------------------------------------------------
# Devices / preferences
# ---------------------------------------------------------------------------


class DevicePlatform(StrEnum):
    ANDROID = "android"
    IOS = "ios"
    WEB = "web"


class Language(StrEnum):
    HINDI = "hi"
    ENGLISH = "en"
