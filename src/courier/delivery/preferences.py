"""User consent checks and preference management.

Two kinds of consent exist:

- **Hard opt-outs** (``notification_opt_outs``) remove a channel from
  every fallback chain for the user.
- **Category preferences** (``user_notification_preferences``) switch a
  channel off for one event category only.  Critical event types
  bypass them.

Consent changes are written to the ``courier.audit`` logger.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from courier.core.errors import ValidationError
from courier.core.types import Channel, Language, parse_channel
from courier.repositories.preference import PREFERENCE_FIELDS

if TYPE_CHECKING:
    from collections.abc import Mapping

    from courier.models.preference import UserNotificationPreference
    from courier.repositories.opt_out import OptOutRepository
    from courier.repositories.preference import PreferenceRepository

log = logging.getLogger(__name__)
audit_log = logging.getLogger("courier.audit")

# Event types the user cannot switch off.
CRITICAL_EVENT_TYPES = frozenset(
    {"sla_alert", "receipt_delivery", "otp", "payment_confirmation"},
)

# event type -> channel -> preference field that gates it
PREFERENCE_MAP: Mapping[str, Mapping[Channel, str]] = MappingProxyType(
    {
        "service_status_change": MappingProxyType(
            {
                Channel.PUSH: "service_updates_push",
                Channel.WHATSAPP: "service_updates_whatsapp",
            },
        ),
        "payment_confirmation": MappingProxyType(
            {
                Channel.PUSH: "payment_push",
                Channel.SMS: "payment_sms",
            },
        ),
        "document_delivered": MappingProxyType(
            {
                Channel.PUSH: "document_push",
                Channel.WHATSAPP: "document_whatsapp",
            },
        ),
        "campaign_marketing": MappingProxyType(
            {
                Channel.WHATSAPP: "marketing_whatsapp",
            },
        ),
    },
)


def _channel_fields(channel: Channel) -> list[str]:
    return sorted({fields[channel] for fields in PREFERENCE_MAP.values() if channel in fields})


class PreferenceGate:
    """Answers "may we use this channel for this user and event?".

    Parameters
    ----------
    preferences:
        Category preference repository.
    opt_outs:
        Hard opt-out repository.

    """

    def __init__(
        self,
        preferences: PreferenceRepository,
        opt_outs: OptOutRepository,
    ) -> None:
        self._preferences = preferences
        self._opt_outs = opt_outs

    # -- delivery checks ----------------------------------------------------

    def hard_opted_out_channels(self, user_id: str) -> frozenset[Channel]:
        """Return channels the user has hard-opted out of."""
        return self._opt_outs.channels_for_user(user_id)

    def is_allowed(self, user_id: str, event_type: str | None, channel: Channel) -> bool:
        """Return False only if a category preference switches *channel* off."""
        if event_type is None or event_type in CRITICAL_EVENT_TYPES:
            return True
        field_name = PREFERENCE_MAP.get(event_type, {}).get(channel)
        if field_name is None:
            return True
        prefs = self._preferences.get_or_create(user_id)
        return bool(getattr(prefs, field_name))

    # -- preference CRUD ----------------------------------------------------

    def get_preferences(self, user_id: str) -> UserNotificationPreference:
        return self._preferences.get_or_create(user_id)

    def update_preferences(
        self,
        user_id: str,
        updates: Mapping[str, Any],
    ) -> UserNotificationPreference:
        """Apply the allowed subset of *updates* and return the new record.

        Unknown keys are ignored.  Boolean fields must be booleans and
        ``preferred_language`` must be ``hi`` or ``en``.

        Raises
        ------
        ValidationError
            If a known field carries an invalid value.

        """
        fields: dict[str, Any] = {}
        for key, value in updates.items():
            if key not in PREFERENCE_FIELDS:
                continue
            if key == "preferred_language":
                if value not in {lang.value for lang in Language}:
                    msg = f"preferred_language must be one of 'hi', 'en' (got {value!r})"
                    raise ValidationError(msg, field=key)
                fields[key] = value
            else:
                if not isinstance(value, bool):
                    msg = f"{key} must be a boolean"
                    raise ValidationError(msg, field=key)
                fields[key] = value

        record = self._preferences.upsert_fields(user_id, fields)
        if fields:
            audit_log.info(
                "Preferences updated",
                extra={"user_id": user_id, "fields": sorted(fields)},
            )
        return record

    def get_user_language(self, user_id: str) -> Language:
        """Return the user's preferred language, defaulting to Hindi on error."""
        try:
            return self._preferences.get_or_create(user_id).preferred_language
        except Exception:
            log.exception("Failed to load preferred language for user %s", user_id)
            return Language.HINDI

    # -- hard opt-outs ------------------------------------------------------

    def opt_out(self, user_id: str, channel: str | Channel) -> bool:
        """Hard-opt *user_id* out of *channel*. Returns False if already opted out."""
        resolved = self._require_channel(channel)
        added = self._opt_outs.add(user_id, resolved)
        if added:
            audit_log.info(
                "User opted out of channel",
                extra={"user_id": user_id, "channel": resolved.value},
            )
        return added

    def opt_in(self, user_id: str, channel: str | Channel) -> bool:
        """Remove a hard opt-out. Returns False if none existed."""
        resolved = self._require_channel(channel)
        removed = self._opt_outs.remove(user_id, resolved)
        if removed:
            audit_log.info(
                "User opted back in to channel",
                extra={"user_id": user_id, "channel": resolved.value},
            )
        return removed

    def disable_channel_preferences(self, user_id: str, channel: str | Channel) -> None:
        """Switch off every category preference that gates *channel*."""
        resolved = self._require_channel(channel)
        fields = _channel_fields(resolved)
        if not fields:
            return
        self._preferences.upsert_fields(user_id, dict.fromkeys(fields, False))
        audit_log.info(
            "Channel preferences disabled",
            extra={"user_id": user_id, "channel": resolved.value, "fields": fields},
        )

    @staticmethod
    def _require_channel(channel: str | Channel) -> Channel:
        resolved = parse_channel(channel)
        if resolved is None:
            msg = f"Unknown channel {channel!r}"
            raise ValidationError(msg, field="channel")
        return resolved
