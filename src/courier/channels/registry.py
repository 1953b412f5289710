"""Channel adapter registry.

Builds one adapter per enabled channel from the ``channels`` config
section.  Disabled channels are simply absent from the mapping; the
orchestrator treats a missing adapter like a channel that cannot be
tried.

Usage::

    from courier.channels.registry import build_adapters

    adapters = build_adapters(settings.channels, devices=..., opt_outs=..., sms_costs=...)
    adapters[Channel.SMS].send(user_id, None, "", context, "otp")
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from courier.channels.push import PushAdapter
from courier.channels.sms import SmsAdapter
from courier.channels.whatsapp import WhatsAppAdapter
from courier.core.types import Channel

if TYPE_CHECKING:
    from courier.channels.base import ChannelAdapter
    from courier.config.settings import ChannelSettings
    from courier.repositories.device import DeviceRepository
    from courier.repositories.opt_out import OptOutRepository
    from courier.repositories.sms_cost import SmsCostRepository

log = logging.getLogger(__name__)


def build_adapters(
    settings: ChannelSettings,
    *,
    devices: DeviceRepository,
    opt_outs: OptOutRepository,
    sms_costs: SmsCostRepository,
) -> dict[Channel, ChannelAdapter]:
    """Return adapters for every enabled channel, keyed by :class:`Channel`."""
    adapters: dict[Channel, ChannelAdapter] = {}
    if settings.push.enabled:
        adapters[Channel.PUSH] = PushAdapter(settings.push, devices)
    if settings.whatsapp.enabled:
        adapters[Channel.WHATSAPP] = WhatsAppAdapter(settings.whatsapp, opt_outs)
    if settings.sms.enabled:
        adapters[Channel.SMS] = SmsAdapter(settings.sms, sms_costs)

    disabled = sorted(c.value for c in Channel if c not in adapters)
    log.info(
        "Loaded channel adapters: %s%s",
        ", ".join(a.value for a in adapters),
        f" (disabled: {', '.join(disabled)})" if disabled else "",
    )
    return adapters
