"""Configuration subsystem for Courier.

Public API::

    from courier.config import get_config, CourierConfig

    # At startup (CLI only):
    CourierConfig(config_file="config.yaml")

    # Everywhere else:
    cfg    = get_config()
    port   = cfg.settings.server.port          # typed access
    sender = cfg.get("channels.sms.sender_id")  # dynamic dot-path
"""

from courier.config.courier_config import (
    ConfigValidationError,
    CourierConfig,
    get_config,
)
from courier.config.settings import (
    ApiSettings,
    AuditLogSettings,
    ChannelSettings,
    CircuitBreakerSettings,
    CourierSettings,
    DatabaseSettings,
    DedupSettings,
    LoggingSettings,
    MetricsSettings,
    PushSettings,
    QueueSettings,
    ServerSettings,
    SmsSettings,
    WebhookSettings,
    WhatsAppSettings,
)

__all__ = [
    "ApiSettings",
    "AuditLogSettings",
    "ChannelSettings",
    "CircuitBreakerSettings",
    "ConfigValidationError",
    "CourierConfig",
    "CourierSettings",
    "DatabaseSettings",
    "DedupSettings",
    "LoggingSettings",
    "MetricsSettings",
    "PushSettings",
    "QueueSettings",
    "ServerSettings",
    "SmsSettings",
    "WebhookSettings",
    "WhatsAppSettings",
    "get_config",
]
