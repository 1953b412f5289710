"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.
JSON Schema defaults exist only for documentation; these builders
are what the application actually reads.

Access pattern::

    from courier.config import get_config

    breaker = get_config().settings.circuit_breaker
    print(breaker.failure_threshold, breaker.recovery_seconds)
"""

from __future__ import annotations

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServerSettings:
    """HTTP server configuration (bind address, workers, timeouts)."""

    bind: str
    port: int
    workers: int
    worker_class: str
    timeout: int
    graceful_timeout: int
    keepalive: int
    max_requests: int
    max_requests_jitter: int


def _build_server(data: dict | None) -> ServerSettings:
    d = data or {}
    return ServerSettings(
        bind=d.get("bind", "0.0.0.0"),  # noqa: S104
        port=d.get("port", 8080),
        workers=d.get("workers", 2),
        worker_class=d.get("worker_class", "sync"),
        timeout=d.get("timeout", 30),
        graceful_timeout=d.get("graceful_timeout", 30),
        keepalive=d.get("keepalive", 2),
        max_requests=d.get("max_requests", 0),
        max_requests_jitter=d.get("max_requests_jitter", 0),
    )


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuditLogSettings:
    """Audit log output settings (file, rotation)."""

    enabled: bool
    file: str | None
    max_file_size_bytes: int
    backup_count: int


@dataclass(frozen=True)
class LoggingSettings:
    """Application logging configuration (level, format, audit)."""

    level: str
    format: str
    audit: AuditLogSettings


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    a = d.get("audit") or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "json"),
        audit=AuditLogSettings(
            enabled=a.get("enabled", False),
            file=a.get("file"),
            max_file_size_bytes=a.get("max_file_size_bytes", 104857600),
            backup_count=a.get("backup_count", 10),
        ),
    )


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """PostgreSQL connection and pool settings."""

    host: str
    port: int
    database: str
    user: str
    password: str
    sslmode: str
    min_connections: int
    max_connections: int
    connection_timeout: float
    auto_setup: bool


def _build_database(data: dict | None) -> DatabaseSettings:
    d = data or {}
    return DatabaseSettings(
        host=d.get("host", "localhost"),
        port=d.get("port", 5432),
        database=d["database"],
        user=d["user"],
        password=d.get("password", ""),
        sslmode=d.get("sslmode", "prefer"),
        min_connections=d.get("min_connections", 2),
        max_connections=d.get("max_connections", 10),
        connection_timeout=d.get("connection_timeout", 30.0),
        auto_setup=d.get("auto_setup", False),
    )


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PushSettings:
    """FCM HTTP v1 push channel."""

    enabled: bool
    base_url: str
    project_id: str
    access_token: str
    android_channel_id: str
    timeout_seconds: int


@dataclass(frozen=True)
class WhatsAppSettings:
    """WhatsApp Business (Graph API) template messaging channel."""

    enabled: bool
    base_url: str
    phone_number_id: str
    access_token: str
    default_language: str
    max_attempts: int
    retry_pause_seconds: float
    timeout_seconds: int


@dataclass(frozen=True)
class SmsSettings:
    """MSG91 SMS gateway channel."""

    enabled: bool
    base_url: str
    api_key: str
    sender_id: str
    route: str
    country: str
    provider: str
    cost_per_message_paise: int
    timeout_seconds: int


@dataclass(frozen=True)
class ChannelSettings:
    push: PushSettings
    whatsapp: WhatsAppSettings
    sms: SmsSettings


def _build_channels(data: dict | None) -> ChannelSettings:
    d = data or {}
    p = d.get("push") or {}
    w = d.get("whatsapp") or {}
    s = d.get("sms") or {}
    return ChannelSettings(
        push=PushSettings(
            enabled=p.get("enabled", True),
            base_url=p.get("base_url", "https://fcm.googleapis.com/v1"),
            project_id=p.get("project_id", ""),
            access_token=p.get("access_token", ""),
            android_channel_id=p.get("android_channel_id", "service_updates"),
            timeout_seconds=p.get("timeout_seconds", 10),
        ),
        whatsapp=WhatsAppSettings(
            enabled=w.get("enabled", True),
            base_url=w.get("base_url", "https://graph.facebook.com/v18.0"),
            phone_number_id=w.get("phone_number_id", ""),
            access_token=w.get("access_token", ""),
            default_language=w.get("default_language", "hi"),
            max_attempts=w.get("max_attempts", 2),
            retry_pause_seconds=w.get("retry_pause_seconds", 0.5),
            timeout_seconds=w.get("timeout_seconds", 10),
        ),
        sms=SmsSettings(
            enabled=s.get("enabled", True),
            base_url=s.get("base_url", "https://api.msg91.com/api/v5"),
            api_key=s.get("api_key", ""),
            sender_id=s.get("sender_id", "PROPLA"),
            route=s.get("route", "4"),
            country=s.get("country", "91"),
            provider=s.get("provider", "msg91"),
            cost_per_message_paise=s.get("cost_per_message_paise", 25),
            timeout_seconds=s.get("timeout_seconds", 10),
        ),
    )


# ---------------------------------------------------------------------------
# Delivery policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CircuitBreakerSettings:
    """Per-channel circuit breaker thresholds."""

    failure_threshold: int
    recovery_seconds: float


def _build_circuit_breaker(data: dict | None) -> CircuitBreakerSettings:
    d = data or {}
    return CircuitBreakerSettings(
        failure_threshold=d.get("failure_threshold", 5),
        recovery_seconds=d.get("recovery_seconds", 60.0),
    )


@dataclass(frozen=True)
class DedupSettings:
    """Duplicate suppression windows."""

    enabled: bool
    default_window_seconds: int
    critical_window_seconds: int


def _build_dedup(data: dict | None) -> DedupSettings:
    d = data or {}
    return DedupSettings(
        enabled=d.get("enabled", True),
        default_window_seconds=d.get("default_window_seconds", 300),
        critical_window_seconds=d.get("critical_window_seconds", 60),
    )


@dataclass(frozen=True)
class QueueSettings:
    """Job queue front-end and worker pool."""

    worker_enabled: bool
    worker_threads: int
    poll_seconds: float
    claim_batch_size: int
    batch_window_seconds: int
    max_backoff_seconds: int


def _build_queue(data: dict | None) -> QueueSettings:
    d = data or {}
    return QueueSettings(
        worker_enabled=d.get("worker_enabled", True),
        worker_threads=d.get("worker_threads", 4),
        poll_seconds=d.get("poll_seconds", 2.0),
        claim_batch_size=d.get("claim_batch_size", 10),
        batch_window_seconds=d.get("batch_window_seconds", 300),
        max_backoff_seconds=d.get("max_backoff_seconds", 3600),
    )


# ---------------------------------------------------------------------------
# HTTP surfaces
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WebhookSettings:
    """Inbound WhatsApp webhook verification."""

    enabled: bool
    path: str
    verify_token: str
    app_secret: str
    require_signature: bool


def _build_webhook(data: dict | None) -> WebhookSettings:
    d = data or {}
    return WebhookSettings(
        enabled=d.get("enabled", True),
        path=d.get("path", "/webhooks/whatsapp"),
        verify_token=d.get("verify_token", ""),
        app_secret=d.get("app_secret", ""),
        require_signature=d.get("require_signature", True),
    )


@dataclass(frozen=True)
class ApiSettings:
    """Producer and operator API."""

    base_path: str
    admin_base_path: str
    auth_token: str
    admin_token: str
    default_page_size: int
    max_page_size: int


def _build_api(data: dict | None) -> ApiSettings:
    d = data or {}
    return ApiSettings(
        base_path=d.get("base_path", "/api"),
        admin_base_path=d.get("admin_base_path", "/admin"),
        auth_token=d.get("auth_token", ""),
        admin_token=d.get("admin_token", ""),
        default_page_size=d.get("default_page_size", 20),
        max_page_size=d.get("max_page_size", 100),
    )


@dataclass(frozen=True)
class MetricsSettings:
    enabled: bool
    path: str


def _build_metrics(data: dict | None) -> MetricsSettings:
    d = data or {}
    return MetricsSettings(
        enabled=d.get("enabled", False),
        path=d.get("path", "/metrics"),
    )


# ---------------------------------------------------------------------------
# Root settings aggregate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CourierSettings:
    server: ServerSettings
    logging: LoggingSettings
    database: DatabaseSettings
    channels: ChannelSettings
    circuit_breaker: CircuitBreakerSettings
    dedup: DedupSettings
    queue: QueueSettings
    webhook: WebhookSettings
    api: ApiSettings
    metrics: MetricsSettings


def build_settings(data: dict) -> CourierSettings:
    """Build the full typed settings tree from raw config data.

    Called once during :class:`CourierConfig` initialization after
    schema validation and environment-variable resolution.
    """
    return CourierSettings(
        server=_build_server(data.get("server")),
        logging=_build_logging(data.get("logging")),
        database=_build_database(data.get("database")),
        channels=_build_channels(data.get("channels")),
        circuit_breaker=_build_circuit_breaker(data.get("circuit_breaker")),
        dedup=_build_dedup(data.get("dedup")),
        queue=_build_queue(data.get("queue")),
        webhook=_build_webhook(data.get("webhook")),
        api=_build_api(data.get("api")),
        metrics=_build_metrics(data.get("metrics")),
    )
