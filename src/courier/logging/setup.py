"""Structured logging configuration for Courier.

Provides JSON and text formatters, a request-context filter that
injects Flask ``g`` attributes into every log record, and a
one-call ``configure_logging`` function driven by config settings.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from courier.config.settings import LoggingSettings

# Attributes that are part of the standard LogRecord; everything
# else is considered "extra" and gets included in structured output.
_STANDARD_ATTRS = frozenset(
    {
        "args",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)

# Request context, filled in by RequestContextFilter.
_CONTEXT_ATTRS = ("request_id", "client_ip", "method", "path")

# Delivery identifiers, emitted after the request context in this order.
DELIVERY_ATTRS = (
    "job_id",
    "user_id",
    "template_code",
    "channel",
    "message_id",
    "attempt",
    "final_status",
)

_HANDLED_ATTRS = _STANDARD_ATTRS | frozenset(_CONTEXT_ATTRS) | frozenset(DELIVERY_ATTRS)


def delivery_fields(record: logging.LogRecord) -> dict[str, object]:
    """Return the delivery identifiers set on *record*, as plain values.

    Enum members become their value and UUIDs their string form.
    """
    fields: dict[str, object] = {}
    for attr in DELIVERY_ATTRS:
        value = getattr(record, attr, None)
        if value is None:
            continue
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, UUID):
            value = str(value)
        fields[attr] = value
    return fields


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class StructuredFormatter(logging.Formatter):
    """JSON-lines formatter for production logging.

    Each record becomes one JSON object: timestamp, level, logger and
    message, then the request context, then the delivery identifiers
    in :data:`DELIVERY_ATTRS` order, then any remaining *extra*
    attributes (``phone``, ``duration_ms`` ...).
    """

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()

        data: dict = {
            "timestamp": datetime.fromtimestamp(
                record.created,
                tz=UTC,
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
        }

        for attr in _CONTEXT_ATTRS:
            value = getattr(record, attr, None)
            if value is not None and value != "-":
                data[attr] = value

        data.update(delivery_fields(record))

        for key, value in record.__dict__.items():
            if key not in _HANDLED_ATTRS and not key.startswith("_"):
                data.setdefault(key, value)

        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            data["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development / console use.

    Delivery identifiers are appended as ``key=value`` pairs, e.g.
    ``Attempting push job_id=... user_id=u-1 attempt=1``.
    """

    _FMT = "%(asctime)s %(levelname)-8s [%(request_id)s] %(name)s: %(message)s"

    def __init__(self) -> None:
        super().__init__(fmt=self._FMT, datefmt="%Y-%m-%d %H:%M:%S")

    def formatMessage(self, record: logging.LogRecord) -> str:  # noqa: N802
        line = super().formatMessage(record)
        fields = delivery_fields(record)
        if not fields:
            return line
        return line + " " + " ".join(f"{k}={v}" for k, v in fields.items())


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


class RequestContextFilter(logging.Filter):
    """Inject Flask request context into every log record.

    Adds ``request_id``, ``client_ip``, ``method`` and ``path`` from
    ``flask.g`` / ``flask.request`` when a request context is active.
    Queue workers run outside a request, so they fall back to ``"-"``
    unless the caller passed ``extra={"request_id": ...}``.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "request_id"):
            record.request_id = "-"  # type: ignore[attr-defined]
        if not hasattr(record, "client_ip"):
            record.client_ip = "-"  # type: ignore[attr-defined]
        if not hasattr(record, "method"):
            record.method = None  # type: ignore[attr-defined]
        if not hasattr(record, "path"):
            record.path = None  # type: ignore[attr-defined]

        from flask import g, has_request_context, request  # noqa: PLC0415

        if has_request_context():
            record.request_id = getattr(g, "request_id", record.request_id)  # type: ignore[attr-defined]
            record.client_ip = request.remote_addr or record.client_ip  # type: ignore[attr-defined]
            record.method = request.method  # type: ignore[attr-defined]
            record.path = request.path  # type: ignore[attr-defined]

        return True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def configure_logging(settings: LoggingSettings) -> logging.Logger:
    """Configure the ``courier`` logger hierarchy from settings.

    Replaces any bootstrap handlers with properly formatted output.
    Sets up the ``courier.audit`` logger (operator actions such as
    manual retries and opt-outs) if ``settings.audit.enabled``.

    Returns the root ``courier`` logger.
    """
    level = getattr(logging, settings.level.upper(), logging.INFO)

    root = logging.getLogger("courier")
    root.setLevel(level)
    root.handlers.clear()
    root.propagate = False

    formatter: logging.Formatter
    formatter = StructuredFormatter() if settings.format == "json" else TextFormatter()

    ctx_filter = RequestContextFilter()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.addFilter(ctx_filter)
    root.addHandler(console)

    if settings.audit.enabled:
        audit = logging.getLogger("courier.audit")
        audit.setLevel(logging.INFO)

        if settings.audit.file:
            from logging.handlers import RotatingFileHandler  # noqa: PLC0415

            try:
                fh = RotatingFileHandler(
                    settings.audit.file,
                    maxBytes=settings.audit.max_file_size_bytes,
                    backupCount=settings.audit.backup_count,
                )
            except OSError as exc:
                root.warning(
                    "Could not open audit log file %s: %s",
                    settings.audit.file,
                    exc,
                )
            else:
                # Audit logs are always structured JSON
                fh.setFormatter(StructuredFormatter())
                fh.addFilter(ctx_filter)
                audit.addHandler(fh)

    for lib in ("werkzeug", "gunicorn", "gunicorn.access", "gunicorn.error", "psycopg.pool"):
        logging.getLogger(lib).setLevel(logging.WARNING)

    return root
