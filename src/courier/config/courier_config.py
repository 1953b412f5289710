"""Courier configuration loader built on ConfigKit.

Lifecycle::

    # 1. CLI creates the singleton (once, at startup)
    CourierConfig(config_file="/etc/courier/config.yaml")

    # 2. Any module retrieves it afterwards
    from courier.config import get_config
    cfg = get_config()
    cfg.settings.circuit_breaker.failure_threshold  # typed access

    # 3. Dynamic access
    cfg.get("channels.sms.sender_id", default="PROPLA")
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

from configkit import ConfigKit, ConfigKitMeta

from courier.config.settings import CourierSettings, build_settings

_SCHEMA_PATH = Path(__file__).parent / "schema.json"

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

_MIN_SECRET_LENGTH = 16
_MAX_WHATSAPP_ATTEMPTS = 5

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singleton reference
# ---------------------------------------------------------------------------
_instance: CourierConfig | None = None


def get_config() -> CourierConfig:
    """Return the initialised configuration singleton.

    Raises :class:`RuntimeError` if :class:`CourierConfig` has not been
    created yet (i.e. the CLI entry point has not run).
    """
    if _instance is None:
        msg = (
            "Configuration not initialised. "
            "CourierConfig must be created with config_file= before calling get_config()."
        )
        raise RuntimeError(
            msg,
        )
    return _instance


# ---------------------------------------------------------------------------
# Validation error collector
# ---------------------------------------------------------------------------


class ConfigValidationError(Exception):
    """Raised when cross-field validation finds one or more problems."""

    def __init__(self, errors: list[str]) -> None:
        """Store *errors* and build a human-readable message."""
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _resolve_value(value: str, path: str) -> str:
    """Replace ``${VAR}`` or ``${VAR:-default}`` with env var value."""
    match = _ENV_RE.match(value)
    if match is None:
        return value
    var_name = match.group(1)
    fallback = match.group(2)
    resolved = os.environ.get(var_name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    raise ConfigValidationError(
        [
            f"Environment variable '${{{var_name}}}' referenced "
            f"at '{path}' is not set and has no default",
        ],
    )


def _resolve_env_vars(
    data: Any,  # noqa: ANN401
    path: str = "",
) -> None:
    """Walk *data* in-place and resolve ``${VAR}``/``${VAR:-default}`` strings."""
    if isinstance(data, dict):
        for key in data:
            child_path = f"{path}.{key}" if path else key
            if isinstance(data[key], str):
                data[key] = _resolve_value(data[key], child_path)
            elif isinstance(data[key], (dict, list)):
                _resolve_env_vars(data[key], child_path)
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            child_path = f"{path}[{idx}]"
            if isinstance(item, str):
                data[idx] = _resolve_value(item, child_path)
            elif isinstance(item, (dict, list)):
                _resolve_env_vars(item, child_path)


# ---------------------------------------------------------------------------
# Config class
# ---------------------------------------------------------------------------


class CourierConfig(ConfigKit):
    """Central configuration for the Courier service.

    Subclasses :class:`configkit.ConfigKit`.  The JSON schema is
    bundled at ``config/schema.json``; users supply only ``config_file``.

    After construction the typed settings tree is available at
    :pyattr:`settings` and the raw dict via :pyattr:`data` /
    :pymeth:`get`.
    """

    def __init__(
        self,
        *,
        config_file: str | Path,
        schema_file: str | Path | None = None,  # noqa: ARG002
    ) -> None:
        """Initialise the configuration singleton.

        Parameters
        ----------
        config_file:
            Path to the YAML/JSON configuration file.
        schema_file:
            Ignored.  Exists only to satisfy the
            :class:`ConfigKitMeta` singleton guard.

        """
        global _instance  # noqa: PLW0603

        super().__init__(
            config_file=config_file,
            schema_file=_SCHEMA_PATH,
        )

        self._settings: CourierSettings = build_settings(self.data)
        _instance = self

    # -- lifecycle overrides ------------------------------------------------

    def _load(self) -> None:
        """Load config file then resolve ``${VAR}`` env-var references.

        Runs env-var resolution **before** schema validation so that
        substituted values (e.g. ``${LOG_LEVEL:-INFO}``) are checked
        against enum constraints in the schema.
        """
        super()._load()
        _resolve_env_vars(self._data)  # noqa: SLF001

    # -- typed access -------------------------------------------------------

    @property
    def settings(self) -> CourierSettings:
        """Fully-typed, frozen settings tree."""
        return self._settings

    # -- cross-field validation ---------------------------------------------

    def additional_checks(self) -> None:  # noqa: C901, PLR0912
        """Semantic & cross-field validation.

        Called automatically by ConfigKit **after** schema validation
        passes.  Collects every problem before raising so operators see
        the full list at once.
        """
        errors: list[str] = []
        warnings: list[str] = []

        channels = self.data.get("channels") or {}
        push = channels.get("push") or {}
        whatsapp = channels.get("whatsapp") or {}
        sms = channels.get("sms") or {}
        webhook = self.data.get("webhook") or {}
        api = self.data.get("api") or {}
        queue = self.data.get("queue") or {}
        dedup = self.data.get("dedup") or {}
        server = self.data.get("server") or {}

        # -- Channels --
        if push.get("enabled", True):
            if not push.get("project_id"):
                errors.append("channels.push.project_id is required when push is enabled")
            if not push.get("access_token"):
                errors.append("channels.push.access_token is required when push is enabled")
        if whatsapp.get("enabled", True):
            if not whatsapp.get("phone_number_id"):
                errors.append(
                    "channels.whatsapp.phone_number_id is required when whatsapp is enabled",
                )
            if not whatsapp.get("access_token"):
                errors.append(
                    "channels.whatsapp.access_token is required when whatsapp is enabled",
                )
            attempts = whatsapp.get("max_attempts", 2)
            if attempts > _MAX_WHATSAPP_ATTEMPTS:
                warnings.append(
                    f"channels.whatsapp.max_attempts ({attempts}) is high; "
                    "each attempt delays fallback to sms",
                )
        if sms.get("enabled", True) and not sms.get("api_key"):
            errors.append("channels.sms.api_key is required when sms is enabled")
        if not any(c.get("enabled", True) for c in (push, whatsapp, sms)):
            errors.append("at least one of channels.push/whatsapp/sms must be enabled")

        # -- Dedup --
        critical = dedup.get("critical_window_seconds", 60)
        default = dedup.get("default_window_seconds", 300)
        if critical > default:
            warnings.append(
                f"dedup.critical_window_seconds ({critical}) exceeds "
                f"dedup.default_window_seconds ({default}); critical events "
                "will be suppressed for longer than regular ones",
            )

        # -- Webhook --
        if webhook.get("enabled", True):
            if not webhook.get("verify_token"):
                errors.append("webhook.verify_token is required when webhook.enabled is true")
            if webhook.get("require_signature", True):
                secret = webhook.get("app_secret", "")
                if not secret:
                    errors.append(
                        "webhook.app_secret is required when webhook.require_signature is true",
                    )
                elif len(secret) < _MIN_SECRET_LENGTH:
                    errors.append(
                        f"webhook.app_secret is too short ({len(secret)} chars) "
                        f"- minimum {_MIN_SECRET_LENGTH} characters required",
                    )
            else:
                warnings.append(
                    "webhook.require_signature is false; inbound status updates "
                    "are accepted without verification",
                )

        # -- API --
        api_base = api.get("base_path", "/api").rstrip("/")
        admin_base = api.get("admin_base_path", "/admin").rstrip("/")
        if api_base == admin_base:
            errors.append(
                f"api.admin_base_path ({admin_base!r}) must not collide "
                f"with api.base_path ({api_base!r})",
            )
        if not api.get("admin_token"):
            warnings.append("api.admin_token is empty; monitoring endpoints are unauthenticated")
        default_page = api.get("default_page_size", 20)
        max_page = api.get("max_page_size", 100)
        if default_page > max_page:
            errors.append(
                f"api.default_page_size ({default_page}) must be <= "
                f"api.max_page_size ({max_page})",
            )

        # -- Database --
        db = self.data.get("database") or {}
        min_conn = db.get("min_connections", 2)
        max_conn = db.get("max_connections", 10)
        if min_conn > max_conn:
            errors.append(
                f"database.min_connections ({min_conn}) must be <= "
                f"database.max_connections ({max_conn})",
            )
        threads = queue.get("worker_threads", 4) if queue.get("worker_enabled", True) else 0
        workers = server.get("workers", 2)
        recommended = workers + threads + 2
        if max_conn < recommended:
            warnings.append(
                f"database.max_connections ({max_conn}) is low for "
                f"server.workers={workers} and queue.worker_threads={threads}; "
                f"recommended at least {recommended}",
            )

        for w in warnings:
            log.warning("Config warning: %s", w)

        if errors:
            raise ConfigValidationError(errors)

    # -- helpers ------------------------------------------------------------

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton -- testing only."""
        global _instance  # noqa: PLW0603
        _instance = None
        ConfigKitMeta.reset()

    def __repr__(self) -> str:
        """Return a developer-friendly representation."""
        source = self.data.get("_source", "?")
        return f"<CourierConfig config_file={source}>"
