"""Request helpers shared by the Courier blueprints.

Provides:
- ``require_api_token``: bearer token check for producer/user endpoints
- ``require_admin_token``: bearer token check for operator endpoints
- ``json_body`` and ``pagination`` request parsing helpers

An empty configured token disables the corresponding check.
"""

from __future__ import annotations

import functools
import hmac
from typing import TYPE_CHECKING, Any

from flask import current_app, request

from courier.app.errors import MALFORMED, UNAUTHORIZED, CourierProblem

if TYPE_CHECKING:
    from collections.abc import Callable


def _check_bearer(expected: str) -> None:
    if not expected:
        return
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise CourierProblem(
            UNAUTHORIZED,
            "Missing or invalid Authorization header",
            status=401,
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not hmac.compare_digest(auth_header[7:], expected):
        raise CourierProblem(
            UNAUTHORIZED,
            "Invalid token",
            status=401,
            headers={"WWW-Authenticate": "Bearer"},
        )


def require_api_token(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Enforce ``api.auth_token`` on producer and user endpoints."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        _check_bearer(current_app.config["COURIER_SETTINGS"].api.auth_token)
        return fn(*args, **kwargs)

    return wrapper


def require_admin_token(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Enforce ``api.admin_token`` on monitoring endpoints."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        _check_bearer(current_app.config["COURIER_SETTINGS"].api.admin_token)
        return fn(*args, **kwargs)

    return wrapper


def json_body() -> dict[str, Any]:
    """Return the request JSON object or raise a malformed problem."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise CourierProblem(MALFORMED, "Request body must be a JSON object")
    return data


def int_arg(name: str, default: int, *, minimum: int = 1, maximum: int | None = None) -> int:
    """Parse a positive integer query argument."""
    raw = request.args.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise CourierProblem(
            MALFORMED, f"Query parameter '{name}' must be an integer", field=name
        ) from None
    if value < minimum:
        raise CourierProblem(
            MALFORMED, f"Query parameter '{name}' must be >= {minimum}", field=name
        )
    if maximum is not None:
        value = min(value, maximum)
    return value


def pagination() -> tuple[int, int]:
    """Return ``(page, limit)`` clamped to the configured page sizes."""
    api = current_app.config["COURIER_SETTINGS"].api
    page = int_arg("page", 1)
    limit = int_arg("limit", api.default_page_size, maximum=api.max_page_size)
    return page, limit
