"""RFC 7807 Problem Details for the Courier HTTP API.

Provides :class:`CourierProblem`, an exception that renders itself as
an ``application/problem+json`` response, the Courier error-type URNs,
and a Flask error-handler registration function that also maps domain
exceptions (:class:`~courier.core.errors.ValidationError`,
:class:`~courier.core.errors.ConflictError`,
:class:`~courier.core.errors.QueueUnavailableError`,
:class:`~courier.core.errors.NotFoundError`) to problems.

Usage::

    raise CourierProblem(MALFORMED, "Request body is not valid JSON", 400)
"""

from __future__ import annotations

import logging
from typing import Any

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from courier.core.errors import (
    ConflictError,
    NotFoundError,
    QueueUnavailableError,
    ValidationError,
)

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Error-type URNs
# ---------------------------------------------------------------------------
_P = "urn:courier:error:"

MALFORMED = _P + "malformed"
NOT_FOUND = _P + "notFound"
CONFLICT = _P + "conflict"
UNAUTHORIZED = _P + "unauthorized"
SERVER_INTERNAL = _P + "serverInternal"
QUEUE_UNAVAILABLE = _P + "queueUnavailable"

# Content type for RFC 7807 responses
PROBLEM_CONTENT_TYPE = "application/problem+json"


# ---------------------------------------------------------------------------
# Problem exception
# ---------------------------------------------------------------------------


class CourierProblem(Exception):
    """An RFC 7807 *problem details* object that doubles as an exception.

    Parameters
    ----------
    error_type:
        A URN string (one of the constants above) or ``"about:blank"``
        for generic HTTP errors.
    detail:
        Human-readable explanation of the problem.
    status:
        HTTP status code (default 400).
    title:
        Short summary; omitted when *error_type* is self-explanatory.
    field:
        Name of the offending request field, when known.
    headers:
        Extra HTTP headers to include on the response
        (e.g. ``WWW-Authenticate``).

    """

    def __init__(
        self,
        error_type: str,
        detail: str,
        status: int = 400,
        *,
        title: str | None = None,
        field: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.error_type = error_type
        self.detail = detail
        self.status = status
        self.title = title
        self.field = field
        self.extra_headers = headers or {}
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the RFC 7807 JSON structure."""
        body: dict[str, Any] = {
            "type": self.error_type,
            "detail": self.detail,
            "status": self.status,
        }
        if self.title is not None:
            body["title"] = self.title
        if self.field is not None:
            body["field"] = self.field
        return body

    def to_response(self):
        """Build a Flask :class:`~flask.Response`."""
        resp = jsonify(self.to_dict())
        resp.status_code = self.status
        resp.headers["Content-Type"] = PROBLEM_CONTENT_TYPE
        resp.headers["Cache-Control"] = "no-store"
        for key, value in self.extra_headers.items():
            resp.headers[key] = value
        return resp


# ---------------------------------------------------------------------------
# Flask error handler registration
# ---------------------------------------------------------------------------


def register_error_handlers(app: Flask) -> None:
    """Attach handlers that produce RFC 7807 responses for all errors."""

    @app.errorhandler(CourierProblem)
    def _handle_courier_problem(exc: CourierProblem):
        return exc.to_response()

    @app.errorhandler(ValidationError)
    def _handle_validation_error(exc: ValidationError):
        return CourierProblem(MALFORMED, exc.detail, 400, field=exc.field).to_response()

    @app.errorhandler(NotFoundError)
    def _handle_not_found(exc: NotFoundError):
        return CourierProblem(NOT_FOUND, exc.detail, 404).to_response()

    @app.errorhandler(ConflictError)
    def _handle_conflict(exc: ConflictError):
        return CourierProblem(CONFLICT, exc.detail, 409).to_response()

    @app.errorhandler(QueueUnavailableError)
    def _handle_queue_unavailable(exc: QueueUnavailableError):
        return CourierProblem(
            QUEUE_UNAVAILABLE,
            exc.detail,
            503,
            headers={"Retry-After": "30"},
        ).to_response()

    @app.errorhandler(HTTPException)
    def _handle_http_exception(exc: HTTPException):
        problem = CourierProblem(
            "about:blank",
            exc.description or "An error occurred",
            exc.code or 500,
            title=exc.name,
        )
        return problem.to_response()

    @app.errorhandler(Exception)
    def _handle_unhandled(exc: Exception):
        # HTTPException subclasses are already caught above; this
        # handler covers everything else (genuine 500s).
        log.exception("Unhandled exception during request")
        problem = CourierProblem(
            SERVER_INTERNAL,
            "An unexpected internal error occurred",
            500,
        )
        return problem.to_response()
