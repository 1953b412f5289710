"""Unit tests for courier.app.errors (RFC 7807 Problem Details)."""

from __future__ import annotations

import flask
from werkzeug.exceptions import MethodNotAllowed

from courier.app.errors import (
    CONFLICT,
    MALFORMED,
    NOT_FOUND,
    PROBLEM_CONTENT_TYPE,
    QUEUE_UNAVAILABLE,
    SERVER_INTERNAL,
    CourierProblem,
    register_error_handlers,
)
from courier.core.errors import (
    ConflictError,
    NotFoundError,
    QueueUnavailableError,
    ValidationError,
)


def _app_raising(exc: Exception) -> flask.Flask:
    app = flask.Flask("test_errors")
    register_error_handlers(app)

    @app.route("/boom")
    def boom():
        raise exc

    return app


class TestCourierProblem:
    def test_to_dict_basic(self):
        p = CourierProblem(MALFORMED, "bad request")
        assert p.to_dict() == {"type": MALFORMED, "detail": "bad request", "status": 400}

    def test_to_dict_optional_fields(self):
        p = CourierProblem(MALFORMED, "bad", title="Bad", field="user_id")
        d = p.to_dict()
        assert d["title"] == "Bad"
        assert d["field"] == "user_id"

    def test_to_response(self):
        app = flask.Flask("t")
        with app.test_request_context():
            resp = CourierProblem(
                MALFORMED, "nope", 401, headers={"WWW-Authenticate": "Bearer"}
            ).to_response()
        assert resp.status_code == 401
        assert resp.headers["Content-Type"] == PROBLEM_CONTENT_TYPE
        assert resp.headers["Cache-Control"] == "no-store"
        assert resp.headers["WWW-Authenticate"] == "Bearer"


class TestHandlers:
    def test_courier_problem(self):
        resp = _app_raising(CourierProblem(MALFORMED, "x", 422)).test_client().get("/boom")
        assert resp.status_code == 422
        assert resp.get_json()["detail"] == "x"

    def test_validation_error(self):
        exc = ValidationError("channel must be one of: push, whatsapp, sms", field="channel")
        resp = _app_raising(exc).test_client().get("/boom")
        assert resp.status_code == 400
        assert resp.get_json()["type"] == MALFORMED
        assert resp.get_json()["field"] == "channel"

    def test_not_found_error(self):
        resp = _app_raising(NotFoundError("gone")).test_client().get("/boom")
        assert resp.status_code == 404
        assert resp.get_json()["type"] == NOT_FOUND

    def test_conflict_error(self):
        resp = _app_raising(ConflictError("already resolved")).test_client().get("/boom")
        assert resp.status_code == 409
        assert resp.get_json()["type"] == CONFLICT

    def test_queue_unavailable_error(self):
        resp = _app_raising(QueueUnavailableError("queue down")).test_client().get("/boom")
        assert resp.status_code == 503
        assert resp.get_json()["type"] == QUEUE_UNAVAILABLE
        assert resp.headers["Retry-After"] == "30"

    def test_http_exception(self):
        resp = _app_raising(MethodNotAllowed()).test_client().get("/boom")
        assert resp.status_code == 405
        assert resp.get_json()["type"] == "about:blank"

    def test_unknown_route(self):
        resp = _app_raising(RuntimeError()).test_client().get("/missing")
        assert resp.status_code == 404
        assert resp.headers["Content-Type"] == PROBLEM_CONTENT_TYPE

    def test_unhandled_exception(self):
        resp = _app_raising(RuntimeError("secret detail")).test_client().get("/boom")
        assert resp.status_code == 500
        body = resp.get_json()
        assert body["type"] == SERVER_INTERNAL
        assert "secret" not in body["detail"]
