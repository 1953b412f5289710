"""Tests for create_app and the dependency container."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from flask import Flask

from courier.app import create_app
from courier.app.context import Container, get_container
from courier.config.settings import build_settings
from courier.core.types import Channel


def _settings(**overrides):
    data = {
        "database": {"database": "t", "user": "t"},
        "webhook": {"verify_token": "v", "app_secret": "0123456789abcdef0123"},
    }
    data.update(overrides)
    return build_settings(data)


def _config(settings=None):
    config = MagicMock()
    config.settings = settings or _settings()
    return config


class TestCreateApp:
    def test_without_database_serves_health_only(self):
        app = create_app(config=_config())
        rules = {r.rule for r in app.url_map.iter_rules()}
        assert "/livez" in rules
        assert "/healthz" in rules
        assert "/api/notifications" not in rules
        assert "container" not in app.extensions

    def test_with_database_wires_container(self):
        app = create_app(config=_config(), database=MagicMock(), start_worker=False)
        container = app.extensions["container"]
        assert isinstance(container, Container)
        rules = {r.rule for r in app.url_map.iter_rules()}
        assert "/api/notifications" in rules
        assert "/webhooks/whatsapp" in rules
        assert container.queue_worker.running is False

    def test_starts_worker_when_enabled(self):
        with patch("courier.app.context.QueueWorker") as worker_cls, patch("atexit.register"):
            create_app(config=_config(), database=MagicMock())
        worker_cls.return_value.start.assert_called_once()

    def test_worker_disabled_in_config(self):
        settings = _settings(queue={"worker_enabled": False})
        with patch("courier.app.context.QueueWorker") as worker_cls:
            create_app(config=_config(settings), database=MagicMock())
        worker_cls.return_value.start.assert_not_called()


class TestContainer:
    def test_wires_delivery_core(self):
        container = Container(MagicMock(), _settings())
        assert set(container.adapters) == {Channel.PUSH, Channel.WHATSAPP, Channel.SMS}
        assert container.dedup is not None
        assert container.orchestrator._breaker is container.breaker
        assert container.monitoring.get_breaker_status() == {}

    def test_dedup_disabled(self):
        container = Container(MagicMock(), _settings(dedup={"enabled": False}))
        assert container.dedup is None

    def test_disabled_channel_has_no_adapter(self):
        container = Container(
            MagicMock(),
            _settings(channels={"whatsapp": {"enabled": False}}),
        )
        assert Channel.WHATSAPP not in container.adapters


class TestGetContainer:
    def test_returns_container(self):
        app = Flask("t")
        sentinel = object()
        app.extensions["container"] = sentinel
        with app.app_context():
            assert get_container() is sentinel

    def test_raises_without_container(self):
        app = Flask("t")
        with app.app_context(), pytest.raises(RuntimeError):
            get_container()
