"""Unit tests for courier.db.init (database initialisation)."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch


def _make_db_settings(auto_setup=True):
    return SimpleNamespace(
        host="db.example.com",
        port=5433,
        database="courier_test",
        user="courier",
        password="pw123",
        sslmode="require",
        min_connections=2,
        max_connections=12,
        connection_timeout=10.0,
        auto_setup=auto_setup,
    )


class TestSettingsToConfig:
    @patch("courier.db.init.DatabaseConfig")
    def test_maps_all_fields(self, mock_db_config_class):
        from courier.db.init import _settings_to_config

        _settings_to_config(_make_db_settings())

        mock_db_config_class.assert_called_once_with(
            host="db.example.com",
            port=5433,
            database="courier_test",
            user="courier",
            password="pw123",
            sslmode="require",
            min_connections=2,
            max_connections=12,
            connection_timeout=10.0,
        )


class TestInitDatabase:
    @patch("courier.db.init.Database")
    def test_returns_existing_when_initialized(self, mock_db_class):
        from courier.db.init import init_database

        mock_instance = MagicMock()
        mock_db_class.is_initialized.return_value = True
        mock_db_class.get_instance.return_value = mock_instance

        assert init_database(_make_db_settings()) is mock_instance
        mock_db_class.init.assert_not_called()

    @patch("courier.db.init._settings_to_config")
    @patch("courier.db.init.Database")
    def test_auto_setup_applies_schema(self, mock_db_class, mock_settings_to_config):
        from courier.db.init import _SCHEMA_PATH, init_database

        mock_db_class.is_initialized.return_value = False
        mock_config = MagicMock()
        mock_settings_to_config.return_value = mock_config

        result = init_database(_make_db_settings(auto_setup=True))

        assert result is mock_db_class.init.return_value
        mock_db_class.init.assert_called_once_with(
            config=mock_config,
            schema_path=_SCHEMA_PATH,
            auto_setup=True,
            interactive=False,
        )

    @patch("courier.db.init._settings_to_config")
    @patch("courier.db.init.Database")
    def test_without_auto_setup(self, mock_db_class, mock_settings_to_config):
        from courier.db.init import init_database

        mock_db_class.is_initialized.return_value = False

        init_database(_make_db_settings(auto_setup=False))

        assert mock_db_class.init.call_args.kwargs["schema_path"] is None
        assert mock_db_class.init.call_args.kwargs["auto_setup"] is False


def test_schema_defines_all_tables():
    from courier.cli.commands.db import EXPECTED_TABLES
    from courier.db.init import _SCHEMA_PATH

    sql = _SCHEMA_PATH.read_text(encoding="utf-8")
    for table in EXPECTED_TABLES:
        assert f"CREATE TABLE IF NOT EXISTS {table}" in sql
