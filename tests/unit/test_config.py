"""Unit tests for settings and the config file."""

import json
import pytest

from gator.config.settings import Settings
from gator.config.user_config import (
    ConfigError, GatorConfig, read_config, write_config, set_user,
)
from gator.storage.factory import get_database_url, is_postgres


class TestConfigFile:
    """Tests for ~/.gatorconfig.json handling."""

    def test_missing_file_is_empty_config(self, config_path):
        config = read_config(config_path)
        assert config == GatorConfig()
        assert config.current_user_name == ""

    def test_write_then_read(self, config_path):
        write_config(GatorConfig(db_url="sqlite:///x.db", current_user_name="alice"), config_path)

        config = read_config(config_path)
        assert config.db_url == "sqlite:///x.db"
        assert config.current_user_name == "alice"

    def test_file_uses_snake_case_keys(self, config_path):
        write_config(GatorConfig(db_url="postgres://localhost/gator"), config_path)

        with open(config_path) as f:
            data = json.load(f)
        assert data == {"db_url": "postgres://localhost/gator", "current_user_name": ""}

    def test_set_user_keeps_db_url(self, config_path):
        write_config(GatorConfig(db_url="sqlite:///x.db"), config_path)

        set_user("bob", config_path)

        config = read_config(config_path)
        assert config.current_user_name == "bob"
        assert config.db_url == "sqlite:///x.db"

    def test_malformed_file(self, config_path):
        with open(config_path, "w") as f:
            f.write("{not json")

        with pytest.raises(ConfigError):
            read_config(config_path)

    def test_unknown_keys_ignored(self, config_path):
        with open(config_path, "w") as f:
            json.dump({"db_url": "sqlite:///y.db", "theme": "dark"}, f)

        assert read_config(config_path).db_url == "sqlite:///y.db"


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("GATOR_FETCH_TIMEOUT_SECONDS", raising=False)
        settings = Settings()

        assert settings.fetch_timeout_seconds == 5
        assert settings.user_agent == "gator"
        assert settings.poll_stop_on_error is False
        assert settings.database_url.startswith("sqlite:///")

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("GATOR_POLL_STOP_ON_ERROR", "true")
        monkeypatch.setenv("GATOR_FETCH_TIMEOUT_SECONDS", "2.5")

        settings = Settings()
        assert settings.poll_stop_on_error is True
        assert settings.fetch_timeout_seconds == 2.5


class TestDatabaseUrl:
    """Tests for database URL precedence."""

    def test_environment_wins(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://env/gator")
        config = GatorConfig(db_url="sqlite:///file.db")

        assert get_database_url(config) == "postgresql://env/gator"

    def test_config_file_next(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("GATOR_DATABASE_URL", raising=False)

        assert get_database_url(GatorConfig(db_url="sqlite:///file.db")) == "sqlite:///file.db"

    def test_settings_default_last(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("GATOR_DATABASE_URL", raising=False)

        assert get_database_url(GatorConfig()).startswith("sqlite:///")

    def test_is_postgres(self):
        assert is_postgres("postgresql://localhost/gator")
        assert is_postgres("postgres://localhost/gator")
        assert not is_postgres("sqlite:///gator.db")
